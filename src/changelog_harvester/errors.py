"""Error taxonomy for the harvester.

Configuration errors are fatal and raised before any side effect.
Transport errors are retryable by whoever scheduled the run.
"""

from typing import List, Optional


class HarvesterError(Exception):
    pass


class ConfigurationError(HarvesterError):
    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class PromptNotFoundError(ConfigurationError):
    def __init__(self, name: str):
        super().__init__(f"Prompt '{name}' not found in Langfuse or local prompt files", missing=[name])
        self.name = name


class TransportError(HarvesterError):
    """A fetch against Slack or the LLM endpoint failed. Safe to retry the whole run."""

    retryable = True


class ModelOutputError(HarvesterError):
    """The model answered, but not with JSON we could read (after repair)."""
