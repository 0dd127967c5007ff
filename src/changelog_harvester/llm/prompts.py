"""Prompt store.

Prompts come from Langfuse prompt management when configured, otherwise from
YAML files in PROMPTS_DIR. The version travels with the text and is stamped on
every release produced with it.
"""

import logging
from pathlib import Path
from typing import Optional

import yaml
from langfuse import Langfuse
from pydantic import BaseModel

from ..config import Settings
from ..errors import PromptNotFoundError

logger = logging.getLogger(__name__)


class PromptTemplate(BaseModel):
    name: str
    text: str
    version: str


def _flatten(prompt) -> str:
    # Chat prompts are a list of {"role", "content"} messages
    if isinstance(prompt, list):
        return "\n".join(str(m.get("content", "")) for m in prompt if isinstance(m, dict))
    return prompt or ""


def load_prompt_file(prompts_dir: str, name: str) -> Optional[PromptTemplate]:
    path = Path(prompts_dir) / f"{name}.yaml"
    if not path.exists():
        return None
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    text = data.get("content", "")
    if not text:
        return None
    return PromptTemplate(name=name, text=text, version=str(data.get("version", "local")))


class PromptStore:
    def __init__(self, settings: Settings, client: Optional[Langfuse] = None):
        self.label = settings.PROMPT_LABEL
        self.prompts_dir = settings.PROMPTS_DIR
        self.client = client

    def _from_langfuse(self, name: str) -> Optional[PromptTemplate]:
        if not self.client:
            return None
        try:
            prompt = self.client.get_prompt(name, label=self.label)
        except Exception as e:
            logger.debug(f"Prompt '{name}' not found in Langfuse, using local fallback: {e}")
            return None
        text = _flatten(prompt.prompt)
        if not text:
            return None
        return PromptTemplate(name=name, text=text, version=str(prompt.version))

    def fetch_prompt(self, name: str) -> PromptTemplate:
        """
        Returns the prompt text and its version.
        Raises PromptNotFoundError when no source has it: a run cannot
        classify or extract without instructions.
        """
        template = self._from_langfuse(name) or load_prompt_file(self.prompts_dir, name)
        if template is None:
            raise PromptNotFoundError(name)
        logger.info(f"Loaded prompt '{name}' version {template.version}")
        return template
