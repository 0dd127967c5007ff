"""
Langfuse tracing for the extraction pipeline.
Spans wrap each run, each classification pass and each extraction call.
Tracing is optional and must never break a run.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

from langfuse import Langfuse

from ..config import Settings

logger = logging.getLogger(__name__)


def _get_langfuse(settings: Settings) -> Optional[Langfuse]:
    """Build a Langfuse client when keys are configured, else None."""
    if not settings.langfuse_enabled:
        return None
    try:
        return Langfuse(
            public_key=settings.LANGFUSE_PUBLIC_KEY,
            secret_key=settings.LANGFUSE_SECRET_KEY,
            host=settings.LANGFUSE_HOST,
        )
    except Exception as e:
        logger.warning(f"Failed to initialize Langfuse: {e}")
        return None


class LangfuseTracer:
    """Handles Langfuse tracing for LLM observability."""

    def __init__(self, client: Optional[Langfuse] = None):
        self.client = client
        self.enabled = client is not None
        if self.enabled:
            logger.info("Langfuse tracing enabled")
        else:
            logger.info("Langfuse tracing disabled")

    @contextmanager
    def span(self, name: str, inputs: Optional[Dict[str, Any]] = None):
        """
        Create a traced span for an operation.

        Args:
            name: Name of the span (e.g., "pipeline.sync", "llm.classify")
            inputs: Input data to the operation

        Yields the span (or None when tracing is off). Errors raised by the
        wrapped block propagate unchanged.
        """
        if not self.enabled:
            yield None
            return

        try:
            cm = self.client.start_as_current_span(name=name, input=inputs)
            span = cm.__enter__()
        except Exception as e:
            logger.warning(f"Tracing span failed for {name}: {e}")
            yield None
            return

        try:
            yield span
        except Exception as e:
            try:
                span.update(level="ERROR", status_message=str(e))
            except Exception:
                logger.debug(f"Could not mark span {name} as failed")
            raise
        finally:
            try:
                cm.__exit__(None, None, None)
            except Exception as e:
                logger.warning(f"Failed to close span {name}: {e}")

    def trace_llm_call(self, name: str, model: str, prompt: str, output: Optional[str], error: Optional[str] = None):
        """Record one chat completion as a generation."""
        if not self.enabled:
            return

        try:
            with self.client.start_as_current_generation(name=name, model=model, input=prompt) as generation:
                generation.update(
                    output=output,
                    level="ERROR" if error else "DEFAULT",
                    status_message=error,
                )
        except Exception as e:
            logger.warning(f"Failed to trace LLM call: {e}")

    def flush(self):
        if not self.enabled:
            return
        try:
            self.client.flush()
        except Exception as e:
            logger.warning(f"Failed to flush Langfuse: {e}")


def build_tracer(settings: Settings) -> LangfuseTracer:
    return LangfuseTracer(_get_langfuse(settings))
