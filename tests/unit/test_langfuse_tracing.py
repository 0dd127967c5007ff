"""Unit tests for Langfuse tracing."""

import pytest
from unittest.mock import patch, MagicMock

from changelog_harvester.observability.tracing import LangfuseTracer, build_tracer


class TestLangfuseTracer:
    """Tests for LangfuseTracer class."""

    def test_tracer_disabled_without_keys(self, settings):
        """Tracer should be disabled when no Langfuse keys are configured."""
        tracer = build_tracer(settings)
        assert tracer.enabled is False

    @patch('changelog_harvester.observability.tracing.Langfuse')
    def test_tracer_enabled_with_keys(self, mock_langfuse, settings):
        """Both keys configured builds a client against the configured host."""
        configured = settings.model_copy(update={"LANGFUSE_PUBLIC_KEY": "pk", "LANGFUSE_SECRET_KEY": "sk"})
        tracer = build_tracer(configured)
        assert tracer.enabled is True
        mock_langfuse.assert_called_once_with(public_key="pk", secret_key="sk", host=configured.LANGFUSE_HOST)

    def test_span_yields_none_when_disabled(self):
        """span() should yield None when disabled."""
        tracer = LangfuseTracer()

        with tracer.span("test_span") as ctx:
            assert ctx is None

    def test_trace_methods_noop_when_disabled(self):
        """Trace methods should be no-op when disabled."""
        tracer = LangfuseTracer()

        # These should not raise
        tracer.trace_llm_call("extract", "anthropic/claude-sonnet-4", "prompt", "response")
        tracer.flush()

    def test_span_marks_error_and_reraises(self):
        """An exception inside a span is recorded on the span and propagates unchanged."""
        client = MagicMock()
        tracer = LangfuseTracer(client)
        span = client.start_as_current_span.return_value.__enter__.return_value

        with pytest.raises(ValueError):
            with tracer.span("llm.extract", inputs={"message_id": "1.0"}):
                raise ValueError("bad output")

        client.start_as_current_span.assert_called_once_with(name="llm.extract", input={"message_id": "1.0"})
        span.update.assert_called_once_with(level="ERROR", status_message="bad output")
        client.start_as_current_span.return_value.__exit__.assert_called_once()

    def test_broken_tracing_never_breaks_the_run(self):
        """If Langfuse itself fails, the wrapped block still runs."""
        client = MagicMock()
        client.start_as_current_span.side_effect = RuntimeError("langfuse down")
        tracer = LangfuseTracer(client)

        with tracer.span("pipeline.sync") as ctx:
            result = 1 + 1
        assert ctx is None
        assert result == 2

    def test_trace_llm_call_records_generation(self):
        client = MagicMock()
        tracer = LangfuseTracer(client)
        generation = client.start_as_current_generation.return_value.__enter__.return_value

        tracer.trace_llm_call("classify", "model-x", "prompt", None, error="timeout")

        client.start_as_current_generation.assert_called_once_with(name="classify", model="model-x", input="prompt")
        generation.update.assert_called_once_with(output=None, level="ERROR", status_message="timeout")
