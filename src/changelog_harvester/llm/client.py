"""Chat completions client.

One bounded HTTP request per call against an OpenAI-compatible endpoint
(OpenRouter by default). No automatic retries: a failed message is simply
picked up again by the next run.
"""

from typing import Optional

from openai import OpenAI, APIError

from ..config import Settings
from ..observability.tracing import LangfuseTracer


class LLMClient:
    def __init__(self, settings: Settings, client: Optional[OpenAI] = None, tracer: Optional[LangfuseTracer] = None):
        self.model = settings.LLM_MODEL
        self.tracer = tracer or LangfuseTracer()
        self.client = client or OpenAI(
            api_key=settings.LLM_API_KEY,
            base_url=settings.LLM_BASE_URL,
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_retries=0,
            default_headers={
                "HTTP-Referer": settings.LLM_HTTP_REFERER,
                "X-Title": settings.LLM_APP_TITLE,
            },
        )

    def complete(self, prompt: str, max_tokens: int, name: str = "completion") -> str:
        """
        Send a single user message and return the text of the first choice
        ("" when the model returns nothing). Transport and status errors raise.
        """
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[
                    {"role": "user", "content": prompt}
                ],
            )
        except APIError as e:
            self.tracer.trace_llm_call(name, self.model, prompt, None, error=str(e))
            raise

        text = ""
        if completion.choices:
            text = completion.choices[0].message.content or ""
        self.tracer.trace_llm_call(name, self.model, prompt, text)
        return text
