"""Lenient JSON extraction from model output.

strip code fence -> strict parse -> trailing-comma repair -> typed failure.
Never raises, so call sites can tell "model said []" from "model said garbage".
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

from pydantic import BaseModel

_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


class JsonParseResult(BaseModel):
    ok: bool
    value: Any = None
    error: Optional[str] = None
    repaired: bool = False

    @classmethod
    def failure(cls, error: str) -> "JsonParseResult":
        return cls(ok=False, error=error)


def strip_code_fence(text: str) -> str:
    result = text.strip()
    if result.startswith("```"):
        lines = result.split("\n")
        lines.pop(0)  # ``` or ```json
        if lines and lines[-1].strip() == "```":
            lines.pop()
        result = "\n".join(lines).strip()
    return result


def parse_lenient_json(text: Optional[str]) -> JsonParseResult:
    if text is None or not text.strip():
        return JsonParseResult.failure("empty response")

    candidate = strip_code_fence(text)
    try:
        return JsonParseResult(ok=True, value=json.loads(candidate))
    except json.JSONDecodeError as strict_error:
        fixed = _TRAILING_COMMA_RE.sub(r"\1", candidate)
        try:
            return JsonParseResult(ok=True, value=json.loads(fixed), repaired=True)
        except json.JSONDecodeError:
            preview = candidate[:200].replace("\n", " ")
            return JsonParseResult.failure(f"invalid JSON ({strict_error.msg}): {preview}")


def parse_json_array(text: Optional[str]) -> JsonParseResult:
    """Like parse_lenient_json, but anything other than a JSON array is a failure."""
    result = parse_lenient_json(text)
    if result.ok and not isinstance(result.value, list):
        return JsonParseResult.failure(f"expected a JSON array, got {type(result.value).__name__}")
    return result
