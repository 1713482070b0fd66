import json
import logging
import re
from json import JSONDecodeError
from typing import Any, Optional, Protocol

from openai import OpenAI

from mealsync.utilities.config import OPENAI_API_KEY, AI_MODEL, AI_MAX_TOKENS

logger = logging.getLogger(__name__)


class AIProvider(Protocol):
    """Opaque text generator used to seed recipe breakdowns."""

    name: str
    model: str

    def generate(self, prompt: str, system_message: Optional[str] = None,
                 max_tokens: Optional[int] = None) -> str: ...


class OpenAIProvider:
    name = "openai"

    def __init__(self, api_key: Optional[str] = OPENAI_API_KEY, model: str = AI_MODEL,
                 client: Optional[OpenAI] = None):
        if client is None:
            if not api_key:
                raise ValueError("OPENAI_API_KEY not set; cannot create the OpenAI provider")
            client = OpenAI(api_key=api_key)
        self._client = client
        self.model = model

    def generate(self, prompt: str, system_message: Optional[str] = None,
                 max_tokens: Optional[int] = None) -> str:
        kwargs = {"model": self.model, "input": prompt, "max_output_tokens": max_tokens or AI_MAX_TOKENS}
        if system_message:
            kwargs["instructions"] = system_message
        response = self._client.responses.create(**kwargs)
        return (response.output_text or "").strip()


# === JSON Parsing ===
def parse_json_output(text: str) -> Optional[Any]:
    """Decode JSON from model output, tolerating code fences, prose and trailing commas."""
    text = (text or "").strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except JSONDecodeError:
        pass
    cleaned = _remove_trailing_commas(_strip_code_fences(text))
    try:
        return json.loads(cleaned)
    except JSONDecodeError:
        pass
    candidate = _extract_json_by_balancing(cleaned)
    if candidate:
        try:
            return json.loads(_remove_trailing_commas(candidate))
        except JSONDecodeError:
            logger.warning("Failed to decode extracted JSON from AI output")
    return None


# === Text Cleaning Helpers ===
def _strip_code_fences(text: str) -> str:
    """Remove common markdown code fences and leading/trailing whitespace."""
    text = re.sub(r"```(?:json)?\n(.*?)```", r"\1", text, flags=re.S)
    text = re.sub(r"^```|```$", "", text)
    return text.strip()


def _remove_trailing_commas(text: str) -> str:
    return re.sub(r",\s*(\}|\])", r"\1", text)


def _extract_json_by_balancing(text: str) -> Optional[str]:
    """Extract the first JSON object/array by balancing braces/brackets."""
    start = None
    stack = []
    in_string = False
    escape = False

    for i, ch in enumerate(text):
        if ch == '"' and not escape:
            in_string = not in_string
        if in_string and ch == "\\" and not escape:
            escape = True
            continue
        else:
            escape = False

        if not in_string:
            if ch in "{[":
                if start is None:
                    start = i
                stack.append(ch)
            elif ch in "}]":
                if not stack:
                    continue
                opening = stack.pop()
                if (opening == "{" and ch != "}") or (opening == "[" and ch != "]"):
                    return None
                if not stack and start is not None:
                    return text[start:i + 1]
    return None


__all__ = ['AIProvider', 'OpenAIProvider', 'parse_json_output']
