"""Language-inference client backed by the OpenAI Responses API."""

from __future__ import annotations

import json
import os
from typing import Any, Protocol

import openai
from openai import OpenAI


class InferenceError(RuntimeError):
    """Base error for inference client failures."""

    def __init__(self, message: str, code: str = "INFERENCE_ERROR") -> None:
        super().__init__(message)
        self.code = code


class InferenceRateLimitError(InferenceError):
    """Raised when the provider responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by inference provider") -> None:
        super().__init__(message, code="INFERENCE_429")


class InferenceTimeoutError(InferenceError):
    """Raised when the inference request times out."""

    def __init__(self, message: str = "Inference request timed out") -> None:
        super().__init__(message, code="INFERENCE_TIMEOUT")


class InferenceClient(Protocol):
    """Minimal contract for a prompt-in, text-out inference call."""

    def complete(self, prompt: str) -> str:
        ...


class OpenAIInferenceClient:
    """Thin wrapper around the official OpenAI Responses API."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-4o-mini",
        temperature: float = 0.1,
        max_output_tokens: int = 2048,
        timeout: float = 10.0,
        client: Any | None = None,
    ) -> None:
        if not api_key and client is None:
            raise ValueError("OPENAI_API_KEY is required to create an OpenAIInferenceClient.")
        self._client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens

    @classmethod
    def from_env(cls) -> "OpenAIInferenceClient":
        """Instantiate the client using the OPENAI_API_KEY environment variable."""
        return cls(api_key=os.getenv("OPENAI_API_KEY", ""))

    def complete(self, prompt: str) -> str:
        try:
            response = self._client.responses.create(
                model=self._model,
                temperature=self._temperature,
                max_output_tokens=self._max_output_tokens,
                input=[{"role": "user", "content": prompt}],
            )
        except openai.RateLimitError as exc:
            raise InferenceRateLimitError() from exc
        except openai.APITimeoutError as exc:
            raise InferenceTimeoutError() from exc
        except openai.OpenAIError as exc:
            message = getattr(exc, "message", str(exc))
            raise InferenceError(f"Inference request failed: {message}", code="INFERENCE_UPSTREAM") from exc
        return extract_response_text(response)


def extract_response_text(response: Any) -> str:
    """Normalize OpenAI responses across SDK versions."""
    output_text = getattr(response, "output_text", None)
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()

    text_chunks: list[str] = []
    for item in getattr(response, "output", None) or []:
        for content in getattr(item, "content", None) or []:
            if getattr(content, "type", None) == "output_text":
                text_chunks.append(getattr(content, "text", ""))
    if text_chunks:
        return "".join(text_chunks).strip()

    choices = getattr(response, "choices", None)
    if choices:  # ChatCompletions fallback
        content = getattr(choices[0].message, "content", "")
        if isinstance(content, str) and content.strip():
            return content.strip()

    raise InferenceError("Inference response did not include text output.", code="INFERENCE_EMPTY")


def parse_json_object(raw_text: str) -> dict[str, Any]:
    """Decode the first brace-delimited JSON object in a model response.

    Tolerates code fences and surrounding prose. Raises ValueError when no object is found.
    """
    candidate = raw_text.strip()
    if candidate.startswith("```"):
        candidate = "\n".join(line for line in candidate.splitlines() if not line.strip().startswith("```")).strip()
    start = candidate.find("{")
    if start == -1:
        raise ValueError("Response did not contain JSON object.")
    try:
        payload, _ = json.JSONDecoder().raw_decode(candidate, start)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Response JSON object was malformed: {exc.msg}") from exc
    return payload
