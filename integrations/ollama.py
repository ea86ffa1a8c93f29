"""Client for an Ollama-compatible text generation service."""

from __future__ import annotations

import logging

import httpx
from django.conf import settings

logger = logging.getLogger("integrations.ollama")


class ModelServiceError(Exception):
    """Raised when the model service fails or returns an unusable response."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Model service error {status_code}: {detail}")


def _headers() -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if settings.OLLAMA_API_KEY:
        headers["X-API-Key"] = settings.OLLAMA_API_KEY
    return headers


def generate(prompt: str, model: str | None = None, options: dict | None = None) -> str:
    """Run a non-streaming completion.

    Args:
        prompt: The full prompt text.
        model: Model name; defaults to ``settings.NARRATIVE_MODEL``.
        options: Sampling options (temperature, top_p, top_k, num_predict).

    Returns:
        The generated text, stripped.

    Raises:
        ModelServiceError: On transport failure, a non-200 response, or an
            empty completion.
    """
    body = {
        "model": model or settings.NARRATIVE_MODEL,
        "prompt": prompt,
        "stream": False,
        "options": options if options is not None else dict(settings.NARRATIVE_OPTIONS),
    }
    try:
        response = httpx.post(
            f"{settings.OLLAMA_API_URL.rstrip('/')}/api/generate",
            json=body,
            headers=_headers(),
            timeout=settings.LLM_TIMEOUT,
        )
    except httpx.HTTPError as exc:
        raise ModelServiceError(0, str(exc)) from exc

    if response.status_code != 200:
        raise ModelServiceError(response.status_code, response.text)

    try:
        text = (response.json().get("response") or "").strip()
    except ValueError as exc:
        raise ModelServiceError(response.status_code, "response is not JSON") from exc
    if not text:
        raise ModelServiceError(response.status_code, "empty response")
    return text


def list_models() -> list[str]:
    """Return the names of the models the service has loaded.

    Raises:
        ModelServiceError: On transport failure or a non-200 response.
    """
    try:
        response = httpx.get(
            f"{settings.OLLAMA_API_URL.rstrip('/')}/api/tags",
            headers=_headers(),
            timeout=settings.HTTP_TIMEOUT,
        )
    except httpx.HTTPError as exc:
        raise ModelServiceError(0, str(exc)) from exc
    if response.status_code != 200:
        raise ModelServiceError(response.status_code, response.text)
    return [m.get("name", "") for m in response.json().get("models", [])]
