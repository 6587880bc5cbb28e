"""Gemini generateContent client for code-assist prompts."""

from __future__ import annotations

import logging

import httpx

from codecraft.errors import CodeAssistError

logger = logging.getLogger("codecraft.assist.gemini")


def build_code_prompt(code: str, prompt: str) -> str:
    return f"Code:\n{code}\n\nPrompt: {prompt}"


def extract_candidate_text(payload: object) -> str:
    """Pull the first candidate's text out of a generateContent response."""
    if not isinstance(payload, dict):
        raise CodeAssistError("Gemini response payload invalid")
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise CodeAssistError("Gemini response missing candidates")
    first = candidates[0]
    if not isinstance(first, dict):
        raise CodeAssistError("Gemini response candidate invalid")
    content = first.get("content")
    if not isinstance(content, dict):
        raise CodeAssistError("Gemini response content invalid")
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts:
        raise CodeAssistError("Gemini response missing parts")
    texts = [part.get("text") for part in parts if isinstance(part, dict)]
    text = "".join(value for value in texts if isinstance(value, str))
    if not text:
        raise CodeAssistError("Gemini response text missing")
    return text


async def generate_code_response(
    code: str,
    prompt: str,
    *,
    api_key: str,
    model_name: str,
    api_base: str = "https://generativelanguage.googleapis.com",
    timeout_seconds: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Send code + prompt to Gemini and return the generated text."""
    if not api_key:
        raise CodeAssistError("GEMINI_API_KEY is not configured")
    endpoint = f"{api_base.rstrip('/')}/v1beta/models/{model_name}:generateContent"
    body = {"contents": [{"parts": [{"text": build_code_prompt(code, prompt)}]}]}
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport) as client:
        try:
            response = await client.post(
                endpoint,
                headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
                json=body,
            )
        except httpx.HTTPError as exc:
            raise CodeAssistError(f"Gemini request failed: {exc}") from exc
    if response.status_code != 200:
        logger.warning("Gemini generateContent returned HTTP %s", response.status_code)
        raise CodeAssistError(f"Gemini generate failed: HTTP {response.status_code}")
    try:
        payload = response.json()
    except ValueError as exc:
        raise CodeAssistError("Gemini response is not JSON") from exc
    return extract_candidate_text(payload)
