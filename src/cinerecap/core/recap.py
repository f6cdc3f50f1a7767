from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from cinerecap.core.config import Settings
from cinerecap.core.schemas import GeneratedRecap, MovieInfo

logger = logging.getLogger(__name__)

NO_RESPONSE_MESSAGE = "No response from AI"


class RecapGenerationError(RuntimeError):
    pass


RECAP_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "tagline": {"type": "STRING", "description": "A catchy one-liner for the movie."},
        "summary": {"type": "STRING", "description": "The main recap text."},
        "characterAnalysis": {
            "type": "STRING",
            "description": "Brief analysis of the main characters.",
        },
        "keyTakeaways": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "List of important themes or plot devices.",
        },
        "verdict": {
            "type": "STRING",
            "description": "A final recommendation or rating sentence.",
        },
    },
    "required": ["tagline", "summary", "characterAnalysis", "keyTakeaways", "verdict"],
}


def build_recap_prompt(info: MovieInfo) -> str:
    return "\n".join(
        [
            "Write a professional movie recap for the following film:",
            f"Title: {info.title}",
            f"Genre: {info.genre}",
            f"Director: {info.director}",
            f"Key Plot Points: {info.key_plot_points}",
            f"Tone: {info.tone}",
            f"Include Spoilers: {'Yes' if info.include_spoilers else 'No'}",
            f"Recap Length: {info.length}",
            "",
            "The recap should be engaging and high-quality.",
        ]
    )


def build_request_body(info: MovieInfo) -> dict[str, Any]:
    return {
        "contents": [{"role": "user", "parts": [{"text": build_recap_prompt(info)}]}],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": RECAP_RESPONSE_SCHEMA,
        },
    }


def extract_response_text(payload: Any) -> str:
    """Join the text parts of the first candidate ("" when there are none)."""

    if not isinstance(payload, dict):
        return ""
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""

    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""

    return "".join(p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str))


def parse_recap_text(text: str) -> GeneratedRecap:
    if not text or not text.strip():
        raise RecapGenerationError(NO_RESPONSE_MESSAGE)

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise RecapGenerationError(f"AI response was not valid JSON: {e.msg}") from e

    try:
        return GeneratedRecap.model_validate(raw)
    except ValidationError as e:
        raise RecapGenerationError(
            f"AI response did not match the recap schema ({e.error_count()} error(s))"
        ) from e


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.reason_phrase or "request failed"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return resp.reason_phrase or "request failed"


def generate_movie_recap(
    info: MovieInfo,
    *,
    client: httpx.Client | None = None,
    settings: Settings | None = None,
) -> GeneratedRecap:
    """Ask the generative model for a recap of ``info``.

    Issues exactly one request. Raises RecapGenerationError when the key is
    missing, the request fails, or the response is empty or not a recap.
    """

    settings = settings or Settings.from_env()
    if not settings.api_key:
        raise RecapGenerationError("API key is not configured")

    close_client = False
    if client is None:
        client = httpx.Client(timeout=settings.timeout_s)
        close_client = True

    url = f"{settings.api_base_url}/v1beta/models/{settings.model}:generateContent"
    logger.info("Requesting %s recap for %r from %s", info.length, info.title, settings.model)

    try:
        resp = client.post(
            url,
            json=build_request_body(info),
            headers={"x-goog-api-key": settings.api_key},
        )
    except httpx.HTTPError as e:
        logger.warning("Recap request failed: %s", e)
        raise RecapGenerationError(f"Could not reach the AI service: {e}") from e
    finally:
        if close_client:
            client.close()

    if resp.status_code >= 400:
        detail = _error_detail(resp)
        logger.warning("Recap request rejected (%s): %s", resp.status_code, detail)
        raise RecapGenerationError(f"AI request failed ({resp.status_code}): {detail}")

    try:
        payload = resp.json()
    except ValueError:
        payload = None

    recap = parse_recap_text(extract_response_text(payload))
    logger.info("Recap for %r received", info.title)
    return recap
