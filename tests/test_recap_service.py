from __future__ import annotations

import json

import httpx
import pytest

from cinerecap.core.config import Settings
from cinerecap.core.recap import (
    NO_RESPONSE_MESSAGE,
    RECAP_RESPONSE_SCHEMA,
    RecapGenerationError,
    build_recap_prompt,
    generate_movie_recap,
)
from cinerecap.core.schemas import MovieInfo

INCEPTION = MovieInfo(
    title="Inception",
    genre="Sci-Fi",
    director="Christopher Nolan",
    key_plot_points="A thief steals secrets through shared dreams.",
    tone="Dramatic",
    include_spoilers=False,
    length="short",
)

RECAP_JSON = {
    "tagline": "Your mind is the scene of the crime.",
    "summary": "Dom Cobb leads a team into layered dreams to plant an idea.",
    "characterAnalysis": "Cobb is haunted by guilt over Mal.",
    "keyTakeaways": ["Dreams within dreams", "Grief shapes reality"],
    "verdict": "A dazzling puzzle box worth every spin.",
}

SETTINGS = Settings(api_key="test-key", model="test-model", api_base_url="https://ai.example")


def _model_response(text: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_prompt_lists_movie_details() -> None:
    prompt = build_recap_prompt(INCEPTION)
    assert "Title: Inception" in prompt
    assert "Director: Christopher Nolan" in prompt
    assert "Tone: Dramatic" in prompt
    assert "Include Spoilers: No" in prompt
    assert "Recap Length: short" in prompt


def test_generates_recap_from_schema_conformant_json() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_model_response(json.dumps(RECAP_JSON)))

    recap = generate_movie_recap(INCEPTION, client=_client(handler), settings=SETTINGS)

    assert recap.tagline == RECAP_JSON["tagline"]
    assert recap.summary
    assert recap.character_analysis
    assert recap.verdict
    assert list(recap.key_takeaways) == RECAP_JSON["keyTakeaways"]

    assert len(seen) == 1
    req = seen[0]
    assert str(req.url) == "https://ai.example/v1beta/models/test-model:generateContent"
    assert req.headers["x-goog-api-key"] == "test-key"
    body = json.loads(req.content)
    assert body["generationConfig"]["responseMimeType"] == "application/json"
    assert body["generationConfig"]["responseSchema"] == RECAP_RESPONSE_SCHEMA
    assert "Title: Inception" in body["contents"][0]["parts"][0]["text"]


def test_recap_serializes_with_model_field_names() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_model_response(json.dumps(RECAP_JSON)))

    recap = generate_movie_recap(INCEPTION, client=_client(handler), settings=SETTINGS)
    assert recap.model_dump(mode="json", by_alias=True) == RECAP_JSON


def test_text_split_across_parts_is_joined() -> None:
    text = json.dumps(RECAP_JSON)
    payload = {
        "candidates": [{"content": {"parts": [{"text": text[:20]}, {"text": text[20:]}]}}]
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    recap = generate_movie_recap(INCEPTION, client=_client(handler), settings=SETTINGS)
    assert recap.verdict == RECAP_JSON["verdict"]


def test_non_json_text_fails_after_single_request() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json=_model_response("Sure! Here is your recap: ..."))

    with pytest.raises(RecapGenerationError, match="not valid JSON"):
        generate_movie_recap(INCEPTION, client=_client(handler), settings=SETTINGS)
    assert calls == 1


def test_empty_response_fails() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": []})

    with pytest.raises(RecapGenerationError, match=NO_RESPONSE_MESSAGE):
        generate_movie_recap(INCEPTION, client=_client(handler), settings=SETTINGS)


def test_missing_fields_fail_schema_check() -> None:
    partial = {k: v for k, v in RECAP_JSON.items() if k != "verdict"}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_model_response(json.dumps(partial)))

    with pytest.raises(RecapGenerationError, match="schema"):
        generate_movie_recap(INCEPTION, client=_client(handler), settings=SETTINGS)


def test_http_error_surfaces_api_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": 400, "message": "API key not valid."}})

    with pytest.raises(RecapGenerationError, match="API key not valid"):
        generate_movie_recap(INCEPTION, client=_client(handler), settings=SETTINGS)


def test_transport_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RecapGenerationError, match="Could not reach"):
        generate_movie_recap(INCEPTION, client=_client(handler), settings=SETTINGS)


def test_missing_api_key_fails_without_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request expected")

    with pytest.raises(RecapGenerationError, match="API key"):
        generate_movie_recap(INCEPTION, client=_client(handler), settings=Settings(api_key=None))


def test_movie_info_accepts_page_payload() -> None:
    info = MovieInfo.model_validate(
        {
            "title": "  Inception ",
            "keyPlotPoints": "Dreams",
            "includeSpoilers": True,
            "length": "detailed",
        }
    )
    assert info.title == "Inception"
    assert info.key_plot_points == "Dreams"
    assert info.include_spoilers is True
    assert info.tone == "Dramatic"
