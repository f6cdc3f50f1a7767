from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TONES: tuple[str, ...] = (
    "Dramatic",
    "Humorous",
    "Analytical",
    "Fast-paced",
    "Suspenseful",
    "Witty",
)

Tone = Literal["Dramatic", "Humorous", "Analytical", "Fast-paced", "Suspenseful", "Witty"]
RecapLength = Literal["short", "medium", "detailed"]


class _CamelModel(BaseModel):
    # Accept snake_case from Python callers and camelCase from the page / model.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MovieInfo(_CamelModel):
    title: str = Field(min_length=1, max_length=200)
    genre: str = Field(default="", max_length=100)
    director: str = Field(default="", max_length=100)
    key_plot_points: str = Field(default="", max_length=4000)
    tone: Tone = "Dramatic"
    include_spoilers: bool = False
    length: RecapLength = "medium"

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value


class GeneratedRecap(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    tagline: str
    summary: str
    character_analysis: str
    key_takeaways: tuple[str, ...]
    verdict: str


class DeviceSignals(_CamelModel):
    """Environment attributes the page reports for fingerprinting."""

    user_agent: str = ""
    platform: str = ""
    hardware_concurrency: int | None = None
    screen_width: int = 0
    screen_height: int = 0
    avail_width: int = 0
    avail_height: int = 0
    timezone_offset: int = 0


class UserOut(_CamelModel):
    username: str
    device_id: str


class DeviceResponse(_CamelModel):
    device_id: str


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=200)
    device: DeviceSignals = Field(default_factory=DeviceSignals)


class RecapRequest(BaseModel):
    movie: MovieInfo


class RecapStateResponse(_CamelModel):
    status: Literal["IDLE", "GENERATING", "COMPLETED", "ERROR"]
    error: str | None = None
    movie: MovieInfo | None = None
    recap: GeneratedRecap | None = None
