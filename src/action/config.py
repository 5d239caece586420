from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional, Union

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from common.mapper import TextMapper
from common.rss import RssFeed
from common.weather import DEFAULT_BASE_URL as WEATHER_BASE_URL, WeatherFeed
from common.web import DEFAULT_CONTENT_TYPE, WebSink
from state.models import State

from .errors import ConfigLoadError, ConfigurationError
from .run import ActionRun
from .schedule import ScheduleGate, validate_schedule


DEFAULT_STATE_FILE = "ifttt_state"

# Closed set of connector kinds per capability.
Feeds = Union[RssFeed, WeatherFeed]
Mappers = TextMapper
Sinks = WebSink


def _stringify_options(value: Any) -> Any:
    # Options are flat strings; accept JSON scalars ("count": 10) by coercing them.
    if not isinstance(value, dict):
        return value
    out: Dict[str, Any] = {}
    for k, v in value.items():
        if isinstance(v, bool):
            out[k] = "true" if v else "false"
        elif isinstance(v, (int, float)):
            out[k] = str(v)
        else:
            out[k] = v
    return out


class KindAndConfig(BaseModel):
    """Connector descriptor: a kind tag plus flat string options."""

    kind: str
    config: Dict[str, str] = Field(default_factory=dict)

    @field_validator("config", mode="before")
    @classmethod
    def coerce_options(cls, value: Any) -> Any:
        return _stringify_options(value)

    def read_val(self, key: str) -> str:
        value = self.config.get(key)
        if value is None:
            raise ConfigurationError(f"Missing option {key!r} for {self.kind!r}")
        return value

    def read_opt(self, key: str, default: str) -> str:
        return self.config.get(key, default)

    def read_int(self, key: str) -> int:
        raw = self.read_val(key)
        try:
            return int(raw)
        except ValueError as ex:
            raise ConfigurationError(f"Option {key!r} for {self.kind!r} must be an integer, got {raw!r}") from ex


# --------------- Kind registries ---------------
def _build_rss(desc: KindAndConfig, client: Optional[httpx.AsyncClient]) -> RssFeed:
    return RssFeed(desc.read_val("url"), desc.read_int("count"), client=client)


def _build_weather(desc: KindAndConfig, client: Optional[httpx.AsyncClient]) -> WeatherFeed:
    return WeatherFeed(
        desc.read_val("key"),
        desc.read_val("location"),
        base_url=desc.read_opt("url", WEATHER_BASE_URL),
        client=client,
    )


def _build_text(desc: KindAndConfig) -> TextMapper:
    return TextMapper(desc.read_val("text"))


def _build_web(desc: KindAndConfig, client: Optional[httpx.AsyncClient]) -> WebSink:
    return WebSink(
        desc.read_val("method"),
        desc.read_val("url"),
        content_type=desc.read_opt("content_type", DEFAULT_CONTENT_TYPE),
        client=client,
    )


FEED_KINDS: Dict[str, Callable[[KindAndConfig, Optional[httpx.AsyncClient]], Feeds]] = {
    "rss": _build_rss,
    "weather": _build_weather,
}
MAPPER_KINDS: Dict[str, Callable[[KindAndConfig], Mappers]] = {
    "text": _build_text,
}
SINK_KINDS: Dict[str, Callable[[KindAndConfig, Optional[httpx.AsyncClient]], Sinks]] = {
    "web": _build_web,
}


def _lookup(registry: Dict[str, Any], desc: KindAndConfig, what: str) -> Any:
    try:
        return registry[desc.kind]
    except KeyError:
        known = ", ".join(sorted(registry))
        raise ConfigurationError(f"Unknown {what} kind {desc.kind!r} (known: {known})") from None


def build_feed(desc: KindAndConfig, client: Optional[httpx.AsyncClient] = None) -> Feeds:
    return _lookup(FEED_KINDS, desc, "feed")(desc, client)


def build_mapper(desc: KindAndConfig) -> Mappers:
    return _lookup(MAPPER_KINDS, desc, "mapper")(desc)


def build_sink(desc: KindAndConfig, client: Optional[httpx.AsyncClient] = None) -> Sinks:
    return _lookup(SINK_KINDS, desc, "sink")(desc, client)


# --------------- Configuration document ---------------
class ActionConfig(BaseModel):
    key: str = Field(..., min_length=1)
    feed: KindAndConfig
    mapper: KindAndConfig
    sink: KindAndConfig
    config: Dict[str, str] = Field(default_factory=dict)

    @field_validator("config", mode="before")
    @classmethod
    def coerce_options(cls, value: Any) -> Any:
        return _stringify_options(value)

    @property
    def schedule(self) -> Optional[str]:
        return self.config.get("schedule")

    def into_action(
        self,
        state: State,
        *,
        client: Optional[httpx.AsyncClient] = None,
        gate: Optional[ScheduleGate] = None,
    ) -> ActionRun:
        """Build the runnable action. Raises ConfigurationError."""
        schedule = self.schedule
        if schedule is not None:
            validate_schedule(schedule)
        return ActionRun(
            key=self.key,
            feed=build_feed(self.feed, client),
            mapper=build_mapper(self.mapper),
            sink=build_sink(self.sink, client),
            state=state,
            schedule=schedule,
            gate=gate or ScheduleGate(),
        )


class Parameters(BaseModel):
    """
    Global batch parameters.

    - state_key: passphrase sealing the state file; None stores it in clear.
    - state_file: local path, or `s3://bucket/key`.
    - key_derivation: `pbkdf2` (default) or `pad` for files written with the
      space-padded key scheme.
    """

    state_key: Optional[str] = None
    state_file: str = DEFAULT_STATE_FILE
    key_derivation: Literal["pbkdf2", "pad"] = "pbkdf2"


class Config(BaseModel):
    actions: List[ActionConfig] = Field(default_factory=list)
    parameters: Parameters = Field(default_factory=Parameters)

    @model_validator(mode="after")
    def check_unique_keys(self) -> "Config":
        seen: set[str] = set()
        dupes: List[str] = []
        for action in self.actions:
            if action.key in seen and action.key not in dupes:
                dupes.append(action.key)
            seen.add(action.key)
        if dupes:
            raise ValueError(f"Duplicate action keys: {', '.join(dupes)}")
        return self

    @classmethod
    def from_json(cls, text: str | bytes) -> "Config":
        try:
            return cls.model_validate_json(text)
        except ValidationError as ex:
            raise ConfigLoadError(f"Invalid configuration: {ex}") from ex

    @classmethod
    def from_obj(cls, data: Any) -> "Config":
        try:
            return cls.model_validate(data)
        except ValidationError as ex:
            raise ConfigLoadError(f"Invalid configuration: {ex}") from ex


def load_config(path: os.PathLike[str] | str) -> Config:
    try:
        text = Path(path).read_bytes()
    except OSError as ex:
        raise ConfigLoadError(f"Unable to read configuration {path}: {ex}") from ex
    return Config.from_json(text)


__all__ = [
    "ActionConfig",
    "Config",
    "DEFAULT_STATE_FILE",
    "FEED_KINDS",
    "Feeds",
    "KindAndConfig",
    "MAPPER_KINDS",
    "Mappers",
    "Parameters",
    "SINK_KINDS",
    "Sinks",
    "build_feed",
    "build_mapper",
    "build_sink",
    "load_config",
]
