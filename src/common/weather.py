from __future__ import annotations

from typing import List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from action.contracts import Record
from action.errors import ConfigurationError, TransportError
from state.models import State


DEFAULT_BASE_URL = "https://devapi.heweather.net/v7/weather/3d"


class DailyWeather(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    temp_max: str = Field(..., alias="tempMax")
    temp_min: str = Field(..., alias="tempMin")
    text_day: str = Field(..., alias="textDay")
    wind_dir_day: str = Field(..., alias="windDirDay")
    wind_speed_day: str = Field(..., alias="windSpeedDay")
    wind_scale_day: str = Field(..., alias="windScaleDay")


class WeatherPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: Optional[str] = None
    fx_link: str = Field("", alias="fxLink")
    daily: List[DailyWeather] = Field(default_factory=list)


class WeatherFeed:
    """
    Three-day forecast feed; yields one record for the first forecast day.

    Fields: `fx_link`, `temp_max`, `temp_min`, `text_day`, `wind_dir_day`,
    `wind_speed_day`, `wind_scale_day`. Keeps no cursor: every due run
    delivers the current forecast.
    """

    def __init__(
        self,
        key: str,
        location: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not key:
            raise ConfigurationError("key is required")
        if not location:
            raise ConfigurationError("location is required")
        self._key = key
        self.location = location
        self.base_url = base_url
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "WeatherFeed":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def feed(self, state: State) -> List[Record]:
        payload = await self._request()
        today = payload.daily[0]
        return [
            Record(
                fx_link=payload.fx_link,
                temp_max=today.temp_max,
                temp_min=today.temp_min,
                text_day=today.text_day,
                wind_dir_day=today.wind_dir_day,
                wind_speed_day=today.wind_speed_day,
                wind_scale_day=today.wind_scale_day,
            )
        ]

    async def _request(self) -> WeatherPayload:
        params = {"key": self._key, "location": self.location}
        try:
            resp = await self._client.get(self.base_url, params=params)
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to fetch weather for {self.location}: {exc}") from exc
        if resp.status_code >= 400:
            raise TransportError(f"HTTP {resp.status_code} from weather API: {resp.text[:200]}")

        try:
            payload = WeatherPayload.model_validate_json(resp.content)
        except ValidationError as ve:
            raise TransportError(f"Failed to parse weather payload: {ve}") from ve

        # The API reports errors in-band with a non-"200" code
        if payload.code is not None and payload.code != "200":
            raise TransportError(f"Weather API returned code {payload.code}")
        if not payload.daily:
            raise TransportError("No weather found")
        return payload

    def __repr__(self) -> str:
        return f"WeatherFeed(location={self.location!r})"


__all__ = ["DEFAULT_BASE_URL", "DailyWeather", "WeatherFeed", "WeatherPayload"]
