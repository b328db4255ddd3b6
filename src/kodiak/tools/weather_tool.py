from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from .base import ParamsSchema, Tool
from .weather_cache import WeatherCache, WeatherSnapshot

LOGGER = logging.getLogger(__name__)

CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,weather_code,wind_speed_10m"

WEATHER_CODES: dict[int, str] = {
    0: "Clear",
    1: "Mostly clear",
    2: "Mostly clear",
    3: "Overcast",
    45: "Fog",
    48: "Fog",
    51: "Drizzle",
    53: "Drizzle",
    55: "Drizzle",
    56: "Freezing drizzle",
    57: "Freezing drizzle",
    61: "Rain",
    63: "Rain",
    65: "Rain",
    66: "Freezing rain",
    67: "Freezing rain",
    71: "Snow",
    73: "Snow",
    75: "Snow",
    77: "Snow grains",
    80: "Rain showers",
    81: "Rain showers",
    82: "Rain showers",
    85: "Snow showers",
    86: "Snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with hail",
    97: "Thunderstorm with hail",
}


def describe_weather_code(code: int | None) -> str:
    if code is None:
        return "Unspecified"
    return WEATHER_CODES.get(code, "Unspecified")


class WeatherParams(ParamsSchema):
    city: str = Field(description="The city to get weather information for")


class _GeoResult(BaseModel):
    name: str
    latitude: float
    longitude: float
    country_code: str | None = None
    admin1: str | None = None


class _GeoResponse(BaseModel):
    results: list[_GeoResult] = []


class _Current(BaseModel):
    temperature_2m: float
    relative_humidity_2m: float | None = None
    weather_code: int | None = None
    wind_speed_10m: float | None = None


class _ForecastResponse(BaseModel):
    current: _Current | None = None


class WeatherTool(Tool):
    name = "getWeather"
    description = "Retrieve the latest weather information for a city"
    params_schema = WeatherParams

    def __init__(
        self,
        geocoding_url: str,
        forecast_url: str,
        timeout: float = 15.0,
        cache: WeatherCache | None = None,
        cache_max_age_seconds: int = 600,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.geocoding_url = geocoding_url
        self.forecast_url = forecast_url
        self.timeout = timeout
        self.cache = cache
        self.cache_max_age_seconds = cache_max_age_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        kwargs: dict[str, Any] = {"timeout": self.timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def execute(self, params: WeatherParams) -> str:
        city = params.city.strip()
        if not city:
            return "Please provide a city name."

        if self.cache is not None:
            cached = self.cache.get(city, self.cache_max_age_seconds)
            if cached is not None:
                LOGGER.info(
                    "tool.weather.cache_hit",
                    extra={"event": "tool.weather.cache_hit", "city": city},
                )
                return cached.describe()

        try:
            async with self._client() as client:
                geo = await client.get(
                    self.geocoding_url,
                    params={"name": city, "count": 1, "language": "en", "format": "json"},
                )
                geo.raise_for_status()
                results = _GeoResponse.model_validate(geo.json()).results
                if not results:
                    return f"I couldn't find that location: {city}."
                place = results[0]

                forecast = await client.get(
                    self.forecast_url,
                    params={
                        "latitude": place.latitude,
                        "longitude": place.longitude,
                        "current": CURRENT_FIELDS,
                        "timezone": "auto",
                    },
                )
                forecast.raise_for_status()
                current = _ForecastResponse.model_validate(forecast.json()).current
        except httpx.HTTPStatusError as exc:
            LOGGER.warning(
                "tool.weather.http_status",
                extra={
                    "event": "tool.weather.http_status",
                    "status_code": exc.response.status_code,
                },
            )
            return f"The weather service returned an error for {city}."
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning(
                "tool.weather.unavailable",
                extra={"event": "tool.weather.unavailable", "error": str(exc)},
            )
            return f"I couldn't reach the weather service for {city} right now."

        if current is None:
            return f"Weather data for {city} is unavailable right now."

        location = place.name
        if place.country_code:
            location = f"{place.name}, {place.country_code}"
        snapshot = WeatherSnapshot(
            location=location,
            temperature_celsius=current.temperature_2m,
            condition=describe_weather_code(current.weather_code),
            humidity_percent=current.relative_humidity_2m,
            wind_speed_kmh=current.wind_speed_10m,
        )
        if self.cache is not None:
            self.cache.set({city, place.name, location}, snapshot)
        return snapshot.describe()
