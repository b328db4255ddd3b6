"""Tests for the weather tool and its shared cache."""

from __future__ import annotations

import time
import unittest

import httpx

from kodiak.tools.weather_cache import WeatherCache, WeatherSnapshot, normalize_city
from kodiak.tools.weather_tool import WeatherTool, describe_weather_code

GEOCODING_URL = "https://geo.test/v1/search"
FORECAST_URL = "https://forecast.test/v1/forecast"

BERLIN = {
    "results": [
        {"name": "Berlin", "latitude": 52.52, "longitude": 13.41, "country_code": "DE"}
    ]
}
BERLIN_NOW = {
    "current": {
        "temperature_2m": 12.6,
        "relative_humidity_2m": 81,
        "weather_code": 3,
        "wind_speed_10m": 14.2,
    }
}


class FakeWeatherService:
    """Routes geocoding and forecast requests to canned payloads."""

    def __init__(
        self,
        geo: dict | None = None,
        forecast: dict | None = None,
        status_code: int = 200,
    ) -> None:
        self.geo = BERLIN if geo is None else geo
        self.forecast = BERLIN_NOW if forecast is None else forecast
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "down"})
        if request.url.host == "geo.test":
            return httpx.Response(200, json=self.geo)
        return httpx.Response(200, json=self.forecast)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def _tool(service: FakeWeatherService, cache: WeatherCache | None = None) -> WeatherTool:
    return WeatherTool(
        geocoding_url=GEOCODING_URL,
        forecast_url=FORECAST_URL,
        cache=cache,
        transport=service.transport(),
    )


class WeatherToolTests(unittest.IsolatedAsyncioTestCase):
    async def test_reports_current_conditions(self) -> None:
        service = FakeWeatherService()

        result = await _tool(service).call({"city": "Berlin"})

        self.assertEqual(
            result,
            "Current weather in Berlin, DE: 13°C • Overcast • Humidity 81% • Wind 14 km/h",
        )
        geocode, forecast = service.requests
        self.assertEqual(geocode.url.params["name"], "Berlin")
        self.assertEqual(geocode.url.params["count"], "1")
        self.assertEqual(forecast.url.params["latitude"], "52.52")
        self.assertEqual(forecast.url.params["timezone"], "auto")

    async def test_unknown_city(self) -> None:
        service = FakeWeatherService(geo={"results": []})
        result = await _tool(service).call({"city": "Atlantis"})
        self.assertEqual(result, "I couldn't find that location: Atlantis.")
        self.assertEqual(len(service.requests), 1)

    async def test_missing_results_key_means_unknown_city(self) -> None:
        service = FakeWeatherService(geo={"generationtime_ms": 0.2})
        result = await _tool(service).call({"city": "Nowhere"})
        self.assertEqual(result, "I couldn't find that location: Nowhere.")

    async def test_service_error_is_text(self) -> None:
        service = FakeWeatherService(status_code=500)
        with self.assertLogs("kodiak.tools.weather_tool", level="WARNING"):
            result = await _tool(service).call({"city": "Berlin"})
        self.assertEqual(result, "The weather service returned an error for Berlin.")

    async def test_unreachable_service_is_text(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        tool = WeatherTool(
            geocoding_url=GEOCODING_URL,
            forecast_url=FORECAST_URL,
            transport=httpx.MockTransport(refuse),
        )
        with self.assertLogs("kodiak.tools.weather_tool", level="WARNING"):
            result = await tool.call({"city": "Berlin"})
        self.assertEqual(result, "I couldn't reach the weather service for Berlin right now.")

    async def test_missing_current_block(self) -> None:
        service = FakeWeatherService(forecast={"current": None})
        result = await _tool(service).call({"city": "Berlin"})
        self.assertEqual(result, "Weather data for Berlin is unavailable right now.")

    async def test_blank_city(self) -> None:
        service = FakeWeatherService()
        self.assertEqual(await _tool(service).call({"city": "  "}), "Please provide a city name.")
        self.assertEqual(service.requests, [])

    async def test_cache_hit_skips_network(self) -> None:
        cache = WeatherCache()
        service = FakeWeatherService()
        tool = _tool(service, cache)

        first = await tool.call({"city": "Berlin"})
        second = await tool.call({"city": "berlin, de"})

        self.assertEqual(first, second)
        self.assertEqual(len(service.requests), 2)

    async def test_stale_cache_entry_refetches(self) -> None:
        cache = WeatherCache()
        cache.set(
            ["Berlin"],
            WeatherSnapshot("Berlin, DE", 1.0, "Snow", timestamp=time.time() - 3600),
        )
        service = FakeWeatherService()

        result = await _tool(service, cache).call({"city": "Berlin"})

        self.assertIn("Overcast", result)
        self.assertEqual(len(service.requests), 2)


class WeatherCacheTests(unittest.TestCase):
    def test_aliases_are_diacritic_and_case_insensitive(self) -> None:
        cache = WeatherCache()
        snapshot = WeatherSnapshot("Zürich, CH", 20.0, "Clear")
        cache.set(["Zürich"], snapshot)
        self.assertIs(cache.get("zurich"), snapshot)
        self.assertIs(cache.get("  ZÜRICH "), snapshot)
        self.assertIsNone(cache.get("Geneva"))

    def test_clear(self) -> None:
        cache = WeatherCache()
        cache.set(["Oslo"], WeatherSnapshot("Oslo, NO", -3.0, "Snow"))
        cache.clear()
        self.assertIsNone(cache.get("Oslo"))

    def test_normalize_city(self) -> None:
        self.assertEqual(normalize_city(" São Paulo "), "sao paulo")

    def test_describe_without_optional_fields(self) -> None:
        snapshot = WeatherSnapshot("Cairo, EG", 30.4, "Clear")
        self.assertEqual(snapshot.describe(), "Current weather in Cairo, EG: 30°C • Clear")

    def test_weather_codes(self) -> None:
        self.assertEqual(describe_weather_code(0), "Clear")
        self.assertEqual(describe_weather_code(95), "Thunderstorm")
        self.assertEqual(describe_weather_code(42), "Unspecified")
        self.assertEqual(describe_weather_code(None), "Unspecified")


if __name__ == "__main__":
    unittest.main()
