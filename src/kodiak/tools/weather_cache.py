"""Process-wide cache of recent weather lookups."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
import threading
import time
import unicodedata


@dataclass(frozen=True)
class WeatherSnapshot:
    """Current conditions for a resolved location."""

    location: str
    temperature_celsius: float
    condition: str
    humidity_percent: float | None = None
    wind_speed_kmh: float | None = None
    timestamp: float = field(default_factory=time.time)

    def is_stale(self, max_age_seconds: int) -> bool:
        return (time.time() - self.timestamp) > max_age_seconds

    def describe(self) -> str:
        parts = [f"{round(self.temperature_celsius)}°C", self.condition]
        if self.humidity_percent is not None:
            parts.append(f"Humidity {round(self.humidity_percent)}%")
        if self.wind_speed_kmh is not None:
            parts.append(f"Wind {round(self.wind_speed_kmh)} km/h")
        return f"Current weather in {self.location}: " + " • ".join(parts)


def normalize_city(name: str) -> str:
    """Case- and diacritic-insensitive cache key."""
    decomposed = unicodedata.normalize("NFKD", name.strip().casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


class WeatherCache:
    """Snapshots keyed by every alias a location was requested or resolved as."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshots: dict[str, WeatherSnapshot] = {}

    def set(self, aliases: Iterable[str], snapshot: WeatherSnapshot) -> None:
        with self._lock:
            for alias in aliases:
                key = normalize_city(alias)
                if key:
                    self._snapshots[key] = snapshot

    def get(self, city: str, max_age_seconds: int | None = None) -> WeatherSnapshot | None:
        """Return the snapshot for ``city``; stale entries count as misses."""
        key = normalize_city(city)
        with self._lock:
            snapshot = self._snapshots.get(key)
        if snapshot is None:
            return None
        if max_age_seconds is not None and snapshot.is_stale(max_age_seconds):
            return None
        return snapshot

    def clear(self) -> None:
        with self._lock:
            self._snapshots.clear()


_shared_cache = WeatherCache()


def get_weather_cache() -> WeatherCache:
    return _shared_cache
