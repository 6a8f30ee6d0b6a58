"""Shared fixtures for aqi-sentinel tests."""

from datetime import datetime, timezone
from typing import Any

import pytest

from aqi_sentinel.severity import classify
from aqi_sentinel.waqi import Reading, StationContext

T0 = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def make_reading(value: float, observed_at: datetime = T0, **context: Any) -> Reading:
    """Build a classified reading with a plausible station context."""
    context.setdefault("station_name", "Beijing US Embassy")
    context.setdefault("station_url", "https://aqicn.org/city/beijing/us-embassy")
    context.setdefault("time_text", "2024-03-01 16:00:00")
    context.setdefault("dominant_pollutant", "pm25")
    context.setdefault("pollutants", {"pm25": value, "pm10": 61.0, "no2": 12.4})
    return Reading(
        value=value,
        tier=classify(value),
        observed_at=observed_at,
        context=StationContext(**context),
    )


@pytest.fixture
def waqi_payload() -> dict[str, Any]:
    """A trimmed-down successful WAQI feed response."""
    return {
        "status": "ok",
        "data": {
            "aqi": 153,
            "idx": 1451,
            "attributions": [
                {"url": "http://www.bjmemc.com.cn/", "name": "Beijing Environmental Protection"},
                {"url": "https://waqi.info/", "name": "World Air Quality Index Project"},
            ],
            "city": {
                "geo": [39.954592, 116.468117],
                "name": "Beijing (北京)",
                "url": "https://aqicn.org/city/beijing",
            },
            "dominentpol": "pm25",
            "iaqi": {
                "pm25": {"v": 153},
                "pm10": {"v": 58},
                "o3": {"v": 21.6},
                "t": {"v": 4},
            },
            "time": {
                "s": "2024-03-01 16:00:00",
                "tz": "+08:00",
                "v": 1709308800,
                "iso": "2024-03-01T16:00:00+08:00",
            },
            "forecast": {
                "daily": {
                    "pm25": [{"avg": 158, "day": "2024-03-02", "max": 183, "min": 138}],
                }
            },
        },
    }
