"""Client for the World Air Quality Index (WAQI) feed API."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from .errors import FetchError
from .logging import get_logger
from .severity import SeverityTier, classify

log = get_logger(__name__)

WAQI_BASE_URL = "https://api.waqi.info"


@dataclass
class StationContext:
    """Station metadata that comes with a reading."""

    station_name: str
    station_url: str | None = None
    geo: tuple[float, float] | None = None
    time_text: str | None = None  # Local observation time as reported upstream
    dominant_pollutant: str | None = None
    pollutants: dict[str, float] = field(default_factory=dict)  # e.g. {"pm25": 153}
    forecast: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    attributions: list[dict[str, str]] = field(default_factory=list)


@dataclass
class Reading:
    """A single classified AQI observation."""

    value: float
    tier: SeverityTier
    observed_at: datetime
    context: StationContext


def _parse_time(time_block: dict[str, Any]) -> datetime:
    """Parse the WAQI time block, falling back to now when absent."""
    iso = time_block.get("iso")
    if iso:
        try:
            return datetime.fromisoformat(iso)
        except ValueError:
            log.debug("Unparseable observation time", iso=iso)
    epoch = time_block.get("v")
    if isinstance(epoch, (int, float)):
        return datetime.fromtimestamp(epoch, tz=timezone.utc)
    return datetime.now(timezone.utc)


def _parse_geo(geo: Any) -> tuple[float, float] | None:
    if isinstance(geo, list) and len(geo) == 2 and all(isinstance(g, (int, float)) for g in geo):
        return (float(geo[0]), float(geo[1]))
    return None


def _block(data: dict[str, Any], key: str, kind: type = dict) -> Any:
    """Return an optional sub-block of the payload, checking its JSON type."""
    value = data.get(key)
    if value is None:
        return kind()
    if not isinstance(value, kind):
        raise FetchError(f"WAQI field {key!r} has unexpected type {type(value).__name__}")
    return value


def parse_reading(payload: Any) -> Reading:
    """Turn a WAQI feed response body into a Reading.

    Raises:
        FetchError: If the payload is not an ok response with a numeric AQI,
            or one of its blocks has the wrong JSON type
    """
    if not isinstance(payload, dict):
        raise FetchError("WAQI response is not a JSON object")

    status = payload.get("status")
    data = payload.get("data")
    if status != "ok":
        # On errors WAQI puts the message in "data"
        raise FetchError(f"WAQI returned status {status!r}: {data}")
    if not isinstance(data, dict):
        raise FetchError("WAQI response has no data block")

    raw = data.get("aqi")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        # "-" means the station has no current data
        raise FetchError(f"WAQI returned a non-numeric AQI: {raw!r}") from None
    if math.isnan(value) or value < 0:
        raise FetchError(f"WAQI returned an invalid AQI: {raw!r}")

    city = _block(data, "city")
    time_block = _block(data, "time")
    iaqi = _block(data, "iaqi")
    forecast = _block(_block(data, "forecast"), "daily")
    attributions = _block(data, "attributions", list)

    context = StationContext(
        station_name=city.get("name") or "unknown station",
        station_url=city.get("url"),
        geo=_parse_geo(city.get("geo")),
        time_text=time_block.get("s"),
        dominant_pollutant=data.get("dominentpol") or None,
        pollutants={
            name: float(entry["v"])
            for name, entry in iaqi.items()
            if isinstance(entry, dict) and isinstance(entry.get("v"), (int, float))
        },
        forecast=forecast,
        attributions=[a for a in attributions if isinstance(a, dict)],
    )

    return Reading(
        value=value,
        tier=classify(value),
        observed_at=_parse_time(time_block),
        context=context,
    )


class WaqiClient:
    """Fetches station readings from the WAQI API."""

    def __init__(
        self,
        token: str,
        base_url: str = WAQI_BASE_URL,
        client: httpx.Client | None = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=15.0)

    def fetch_reading(self, station_id: str) -> Reading:
        """Fetch and classify the current reading for a station.

        Args:
            station_id: WAQI station identifier (e.g. "@1451" or "beijing")

        Returns:
            The classified reading

        Raises:
            FetchError: On transport errors, bad status or a malformed payload
        """
        url = f"{self.base_url}/feed/{station_id}/"
        try:
            response = self.client.get(url, params={"token": self.token})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise FetchError(f"WAQI API error: HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise FetchError(f"WAQI request failed: {e}") from e
        except ValueError as e:
            raise FetchError(f"WAQI response is not valid JSON: {e}") from e

        return parse_reading(payload)
