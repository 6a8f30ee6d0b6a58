"""Formatting of the RSS feed document and alert messages."""

import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import format_datetime

from .errors import RenderError
from .severity import SeverityTier
from .waqi import Reading, StationContext

# Served until the first qualifying reading has been rendered
PLACEHOLDER_DOCUMENT = (
    '<?xml version="1.0" encoding="utf-8"?>\n'
    '<rss version="2.0"><channel><title>No AQI data yet</title>'
    "<link>http://localhost/</link>"
    "<description>No reading has crossed the feed threshold yet.</description>"
    "</channel></rss>"
)

POLLUTANT_NAMES = {
    "pm25": "PM2.5",
    "pm10": "PM10",
    "o3": "O3",
    "no2": "NO2",
    "so2": "SO2",
    "co": "CO",
}

GEO_NS = "http://www.w3.org/2003/01/geo/wgs84_pos#"
ET.register_namespace("geo", GEO_NS)

# XML 1.0 forbids most control characters, even escaped; lone surrogates
# can't be encoded at all
_INVALID_XML_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def _check_context(tier: SeverityTier, reading: Reading) -> StationContext:
    """Return the reading's context, or raise RenderError if it can't be formatted."""
    context = reading.context
    if not isinstance(context, StationContext):
        raise RenderError(f"Reading has no station context: {context!r}")
    if reading.tier.rank != tier.rank:
        raise RenderError(
            f"Reading is classified as rank {reading.tier.rank}, asked to render rank {tier.rank}"
        )

    texts = [context.station_name, context.station_url, context.time_text]
    texts += [a.get("name") for a in context.attributions]
    for text in texts:
        if text is not None and not isinstance(text, str):
            raise RenderError(f"Expected text in station context, got {text!r}")
        if text and _INVALID_XML_CHARS.search(text):
            raise RenderError(f"Station context contains characters not allowed in XML: {text!r}")
    return context


def _format_value(value: float) -> str:
    return f"{value:g}"


def pollutant_summary(context: StationContext, limit: int = 6) -> str:
    """Format the pollutant breakdown, dominant pollutant first."""
    names = sorted(
        context.pollutants,
        key=lambda name: (name != context.dominant_pollutant, name not in POLLUTANT_NAMES, name),
    )
    parts = [
        f"{POLLUTANT_NAMES.get(name, name)} {_format_value(context.pollutants[name])}"
        for name in names
        if name in POLLUTANT_NAMES
    ]
    return ", ".join(parts[:limit])


def forecast_summary(context: StationContext, pollutant: str = "pm25", days: int = 3) -> str:
    """Format the upcoming daily forecast for one pollutant."""
    entries = context.forecast.get(pollutant) or []
    today = datetime.now(timezone.utc).date().isoformat()
    upcoming = [e for e in entries if isinstance(e, dict) and str(e.get("day", "")) >= today]
    return "; ".join(
        f"{e.get('day')}: {e.get('avg')} (max {e.get('max')})" for e in upcoming[:days]
    )


def _item_description(tier: SeverityTier, reading: Reading, context: StationContext) -> str:
    lines = [
        f"Level: {tier.label} ({tier.color_tag})",
        f"Updated: {context.time_text or reading.observed_at.isoformat()}",
    ]
    pollutants = pollutant_summary(context)
    if pollutants:
        lines.append(f"Pollutants: {pollutants}")
    forecast = forecast_summary(context)
    if forecast:
        lines.append(f"PM2.5 forecast: {forecast}")
    if context.attributions:
        names = [a["name"] for a in context.attributions if a.get("name")]
        lines.append(f"Data: {', '.join(names)}")
    lines.append("Please take health precautions.")
    return "\n".join(lines)


def render_feed_document(
    tier: SeverityTier,
    reading: Reading,
    link: str = "http://localhost/",
    now: datetime | None = None,
) -> str:
    """Render the RSS 2.0 document for a reading.

    Args:
        tier: Tier the reading was classified into
        reading: The reading to publish
        link: Channel link
        now: Build time (defaults to the current time)

    Returns:
        The serialized XML document

    Raises:
        RenderError: If the reading's context is malformed
    """
    context = _check_context(tier, reading)
    built = now or datetime.now(timezone.utc)
    value = _format_value(reading.value)

    rss = ET.Element("rss", version="2.0")
    channel = ET.SubElement(rss, "channel")
    ET.SubElement(channel, "title").text = f"AQI warnings: {context.station_name}"
    ET.SubElement(channel, "link").text = link
    ET.SubElement(channel, "description").text = "Air quality readings above the feed threshold"
    ET.SubElement(channel, "lastBuildDate").text = format_datetime(built)
    ET.SubElement(channel, "generator").text = "aqi-sentinel"

    item = ET.SubElement(channel, "item")
    ET.SubElement(item, "title").text = f"AQI warning: {value} - {tier.label}"
    ET.SubElement(item, "link").text = context.station_url or link
    ET.SubElement(item, "description").text = _item_description(tier, reading, context)
    ET.SubElement(item, "category").text = tier.label
    ET.SubElement(item, "guid", isPermaLink="false").text = (
        f"{context.station_name}:{reading.observed_at.isoformat()}:{value}"
    )
    ET.SubElement(item, "pubDate").text = format_datetime(built)
    if context.geo is not None:
        lat, long = context.geo
        ET.SubElement(item, f"{{{GEO_NS}}}lat").text = f"{lat:.6f}"
        ET.SubElement(item, f"{{{GEO_NS}}}long").text = f"{long:.6f}"

    body = ET.tostring(rss, encoding="unicode")
    try:
        body.encode("utf-8")
    except UnicodeEncodeError as e:
        raise RenderError(f"Feed document is not encodable as UTF-8: {e}") from e
    return f'<?xml version="1.0" encoding="utf-8"?>\n{body}'


def render_alert_message(tier: SeverityTier, reading: Reading) -> str:
    """Render the text of an alert message.

    Raises:
        RenderError: If the reading's context is malformed
    """
    context = _check_context(tier, reading)
    lines = [
        "🚨 Air quality alert",
        f"Level: {tier.label} ({tier.color_tag})",
        f"AQI: {_format_value(reading.value)}",
        f"Station: {context.station_name}",
        f"Updated: {context.time_text or reading.observed_at.isoformat()}",
    ]
    pollutants = pollutant_summary(context)
    if pollutants:
        lines.append(f"Pollutants: {pollutants}")
    return "\n".join(lines)
