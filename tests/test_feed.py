"""Tests for feed and alert message formatting."""

import xml.etree.ElementTree as ET

import pytest

from aqi_sentinel.errors import RenderError
from aqi_sentinel.feed import (
    GEO_NS,
    PLACEHOLDER_DOCUMENT,
    pollutant_summary,
    render_alert_message,
    render_feed_document,
)
from aqi_sentinel.severity import classify

from conftest import T0, make_reading


class TestRenderFeedDocument:
    """Tests for the RSS document."""

    def test_valid_rss(self):
        reading = make_reading(153)
        root = ET.fromstring(render_feed_document(reading.tier, reading, now=T0))
        assert root.tag == "rss"
        assert root.get("version") == "2.0"

        channel = root.find("channel")
        assert channel.findtext("title") == "AQI warnings: Beijing US Embassy"
        assert channel.findtext("lastBuildDate") == "Fri, 01 Mar 2024 08:00:00 +0000"

    def test_item_content(self):
        reading = make_reading(153)
        item = ET.fromstring(render_feed_document(reading.tier, reading, now=T0)).find(
            "channel/item"
        )
        assert item.findtext("title") == "AQI warning: 153 - Unhealthy"
        assert item.findtext("category") == "Unhealthy"
        assert "Updated: 2024-03-01 16:00:00" in item.findtext("description")
        assert "PM2.5 153" in item.findtext("description")
        assert item.find("guid").get("isPermaLink") == "false"

    def test_custom_link(self):
        reading = make_reading(120, station_url=None)
        doc = render_feed_document(reading.tier, reading, link="https://aqi.example.org/")
        channel = ET.fromstring(doc).find("channel")
        assert channel.findtext("link") == "https://aqi.example.org/"
        assert channel.findtext("item/link") == "https://aqi.example.org/"

    def test_escapes_markup(self):
        reading = make_reading(120, station_name="Smith & <Jones>")
        doc = render_feed_document(reading.tier, reading)
        assert "Smith &amp; &lt;Jones&gt;" in doc
        assert ET.fromstring(doc).find("channel/title").text.endswith("Smith & <Jones>")

    def test_control_characters_rejected(self):
        reading = make_reading(120, station_name="bad\x07name")
        with pytest.raises(RenderError):
            render_feed_document(reading.tier, reading)

    @pytest.mark.parametrize("name", ["Bad \ud800 name", "Bad \udfff name", "Bad \uffff name"])
    def test_unencodable_station_name_rejected(self, name):
        reading = make_reading(120, station_name=name)
        with pytest.raises(RenderError):
            render_feed_document(reading.tier, reading)

    def test_unencodable_forecast_rejected(self):
        reading = make_reading(
            120, forecast={"pm25": [{"day": "9999-01-01\ud800", "avg": 150, "max": 180}]}
        )
        with pytest.raises(RenderError):
            render_feed_document(reading.tier, reading)

    def test_station_coordinates(self):
        reading = make_reading(153, geo=(39.954592, 116.468117))
        item = ET.fromstring(render_feed_document(reading.tier, reading, now=T0)).find(
            "channel/item"
        )
        assert item.findtext(f"{{{GEO_NS}}}lat") == "39.954592"
        assert item.findtext(f"{{{GEO_NS}}}long") == "116.468117"

    def test_no_coordinates_without_geo(self):
        reading = make_reading(153)
        doc = render_feed_document(reading.tier, reading, now=T0)
        assert ET.fromstring(doc).find(f"channel/item/{{{GEO_NS}}}lat") is None

    def test_non_text_context_rejected(self):
        reading = make_reading(120, time_text=1709308800)
        with pytest.raises(RenderError):
            render_feed_document(reading.tier, reading)

    def test_mismatched_tier_rejected(self):
        reading = make_reading(120)
        with pytest.raises(RenderError):
            render_feed_document(classify(250), reading)

    def test_placeholder_is_valid_rss(self):
        root = ET.fromstring(PLACEHOLDER_DOCUMENT)
        assert root.findtext("channel/title") == "No AQI data yet"


class TestRenderAlertMessage:
    """Tests for the alert text."""

    def test_contents(self):
        reading = make_reading(215)
        message = render_alert_message(reading.tier, reading)
        assert "Level: Very Unhealthy (purple)" in message
        assert "AQI: 215" in message
        assert "Station: Beijing US Embassy" in message
        assert "Updated: 2024-03-01 16:00:00" in message

    def test_falls_back_to_observed_at(self):
        reading = make_reading(215, time_text=None)
        message = render_alert_message(reading.tier, reading)
        assert f"Updated: {T0.isoformat()}" in message

    def test_malformed_context(self):
        reading = make_reading(215)
        reading.context = {"name": "not a context"}
        with pytest.raises(RenderError):
            render_alert_message(reading.tier, reading)


class TestPollutantSummary:
    """Tests for pollutant_summary()."""

    def test_dominant_first(self):
        context = make_reading(
            80, dominant_pollutant="o3", pollutants={"pm25": 40, "o3": 80, "t": 3}
        ).context
        assert pollutant_summary(context) == "O3 80, PM2.5 40"

    def test_empty(self):
        assert pollutant_summary(make_reading(80, pollutants={}).context) == ""
