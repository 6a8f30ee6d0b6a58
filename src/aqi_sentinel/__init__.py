"""AQI monitor with throttled Telegram alerts and an RSS feed."""

__version__ = "0.1.0"
