"""CLI for aqi-sentinel.

Usage:
    aqi-sentinel run
    aqi-sentinel check
    aqi-sentinel classify 153
    aqi-sentinel tiers
    aqi-sentinel test-alert
"""

import math
from datetime import datetime
from pathlib import Path

import click

from aqi_sentinel.config import DEFAULT_CONFIG_PATH, Config
from aqi_sentinel.daemon import build_monitor, run_daemon
from aqi_sentinel.errors import ConfigError
from aqi_sentinel.logging import configure_logging
from aqi_sentinel.notify import TelegramClient
from aqi_sentinel.severity import TIERS, classify, lower_bound
from aqi_sentinel.throttle import FeedDecision


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    help="Config file path",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Path, verbose: bool) -> None:
    """Air quality monitor with Telegram alerts and an RSS feed."""
    ctx.ensure_object(dict)
    try:
        config = Config.from_file(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    if verbose:
        config.log_level = "DEBUG"
    configure_logging("aqi-sentinel", config.log_level)
    ctx.obj["config"] = config


@main.command("run")
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run the monitor daemon.

    Polls the configured station, refreshes the RSS feed and sends
    Telegram alerts. Serves the feed at http://HOST:PORT/aqi.xml.

    \b
    CHECK_INTERVAL forms:
      */N * * * *   minutes past the hour divisible by N (N divides 60)
      M * * * *     hourly at minute M
      0 */N * * *   on the hour, hours divisible by N (N divides 24)
      30m, 2h       fixed period counted from startup
    Cron forms follow local wall-clock time.
    """
    config: Config = ctx.obj["config"]

    click.echo("Starting AQI monitor...")
    click.echo(f"  Station: {config.waqi.station_id or '(not configured)'}")
    click.echo(f"  Poll: {config.schedule.describe()}")
    click.echo(f"  Alert floor: {TIERS[config.alert_floor].label}")
    click.echo(f"  Feed floor: {TIERS[config.feed_floor].label}")
    click.echo(f"  Feed: http://{config.host}:{config.port}/aqi.xml")
    click.echo("")

    run_daemon(config)


@main.command("check")
@click.option("--show-feed", is_flag=True, help="Print the rendered feed document")
@click.pass_context
def check(ctx: click.Context, show_feed: bool) -> None:
    """Fetch the current reading once without sending alerts."""
    config: Config = ctx.obj["config"]
    if not config.waqi.enabled:
        click.echo("Error: AQI_TOKEN and STATION_ID must be set")
        raise SystemExit(1)

    monitor = build_monitor(config)
    result = monitor.run_cycle(deliver=False)
    if result.reading is None:
        click.echo(f"Fetch failed: {'; '.join(result.errors)}")
        raise SystemExit(1)

    reading = result.reading
    click.echo(f"Station: {reading.context.station_name}")
    click.echo(f"AQI:     {reading.value:g} ({reading.tier.label}, {reading.tier.color_tag})")
    click.echo(f"Updated: {reading.context.time_text or reading.observed_at.isoformat()}")
    if result.feed_decision is not None:
        click.echo(f"Feed:    {result.feed_decision.value}")
    if result.alert_decision is not None:
        click.echo(f"Alert:   {result.alert_decision.value} (dry run)")
    for error in result.errors:
        click.echo(f"Error:   {error}")

    if show_feed and result.feed_decision is FeedDecision.REGENERATE:
        click.echo("")
        click.echo(monitor.feed_state.current_document())


@main.command("classify")
@click.argument("value", type=float)
def classify_value(value: float) -> None:
    """Print the severity tier of an AQI value."""
    try:
        tier = classify(value)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="VALUE") from e
    click.echo(f"{value:g}: rank {tier.rank}, {tier.label} ({tier.color_tag})")


@main.command("tiers")
@click.pass_context
def tiers(ctx: click.Context) -> None:
    """Show the severity tier table."""
    config: Config = ctx.obj["config"]

    click.echo(f"{'Rank':<5} {'AQI':<10} {'Label':<32} {'Color':<8} Notes")
    click.echo("-" * 70)
    for tier in TIERS:
        low = int(lower_bound(tier)) + (1 if tier.rank else 0)
        high = "+" if math.isinf(tier.upper_bound) else f"-{int(tier.upper_bound)}"
        notes = []
        if tier.rank >= config.feed_floor:
            notes.append("feed")
        if tier.rank >= config.alert_floor:
            notes.append("alert")
        click.echo(
            f"{tier.rank:<5} {f'{low}{high}':<10} {tier.label:<32} {tier.color_tag:<8} "
            f"{', '.join(notes)}"
        )


@main.command("test-alert")
@click.pass_context
def test_alert(ctx: click.Context) -> None:
    """Send a test message to verify the Telegram configuration."""
    config: Config = ctx.obj["config"]
    tg = config.telegram
    if not (tg.bot_token and tg.chat_id):
        click.echo("Error: TG_TOKEN and TG_CHAT_ID must be set")
        raise SystemExit(1)

    client = TelegramClient(tg.bot_token, tg.chat_id)
    time_str = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    if client.send(f"AQI monitor test alert ({time_str}). Alerts are configured correctly."):
        click.echo("Test alert sent successfully!")
    else:
        click.echo("Failed to send test alert")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
