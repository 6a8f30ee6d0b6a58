"""Tests for the CLI and daemon wiring."""

import pytest
from click.testing import CliRunner

from aqi_sentinel.cli import main
from aqi_sentinel.config import Config
from aqi_sentinel.daemon import AqiDaemon, build_dispatcher, build_monitor
from aqi_sentinel.notify import AlertDispatcher, DisabledDispatcher
from aqi_sentinel.throttle import independent_rule


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    for name in ("AQI_TOKEN", "STATION_ID", "TG_TOKEN", "TG_CHAT_ID", "ALERT_FLOOR"):
        monkeypatch.delenv(name, raising=False)
    return CliRunner()


class TestCli:
    """Tests for the click commands that need no network."""

    def test_classify(self, runner):
        result = runner.invoke(main, ["classify", "100"])
        assert result.exit_code == 0
        assert "rank 1, Moderate (yellow)" in result.output

    def test_classify_negative(self, runner):
        result = runner.invoke(main, ["classify", "--", "-3"])
        assert result.exit_code != 0

    def test_tiers(self, runner):
        result = runner.invoke(main, ["tiers"])
        assert result.exit_code == 0
        assert "51-100" in result.output
        assert "301+" in result.output
        assert "Hazardous" in result.output

    def test_run_help_documents_intervals(self, runner):
        result = runner.invoke(main, ["run", "--help"])
        assert result.exit_code == 0
        assert "N divides 60" in result.output
        assert "counted from startup" in result.output

    def test_check_requires_source(self, runner):
        result = runner.invoke(main, ["check"])
        assert result.exit_code == 1
        assert "AQI_TOKEN" in result.output

    def test_test_alert_requires_telegram(self, runner):
        result = runner.invoke(main, ["test-alert"])
        assert result.exit_code == 1

    def test_bad_config_is_reported(self, runner, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("ALERT_FLOOR", "12")
        result = runner.invoke(main, ["tiers"])
        assert result.exit_code != 0
        assert "Alert floor" in result.output


class TestWiring:
    """Tests for building the monitor and daemon from config."""

    def test_missing_credentials_degrade(self):
        config = Config()
        monitor = build_monitor(config)
        assert monitor.source is None
        assert isinstance(monitor.dispatcher, DisabledDispatcher)

    def test_full_config(self):
        config = Config()
        config.waqi.token, config.waqi.station_id = "t", "@1451"
        config.telegram.bot_token, config.telegram.chat_id = "123:abc", "-1"
        config.alert_covering = "independent"

        monitor = build_monitor(config)
        dispatcher = monitor.dispatcher
        try:
            assert isinstance(dispatcher, AlertDispatcher)
            assert monitor.station_id == "@1451"
            assert monitor.alert_throttle.rule is independent_rule
            assert monitor.alert_throttle.floor == 3
            assert monitor.feed_throttle.floor == 2
        finally:
            dispatcher.shutdown()

    def test_build_dispatcher_needs_both_values(self):
        config = Config()
        config.telegram.bot_token = "123:abc"
        assert isinstance(build_dispatcher(config), DisabledDispatcher)

    def test_schedule_minute_step_on_wall_clock(self):
        daemon = AqiDaemon(Config(check_interval="*/15 * * * *"))
        daemon.schedule_polls()
        jobs = daemon.scheduler.jobs
        assert [job.unit for job in jobs] == ["hours"] * 4
        assert sorted(job.next_run.minute for job in jobs) == [0, 15, 30, 45]

    def test_schedule_hourly(self):
        daemon = AqiDaemon(Config(check_interval="20 * * * *"))
        daemon.schedule_polls()
        (job,) = daemon.scheduler.jobs
        assert job.unit == "hours"
        assert job.next_run.minute == 20

    def test_schedule_hour_step(self):
        daemon = AqiDaemon(Config(check_interval="0 */8 * * *"))
        daemon.schedule_polls()
        jobs = daemon.scheduler.jobs
        assert [job.unit for job in jobs] == ["days"] * 3
        assert sorted(job.next_run.hour for job in jobs) == [0, 8, 16]
        assert {job.next_run.minute for job in jobs} == {0}

    def test_schedule_duration_from_startup(self):
        daemon = AqiDaemon(Config(check_interval="45m"))
        daemon.schedule_polls()
        (job,) = daemon.scheduler.jobs
        assert job.interval == 45
        assert job.unit == "minutes"

    def test_health_reports_degraded_channels(self):
        daemon = AqiDaemon(Config())
        response = daemon.app.test_client().get("/health")
        assert response.status_code == 503
        assert response.get_json()["checks"] == {"fetch": False, "dispatch": False}

    def test_stop(self):
        daemon = AqiDaemon(Config())
        daemon.schedule_polls()
        daemon.stop()
        assert daemon.scheduler.jobs == []
