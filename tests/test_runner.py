import asyncio
import datetime as dt
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from readme_pulse import runner
from readme_pulse.config import Settings
from readme_pulse.data_sources import CallableMetricsProvider
from readme_pulse.errors import ApiError, ConfigError
from readme_pulse.sections import SectionPatcher, TargetMode, UpdateResult
from readme_pulse.telegram_client import MAX_MESSAGE_LENGTH

NOW = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)
README = (
    "# Me\n"
    "<!--START_SECTION:weather:Oslo-->\nold\n<!--END_SECTION:weather-->\n"
    "<!--START_SECTION:waka-->\nold\n<!--END_SECTION:waka-->\n"
)


def _settings(**overrides):
    return Settings(_env_file=None, **overrides)


def _result(name="weather", was_updated=True, skipped=False, previous=None):
    return UpdateResult(
        section_name=name,
        rendered="body",
        previous_last_update=previous,
        current_update=NOW,
        was_updated=was_updated,
        skipped=skipped,
    )


def _passthrough(snapshot, options):
    return snapshot


def _raise(exc):
    def fetch(target):
        raise exc
    return fetch


class FakeClient:
    def __init__(self, exc=None):
        self.sent = []
        self.exc = exc

    def send_message(self, text, **kwargs):
        self.sent.append(text)
        if self.exc is not None:
            raise self.exc


class TestBuildCycles(unittest.TestCase):
    def test_cycles_follow_available_providers(self):
        settings = _settings(
            wakatime_time_range="last_30_days",
            wakatime_lang_count=3,
            wakatime_ignored_languages="Markdown  JSON",
            wakatime_section_name="stats",
        )
        providers = {
            "weather": CallableMetricsProvider(name="weather", fetch_fn=str),
            "wakatime": CallableMetricsProvider(name="wakatime", fetch_fn=str),
        }

        cycles = runner.build_cycles(settings, providers)

        self.assertEqual([c.name for c in cycles], ["weather", "wakatime"])
        weather, waka = cycles
        self.assertEqual(weather.section_name, "weather")
        self.assertIs(weather.mode, TargetMode.DOCUMENT)
        self.assertIsNone(weather.static_target)
        self.assertEqual(waka.section_name, "stats")
        self.assertIs(waka.mode, TargetMode.STATIC)
        self.assertEqual(waka.static_target, "last_30_days")
        self.assertEqual(waka.options.max_items, 3)
        self.assertEqual(waka.options.ignored_items, frozenset({"Markdown", "JSON"}))

    def test_no_providers_no_cycles(self):
        self.assertEqual(runner.build_cycles(_settings(), {}), [])


class TestRunCycles(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "README.md"
        self.path.write_text(README, encoding="utf-8")
        self.patcher = SectionPatcher(renderer=_passthrough, clock=lambda: NOW)

    def tearDown(self):
        self._tmp.cleanup()

    def _cycle(self, name, section, fetch_fn, mode=TargetMode.STATIC, target="last_7_days"):
        return runner.PatchCycle(
            name=name,
            section_name=section,
            provider=CallableMetricsProvider(name=name, fetch_fn=fetch_fn),
            mode=mode,
            static_target=None if mode is TargetMode.DOCUMENT else target,
        )

    def test_failure_is_isolated(self):
        cycles = [
            self._cycle("weather", "weather", _raise(ApiError("boom", status_code=500)), mode=TargetMode.DOCUMENT),
            self._cycle("wakatime", "waka", lambda target: f"stats {target}"),
        ]

        outcomes = asyncio.run(runner.run_cycles(cycles, self.patcher, self.path, max_workers=2))

        self.assertEqual([o.name for o in outcomes], ["weather", "wakatime"])
        self.assertEqual([o.status for o in outcomes], ["failed", "updated"])
        self.assertEqual(outcomes[0].error, "boom")
        content = self.path.read_text(encoding="utf-8")
        self.assertIn("stats last_7_days", content)
        self.assertIn("<!--START_SECTION:weather:Oslo-->\nold\n", content)

    def test_unexpected_errors_are_recorded(self):
        cycles = [self._cycle("wakatime", "waka", _raise(RuntimeError("kaput")))]
        outcomes = asyncio.run(runner.run_cycles(cycles, self.patcher, self.path))
        self.assertEqual(outcomes[0].status, "failed")
        self.assertEqual(outcomes[0].error, "RuntimeError: kaput")

    def test_missing_section_is_skipped(self):
        cycles = [self._cycle("wakatime", "not-there", lambda target: "x")]
        outcomes = asyncio.run(runner.run_cycles(cycles, self.patcher, self.path))
        self.assertEqual(outcomes[0].status, "skipped")
        self.assertEqual(self.path.read_text(encoding="utf-8"), README)

    def test_refresh_all_uses_settings(self):
        orig_build = runner.build_providers
        runner.build_providers = lambda settings, cache=None: {
            "weather": CallableMetricsProvider(name="weather", fetch_fn=lambda city: f"sunny in {city}"),
        }
        try:
            settings = _settings(readme_path=str(self.path), openweather_api_key="k")
            outcomes = asyncio.run(runner.refresh_all(settings, patcher=self.patcher))
        finally:
            runner.build_providers = orig_build

        self.assertEqual([o.status for o in outcomes], ["updated"])
        self.assertIn("sunny in Oslo", self.path.read_text(encoding="utf-8"))


class TestSummaryAndNotify(unittest.TestCase):
    def test_format_summary(self):
        outcomes = [
            runner.CycleOutcome(name="weather", result=_result(previous=NOW)),
            runner.CycleOutcome(name="wakatime", error="bad <thing>"),
            runner.CycleOutcome(name="other", result=_result(was_updated=False)),
        ]
        text = runner.format_summary(outcomes)
        self.assertEqual(
            text,
            "<b>README update</b>\n"
            "weather: updated (previous: 2024-05-01 12:00:00)\n"
            "wakatime: failed (bad &lt;thing&gt;)\n"
            "other: unchanged",
        )

    def test_long_error_is_shortened_before_escaping(self):
        text = runner.format_summary([runner.CycleOutcome(name="weather", error="&" * 5000)])
        line = text.splitlines()[1]
        self.assertEqual(line, "weather: failed (" + "&amp;" * (runner.MAX_ERROR_CHARS - 1) + "…)")

    def test_format_summary_cuts_at_line_boundaries(self):
        outcomes = [
            runner.CycleOutcome(name=f"cycle-{i}", error="a <b> & c " * 40) for i in range(50)
        ]
        text = runner.format_summary(outcomes)

        self.assertLessEqual(len(text), MAX_MESSAGE_LENGTH)
        self.assertTrue(text.endswith("\n…"))
        for line in text.splitlines()[1:-1]:
            self.assertTrue(line.startswith("cycle-"), line)
            self.assertTrue(line.endswith(")"), line)
            self.assertNotIn("<", line)
            self.assertNotRegex(line, r"&(?!amp;|lt;|gt;|quot;|#x27;)")

    def test_notify_sends_when_something_changed(self):
        client = FakeClient()
        sent = runner.notify(_settings(), [runner.CycleOutcome(name="weather", result=_result())], client=client)
        self.assertTrue(sent)
        self.assertIn("weather: updated", client.sent[0])

    def test_notify_skips_quiet_batches(self):
        client = FakeClient()
        outcomes = [
            runner.CycleOutcome(name="weather", result=_result(was_updated=False)),
            runner.CycleOutcome(name="wakatime", result=_result(was_updated=False, skipped=True)),
        ]
        self.assertFalse(runner.notify(_settings(), outcomes, client=client))
        self.assertEqual(client.sent, [])

    def test_notify_failure_is_swallowed(self):
        client = FakeClient(exc=ApiError("telegram down"))
        outcomes = [runner.CycleOutcome(name="weather", error="boom")]
        self.assertFalse(runner.notify(_settings(), outcomes, client=client))
        self.assertEqual(len(client.sent), 1)

    def test_notify_disabled_without_telegram_settings(self):
        outcomes = [runner.CycleOutcome(name="weather", result=_result())]
        self.assertFalse(runner.notify(_settings(), outcomes))


class TestRunUpdate(unittest.TestCase):
    def setUp(self):
        self._orig_setup_logging = runner.setup_logging
        self._orig_refresh_all = runner.refresh_all
        self._orig_notify = runner.notify
        self._orig_load_settings = runner.config.load_settings
        self.notified = []
        runner.setup_logging = lambda **kwargs: None
        runner.notify = lambda settings, outcomes, client=None: self.notified.append(outcomes)

    def tearDown(self):
        runner.setup_logging = self._orig_setup_logging
        runner.refresh_all = self._orig_refresh_all
        runner.notify = self._orig_notify
        runner.config.load_settings = self._orig_load_settings

    def _fake_refresh(self, outcomes):
        async def fake(settings, *, cache=None, patcher=None):
            return outcomes
        runner.refresh_all = fake

    def test_no_providers_is_config_error(self):
        self.assertEqual(runner.run_update(_settings()), 2)

    def test_half_configured_telegram_is_config_error(self):
        settings = _settings(openweather_api_key="k", telegram_bot_token="123:ABC")
        self.assertEqual(runner.run_update(settings), 2)

    def test_invalid_environment_is_config_error(self):
        def broken():
            raise ConfigError("bad units")
        runner.config.load_settings = broken
        self.assertEqual(runner.run_update(), 2)

    def test_bad_environment_exits_with_config_code(self):
        root = Path(__file__).resolve().parents[1]
        env = dict(os.environ, PULSE_WAKATIME_TIME_RANGE="bogus", PULSE_WAKATIME_API_KEY="w")
        proc = subprocess.run(
            [sys.executable, "run_update.py"],
            cwd=root,
            env=env,
            capture_output=True,
            text=True,
            timeout=60,
        )
        self.assertEqual(proc.returncode, 2, proc.stderr)
        self.assertNotIn("Traceback", proc.stderr)

    def test_all_failed(self):
        self._fake_refresh([runner.CycleOutcome(name="weather", error="boom")])
        self.assertEqual(runner.run_update(_settings(openweather_api_key="k")), 1)
        self.assertEqual(len(self.notified), 1)

    def test_partial_failure_is_success(self):
        self._fake_refresh([
            runner.CycleOutcome(name="weather", error="boom"),
            runner.CycleOutcome(name="wakatime", result=_result("waka")),
        ])
        self.assertEqual(runner.run_update(_settings(openweather_api_key="k", wakatime_api_key="w")), 0)

    def test_nothing_to_do(self):
        self._fake_refresh([])
        self.assertEqual(runner.run_update(_settings(wakatime_api_key="w")), 0)


if __name__ == "__main__":
    unittest.main()
