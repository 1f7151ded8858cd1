"""Run every configured patch cycle against the README and report the outcomes."""
from __future__ import annotations

import asyncio
import html
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from readme_pulse import config
from readme_pulse.data_sources import WAKATIME_PROVIDER, WEATHER_PROVIDER, MetricsProvider, build_providers
from readme_pulse.errors import ConfigError, PulseError
from readme_pulse.renderer import RenderOptions
from readme_pulse.sections import SectionPatcher, TargetMode, UpdateResult
from readme_pulse.sections.locator import format_timestamp
from readme_pulse.snapshot_cache import SnapshotCache
from readme_pulse.telegram_client import MAX_MESSAGE_LENGTH, TelegramClient
from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="runner")

MAX_ERROR_CHARS = 300


@dataclass(frozen=True)
class PatchCycle:
    """One metrics domain bound to one README section."""
    name: str
    section_name: str
    provider: MetricsProvider
    mode: TargetMode
    static_target: Optional[str] = None
    options: RenderOptions = field(default_factory=RenderOptions)


@dataclass(frozen=True)
class CycleOutcome:
    """What happened to one cycle: a result, or the error that stopped it."""
    name: str
    result: Optional[UpdateResult] = None
    error: Optional[str] = None

    @property
    def status(self) -> str:
        if self.error is not None or self.result is None:
            return "failed"
        if self.result.skipped:
            return "skipped"
        return "updated" if self.result.was_updated else "unchanged"


def build_cycles(settings: config.Settings, providers: Mapping[str, MetricsProvider]) -> List[PatchCycle]:
    """Pair each available provider with its section."""
    cycles: List[PatchCycle] = []
    if WEATHER_PROVIDER in providers:
        cycles.append(
            PatchCycle(
                name=WEATHER_PROVIDER,
                section_name=settings.weather_section_name,
                provider=providers[WEATHER_PROVIDER],
                mode=TargetMode.DOCUMENT,
            )
        )
    if WAKATIME_PROVIDER in providers:
        cycles.append(
            PatchCycle(
                name=WAKATIME_PROVIDER,
                section_name=settings.wakatime_section_name,
                provider=providers[WAKATIME_PROVIDER],
                mode=TargetMode.STATIC,
                static_target=settings.wakatime_time_range.value,
                options=RenderOptions.from_settings(settings),
            )
        )
    return cycles


def run_cycle(patcher: SectionPatcher, document_path: Union[str, Path], cycle: PatchCycle) -> UpdateResult:
    """Run a single cycle synchronously."""
    logger.info("Starting %s update", cycle.name)
    return patcher.patch(
        document_path,
        cycle.section_name,
        cycle.provider.fetch,
        mode=cycle.mode,
        static_target=cycle.static_target,
        options=cycle.options,
    )


async def run_cycles(
    cycles: Sequence[PatchCycle],
    patcher: SectionPatcher,
    document_path: Union[str, Path],
    *,
    max_workers: int = 4,
) -> List[CycleOutcome]:
    """Run all cycles concurrently on a shared thread pool.

    A failing cycle is logged and recorded; it never stops the others.
    """
    loop = asyncio.get_running_loop()
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="patch-cycle") as pool:
        results = await asyncio.gather(
            *(loop.run_in_executor(pool, run_cycle, patcher, document_path, cycle) for cycle in cycles),
            return_exceptions=True,
        )

    outcomes: List[CycleOutcome] = []
    for cycle, result in zip(cycles, results):
        if isinstance(result, UpdateResult):
            outcomes.append(CycleOutcome(name=cycle.name, result=result))
        elif isinstance(result, PulseError):
            logger.error("%s update failed: %s", cycle.name, result)
            outcomes.append(CycleOutcome(name=cycle.name, error=str(result)))
        elif isinstance(result, Exception):
            logger.error("%s update crashed", cycle.name, exc_info=result)
            outcomes.append(CycleOutcome(name=cycle.name, error=f"{type(result).__name__}: {result}"))
        else:
            raise result
    return outcomes


def log_outcome(outcome: CycleOutcome) -> None:
    result = outcome.result
    if outcome.status == "updated":
        logger.info(
            "%s updated successfully. Previous update: %s, Current update: %s",
            outcome.name,
            result.previous_last_update,
            format_timestamp(result.current_update),
        )
    elif outcome.status == "unchanged":
        logger.info("No %s update needed. Last update: %s", outcome.name, result.previous_last_update)
    elif outcome.status == "skipped":
        logger.info("%s section not present; nothing to do", outcome.name)


def _summary_line(outcome: CycleOutcome) -> str:
    line = f"{html.escape(outcome.name)}: {outcome.status}"
    if outcome.error:
        error = outcome.error
        if len(error) > MAX_ERROR_CHARS:
            error = error[: MAX_ERROR_CHARS - 1] + "…"
        line += f" ({html.escape(error)})"
    elif outcome.result and outcome.result.previous_last_update:
        line += f" (previous: {format_timestamp(outcome.result.previous_last_update)})"
    return line


def format_summary(outcomes: Sequence[CycleOutcome]) -> str:
    """HTML summary of a batch, within Telegram's message limit.

    Error texts are shortened before escaping and whole lines are dropped
    once the limit is reached, so entities and tags are never cut.
    """
    lines = ["<b>README update</b>"]
    length = len(lines[0])
    for outcome in outcomes:
        line = _summary_line(outcome)
        # Keep room for the trailing "\n…" marker.
        if length + 1 + len(line) > MAX_MESSAGE_LENGTH - 2:
            lines.append("…")
            break
        lines.append(line)
        length += 1 + len(line)
    return "\n".join(lines)


def notify(settings: config.Settings, outcomes: Sequence[CycleOutcome], client: Optional[TelegramClient] = None) -> bool:
    """Send the batch summary when a notifier is configured; failures are logged, never raised."""
    if client is None:
        if not settings.telegram_enabled:
            return False
        client = TelegramClient.from_settings(settings)
    if not any(outcome.status in ("updated", "failed") for outcome in outcomes):
        logger.debug("Nothing changed; skipping notification")
        return False
    try:
        client.send_message(format_summary(outcomes))
    except PulseError as exc:
        logger.warning("Failed to send update summary: %s", exc)
        return False
    return True


async def refresh_all(
    settings: config.Settings,
    *,
    cache: Optional[SnapshotCache] = None,
    patcher: Optional[SectionPatcher] = None,
) -> List[CycleOutcome]:
    """Build providers and cycles from settings and run them once."""
    providers = build_providers(settings, cache)
    cycles = build_cycles(settings, providers)
    if not cycles:
        logger.warning("No metrics providers configured; nothing to do")
        return []
    return await run_cycles(
        cycles,
        patcher or SectionPatcher(),
        settings.readme_path,
        max_workers=settings.max_workers,
    )


def run_update(settings: Optional[config.Settings] = None) -> int:
    """Batch entrypoint. Returns 2 on bad configuration, 1 if every cycle failed, else 0."""
    try:
        settings = settings or config.load_settings()
        setup_logging(level=settings.log_level, job_name="readme_update")
        config.require_credentials(settings)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 2

    outcomes = asyncio.run(refresh_all(settings, cache=SnapshotCache()))
    for outcome in outcomes:
        log_outcome(outcome)
    notify(settings, outcomes)

    if outcomes and all(outcome.status == "failed" for outcome in outcomes):
        return 1
    return 0
