"""Turn metrics snapshots into the text placed between section markers."""

from __future__ import annotations

import datetime as dt
import math
from typing import Iterable, Iterator

from pydantic import BaseModel, ConfigDict, Field

from readme_pulse.app_types import MetricsSnapshot
from readme_pulse.data_sources.openweather_client import WeatherSnapshot
from readme_pulse.data_sources.wakatime_client import ActivityStats, LanguageUsage
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="renderer")

GRAPH_WIDTH = 25
TIME_WIDTH = 16
# Transitional glyphs between empty and full.
TRANSITION_STEPS = 3
INVALID_BLOCKS = "Invalid blocks configuration"
SENTINEL_ITEM = "Other"


class RenderOptions(BaseModel):
    """Display switches for rendered sections."""
    model_config = ConfigDict(frozen=True)

    show_header: bool = True
    show_total: bool = False
    show_masked_total: bool = False  # wins over show_total
    show_per_item_value: bool = True
    max_items: int = Field(default=0, ge=0)  # 0 = unlimited
    stop_at_sentinel_item: bool = False
    ignored_items: frozenset[str] = frozenset()
    bar_glyphs: str = "░▒▓█"  # emptiest to fullest, exactly four
    code_lang: str = "txt"

    @classmethod
    def from_settings(cls, settings) -> "RenderOptions":
        """Activity-section options from the PULSE_WAKATIME_* settings."""
        return cls(
            show_header=settings.wakatime_show_title,
            show_total=settings.wakatime_show_total,
            show_masked_total=settings.wakatime_show_masked_time,
            show_per_item_value=settings.wakatime_show_time,
            max_items=settings.wakatime_lang_count,
            stop_at_sentinel_item=settings.wakatime_stop_at_other,
            ignored_items=settings.ignored_languages,
            bar_glyphs=settings.wakatime_blocks,
            code_lang=settings.wakatime_code_lang,
        )


def make_graph(percent: float, glyphs: str) -> str:
    """Render a GRAPH_WIDTH-cell bar for `percent`.

    Full cells are rounded with a half-step bias, then at most one
    transitional glyph covers the leftover fraction. A glyph set that is not
    exactly four characters renders INVALID_BLOCKS instead of a bar. NaN and
    infinite percentages render as 0.
    """
    if len(glyphs) != 4:
        return INVALID_BLOCKS

    if not math.isfinite(percent):
        percent = 0.0
    proportion = min(max(percent, 0.0) / 100 * GRAPH_WIDTH, GRAPH_WIDTH)
    step = 1 / TRANSITION_STEPS
    full_count = math.floor(proportion + step / 2)
    remainder = math.floor((proportion - full_count) * TRANSITION_STEPS + 0.5)

    graph = glyphs[3] * full_count
    if 0 < remainder < len(glyphs):
        graph += glyphs[remainder]
    return graph + glyphs[0] * (GRAPH_WIDTH - len(graph))


def _format_date(value: str) -> str:
    try:
        return dt.datetime.fromisoformat(value).strftime("%d %B %Y")
    except (TypeError, ValueError):
        return "Unknown"


def _render_title(stats: ActivityStats) -> str:
    return f"From: {_format_date(stats.start)} - To: {_format_date(stats.end)}\n\n"


def _render_total(stats: ActivityStats, options: RenderOptions) -> str:
    if options.show_masked_total:
        total = stats.human_readable_total_including_other_language
    elif options.show_total:
        total = stats.human_readable_total
    else:
        total = None
    return f"Total Time: {total}\n\n" if total else ""


def select_items(items: Iterable[LanguageUsage], options: RenderOptions) -> Iterator[LanguageUsage]:
    """Filter out ignored items, then take up to max_items, in the given order."""
    taken = 0
    for item in items:
        if item.name in options.ignored_items:
            continue
        if options.max_items and taken >= options.max_items:
            return
        taken += 1
        yield item
        if options.stop_at_sentinel_item and item.name == SENTINEL_ITEM:
            return


def _render_languages(stats: ActivityStats, options: RenderOptions) -> str:
    name_width = max((len(lang.name) for lang in stats.languages), default=0)
    lines = []
    for lang in select_items(stats.languages, options):
        time_str = lang.text if options.show_per_item_value else ""
        graph = make_graph(lang.percent, options.bar_glyphs)
        lines.append(
            f"{lang.name:<{name_width}}   {time_str:<{TIME_WIDTH}}{graph:<{GRAPH_WIDTH}}   {lang.percent:>05.2f} %\n"
        )
    return "".join(lines)


def render_activity(stats: ActivityStats, options: RenderOptions) -> str:
    """Fenced language table with optional header and total line."""
    content = f"```{options.code_lang}\n"
    if options.show_header:
        content += _render_title(stats)
    if options.show_masked_total or options.show_total:
        content += _render_total(stats, options)
    content += _render_languages(stats, options)
    content += "```"
    logger.debug("Activity section rendered")
    return content


def render_weather(weather: WeatherSnapshot, options: RenderOptions | None = None) -> str:
    """Two-line current weather summary."""
    today = weather.sunrise.strftime("%B %d, %Y")
    return (
        f"Currently in **{weather.location}** ({weather.country}), the weather is: "
        f"**{weather.temperature:.1f}{weather.temperature_unit}** "
        f"(feels like **{weather.feels_like:.1f}{weather.temperature_unit}**), "
        f"***{weather.condition_desc}***<br/>\n"
        f"On *{today}*, the *sun rises* at 🌅**{weather.sunrise:%H:%M}** "
        f"and *sets* at 🌇**{weather.sunset:%H:%M}**."
    )


def render(snapshot: MetricsSnapshot, options: RenderOptions | None = None) -> str:
    """Render any supported snapshot."""
    options = options or RenderOptions()
    if isinstance(snapshot, ActivityStats):
        return render_activity(snapshot, options)
    if isinstance(snapshot, WeatherSnapshot):
        return render_weather(snapshot, options)
    raise TypeError(f"Unsupported snapshot type: {type(snapshot).__name__}")
