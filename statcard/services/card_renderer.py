"""SVG stats card rendering."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from statcard.crawlers.github.contracts import AggregateStatistics, LocStrategy
from statcard.utils.helpers import escape_xml, format_number

CARD_WIDTH = 495
PAD_OUTER = 10
PAD_INNER_X = 26
TITLE_Y = 44
FIRST_ROW_Y = 72
ROW_FONT = 13
NOTE_FONT = 10
ROW_GAP = 22
NOTE_GAP = 14
EXTRA_AFTER_NOTE = 6

BACKGROUND = "#0d1117"
BORDER = "#30363d"
TITLE = "#58a6ff"
TEXT = "#c9d1d9"
MUTED = "#8b949e"

FONT_SANS = "ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial"
FONT_MONO = "ui-monospace, SFMono-Regular, Menlo, Consolas, 'Liberation Mono', monospace"


@dataclass(frozen=True, slots=True)
class CardRow:
    icon: str
    label: str
    value: str
    notes: tuple[str, ...] = ()


def build_rows(stats: AggregateStatistics) -> list[CardRow]:
    """Rows in display order; notes explain how partial figures were derived."""
    rows = [
        CardRow("☆", "Stars", format_number(stats.stars)),
        CardRow("⑂", "Forks", format_number(stats.forks)),
        CardRow("⤴", "All-time contributions", format_number(stats.contributions_all_time)),
        CardRow("+", "Lines of code changed", format_number(stats.loc_changed), _loc_notes(stats)),
        CardRow("▣", "Repositories with contributions", _repos_with_contributions(stats)),
    ]
    if stats.traffic is not None:
        rows.append(
            CardRow(
                "◉",
                "Views (14 days)",
                format_number(stats.traffic.total_views),
                (f"{stats.traffic.succeeded}/{stats.traffic.attempted} repos reporting",),
            )
        )
    return rows


def _loc_notes(stats: AggregateStatistics) -> tuple[str, ...]:
    if stats.loc_changed is None:
        return ("unavailable right now",)

    if stats.loc_strategy == LocStrategy.PULL_REQUESTS:
        return (f"from {format_number(stats.loc_items_counted)} merged PRs",)

    notes = [
        f"from {format_number(stats.commits_counted)} commits across "
        f"{stats.repos_matched}/{stats.repos_scanned} repos"
    ]
    if stats.repos_pending > 0:
        notes.append(f"{stats.repos_pending} repos pending stats (GitHub computing)")
    if stats.repos_failed > 0:
        notes.append(f"{stats.repos_failed} repos failed to read")
    return tuple(notes)


def _repos_with_contributions(stats: AggregateStatistics) -> str:
    # matched repos share the lines-changed denominator; the graph count is the fallback
    if stats.loc_strategy != LocStrategy.PULL_REQUESTS and stats.loc_changed is not None:
        return format_number(stats.repos_matched)
    return format_number(stats.repos_contributed_to)


def render_statistics_card(stats: AggregateStatistics, *, width: int = CARD_WIDTH, title: Optional[str] = None) -> str:
    icon_x = PAD_OUTER + PAD_INNER_X
    label_x = icon_x + 28
    value_x = width - (PAD_OUTER + PAD_INNER_X)

    y = FIRST_ROW_Y
    parts: list[str] = []
    for row in build_rows(stats):
        lines = [
            f'<text x="{icon_x}" y="{y}" font-size="{ROW_FONT}" fill="{MUTED}" '
            f'font-family="{FONT_SANS}" dominant-baseline="middle">{escape_xml(row.icon)}</text>',
            f'<text x="{label_x}" y="{y}" font-size="{ROW_FONT}" fill="{TEXT}" '
            f'font-family="{FONT_SANS}" dominant-baseline="middle">{escape_xml(row.label)}</text>',
            f'<text x="{value_x}" y="{y}" font-size="{ROW_FONT}" fill="{TEXT}" text-anchor="end" '
            f'font-family="{escape_xml(FONT_MONO)}" dominant-baseline="middle">{escape_xml(row.value)}</text>',
        ]
        for index, note in enumerate(row.notes):
            note_y = y + NOTE_GAP + index * (NOTE_FONT + 4)
            lines.append(
                f'<text x="{label_x}" y="{note_y}" font-size="{NOTE_FONT}" fill="{MUTED}" '
                f'font-family="{FONT_SANS}" dominant-baseline="middle">{escape_xml(note)}</text>'
            )
        parts.append("<g>" + "".join(lines) + "</g>")

        if row.notes:
            y += ROW_GAP + NOTE_GAP + (len(row.notes) - 1) * (NOTE_FONT + 4) + EXTRA_AFTER_NOTE
        else:
            y += ROW_GAP

    height = y + 24
    heading = title if title is not None else f"{stats.login}'s GitHub Statistics"

    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<svg width="{width}" height="{height}" viewBox="0 0 {width} {height}" '
        'xmlns="http://www.w3.org/2000/svg" shape-rendering="geometricPrecision">'
        f'<rect x="{PAD_OUTER}" y="{PAD_OUTER}" width="{width - PAD_OUTER * 2}" '
        f'height="{height - PAD_OUTER * 2}" rx="10" fill="{BACKGROUND}" stroke="{BORDER}"/>'
        f'<text x="{PAD_OUTER + PAD_INNER_X}" y="{TITLE_Y}" font-family="{FONT_SANS}" font-size="16" '
        f'font-weight="700" fill="{TITLE}" dominant-baseline="middle">{escape_xml(heading)}</text>'
        f'<g>{"".join(parts)}</g>'
        "</svg>"
    )
