"""Additive merge of rollup rows with real-time rows."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from visibility_stats.aggregation.types import DailyStatRow, DimensionalStatKey, StatKey


def _add_into(target: DailyStatRow, row: DailyStatRow) -> None:
    target.mentions_count += row.mentions_count
    target.citations_count += row.citations_count
    target.responses_analyzed += row.responses_analyzed


def _coarse_copy(row: DailyStatRow) -> DailyStatRow:
    return replace(row, platform=None, region_id=None, topic_id=None)


def merge_daily_stats(
    base: Iterable[DailyStatRow],
    delta: Iterable[DailyStatRow],
    by_dimensions: bool = False,
) -> list[DailyStatRow]:
    """Union of `base` and `delta` with counters summed on matching keys.

    Keys are `StatKey` (entity, day) or, with `by_dimensions`, the
    `DimensionalStatKey` that also carries platform/region/topic. The coarse
    merge drops dimension tags from its output. Input rows are never mutated.
    Order: keys of `base` in first-seen order, then keys only in `delta`.
    """
    merged: dict[StatKey | DimensionalStatKey, DailyStatRow] = {}

    for row in (*base, *delta):
        key = row.dimensional_key() if by_dimensions else row.key()
        existing = merged.get(key)
        if existing is None:
            merged[key] = replace(row) if by_dimensions else _coarse_copy(row)
        else:
            _add_into(existing, row)

    return list(merged.values())


def collapse_dimensions(rows: Iterable[DailyStatRow]) -> list[DailyStatRow]:
    """Sum dimension-tagged rows into one coarse row per (entity, day)."""
    return merge_daily_stats(rows, ())
