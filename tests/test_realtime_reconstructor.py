"""Tests for the full real-time reconstruction from raw events."""

import uuid
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import Seeder
from visibility_stats.aggregation.types import (
    DimensionFilter,
    EntityKey,
    EntityType,
    EventKind,
    RawEvent,
    ResolvedOrigin,
    StatsFilters,
)
from visibility_stats.core.exceptions import NotFoundError, ReconstructionError
from visibility_stats.services.realtime_reconstructor import build_dense_rows, reconstruct_daily_stats

D1 = date(2024, 4, 28)
D2 = date(2024, 4, 29)
D3 = date(2024, 4, 30)


def _at(day: date, hour: int = 10, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


# ===================================================================
# build_dense_rows (pure)
# ===================================================================


class TestBuildDenseRows:
    def test_zero_rows_for_quiet_days(self):
        comp = uuid.uuid4()
        rows = build_dense_rows(D1, D3, "Acme", [(comp, "Globex")], [], ZoneInfo("UTC"))
        assert len(rows) == 6
        assert all(r.mentions_count == 0 and r.citations_count == 0 for r in rows)

    def test_order_day_then_brand_then_competitors(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        rows = build_dense_rows(D1, D2, "Acme", [(a, "Alpha"), (b, "Beta")], [], ZoneInfo("UTC"))
        assert [(r.stat_date, r.entity_name) for r in rows] == [
            (D1, "Acme"),
            (D1, "Alpha"),
            (D1, "Beta"),
            (D2, "Acme"),
            (D2, "Alpha"),
            (D2, "Beta"),
        ]

    def test_events_bucketed_by_local_day(self):
        late = RawEvent(EventKind.MENTION, EntityKey.brand(), datetime(2024, 4, 28, 23, 0, tzinfo=timezone.utc))
        rows = build_dense_rows(D1, D2, "Acme", [], [(late, None)], ZoneInfo("Europe/Paris"))
        assert [r.mentions_count for r in rows] == [0, 1]

    def test_platform_grid(self):
        event = RawEvent(EventKind.CITATION, EntityKey.brand(), _at(D1))
        rows = build_dense_rows(
            D1, D1, "Acme", [], [(event, ResolvedOrigin("gemini")), (event, ResolvedOrigin("perplexity"))], ZoneInfo("UTC"), ["openai", "gemini"]
        )
        assert [(r.platform, r.citations_count) for r in rows] == [("openai", 0), ("gemini", 1)]

    def test_topic_grid(self):
        pricing, support = uuid.uuid4(), uuid.uuid4()
        event = RawEvent(EventKind.MENTION, EntityKey.brand(), _at(D1))
        pairs = [
            (event, ResolvedOrigin("openai", topic_id=support)),
            (event, ResolvedOrigin("openai", topic_id=support)),
            (event, ResolvedOrigin("gemini", topic_id=pricing)),
            (event, ResolvedOrigin("openai")),
            (event, None),
        ]
        rows = build_dense_rows(D1, D1, "Acme", [], pairs, ZoneInfo("UTC"), ["openai", "gemini"], [pricing, support])
        assert [(r.platform, r.topic_id, r.mentions_count) for r in rows] == [
            ("openai", pricing, 0),
            ("openai", support, 2),
            ("gemini", pricing, 1),
            ("gemini", support, 0),
        ]


# ===================================================================
# reconstruct_daily_stats (DB)
# ===================================================================


class TestReconstructDailyStats:
    async def test_dense_three_days_one_competitor(self, db: AsyncSession, seed: Seeder):
        globex = seed.competitor("Globex")
        seed.mention(_at(D2), competitor=globex)
        await seed.commit()

        rows = await reconstruct_daily_stats(db, seed.project.id, D1, D3)

        assert len(rows) == 6
        assert {(r.stat_date, r.entity_type) for r in rows} == {
            (d, t) for d in (D1, D2, D3) for t in (EntityType.BRAND, EntityType.COMPETITOR)
        }
        globex_d2 = next(r for r in rows if r.stat_date == D2 and r.competitor_id == globex.id)
        assert globex_d2.mentions_count == 1
        assert all(r.responses_analyzed == 0 for r in rows)

    async def test_counts_mentions_and_citations(self, db: AsyncSession, seed: Seeder):
        globex = seed.competitor("Globex")
        seed.mention(_at(D1, 1))
        seed.mention(_at(D1, 23, 59))
        seed.citation(_at(D1))
        seed.citation(_at(D1), competitor=globex)
        seed.citation(_at(D1), citation_type="other", domain="wikipedia.org")
        await seed.commit()

        rows = await reconstruct_daily_stats(db, seed.project.id, D1, D1)

        brand, comp = rows
        assert (brand.entity_name, brand.mentions_count, brand.citations_count) == ("Acme", 2, 1)
        assert (comp.entity_name, comp.mentions_count, comp.citations_count) == ("Globex", 0, 1)

    async def test_range_end_is_exclusive_at_midnight(self, db: AsyncSession, seed: Seeder):
        seed.mention(_at(D3, 23, 59))
        seed.mention(datetime(2024, 5, 1, 0, 0, tzinfo=timezone.utc))
        await seed.commit()

        rows = await reconstruct_daily_stats(db, seed.project.id, D3, D3)
        assert [r.mentions_count for r in rows] == [1]

    async def test_inactive_competitor_excluded(self, db: AsyncSession, seed: Seeder):
        old = seed.competitor("Oldco", active=False)
        seed.mention(_at(D1), competitor=old)
        await seed.commit()

        rows = await reconstruct_daily_stats(db, seed.project.id, D1, D1)

        assert len(rows) == 1
        assert rows[0].entity_type == EntityType.BRAND
        assert rows[0].mentions_count == 0

    async def test_unresolvable_event_counted_when_unfiltered(self, db: AsyncSession, seed: Seeder):
        orphan = seed.response(with_prompt=False, created_at=_at(D1))
        seed.mention(_at(D1), response=orphan)
        seed.mention(_at(D1))  # no response at all
        await seed.commit()

        rows = await reconstruct_daily_stats(db, seed.project.id, D1, D1)
        assert rows[0].mentions_count == 2

    async def test_filtered_path_drops_unresolvable_events(self, db: AsyncSession, seed: Seeder):
        orphan = seed.response(with_prompt=False, created_at=_at(D1))
        ok = seed.response(platform="openai", created_at=_at(D1))
        gem = seed.response(platform="gemini", created_at=_at(D1))
        seed.mention(_at(D1), response=orphan)
        seed.mention(_at(D1), response=ok)
        seed.mention(_at(D1), response=gem)
        await seed.commit()

        filters = StatsFilters(platform=DimensionFilter.equals("openai"))
        rows = await reconstruct_daily_stats(db, seed.project.id, D1, D1, filters)

        assert len(rows) == 1
        assert rows[0].mentions_count == 1
        assert rows[0].platform is None

    async def test_region_and_topic_filters(self, db: AsyncSession, seed: Seeder):
        fr = seed.region("FR")
        de = seed.region("DE")
        pricing = seed.topic("Pricing")
        seed.mention(_at(D1), response=seed.response(region=fr, topic=pricing, created_at=_at(D1)))
        seed.mention(_at(D1), response=seed.response(region=fr, created_at=_at(D1)))
        seed.mention(_at(D1), response=seed.response(region=de, topic=pricing, created_at=_at(D1)))
        await seed.commit()

        by_region = StatsFilters(region_id=DimensionFilter.equals(fr.id))
        by_both = StatsFilters(region_id=DimensionFilter.equals(fr.id), topic_id=DimensionFilter.equals(pricing.id))

        assert (await reconstruct_daily_stats(db, seed.project.id, D1, D1, by_region))[0].mentions_count == 2
        assert (await reconstruct_daily_stats(db, seed.project.id, D1, D1, by_both))[0].mentions_count == 1

    async def test_by_platform_is_dense_over_tracked_platforms(self, db: AsyncSession, seed: Seeder):
        seed.competitor("Globex")
        seed.mention(_at(D2), response=seed.response(platform="gemini", created_at=_at(D2)))
        seed.mention(_at(D2), response=seed.response(platform="perplexity", created_at=_at(D2)))
        await seed.commit()

        rows = await reconstruct_daily_stats(db, seed.project.id, D1, D3, by_platform=True)

        assert len(rows) == 3 * 2 * 2
        assert {r.platform for r in rows} == {"openai", "gemini"}
        assert sum(r.mentions_count for r in rows) == 1
        hit = next(r for r in rows if r.mentions_count)
        assert (hit.stat_date, hit.platform, hit.entity_type) == (D2, "gemini", EntityType.BRAND)

    async def test_topic_split_keeps_only_given_topics(self, db: AsyncSession, seed: Seeder):
        globex = seed.competitor("Globex")
        pricing = seed.topic("Pricing")
        support = seed.topic("Support")
        seed.mention(_at(D1), response=seed.response(platform="openai", topic=pricing, created_at=_at(D1)))
        seed.mention(_at(D1), response=seed.response(platform="gemini", topic=support, created_at=_at(D1)))
        seed.mention(_at(D1), response=seed.response(platform="openai", created_at=_at(D1)))
        seed.mention(_at(D1))
        await seed.commit()

        rows = await reconstruct_daily_stats(db, seed.project.id, D1, D1, by_platform=True, topic_ids=[pricing.id])

        assert len(rows) == 2 * 2
        assert {r.topic_id for r in rows} == {pricing.id}
        assert sum(r.mentions_count for r in rows) == 1
        hit = next(r for r in rows if r.mentions_count)
        assert (hit.platform, hit.entity_type) == ("openai", EntityType.BRAND)
        assert {r.competitor_id for r in rows} == {None, globex.id}

    async def test_brand_name_falls_back_to_project_name(self, db: AsyncSession, seed: Seeder):
        seed.project.brand_name = None
        await seed.commit()

        rows = await reconstruct_daily_stats(db, seed.project.id, D1, D1)
        assert rows[0].entity_name == "Acme Project"

    async def test_unknown_project(self, db: AsyncSession):
        with pytest.raises(NotFoundError):
            await reconstruct_daily_stats(db, uuid.uuid4(), D1, D1)

    async def test_storage_error_raises_reconstruction_error(self, db: AsyncSession, seed: Seeder, drop_table):
        await seed.commit()
        await drop_table("brand_mentions")

        with pytest.raises(ReconstructionError) as exc_info:
            await reconstruct_daily_stats(db, seed.project.id, D1, D1)
        assert exc_info.value.status_code == 503
        assert exc_info.value.detail.startswith("[reconstruction]")
