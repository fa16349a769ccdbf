"""Tests for the post-cutoff real-time supplement."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import NOW, TODAY, Seeder
from visibility_stats.aggregation.types import DimensionFilter, EntityType, StatsFilters
from visibility_stats.core.config import settings
from visibility_stats.core.exceptions import ReconstructionError
from visibility_stats.services.realtime_reconstructor import reconstruct_daily_stats
from visibility_stats.services.today_supplement import compute_today_supplement, today_cutoff

CUTOFF = datetime(2024, 5, 1, 4, 30, tzinfo=timezone.utc)


class TestTodayCutoff:
    def test_fixed_cutoff(self):
        assert today_cutoff(NOW) == CUTOFF

    def test_watermark_wins(self):
        mark = datetime(2024, 5, 1, 7, 0, tzinfo=timezone.utc)
        assert today_cutoff(NOW, mark) == mark

    def test_follows_configured_time(self, monkeypatch):
        monkeypatch.setattr(settings, "rollup_cutoff_hour", 2)
        monkeypatch.setattr(settings, "rollup_cutoff_minute", 0)
        assert today_cutoff(NOW) == datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc)


class TestComputeTodaySupplement:
    async def test_counts_only_after_cutoff(self, db: AsyncSession, seed: Seeder):
        resp = seed.response()
        seed.mention(CUTOFF - timedelta(minutes=1), response=resp)
        seed.mention(CUTOFF, response=resp)
        seed.mention(NOW - timedelta(minutes=1), response=resp)
        seed.mention(NOW, response=resp)  # window is [cutoff, now)
        await seed.commit()

        rows = await compute_today_supplement(db, seed.project.id, now=NOW)

        assert len(rows) == 1
        row = rows[0]
        assert (row.stat_date, row.entity_type, row.mentions_count) == (TODAY, EntityType.BRAND, 2)
        assert row.platform == "openai"
        assert row.responses_analyzed == 0

    async def test_empty_before_cutoff(self, db: AsyncSession, seed: Seeder):
        seed.mention(NOW.replace(hour=3), response=seed.response())
        await seed.commit()

        early = NOW.replace(hour=4)
        assert await compute_today_supplement(db, seed.project.id, now=early) == []

    async def test_rows_tagged_with_dimensions(self, db: AsyncSession, seed: Seeder):
        fr = seed.region("FR")
        pricing = seed.topic("Pricing")
        globex = seed.competitor("Globex")
        openai_fr = seed.response("openai", region=fr, topic=pricing)
        gemini = seed.response("gemini")
        seed.mention(NOW - timedelta(hours=1), response=openai_fr)
        seed.citation(NOW - timedelta(hours=1), response=openai_fr)
        seed.mention(NOW - timedelta(hours=1), response=gemini, competitor=globex)
        await seed.commit()

        rows = await compute_today_supplement(db, seed.project.id, now=NOW)

        by_entity = {r.entity_type: r for r in rows}
        brand = by_entity[EntityType.BRAND]
        assert (brand.platform, brand.region_id, brand.topic_id) == ("openai", fr.id, pricing.id)
        assert (brand.mentions_count, brand.citations_count) == (1, 1)
        comp = by_entity[EntityType.COMPETITOR]
        assert (comp.platform, comp.entity_name, comp.competitor_id) == ("gemini", "Globex", globex.id)

    async def test_filters_applied(self, db: AsyncSession, seed: Seeder):
        seed.mention(NOW - timedelta(hours=1), response=seed.response("openai"))
        seed.mention(NOW - timedelta(hours=1), response=seed.response("gemini"))
        await seed.commit()

        filters = StatsFilters(platform=DimensionFilter.equals("gemini"))
        rows = await compute_today_supplement(db, seed.project.id, filters, now=NOW)
        assert [(r.platform, r.mentions_count) for r in rows] == [("gemini", 1)]

    async def test_inactive_competitor_dropped(self, db: AsyncSession, seed: Seeder):
        old = seed.competitor("Oldco", active=False)
        seed.mention(NOW - timedelta(hours=1), response=seed.response(), competitor=old)
        await seed.commit()

        assert await compute_today_supplement(db, seed.project.id, now=NOW) == []

    async def test_watermark_moves_window(self, db: AsyncSession, seed: Seeder):
        resp = seed.response()
        seed.mention(datetime(2024, 5, 1, 5, 0, tzinfo=timezone.utc), response=resp)
        seed.mention(datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc), response=resp)
        await seed.commit()

        mark = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
        rows = await compute_today_supplement(db, seed.project.id, now=NOW, watermark=mark)
        assert rows[0].mentions_count == 1

    async def test_orphan_event_excluded_but_counted_by_reconstruction(self, db: AsyncSession, seed: Seeder):
        orphan = seed.response(with_prompt=False)
        seed.mention(NOW - timedelta(hours=1), response=orphan)
        seed.mention(NOW - timedelta(hours=1))  # no response id
        await seed.commit()

        assert await compute_today_supplement(db, seed.project.id, now=NOW) == []
        for platform in ("openai", "gemini"):
            filters = StatsFilters(platform=DimensionFilter.equals(platform))
            assert await compute_today_supplement(db, seed.project.id, filters, now=NOW) == []

        [brand] = await reconstruct_daily_stats(db, seed.project.id, TODAY, TODAY)
        assert brand.mentions_count == 2

    async def test_storage_error(self, db: AsyncSession, seed: Seeder, drop_table):
        await seed.commit()
        await drop_table("citations")

        with pytest.raises(ReconstructionError):
            await compute_today_supplement(db, seed.project.id, now=NOW)
