import os
import tempfile
import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from visibility_stats.core.config import settings

# Use a throw-away SQLite file unless TEST_DATABASE_URL points elsewhere
_TMP_DB = os.path.join(tempfile.gettempdir(), f"visibility_stats_test_{os.getpid()}.db")
TEST_DB_URL = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_TMP_DB}")

# Override settings for tests
settings.database_url = TEST_DB_URL
settings.app_env = "test"
settings.stats_timezone = "UTC"
settings.rate_limit_enabled = False

from visibility_stats.db.base import Base  # noqa: E402
from visibility_stats.db.postgres import get_db, get_session_factory  # noqa: E402
from visibility_stats.main import app  # noqa: E402
from visibility_stats.models import (  # noqa: E402
    AiResponse,
    BrandEvaluation,
    BrandMention,
    Citation,
    Competitor,
    DailyBrandStat,
    Project,
    PromptTracking,
    Region,
    RollupWatermark,
    Topic,
)

# NullPool: every session gets its own connection, so concurrent sessions stay independent
test_engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=NullPool)
test_session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

# Reference clock: 2024-05-01 12:00 UTC, after the 04:30 rollup cutoff
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
TODAY = date(2024, 5, 1)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test and drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as session:
        yield session


app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_session_factory] = lambda: test_session_factory


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return test_session_factory


@pytest.fixture
def drop_table():
    """Drop a table mid-test so the next read of it fails for real."""

    async def _drop(name: str) -> None:
        async with test_engine.begin() as conn:
            await conn.execute(text(f"DROP TABLE {name}"))

    return _drop


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class Seeder:
    """Adds raw events, rollup rows and evaluations for one project."""

    def __init__(self, db: AsyncSession, project: Project):
        self.db = db
        self.project = project

    def competitor(self, name: str, active: bool = True) -> Competitor:
        comp = Competitor(
            id=uuid.uuid4(),
            project_id=self.project.id,
            name=name,
            domain=f"{name.lower()}.com",
            is_active=active,
        )
        self.db.add(comp)
        return comp

    def region(self, code: str) -> Region:
        region = Region(id=uuid.uuid4(), project_id=self.project.id, code=code, name=code)
        self.db.add(region)
        return region

    def topic(self, name: str, active: bool = True) -> Topic:
        topic = Topic(id=uuid.uuid4(), project_id=self.project.id, name=name, is_active=active)
        self.db.add(topic)
        return topic

    def response(
        self,
        platform: str = "openai",
        region: Region | None = None,
        topic: Topic | None = None,
        created_at: datetime = NOW,
        with_prompt: bool = True,
    ) -> AiResponse:
        """An AI response; `with_prompt=False` models a response whose prompt record was deleted."""
        prompt_id = uuid.uuid4()
        if with_prompt:
            self.db.add(
                PromptTracking(
                    id=prompt_id,
                    project_id=self.project.id,
                    prompt="best analytics tools",
                    region_id=region.id if region else None,
                    topic_id=topic.id if topic else None,
                )
            )
        response = AiResponse(
            id=uuid.uuid4(),
            project_id=self.project.id,
            prompt_tracking_id=prompt_id if with_prompt else None,
            platform=platform,
            created_at=created_at,
        )
        self.db.add(response)
        return response

    def mention(
        self,
        created_at: datetime,
        response: AiResponse | None = None,
        competitor: Competitor | None = None,
    ) -> BrandMention:
        mention = BrandMention(
            id=uuid.uuid4(),
            project_id=self.project.id,
            ai_response_id=response.id if response else None,
            brand_type="competitor" if competitor else "client",
            competitor_id=competitor.id if competitor else None,
            created_at=created_at,
        )
        self.db.add(mention)
        return mention

    def citation(
        self,
        created_at: datetime,
        response: AiResponse | None = None,
        competitor: Competitor | None = None,
        citation_type: str | None = None,
        domain: str | None = None,
    ) -> Citation:
        citation = Citation(
            id=uuid.uuid4(),
            project_id=self.project.id,
            ai_response_id=response.id if response else None,
            citation_type=citation_type or ("competitor" if competitor else "brand"),
            competitor_id=competitor.id if competitor else None,
            domain=domain,
            created_at=created_at,
        )
        self.db.add(citation)
        return citation

    def rollup(
        self,
        stat_date: date,
        mentions: int = 0,
        citations: int = 0,
        competitor: Competitor | None = None,
        platform: str | None = None,
        region: Region | None = None,
        topic: Topic | None = None,
        responses: int = 0,
    ) -> DailyBrandStat:
        stat = DailyBrandStat(
            id=uuid.uuid4(),
            project_id=self.project.id,
            stat_date=stat_date,
            entity_type="competitor" if competitor else "brand",
            competitor_id=competitor.id if competitor else None,
            entity_name=competitor.name if competitor else self.project.display_brand_name,
            mentions_count=mentions,
            citations_count=citations,
            responses_analyzed=responses,
            platform=platform,
            region_id=region.id if region else None,
            topic_id=topic.id if topic else None,
        )
        self.db.add(stat)
        return stat

    def evaluation(
        self,
        sentiment: str | None,
        created_at: datetime = NOW,
        competitor: Competitor | None = None,
        score: float | None = None,
    ) -> BrandEvaluation:
        evaluation = BrandEvaluation(
            id=uuid.uuid4(),
            project_id=self.project.id,
            entity_type="competitor" if competitor else "brand",
            entity_name=competitor.name if competitor else self.project.display_brand_name,
            competitor_id=competitor.id if competitor else None,
            sentiment=sentiment,
            sentiment_score=score,
            created_at=created_at,
        )
        self.db.add(evaluation)
        return evaluation

    def watermark(self, completed_at: datetime, global_run: bool = False) -> RollupWatermark:
        mark = RollupWatermark(
            id=uuid.uuid4(),
            project_id=None if global_run else self.project.id,
            completed_at=completed_at,
        )
        self.db.add(mark)
        return mark

    async def commit(self) -> None:
        await self.db.commit()


@pytest.fixture
async def project(db: AsyncSession) -> Project:
    project = Project(id=uuid.uuid4(), name="Acme Project", brand_name="Acme")
    db.add(project)
    await db.commit()
    return project


@pytest.fixture
def seed(db: AsyncSession, project: Project) -> Seeder:
    return Seeder(db, project)
