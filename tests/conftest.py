"""Pytest fixtures for tax engine tests."""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tax_engine.calculators.catalog import RuleCatalog
from tax_engine.calculators.engine import TaxEngine
from tax_engine.calculators.types import RuleType, TaxBracket, TaxRule, TaxRuleVersion
from tax_engine.config import Settings
from tax_engine.models import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def make_brackets(*bands: tuple[str, str | None, str]) -> tuple[TaxBracket, ...]:
    """Build brackets from (min, max, rate) string triples."""
    return tuple(
        TaxBracket(
            index=i,
            min_amount=Decimal(low),
            max_amount=Decimal(high) if high is not None else None,
            rate=Decimal(rate),
        )
        for i, (low, high, rate) in enumerate(bands, start=1)
    )


STANDARD_BANDS = (
    ("0", "10000", "0.10"),
    ("10000", "50000", "0.20"),
    ("50000", None, "0.30"),
)


@pytest.fixture
def test_settings() -> Settings:
    """Settings independent of the process environment."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="test",
        money_quantum=Decimal("0.01"),
        rounding=ROUND_HALF_UP,
        log_level="DEBUG",
    )


@pytest.fixture
def standard_brackets() -> tuple[TaxBracket, ...]:
    """[0,10000)@10%, [10000,50000)@20%, [50000,inf)@30%."""
    return make_brackets(*STANDARD_BANDS)


@pytest.fixture
def progressive_version(standard_brackets) -> TaxRuleVersion:
    return TaxRuleVersion(
        version_number=1,
        effective_from=date(2025, 1, 1),
        brackets=standard_brackets,
    )


@pytest.fixture
def income_rule(progressive_version) -> TaxRule:
    """Income tax rule with a single progressive version."""
    return TaxRule(
        rule_id=uuid4(),
        code="INCOME_TAX_2025",
        name="Income Tax 2025",
        rule_type=RuleType.INCOME,
        country="SR",
        versions=(progressive_version,),
    )


@pytest.fixture
def flat_rule() -> TaxRule:
    """Flat 10% from 2025-01-01, raised to 15% from 2025-07-01."""
    return TaxRule(
        rule_id=uuid4(),
        code="SOCIAL_SECURITY",
        name="Social Security",
        rule_type=RuleType.SOCIAL_SECURITY,
        country="SR",
        versions=(
            TaxRuleVersion(
                version_number=1,
                effective_from=date(2025, 1, 1),
                flat_rate=Decimal("0.10"),
            ),
            TaxRuleVersion(
                version_number=2,
                effective_from=date(2025, 7, 1),
                flat_rate=Decimal("0.15"),
            ),
        ),
    )


@pytest.fixture
def catalog(income_rule, flat_rule) -> RuleCatalog:
    return RuleCatalog([income_rule, flat_rule])


@pytest.fixture
def engine(catalog, test_settings) -> TaxEngine:
    return TaxEngine(catalog, settings=test_settings)


@pytest_asyncio.fixture
async def db_engine():
    """Create an in-memory database with the rule tables."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()
