"""Stored tax rules, versions, brackets and tax-free allowances."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tax_engine.calculators.types import MONEY_DIGITS, MONEY_PLACES, RATE_DIGITS, RATE_PLACES
from tax_engine.models.base import Base, TimestampMixin

# Domain records reject values these columns would round
MONEY = Numeric(MONEY_DIGITS, MONEY_PLACES)
RATE = Numeric(RATE_DIGITS, RATE_PLACES)


class TaxRuleRecord(Base, TimestampMixin):
    """Tax rule definition."""

    __tablename__ = "tax_rule"

    rule_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    rule_type: Mapped[str] = mapped_column(String(30), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    versions: Mapped[list[TaxRuleVersionRecord]] = relationship(
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="TaxRuleVersionRecord.version_number",
    )


class TaxRuleVersionRecord(Base, TimestampMixin):
    """Versioned tax rule with effective dating."""

    __tablename__ = "tax_rule_version"

    version_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    rule_id: Mapped[UUID] = mapped_column(
        ForeignKey("tax_rule.rule_id", ondelete="CASCADE"),
        nullable=False,
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    flat_rate: Mapped[Decimal | None] = mapped_column(RATE, nullable=True)
    contribution_cap: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)

    __table_args__ = (
        UniqueConstraint("rule_id", "version_number", name="tax_rule_version_number_uq"),
        UniqueConstraint("rule_id", "effective_from", name="tax_rule_version_effective_uq"),
        CheckConstraint("version_number >= 1", name="tax_rule_version_number_check"),
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="tax_rule_version_dates_check",
        ),
    )

    # Relationships
    rule: Mapped[TaxRuleRecord] = relationship(back_populates="versions")
    brackets: Mapped[list[TaxBracketRecord]] = relationship(
        back_populates="version",
        cascade="all, delete-orphan",
        order_by="TaxBracketRecord.bracket_index",
    )


class TaxBracketRecord(Base):
    """One income bracket of a version."""

    __tablename__ = "tax_bracket"

    bracket_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    version_id: Mapped[UUID] = mapped_column(
        ForeignKey("tax_rule_version.version_id", ondelete="CASCADE"),
        nullable=False,
    )
    bracket_index: Mapped[int] = mapped_column(Integer, nullable=False)
    income_min: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    income_max: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)

    __table_args__ = (
        UniqueConstraint("version_id", "bracket_index", name="tax_bracket_index_uq"),
        CheckConstraint("rate >= 0 AND rate <= 1", name="tax_bracket_rate_check"),
        CheckConstraint(
            "income_max IS NULL OR income_max > income_min",
            name="tax_bracket_range_check",
        ),
    )

    # Relationships
    version: Mapped[TaxRuleVersionRecord] = relationship(back_populates="brackets")


class TaxFreeAllowanceRecord(Base, TimestampMixin):
    """Effective-dated tax-free sum deducted from gross income."""

    __tablename__ = "tax_free_allowance"

    allowance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    allowance_type: Mapped[str] = mapped_column(String(50), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "allowance_type", "country", "effective_from", name="tax_free_allowance_effective_uq"
        ),
        CheckConstraint("amount >= 0", name="tax_free_allowance_amount_check"),
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="tax_free_allowance_dates_check",
        ),
    )
