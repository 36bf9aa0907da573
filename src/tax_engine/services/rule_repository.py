"""Stored tax rule access."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tax_engine.calculators.catalog import RuleCatalog
from tax_engine.calculators.errors import InvalidRuleError, RuleNotFoundError
from tax_engine.calculators.types import TaxBracket, TaxFreeAllowance, TaxRule, TaxRuleVersion
from tax_engine.models import (
    TaxBracketRecord,
    TaxFreeAllowanceRecord,
    TaxRuleRecord,
    TaxRuleVersionRecord,
)
from tax_engine.services.versioning import append_version

logger = logging.getLogger(__name__)


class TaxRuleRepository:
    """Loads and stores tax rules.

    The engine never queries the database itself: a payroll run calls
    ``load_catalog`` once and passes the snapshot to ``TaxEngine``.
    Soft-deleted rules are invisible; deactivated rules still load so that
    historical runs remain reproducible.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load_catalog(
        self,
        country: str | None = None,
        active_only: bool = False,
    ) -> RuleCatalog:
        """Load a read-only snapshot of stored rules and allowances."""
        stmt = self._rule_query()
        if country is not None:
            stmt = stmt.where(TaxRuleRecord.country == country)
        if active_only:
            stmt = stmt.where(TaxRuleRecord.is_active.is_(True))

        result = await self.session.execute(stmt)
        rules = [self._to_domain(record) for record in result.scalars().all()]

        allowances = await self.list_allowances(country=country)

        logger.info(
            "Loaded %d tax rules and %d allowances (country=%s)",
            len(rules),
            len(allowances),
            country or "*",
        )
        return RuleCatalog(rules, allowances)

    async def get_rule(self, rule_id: UUID) -> TaxRule:
        """Load one rule.

        Raises:
            RuleNotFoundError: Unknown or soft-deleted rule
        """
        record = await self._get_record(rule_id)
        return self._to_domain(record)

    async def get_rule_by_code(self, code: str) -> TaxRule:
        result = await self.session.execute(self._rule_query().where(TaxRuleRecord.code == code))
        record = result.scalar_one_or_none()
        if record is None:
            raise RuleNotFoundError(code)
        return self._to_domain(record)

    async def save_rule(self, rule: TaxRule) -> TaxRuleRecord:
        """Insert a new rule with all its versions.

        Raises:
            InvalidRuleError: If a rule with the same id or code exists
        """
        result = await self.session.execute(
            select(TaxRuleRecord.rule_id).where(
                or_(TaxRuleRecord.rule_id == rule.rule_id, TaxRuleRecord.code == rule.code)
            )
        )
        if result.first() is not None:
            raise InvalidRuleError(f"Tax rule {rule.code} already exists")

        record = TaxRuleRecord(
            rule_id=rule.rule_id,
            code=rule.code,
            name=rule.name,
            rule_type=rule.rule_type.value,
            country=rule.country,
            description=rule.description,
            is_active=rule.is_active,
            versions=[self._version_record(v) for v in rule.versions],
        )
        self.session.add(record)
        await self.session.flush()

        logger.info(
            "Saved tax rule %s (%s) with %d versions",
            rule.code,
            rule.rule_id,
            len(rule.versions),
        )
        return record

    async def add_version(self, rule_id: UUID, version: TaxRuleVersion) -> TaxRule:
        """Append a version to a stored rule.

        Raises:
            RuleNotFoundError: Unknown rule
            OverlappingVersionsError: Effective date not after existing versions
        """
        record = await self._get_record(rule_id)
        updated = append_version(self._to_domain(record), version)

        record.versions.append(self._version_record(version))
        await self.session.flush()
        return updated

    async def deactivate_rule(self, rule_id: UUID) -> None:
        """Deactivate a rule; it stays resolvable for past pay periods."""
        record = await self._get_record(rule_id)
        record.is_active = False
        await self.session.flush()
        logger.info("Deactivated tax rule %s", record.code)

    async def delete_rule(self, rule_id: UUID) -> None:
        """Soft delete a rule. Use ``deactivate_rule`` for rules already used in runs."""
        record = await self._get_record(rule_id)
        record.deleted_at = datetime.now(timezone.utc)
        await self.session.flush()
        logger.warning("Soft-deleted tax rule %s", record.code)

    async def list_allowances(
        self,
        allowance_type: str | None = None,
        country: str | None = None,
    ) -> list[TaxFreeAllowance]:
        stmt = select(TaxFreeAllowanceRecord).order_by(
            TaxFreeAllowanceRecord.allowance_type, TaxFreeAllowanceRecord.effective_from
        )
        if allowance_type is not None:
            stmt = stmt.where(TaxFreeAllowanceRecord.allowance_type == allowance_type)
        if country is not None:
            stmt = stmt.where(TaxFreeAllowanceRecord.country == country)

        result = await self.session.execute(stmt)
        return [
            TaxFreeAllowance(
                allowance_type=r.allowance_type,
                country=r.country,
                amount=r.amount,
                effective_from=r.effective_from,
                effective_to=r.effective_to,
                description=r.description,
                allowance_id=r.allowance_id,
            )
            for r in result.scalars().all()
        ]

    async def save_allowance(self, allowance: TaxFreeAllowance) -> TaxFreeAllowanceRecord:
        """Insert an allowance period.

        Raises:
            InvalidRuleError: If the type already has a period starting that day
        """
        result = await self.session.execute(
            select(TaxFreeAllowanceRecord.allowance_id).where(
                TaxFreeAllowanceRecord.allowance_type == allowance.allowance_type,
                TaxFreeAllowanceRecord.country == allowance.country,
                TaxFreeAllowanceRecord.effective_from == allowance.effective_from,
            )
        )
        if result.first() is not None:
            raise InvalidRuleError(
                f"Allowance {allowance.allowance_type} effective "
                f"{allowance.effective_from} already exists"
            )

        record = TaxFreeAllowanceRecord(
            allowance_id=allowance.allowance_id,
            allowance_type=allowance.allowance_type,
            country=allowance.country,
            amount=allowance.amount,
            effective_from=allowance.effective_from,
            effective_to=allowance.effective_to,
            description=allowance.description,
        )
        self.session.add(record)
        await self.session.flush()

        logger.info(
            "Saved %s allowance of %s effective %s",
            allowance.allowance_type,
            allowance.amount,
            allowance.effective_from,
        )
        return record

    def _rule_query(self):
        return (
            select(TaxRuleRecord)
            .where(TaxRuleRecord.deleted_at.is_(None))
            .options(
                selectinload(TaxRuleRecord.versions).selectinload(TaxRuleVersionRecord.brackets)
            )
        )

    async def _get_record(self, rule_id: UUID) -> TaxRuleRecord:
        result = await self.session.execute(
            self._rule_query().where(TaxRuleRecord.rule_id == rule_id)
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise RuleNotFoundError(rule_id)
        return record

    @staticmethod
    def _version_record(version: TaxRuleVersion) -> TaxRuleVersionRecord:
        return TaxRuleVersionRecord(
            version_id=version.version_id,
            version_number=version.version_number,
            effective_from=version.effective_from,
            effective_to=version.effective_to,
            flat_rate=version.flat_rate,
            contribution_cap=version.contribution_cap,
            brackets=[
                TaxBracketRecord(
                    bracket_index=b.index,
                    income_min=b.min_amount,
                    income_max=b.max_amount,
                    rate=b.rate,
                )
                for b in version.brackets
            ],
        )

    @staticmethod
    def _to_domain(record: TaxRuleRecord) -> TaxRule:
        return TaxRule(
            rule_id=record.rule_id,
            code=record.code,
            name=record.name,
            rule_type=record.rule_type,
            country=record.country,
            is_active=record.is_active,
            description=record.description,
            versions=tuple(
                TaxRuleVersion(
                    version_number=v.version_number,
                    effective_from=v.effective_from,
                    effective_to=v.effective_to,
                    brackets=tuple(
                        TaxBracket(
                            index=b.bracket_index,
                            min_amount=b.income_min,
                            max_amount=b.income_max,
                            rate=b.rate,
                        )
                        for b in v.brackets
                    ),
                    flat_rate=v.flat_rate,
                    contribution_cap=v.contribution_cap,
                    version_id=v.version_id,
                )
                for v in record.versions
            ),
        )
