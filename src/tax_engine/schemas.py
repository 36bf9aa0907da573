"""Pydantic schemas for tax rule definitions.

Rule definitions are the serialized form of rules: seed files, stored JSON
payloads and admin exports. They validate field shapes; the domain records
enforce the cross-field invariants when ``to_domain()`` builds them.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from tax_engine.calculators.types import (
    RuleType,
    TaxBracket,
    TaxFreeAllowance,
    TaxRule,
    TaxRuleVersion,
)


class BracketDefinition(BaseModel):
    """One bracket; ``max`` is omitted or null on the top bracket."""

    min: Decimal = Field(ge=0)
    max: Decimal | None = None
    rate: Decimal = Field(ge=0, le=1)


class VersionDefinition(BaseModel):
    """One effective-dated version.

    ``version`` may be omitted; versions are then numbered in list order.
    """

    version: int | None = Field(default=None, ge=1)
    effective_from: date
    effective_to: date | None = None
    brackets: list[BracketDefinition] = Field(default_factory=list)
    flat_rate: Decimal | None = Field(default=None, ge=0, le=1)
    contribution_cap: Decimal | None = Field(default=None, ge=0)

    def to_domain(self, version_number: int) -> TaxRuleVersion:
        return TaxRuleVersion(
            version_number=self.version or version_number,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
            brackets=tuple(
                TaxBracket(index=i, min_amount=b.min, max_amount=b.max, rate=b.rate)
                for i, b in enumerate(self.brackets, start=1)
            ),
            flat_rate=self.flat_rate,
            contribution_cap=self.contribution_cap,
        )


class RuleDefinition(BaseModel):
    """A tax rule with all of its versions."""

    rule_id: UUID = Field(default_factory=uuid4)
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=2, max_length=100)
    rule_type: RuleType
    country: str = Field(min_length=2, max_length=2)
    is_active: bool = True
    description: str | None = Field(default=None, max_length=500)
    versions: list[VersionDefinition] = Field(default_factory=list)

    def to_domain(self) -> TaxRule:
        """Build the validated domain record.

        Raises:
            InvalidRuleError: If brackets or version numbers break an invariant
        """
        return TaxRule(
            rule_id=self.rule_id,
            code=self.code,
            name=self.name,
            rule_type=self.rule_type,
            country=self.country.upper(),
            is_active=self.is_active,
            description=self.description,
            versions=tuple(
                v.to_domain(version_number=i) for i, v in enumerate(self.versions, start=1)
            ),
        )

    @classmethod
    def from_domain(cls, rule: TaxRule) -> RuleDefinition:
        """Serialize a domain rule back to its definition."""
        return cls(
            rule_id=rule.rule_id,
            code=rule.code,
            name=rule.name,
            rule_type=rule.rule_type,
            country=rule.country,
            is_active=rule.is_active,
            description=rule.description,
            versions=[
                VersionDefinition(
                    version=v.version_number,
                    effective_from=v.effective_from,
                    effective_to=v.effective_to,
                    brackets=[
                        BracketDefinition(min=b.min_amount, max=b.max_amount, rate=b.rate)
                        for b in v.brackets
                    ],
                    flat_rate=v.flat_rate,
                    contribution_cap=v.contribution_cap,
                )
                for v in rule.versions
            ],
        )


class AllowanceDefinition(BaseModel):
    """An effective-dated tax-free sum."""

    allowance_type: str = Field(min_length=1, max_length=50)
    country: str = Field(min_length=2, max_length=2)
    amount: Decimal = Field(ge=0)
    effective_from: date
    effective_to: date | None = None
    description: str | None = Field(default=None, max_length=500)

    def to_domain(self) -> TaxFreeAllowance:
        return TaxFreeAllowance(
            allowance_type=self.allowance_type,
            country=self.country.upper(),
            amount=self.amount,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
            description=self.description,
        )
