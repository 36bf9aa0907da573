"""Type definitions for the tax calculation pipeline."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, cast
from uuid import UUID, uuid4

from tax_engine.calculators.errors import (
    InvalidIncomeError,
    InvalidRequestError,
    InvalidRuleError,
)

ZERO = Decimal("0")
ONE = Decimal("1")

# Precision of the stored columns (see models/tax_rule.py)
MONEY_DIGITS, MONEY_PLACES = 18, 2
RATE_DIGITS, RATE_PLACES = 9, 6


class RuleType(str, Enum):
    """Tax rule categories."""

    INCOME = "income"
    WAGE = "wage"
    SOCIAL_SECURITY = "social_security"
    MEDICARE = "medicare"
    PAYROLL = "payroll"
    OTHER = "other"


class VersionStatus(str, Enum):
    """Derived lifecycle status of a rule version."""

    PENDING = "pending"
    ACTIVE = "active"
    SUPERSEDED = "superseded"


def _parse_decimal(value: Any) -> Decimal:
    """Coerce a numeric input to Decimal, raising ValueError on junk.

    Floats go through str() so that 0.1 stays 0.1 instead of its binary
    expansion.
    """
    if isinstance(value, bool):
        raise ValueError("booleans are not amounts")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation as exc:
            raise ValueError(f"{value!r} is not a number") from exc
    else:
        raise ValueError(f"unsupported amount type {type(value).__name__}")
    if not result.is_finite():
        raise ValueError("amount must be finite")
    return result


def to_decimal(value: Any, field_name: str = "taxable_income") -> Decimal:
    """Coerce a monetary input to Decimal, raising InvalidIncomeError."""
    try:
        return _parse_decimal(value)
    except ValueError as exc:
        raise InvalidIncomeError(value, field_name, str(exc)) from exc


def _rule_decimal(
    value: Any,
    field_name: str,
    digits: int = MONEY_DIGITS,
    places: int = MONEY_PLACES,
) -> Decimal:
    """Parse a rule amount that must fit a ``Numeric(digits, places)`` column."""
    try:
        result = _parse_decimal(value)
    except ValueError as exc:
        raise InvalidRuleError(f"{field_name}: {exc}") from exc

    if result.copy_abs() >= Decimal(10) ** (digits - places):
        raise InvalidRuleError(
            f"{field_name} {result} exceeds {digits - places} integer digits"
        )
    if result != result.quantize(ONE.scaleb(-places)):
        raise InvalidRuleError(f"{field_name} {result} has more than {places} decimal places")
    return result


def to_calendar_date(value: date) -> date:
    """Drop the time of day from a datetime."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise InvalidRequestError(f"Expected a date, got {type(value).__name__}")


def canonical_amount(value: Decimal | None) -> str | None:
    """Render a Decimal independent of its exponent (0.1 == 0.100000)."""
    if value is None:
        return None
    return format(value.normalize(), "f")


@dataclass(frozen=True)
class TaxBracket:
    """Tax bracket for progressive taxation.

    ``min_amount`` is inclusive, ``max_amount`` is exclusive and ``None`` on the
    top bracket.
    """

    index: int
    min_amount: Decimal
    max_amount: Decimal | None  # None = no upper limit
    rate: Decimal  # As fraction, e.g. 0.22 for 22%

    def __post_init__(self) -> None:
        if self.index < 1:
            raise InvalidRuleError(f"Bracket index must start at 1, got {self.index}")

        min_amount = _rule_decimal(self.min_amount, "min_amount")
        max_amount = (
            _rule_decimal(self.max_amount, "max_amount") if self.max_amount is not None else None
        )
        rate = _rule_decimal(self.rate, "rate", RATE_DIGITS, RATE_PLACES)

        if min_amount < ZERO:
            raise InvalidRuleError(f"Bracket {self.index} minimum must be >= 0")
        if max_amount is not None and max_amount <= min_amount:
            raise InvalidRuleError(
                f"Bracket {self.index} maximum {max_amount} must exceed minimum {min_amount}"
            )
        if not ZERO <= rate <= ONE:
            raise InvalidRuleError(f"Bracket {self.index} rate {rate} must be within [0, 1]")

        object.__setattr__(self, "min_amount", min_amount)
        object.__setattr__(self, "max_amount", max_amount)
        object.__setattr__(self, "rate", rate)

    @property
    def is_unbounded(self) -> bool:
        return self.max_amount is None

    def income_in_bracket(self, income: Decimal) -> Decimal:
        """Portion of ``income`` that falls inside this bracket."""
        if income <= self.min_amount:
            return ZERO
        upper = income if self.max_amount is None else min(income, self.max_amount)
        return upper - self.min_amount

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "min": canonical_amount(self.min_amount),
            "max": canonical_amount(self.max_amount),
            "rate": canonical_amount(self.rate),
        }


def _validate_brackets(brackets: tuple[TaxBracket, ...]) -> None:
    """Brackets must be contiguous, ascending and end in one unbounded bracket."""
    previous: TaxBracket | None = None
    for position, bracket in enumerate(brackets, start=1):
        if bracket.index != position:
            raise InvalidRuleError(
                f"Bracket indices must run 1..n in order, found {bracket.index} at position {position}"
            )
        if previous is not None:
            if previous.max_amount is None:
                raise InvalidRuleError(
                    f"Only the last bracket may be unbounded (bracket {previous.index})"
                )
            if bracket.min_amount != previous.max_amount:
                raise InvalidRuleError(
                    f"Bracket {bracket.index} minimum {bracket.min_amount} does not equal "
                    f"bracket {previous.index} maximum {previous.max_amount}"
                )
        previous = bracket

    if previous is not None and previous.max_amount is not None:
        raise InvalidRuleError("The last bracket must have no upper limit")


@dataclass(frozen=True)
class TaxRuleVersion:
    """An effective-dated revision of a tax rule.

    A version is either bracketed (progressive) or flat-rate. Its lifecycle
    status is derived from dates, see ``version_resolver.version_status``.
    """

    version_number: int
    effective_from: date
    effective_to: date | None = None
    brackets: tuple[TaxBracket, ...] = ()
    flat_rate: Decimal | None = None
    contribution_cap: Decimal | None = None  # Maximum tax for flat-rate versions
    version_id: UUID = field(default_factory=uuid4, compare=False)

    def __post_init__(self) -> None:
        if self.version_number < 1:
            raise InvalidRuleError(f"Version numbers start at 1, got {self.version_number}")

        effective_from = to_calendar_date(self.effective_from)
        effective_to = (
            to_calendar_date(self.effective_to) if self.effective_to is not None else None
        )
        if effective_to is not None and effective_to < effective_from:
            raise InvalidRuleError(
                f"Version {self.version_number} effective_to {effective_to} "
                f"precedes effective_from {effective_from}"
            )
        object.__setattr__(self, "effective_from", effective_from)
        object.__setattr__(self, "effective_to", effective_to)

        brackets = tuple(self.brackets)
        object.__setattr__(self, "brackets", brackets)

        if self.flat_rate is None:
            if not brackets:
                raise InvalidRuleError(
                    f"Version {self.version_number} needs brackets or a flat rate"
                )
            if self.contribution_cap is not None:
                raise InvalidRuleError("contribution_cap only applies to flat-rate versions")
            _validate_brackets(brackets)
            return

        if brackets:
            raise InvalidRuleError(
                f"Version {self.version_number} cannot define both brackets and a flat rate"
            )
        flat_rate = _rule_decimal(self.flat_rate, "flat_rate", RATE_DIGITS, RATE_PLACES)
        if not ZERO <= flat_rate <= ONE:
            raise InvalidRuleError(f"Flat rate {flat_rate} must be within [0, 1]")
        object.__setattr__(self, "flat_rate", flat_rate)

        if self.contribution_cap is not None:
            cap = _rule_decimal(self.contribution_cap, "contribution_cap")
            if cap < ZERO:
                raise InvalidRuleError("contribution_cap must be >= 0")
            object.__setattr__(self, "contribution_cap", cap)

    @property
    def is_flat_rate(self) -> bool:
        return self.flat_rate is not None

    @property
    def max_rate(self) -> Decimal:
        """Highest marginal rate this version can apply."""
        if self.flat_rate is not None:
            return self.flat_rate
        return max(b.rate for b in self.brackets)

    def covers(self, as_of_date: date) -> bool:
        """Check if the version's own date range includes a date."""
        if self.effective_from > as_of_date:
            return False
        if self.effective_to is not None and self.effective_to < as_of_date:
            return False
        return True

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "version_number": self.version_number,
            "effective_from": self.effective_from.isoformat(),
            "effective_to": self.effective_to.isoformat() if self.effective_to else None,
            "brackets": [b.to_canonical_dict() for b in self.brackets],
            "flat_rate": canonical_amount(self.flat_rate),
            "contribution_cap": canonical_amount(self.contribution_cap),
        }

    @property
    def fingerprint(self) -> str:
        """Stable hash of the version's content, for audit trails."""
        json_str = json.dumps(self.to_canonical_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]


@dataclass(frozen=True)
class TaxRule:
    """Tax rule with its effective-dated versions.

    Rules are deactivated rather than deleted once historical payroll runs
    reference them, so an inactive rule still resolves.
    """

    rule_id: UUID
    code: str
    name: str
    rule_type: RuleType
    country: str
    versions: tuple[TaxRuleVersion, ...] = ()
    is_active: bool = True
    description: str | None = None

    def __post_init__(self) -> None:
        if not self.code or not self.code.strip():
            raise InvalidRuleError("Tax rule code must not be empty")
        try:
            object.__setattr__(self, "rule_type", RuleType(self.rule_type))
        except ValueError as exc:
            raise InvalidRuleError(f"Unknown rule type {self.rule_type!r}") from exc

        versions = tuple(sorted(self.versions, key=lambda v: v.version_number))
        expected = list(range(1, len(versions) + 1))
        actual = [v.version_number for v in versions]
        if actual != expected:
            raise InvalidRuleError(
                f"Tax rule {self.code} version numbers must be 1..{len(versions)}, got {actual}"
            )
        object.__setattr__(self, "versions", versions)

    @property
    def latest_version(self) -> TaxRuleVersion | None:
        return self.versions[-1] if self.versions else None

    def get_version(self, version_number: int) -> TaxRuleVersion:
        for version in self.versions:
            if version.version_number == version_number:
                return version
        raise KeyError(f"Tax rule {self.code} has no version {version_number}")


@dataclass(frozen=True)
class TaxFreeAllowance:
    """An effective-dated tax-free sum deducted from gross income.

    Allowances are keyed by type (e.g. ``tax_free_sum_monthly``) so that the
    annual and per-period amounts are published and resolved independently.
    """

    allowance_type: str
    country: str
    amount: Decimal
    effective_from: date
    effective_to: date | None = None
    description: str | None = None
    allowance_id: UUID = field(default_factory=uuid4, compare=False)

    def __post_init__(self) -> None:
        if not self.allowance_type or not self.allowance_type.strip():
            raise InvalidRuleError("Allowance type must not be empty")

        amount = _rule_decimal(self.amount, "amount")
        if amount < ZERO:
            raise InvalidRuleError(f"Allowance {self.allowance_type} amount must be >= 0")
        object.__setattr__(self, "amount", amount)

        effective_from = to_calendar_date(self.effective_from)
        effective_to = (
            to_calendar_date(self.effective_to) if self.effective_to is not None else None
        )
        if effective_to is not None and effective_to < effective_from:
            raise InvalidRuleError(
                f"Allowance {self.allowance_type} effective_to {effective_to} "
                f"precedes effective_from {effective_from}"
            )
        object.__setattr__(self, "effective_from", effective_from)
        object.__setattr__(self, "effective_to", effective_to)

    def covers(self, as_of_date: date) -> bool:
        if self.effective_from > as_of_date:
            return False
        return self.effective_to is None or self.effective_to >= as_of_date

    def exemption_for(self, gross_income: Decimal) -> Decimal:
        """The allowance never exceeds the income it is deducted from."""
        return min(self.amount, max(ZERO, gross_income))


@dataclass(frozen=True)
class CalculationRequest:
    """A single tax computation request from a payroll run.

    Either ``taxable_income`` is given directly, or ``gross_income`` together
    with optional exemptions and deductions.
    """

    rule_id: UUID | str
    calculation_date: date
    taxable_income: Decimal | None = None
    gross_income: Decimal | None = None
    exemptions: Decimal = ZERO
    deductions: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "calculation_date", to_calendar_date(self.calculation_date))

        if (self.taxable_income is None) == (self.gross_income is None):
            raise InvalidRequestError(
                "Provide exactly one of taxable_income or gross_income"
            )

        exemptions = to_decimal(self.exemptions, "exemptions")
        deductions = to_decimal(self.deductions, "deductions")

        if self.taxable_income is not None:
            if exemptions or deductions:
                raise InvalidRequestError(
                    "Exemptions and deductions only apply to gross_income requests"
                )
            # Sign is checked by the calculator
            object.__setattr__(
                self, "taxable_income", to_decimal(self.taxable_income, "taxable_income")
            )
        else:
            gross = to_decimal(self.gross_income, "gross_income")
            amounts = {"gross_income": gross, "exemptions": exemptions, "deductions": deductions}
            for name, value in amounts.items():
                if value < ZERO:
                    raise InvalidIncomeError(value, name, "must not be negative")
            object.__setattr__(self, "gross_income", gross)

        object.__setattr__(self, "exemptions", exemptions)
        object.__setattr__(self, "deductions", deductions)

    def derive_taxable_income(self) -> Decimal:
        """Taxable income: direct, or gross - exemptions - deductions floored at 0."""
        if self.taxable_income is not None:
            return self.taxable_income
        gross = cast(Decimal, self.gross_income)
        return max(ZERO, gross - self.exemptions - self.deductions)


@dataclass(frozen=True)
class BracketContribution:
    """Tax contributed by one bracket."""

    bracket_index: int
    taxable_amount: Decimal  # Income taxed inside this bracket
    rate: Decimal
    tax: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "bracket_index": self.bracket_index,
            "taxable_amount": str(self.taxable_amount),
            "rate": str(self.rate),
            "tax": str(self.tax),
        }


@dataclass(frozen=True)
class CalculationResult:
    """Result of calculating one rule for one taxable income."""

    taxable_income: Decimal
    version_number: int
    total_tax: Decimal
    effective_rate: Decimal
    breakdown: tuple[BracketContribution, ...] = ()
    rule_id: UUID | str | None = None
    calculation_date: date | None = None
    version_fingerprint: str | None = None
    engine_version: str | None = None

    @property
    def net_income(self) -> Decimal:
        return self.taxable_income - self.total_tax

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": str(self.rule_id) if self.rule_id is not None else None,
            "calculation_date": (
                self.calculation_date.isoformat() if self.calculation_date else None
            ),
            "version_number": self.version_number,
            "version_fingerprint": self.version_fingerprint,
            "engine_version": self.engine_version,
            "taxable_income": str(self.taxable_income),
            "total_tax": str(self.total_tax),
            "effective_rate": str(self.effective_rate),
            "net_income": str(self.net_income),
            "breakdown": [c.to_dict() for c in self.breakdown],
        }


@dataclass(frozen=True)
class CombinedTaxResult:
    """Several independently computed rules summed into one liability."""

    calculation_date: date
    gross_income: Decimal
    taxable_income: Decimal
    results: tuple[CalculationResult, ...] = ()

    @property
    def total_tax(self) -> Decimal:
        return sum((r.total_tax for r in self.results), ZERO)

    @property
    def net_income(self) -> Decimal:
        return self.gross_income - self.total_tax

    @property
    def effective_rate(self) -> Decimal:
        if self.gross_income <= ZERO:
            return ZERO
        return self.total_tax / self.gross_income
