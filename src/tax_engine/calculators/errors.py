"""Exceptions raised by the tax rule engine."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID


class TaxEngineError(Exception):
    """Base class for all tax engine errors."""


class InvalidRuleError(TaxEngineError, ValueError):
    """Raised when a rule, version or bracket violates a construction invariant."""


class RuleNotFoundError(TaxEngineError):
    """Raised when a rule id (or code) does not reference a known rule."""

    def __init__(self, rule_id: UUID | str):
        self.rule_id = rule_id
        super().__init__(f"Tax rule '{rule_id}' not found")


class NoApplicableVersionError(TaxEngineError):
    """Raised when no version of a rule is in effect on the calculation date."""

    def __init__(
        self,
        rule_id: UUID | str,
        calculation_date: date,
        reason: str | None = None,
        kind: str = "tax rule",
    ):
        self.rule_id = rule_id
        self.calculation_date = calculation_date
        self.reason = reason
        msg = f"No version of {kind} '{rule_id}' is effective on {calculation_date}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class OverlappingVersionsError(TaxEngineError):
    """Raised when two versions of a rule claim overlapping effective periods.

    This is a data-integrity failure upstream of the engine. Payroll runs must
    halt for the rule rather than pick one of the versions.
    """

    def __init__(
        self,
        rule_id: UUID | str,
        first_version: int,
        second_version: int,
        effective_date: date,
    ):
        self.rule_id = rule_id
        self.first_version = first_version
        self.second_version = second_version
        self.effective_date = effective_date
        super().__init__(
            f"Tax rule '{rule_id}' has overlapping versions "
            f"{first_version} and {second_version} at {effective_date}"
        )


class InvalidIncomeError(TaxEngineError, ValueError):
    """Raised when an income, exemption or deduction amount is not usable."""

    def __init__(self, value: Any, field: str = "taxable_income", reason: str | None = None):
        self.value = value
        self.field = field
        self.reason = reason or "must be a finite, non-negative amount"
        super().__init__(f"Invalid {field} {value!r}: {self.reason}")

    @property
    def income(self) -> Decimal | Any:
        """The offending value."""
        return self.value


class InvalidRequestError(TaxEngineError, ValueError):
    """Raised when a calculation request is malformed."""
