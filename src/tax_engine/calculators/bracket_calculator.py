"""Progressive bracket and flat-rate tax calculation."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from tax_engine.calculators.errors import InvalidIncomeError
from tax_engine.calculators.types import (
    ZERO,
    BracketContribution,
    CalculationResult,
    TaxRuleVersion,
    to_decimal,
)

CENT = Decimal("0.01")


class BracketCalculator:
    """Applies a rule version to a taxable income.

    Each bracket's contribution is rounded to ``quantum`` and the total is the
    sum of the rounded contributions, so a payslip breakdown always adds up to
    the reported total. The effective rate is taken from the unrounded
    liability.
    """

    def __init__(self, quantum: Decimal = CENT, rounding: str = ROUND_HALF_UP):
        self.quantum = quantum
        self.rounding = rounding

    def calculate(self, version: TaxRuleVersion, taxable_income: Any) -> CalculationResult:
        """Calculate tax for a taxable income under one version.

        Args:
            version: The resolved rule version
            taxable_income: Non-negative amount, already net of exemptions
                and deductions

        Returns:
            Result with total tax, effective rate and per-bracket breakdown

        Raises:
            InvalidIncomeError: If the income is negative or not a number
        """
        income = to_decimal(taxable_income, "taxable_income")
        if income < ZERO:
            raise InvalidIncomeError(income, "taxable_income", "must not be negative")

        try:
            if version.flat_rate is not None:
                contributions, liability = self._calculate_flat_rate(
                    income, version.flat_rate, version.contribution_cap
                )
            else:
                contributions, liability = self._calculate_progressive(income, version)

            total_tax = sum((c.tax for c in contributions), ZERO.quantize(self.quantum))
            effective_rate = liability / income if income > ZERO else ZERO
        except InvalidOperation as exc:
            # Result does not fit the decimal context at the configured quantum
            raise InvalidIncomeError(
                income, "taxable_income", "exceeds supported precision"
            ) from exc

        return CalculationResult(
            taxable_income=income,
            version_number=version.version_number,
            total_tax=total_tax,
            effective_rate=effective_rate,
            breakdown=tuple(contributions),
            version_fingerprint=version.fingerprint,
        )

    def _calculate_progressive(
        self, income: Decimal, version: TaxRuleVersion
    ) -> tuple[list[BracketContribution], Decimal]:
        """Walk brackets in ascending order until income is exhausted."""
        contributions: list[BracketContribution] = []
        liability = ZERO

        for bracket in version.brackets:
            if income <= bracket.min_amount:
                break

            taxable_in_bracket = bracket.income_in_bracket(income)
            bracket_tax = taxable_in_bracket * bracket.rate
            liability += bracket_tax
            contributions.append(
                BracketContribution(
                    bracket_index=bracket.index,
                    taxable_amount=taxable_in_bracket,
                    rate=bracket.rate,
                    tax=self._round(bracket_tax),
                )
            )

        return contributions, liability

    def _calculate_flat_rate(
        self, income: Decimal, rate: Decimal, cap: Decimal | None
    ) -> tuple[list[BracketContribution], Decimal]:
        """Single-rate tax, optionally capped (e.g. social contributions)."""
        if income <= ZERO:
            return [], ZERO

        tax = income * rate
        if cap is not None and tax > cap:
            tax = cap

        contribution = BracketContribution(
            bracket_index=1,
            taxable_amount=income,
            rate=rate,
            tax=self._round(tax),
        )
        return [contribution], tax

    def _round(self, amount: Decimal) -> Decimal:
        return amount.quantize(self.quantum, rounding=self.rounding)


_default_calculator = BracketCalculator()


def calculate(version: TaxRuleVersion, taxable_income: Any) -> CalculationResult:
    """Calculate with cent rounding (ROUND_HALF_UP)."""
    return _default_calculator.calculate(version, taxable_income)
