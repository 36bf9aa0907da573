"""Tax engine entry point used by payroll runs."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from tax_engine.calculators.bracket_calculator import BracketCalculator
from tax_engine.calculators.catalog import RuleCatalog
from tax_engine.calculators.errors import InvalidRequestError
from tax_engine.calculators.types import (
    ZERO,
    CalculationRequest,
    CalculationResult,
    CombinedTaxResult,
    TaxRuleVersion,
    to_decimal,
)
from tax_engine.calculators.version_resolver import resolve_allowance, resolve_version
from tax_engine.config import Settings, get_settings


class TaxEngine:
    """Resolves the applicable rule version and calculates tax.

    Pipeline per request:
    1) Look up the rule in the catalog
    2) Resolve the version effective on the calculation date
    3) Derive taxable income (direct, or gross - exemptions - deductions >= 0)
    4) Apply brackets (or flat rate) in Decimal arithmetic

    The engine holds no mutable state and does not log; independent requests
    can be computed concurrently by the caller.
    """

    def __init__(self, catalog: RuleCatalog, settings: Settings | None = None):
        self.catalog = catalog
        self.settings = settings or get_settings()
        self.calculator = BracketCalculator(
            quantum=self.settings.money_quantum,
            rounding=self.settings.rounding,
        )

    def resolve_version(self, rule_id: UUID | str, calculation_date: date) -> TaxRuleVersion:
        """Resolve the version of a catalog rule effective on a date."""
        rule = self.catalog.get_rule(rule_id)
        return resolve_version(rule, calculation_date)

    def calculate(self, version: TaxRuleVersion, taxable_income: Any) -> CalculationResult:
        """Apply a version to a taxable income using the configured rounding."""
        return self.calculator.calculate(version, taxable_income)

    def compute_tax(self, request: CalculationRequest) -> CalculationResult:
        """Compute tax for one request.

        Raises:
            RuleNotFoundError: Unknown rule id
            NoApplicableVersionError: No version in effect on the date
            OverlappingVersionsError: Inconsistent version set (fatal)
            InvalidIncomeError: Negative, non-numeric, or too large for the
                configured money precision
        """
        rule = self.catalog.get_rule(request.rule_id)
        version = resolve_version(rule, request.calculation_date)
        result = self.calculator.calculate(version, request.derive_taxable_income())
        return replace(
            result,
            rule_id=rule.rule_id,
            calculation_date=request.calculation_date,
            engine_version=self.settings.engine_version,
        )

    def tax_free_allowance(
        self,
        allowance_type: str,
        calculation_date: date,
        gross_income: Any,
        *,
        is_resident: bool = True,
    ) -> Decimal:
        """Tax-free sum exempted from a gross income on a date.

        Only residents receive the allowance, and it never exceeds the gross
        income.

        Raises:
            NoApplicableVersionError: No allowance of the type in effect
            InvalidIncomeError: Non-numeric gross income
        """
        gross = to_decimal(gross_income, "gross_income")
        if not is_resident:
            return ZERO
        allowance = resolve_allowance(
            self.catalog.allowances(allowance_type), allowance_type, calculation_date
        )
        return allowance.exemption_for(gross)

    def gross_income_request(
        self,
        rule_id: UUID | str,
        calculation_date: date,
        gross_income: Any,
        allowance_type: str,
        *,
        is_resident: bool = True,
        deductions: Any = ZERO,
    ) -> CalculationRequest:
        """Build a gross-income request with the tax-free allowance as exemption."""
        return CalculationRequest(
            rule_id=rule_id,
            calculation_date=calculation_date,
            gross_income=gross_income,
            exemptions=self.tax_free_allowance(
                allowance_type, calculation_date, gross_income, is_resident=is_resident
            ),
            deductions=deductions,
        )

    def compute_combined(
        self,
        rule_ids: Iterable[UUID | str],
        calculation_date: date,
        *,
        taxable_income: Any = None,
        gross_income: Any = None,
        exemptions: Any = ZERO,
        deductions: Any = ZERO,
    ) -> CombinedTaxResult:
        """Compute several rules on the same income and sum the liabilities.

        Each rule is computed independently on the same taxable income; no
        rule's tax reduces another rule's base.
        """
        requests = [
            CalculationRequest(
                rule_id=rule_id,
                calculation_date=calculation_date,
                taxable_income=taxable_income,
                gross_income=gross_income,
                exemptions=exemptions,
                deductions=deductions,
            )
            for rule_id in rule_ids
        ]
        if not requests:
            raise InvalidRequestError("compute_combined needs at least one rule")

        first = requests[0]
        taxable = first.derive_taxable_income()
        gross = first.gross_income if first.gross_income is not None else taxable

        return CombinedTaxResult(
            calculation_date=first.calculation_date,
            gross_income=gross,
            taxable_income=taxable,
            results=tuple(self.compute_tax(r) for r in requests),
        )
