"""Reference rule definitions for Surinamese payroll (Wage Tax Act).

Amounts are in SRD. Each calendar year is a separate version; versions carry
an explicit effective_to so a pay date past the last published year fails
instead of silently reusing old rates.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tax_engine.calculators.catalog import RuleCatalog
from tax_engine.calculators.errors import RuleNotFoundError
from tax_engine.schemas import AllowanceDefinition, RuleDefinition
from tax_engine.services.rule_repository import TaxRuleRepository

logger = logging.getLogger(__name__)


def _brackets(limits: list[str], rates: list[str]) -> list[dict[str, Any]]:
    """Build contiguous brackets from upper limits; the last bracket is open."""
    brackets = []
    lower = "0"
    for upper, rate in zip(limits + [None], rates):
        brackets.append({"min": lower, "max": upper, "rate": rate})
        lower = upper
    return brackets


_WAGE_RATES = ["0.08", "0.18", "0.28", "0.38"]

SURINAME_RULE_DEFINITIONS: list[dict[str, Any]] = [
    {
        "code": "SR_WAGE_TAX",
        "name": "Suriname Wage Tax (Annual)",
        "rule_type": "wage",
        "country": "SR",
        "description": "Progressive wage tax on annual taxable income",
        "versions": [
            {
                "effective_from": "2023-01-01",
                "effective_to": "2023-12-31",
                "brackets": _brackets(["11356.80", "19273.80", "30193.80"], _WAGE_RATES),
            },
            {
                "effective_from": "2024-01-01",
                "effective_to": "2024-12-31",
                "brackets": _brackets(["42000", "84000", "126000"], _WAGE_RATES),
            },
            {
                "effective_from": "2025-01-01",
                "effective_to": "2025-12-31",
                "brackets": _brackets(["42000", "84000", "126000"], _WAGE_RATES),
            },
        ],
    },
    {
        "code": "SR_WAGE_TAX_MONTHLY",
        "name": "Suriname Wage Tax (Monthly)",
        "rule_type": "wage",
        "country": "SR",
        "description": "Progressive wage tax on monthly taxable income",
        "versions": [
            {
                "effective_from": "2023-01-01",
                "effective_to": "2023-12-31",
                "brackets": _brackets(["946.40", "1606.15", "2516.15"], _WAGE_RATES),
            },
            {
                "effective_from": "2024-01-01",
                "effective_to": "2024-12-31",
                "brackets": _brackets(["3500", "7000", "10500"], _WAGE_RATES),
            },
            {
                "effective_from": "2025-01-01",
                "effective_to": "2025-12-31",
                "brackets": _brackets(["3500", "7000", "10500"], _WAGE_RATES),
            },
        ],
    },
    {
        "code": "SR_OVERTIME",
        "name": "Suriname Overtime Tax",
        "rule_type": "wage",
        "country": "SR",
        "description": "Overtime tax; thresholds raised from July 2025",
        "versions": [
            {
                "effective_from": "2025-01-01",
                "effective_to": "2025-06-30",
                "brackets": _brackets(["500", "1100"], ["0.05", "0.15", "0.25"]),
            },
            {
                "effective_from": "2025-07-01",
                "effective_to": "2025-12-31",
                "brackets": _brackets(["2500", "7500"], ["0.05", "0.15", "0.25"]),
            },
        ],
    },
    {
        "code": "SR_AOV",
        "name": "AOV (Old Age Provision)",
        "rule_type": "social_security",
        "country": "SR",
        "description": "Old age pension contribution, flat rate on taxable income",
        "versions": [
            {"effective_from": "2024-01-01", "effective_to": "2024-12-31", "flat_rate": "0.04"},
            {"effective_from": "2025-01-01", "effective_to": "2025-12-31", "flat_rate": "0.04"},
        ],
    },
    {
        "code": "SR_AWW",
        "name": "AWW (General Widow and Orphan Provision)",
        "rule_type": "medicare",
        "country": "SR",
        "description": "Widow and orphan provision, flat rate on taxable income",
        "versions": [
            {"effective_from": "2024-01-01", "effective_to": "2024-12-31", "flat_rate": "0.01"},
            {"effective_from": "2025-01-01", "effective_to": "2025-12-31", "flat_rate": "0.01"},
        ],
    },
]


# Tax-free sum for residents, raised from 2025
SURINAME_ALLOWANCE_DEFINITIONS: list[dict[str, Any]] = [
    {
        "allowance_type": "tax_free_sum_annual",
        "country": "SR",
        "amount": "90000",
        "effective_from": "2023-01-01",
        "effective_to": "2024-12-31",
    },
    {
        "allowance_type": "tax_free_sum_annual",
        "country": "SR",
        "amount": "108000",
        "effective_from": "2025-01-01",
        "effective_to": "2025-12-31",
    },
    {
        "allowance_type": "tax_free_sum_monthly",
        "country": "SR",
        "amount": "7500",
        "effective_from": "2023-01-01",
        "effective_to": "2024-12-31",
    },
    {
        "allowance_type": "tax_free_sum_monthly",
        "country": "SR",
        "amount": "9000",
        "effective_from": "2025-01-01",
        "effective_to": "2025-12-31",
    },
]


def suriname_catalog() -> RuleCatalog:
    """Catalog of the Surinamese reference rules (fresh rule ids each call)."""
    return RuleCatalog.from_definitions(
        SURINAME_RULE_DEFINITIONS, SURINAME_ALLOWANCE_DEFINITIONS
    )


async def seed_rules(session: AsyncSession) -> int:
    """Insert missing reference rules, returning how many were created."""
    repository = TaxRuleRepository(session)
    created = 0

    for payload in SURINAME_RULE_DEFINITIONS:
        rule = RuleDefinition.model_validate(payload).to_domain()
        try:
            await repository.get_rule_by_code(rule.code)
        except RuleNotFoundError:
            await repository.save_rule(rule)
            created += 1
        else:
            logger.info("Tax rule %s already exists, skipping", rule.code)

    return created


async def seed_allowances(session: AsyncSession) -> int:
    """Insert missing reference allowance periods, returning how many were created."""
    repository = TaxRuleRepository(session)
    existing = {
        (a.allowance_type, a.effective_from)
        for a in await repository.list_allowances(country="SR")
    }
    created = 0

    for payload in SURINAME_ALLOWANCE_DEFINITIONS:
        allowance = AllowanceDefinition.model_validate(payload).to_domain()
        if (allowance.allowance_type, allowance.effective_from) in existing:
            logger.info(
                "Allowance %s from %s already exists, skipping",
                allowance.allowance_type,
                allowance.effective_from,
            )
            continue
        await repository.save_allowance(allowance)
        created += 1

    return created
