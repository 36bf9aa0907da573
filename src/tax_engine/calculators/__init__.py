"""Tax calculation engine."""

from tax_engine.calculators.bracket_calculator import BracketCalculator, calculate
from tax_engine.calculators.catalog import RuleCatalog
from tax_engine.calculators.engine import TaxEngine
from tax_engine.calculators.errors import (
    InvalidIncomeError,
    InvalidRequestError,
    InvalidRuleError,
    NoApplicableVersionError,
    OverlappingVersionsError,
    RuleNotFoundError,
    TaxEngineError,
)
from tax_engine.calculators.types import (
    BracketContribution,
    CalculationRequest,
    CalculationResult,
    CombinedTaxResult,
    RuleType,
    TaxBracket,
    TaxFreeAllowance,
    TaxRule,
    TaxRuleVersion,
    VersionStatus,
)
from tax_engine.calculators.version_resolver import (
    resolve_allowance,
    resolve_version,
    version_status,
)

__all__ = [
    "BracketCalculator",
    "BracketContribution",
    "CalculationRequest",
    "CalculationResult",
    "CombinedTaxResult",
    "InvalidIncomeError",
    "InvalidRequestError",
    "InvalidRuleError",
    "NoApplicableVersionError",
    "OverlappingVersionsError",
    "RuleCatalog",
    "RuleNotFoundError",
    "RuleType",
    "TaxBracket",
    "TaxEngine",
    "TaxEngineError",
    "TaxFreeAllowance",
    "TaxRule",
    "TaxRuleVersion",
    "VersionStatus",
    "calculate",
    "resolve_allowance",
    "resolve_version",
    "version_status",
]
