"""ORM models for stored tax rules."""

from tax_engine.models.base import Base, TimestampMixin
from tax_engine.models.tax_rule import (
    TaxBracketRecord,
    TaxFreeAllowanceRecord,
    TaxRuleRecord,
    TaxRuleVersionRecord,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "TaxBracketRecord",
    "TaxFreeAllowanceRecord",
    "TaxRuleRecord",
    "TaxRuleVersionRecord",
]
