"""Tax rule services."""

from tax_engine.services.rule_repository import TaxRuleRepository
from tax_engine.services.versioning import (
    VersionComparison,
    VersionSummary,
    add_version,
    append_version,
    compare_versions,
    version_history,
)

__all__ = [
    "TaxRuleRepository",
    "VersionComparison",
    "VersionSummary",
    "add_version",
    "append_version",
    "compare_versions",
    "version_history",
]
