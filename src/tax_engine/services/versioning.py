"""Tax rule versioning workflow: new versions, history and comparison."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from tax_engine.calculators.errors import InvalidRuleError, OverlappingVersionsError
from tax_engine.calculators.types import (
    TaxBracket,
    TaxRule,
    TaxRuleVersion,
    VersionStatus,
)
from tax_engine.calculators.version_resolver import check_version_overlaps, version_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionSummary:
    """A row of a rule's version history."""

    version_number: int
    status: VersionStatus
    effective_from: date
    effective_to: date | None
    bracket_count: int
    is_flat_rate: bool
    fingerprint: str


@dataclass(frozen=True)
class FieldChange:
    """One changed field between two versions (bracket_index None = version level)."""

    field: str
    old: Any
    new: Any
    bracket_index: int | None = None


@dataclass(frozen=True)
class VersionComparison:
    """Differences between two versions of a rule."""

    from_version: int
    to_version: int
    property_changes: tuple[FieldChange, ...]
    brackets_added: tuple[TaxBracket, ...]
    brackets_removed: tuple[TaxBracket, ...]
    brackets_modified: tuple[FieldChange, ...]

    @property
    def has_changes(self) -> bool:
        return bool(
            self.property_changes
            or self.brackets_added
            or self.brackets_removed
            or self.brackets_modified
        )

    @property
    def has_breaking_changes(self) -> bool:
        """Removed brackets or a switch between flat-rate and bracketed."""
        switched = any(c.field == "calculation_method" for c in self.property_changes)
        return switched or bool(self.brackets_removed)


def append_version(rule: TaxRule, version: TaxRuleVersion) -> TaxRule:
    """Return a copy of the rule with ``version`` appended.

    The new version must carry the next version number and take effect
    strictly after every existing version.

    Raises:
        InvalidRuleError: Wrong version number
        OverlappingVersionsError: Effective date not after existing versions
    """
    expected = len(rule.versions) + 1
    if version.version_number != expected:
        raise InvalidRuleError(
            f"Next version of tax rule {rule.code} must be {expected}, "
            f"got {version.version_number}"
        )

    for existing in rule.versions:
        if version.effective_from <= existing.effective_from:
            raise OverlappingVersionsError(
                rule.rule_id,
                existing.version_number,
                version.version_number,
                version.effective_from,
            )

    updated = replace(rule, versions=rule.versions + (version,))
    check_version_overlaps(updated)

    logger.info(
        "Added version %d to tax rule %s effective %s",
        version.version_number,
        rule.code,
        version.effective_from,
    )
    return updated


def add_version(
    rule: TaxRule,
    effective_from: date,
    *,
    brackets: Iterable[TaxBracket] = (),
    flat_rate: Decimal | None = None,
    contribution_cap: Decimal | None = None,
    effective_to: date | None = None,
) -> TaxRule:
    """Create the next version of a rule (e.g. for an annual tax law update)."""
    version = TaxRuleVersion(
        version_number=len(rule.versions) + 1,
        effective_from=effective_from,
        effective_to=effective_to,
        brackets=tuple(brackets),
        flat_rate=flat_rate,
        contribution_cap=contribution_cap,
    )
    return append_version(rule, version)


def version_history(rule: TaxRule, as_of_date: date) -> list[VersionSummary]:
    """List a rule's versions with their status on ``as_of_date``."""
    return [
        VersionSummary(
            version_number=v.version_number,
            status=version_status(rule, v, as_of_date),
            effective_from=v.effective_from,
            effective_to=v.effective_to,
            bracket_count=len(v.brackets),
            is_flat_rate=v.is_flat_rate,
            fingerprint=v.fingerprint,
        )
        for v in rule.versions
    ]


def compare_versions(old: TaxRuleVersion, new: TaxRuleVersion) -> VersionComparison:
    """Compare two versions; brackets are matched by index."""
    property_changes: list[FieldChange] = []

    old_method = "flat_rate" if old.is_flat_rate else "bracket"
    new_method = "flat_rate" if new.is_flat_rate else "bracket"
    if old_method != new_method:
        property_changes.append(FieldChange("calculation_method", old_method, new_method))

    for name in ("effective_from", "effective_to", "flat_rate", "contribution_cap"):
        old_value = getattr(old, name)
        new_value = getattr(new, name)
        if old_value != new_value:
            property_changes.append(FieldChange(name, old_value, new_value))

    old_brackets = {b.index: b for b in old.brackets}
    new_brackets = {b.index: b for b in new.brackets}

    modified: list[FieldChange] = []
    for index in sorted(old_brackets.keys() & new_brackets.keys()):
        before, after = old_brackets[index], new_brackets[index]
        for name in ("min_amount", "max_amount", "rate"):
            if getattr(before, name) != getattr(after, name):
                modified.append(
                    FieldChange(name, getattr(before, name), getattr(after, name), index)
                )

    added = sorted(new_brackets.keys() - old_brackets.keys())
    removed = sorted(old_brackets.keys() - new_brackets.keys())

    return VersionComparison(
        from_version=old.version_number,
        to_version=new.version_number,
        property_changes=tuple(property_changes),
        brackets_added=tuple(new_brackets[i] for i in added),
        brackets_removed=tuple(old_brackets[i] for i in removed),
        brackets_modified=tuple(modified),
    )
