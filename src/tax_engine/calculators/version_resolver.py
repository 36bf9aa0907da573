"""Effective-dated rule version resolution."""

from __future__ import annotations

from datetime import date
from typing import Iterable

from tax_engine.calculators.errors import NoApplicableVersionError, OverlappingVersionsError
from tax_engine.calculators.types import (
    TaxFreeAllowance,
    TaxRule,
    TaxRuleVersion,
    VersionStatus,
    to_calendar_date,
)


def check_version_overlaps(rule: TaxRule) -> None:
    """Verify that no two versions of a rule claim the same period.

    Versions are ordered by effective_from. Two versions overlap when they
    share an effective_from, or when an earlier version's explicit
    effective_to (inclusive) reaches the next version's effective_from.

    Raises:
        OverlappingVersionsError: On the first overlap found
    """
    ordered = sorted(rule.versions, key=lambda v: (v.effective_from, v.version_number))
    for earlier, later in zip(ordered, ordered[1:]):
        if earlier.effective_from == later.effective_from:
            raise OverlappingVersionsError(
                rule.rule_id, earlier.version_number, later.version_number, later.effective_from
            )
        if earlier.effective_to is not None and earlier.effective_to >= later.effective_from:
            raise OverlappingVersionsError(
                rule.rule_id, earlier.version_number, later.version_number, later.effective_from
            )


def resolve_version(rule: TaxRule, calculation_date: date) -> TaxRuleVersion:
    """Select the version of a rule that applies on a date.

    The most recent version that has taken effect wins: among versions with
    effective_from <= calculation_date, the one with the latest
    effective_from. The result depends only on the rule's version set and
    the date, so adding later-dated versions never changes a past resolution.

    Args:
        rule: The rule with its versions
        calculation_date: Pay period date; time of day is ignored

    Returns:
        The applicable version

    Raises:
        OverlappingVersionsError: If the version set is inconsistent
        NoApplicableVersionError: If no version is in effect on the date
    """
    as_of = to_calendar_date(calculation_date)
    check_version_overlaps(rule)

    candidates = [v for v in rule.versions if v.effective_from <= as_of]
    if not candidates:
        if rule.versions:
            earliest = min(v.effective_from for v in rule.versions)
            reason = f"earliest version takes effect on {earliest}"
        else:
            reason = "rule has no versions"
        raise NoApplicableVersionError(rule.rule_id, as_of, reason)

    selected = max(candidates, key=lambda v: v.effective_from)
    if not selected.covers(as_of):
        raise NoApplicableVersionError(
            rule.rule_id,
            as_of,
            f"version {selected.version_number} ended on {selected.effective_to}",
        )
    return selected


def version_status(rule: TaxRule, version: TaxRuleVersion, as_of_date: date) -> VersionStatus:
    """Derive a version's lifecycle status on a date. Never stored."""
    as_of = to_calendar_date(as_of_date)
    if version.effective_from > as_of:
        return VersionStatus.PENDING

    superseded = any(
        version.effective_from < other.effective_from <= as_of for other in rule.versions
    )
    if superseded or (version.effective_to is not None and version.effective_to < as_of):
        return VersionStatus.SUPERSEDED
    return VersionStatus.ACTIVE


def resolve_allowance(
    allowances: Iterable[TaxFreeAllowance],
    allowance_type: str,
    calculation_date: date,
) -> TaxFreeAllowance:
    """Select the allowance of a type in effect on a date.

    Same rule as for versions: the latest effective_from on or before the
    date wins, and it must not have lapsed.

    Raises:
        NoApplicableVersionError: If no allowance of the type is in effect
    """
    as_of = to_calendar_date(calculation_date)
    candidates = [
        a for a in allowances if a.allowance_type == allowance_type and a.effective_from <= as_of
    ]
    if not candidates:
        raise NoApplicableVersionError(
            allowance_type, as_of, "no allowance has taken effect", kind="allowance"
        )

    selected = max(candidates, key=lambda a: a.effective_from)
    if not selected.covers(as_of):
        raise NoApplicableVersionError(
            allowance_type, as_of, f"ended on {selected.effective_to}", kind="allowance"
        )
    return selected
