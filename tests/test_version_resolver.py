"""Unit tests for effective-dated version resolution."""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from tax_engine.calculators.errors import NoApplicableVersionError, OverlappingVersionsError
from tax_engine.calculators.types import (
    RuleType,
    TaxFreeAllowance,
    TaxRule,
    TaxRuleVersion,
    VersionStatus,
)
from tax_engine.calculators.version_resolver import (
    check_version_overlaps,
    resolve_allowance,
    resolve_version,
    version_status,
)
from tax_engine.services.versioning import add_version


def _flat(version_number, effective_from, rate="0.10", effective_to=None):
    return TaxRuleVersion(
        version_number=version_number,
        effective_from=effective_from,
        effective_to=effective_to,
        flat_rate=Decimal(rate),
    )


def _rule(*versions):
    return TaxRule(
        rule_id=uuid4(),
        code="TEST",
        name="Test Rule",
        rule_type=RuleType.OTHER,
        country="SR",
        versions=versions,
    )


class TestResolveVersion:
    """Test selection of the version in effect on a date."""

    def test_resolves_first_version_before_change(self, flat_rule):
        version = resolve_version(flat_rule, date(2025, 6, 15))

        assert version.version_number == 1

    def test_resolves_second_version_after_change(self, flat_rule):
        version = resolve_version(flat_rule, date(2025, 8, 15))

        assert version.version_number == 2
        assert version.flat_rate == Decimal("0.15")

    def test_effective_from_is_inclusive(self, flat_rule):
        assert resolve_version(flat_rule, date(2025, 7, 1)).version_number == 2
        assert resolve_version(flat_rule, date(2025, 6, 30)).version_number == 1

    def test_date_before_first_version(self, flat_rule):
        with pytest.raises(NoApplicableVersionError) as exc_info:
            resolve_version(flat_rule, date(2024, 12, 31))

        assert exc_info.value.rule_id == flat_rule.rule_id
        assert exc_info.value.calculation_date == date(2024, 12, 31)

    def test_rule_without_versions(self):
        with pytest.raises(NoApplicableVersionError, match="no versions"):
            resolve_version(_rule(), date(2025, 1, 1))

    def test_lapsed_version(self):
        """A date past the latest version's effective_to has no version."""
        rule = _rule(_flat(1, date(2024, 1, 1), effective_to=date(2024, 12, 31)))

        assert resolve_version(rule, date(2024, 12, 31)).version_number == 1
        with pytest.raises(NoApplicableVersionError, match="ended on 2024-12-31"):
            resolve_version(rule, date(2025, 3, 1))

    def test_open_ended_version_applies_indefinitely(self, flat_rule):
        assert resolve_version(flat_rule, date(2040, 1, 1)).version_number == 2

    def test_datetime_uses_calendar_date(self, flat_rule):
        """Time of day never affects resolution."""
        version = resolve_version(flat_rule, datetime(2025, 6, 30, 23, 59, 59))

        assert version.version_number == 1

    def test_version_numbers_do_not_drive_selection(self):
        """Selection is by effective date, not by version number."""
        rule = _rule(
            _flat(1, date(2025, 6, 1), "0.20"),
            _flat(2, date(2025, 1, 1), "0.10", effective_to=date(2025, 5, 31)),
        )

        assert resolve_version(rule, date(2025, 3, 1)).version_number == 2
        assert resolve_version(rule, date(2025, 7, 1)).version_number == 1

    def test_adding_future_version_keeps_past_resolution(self, flat_rule):
        """Resolution for past dates is stable as new versions are published."""
        before = resolve_version(flat_rule, date(2025, 8, 15))

        updated = add_version(flat_rule, date(2026, 1, 1), flat_rate=Decimal("0.18"))

        assert resolve_version(updated, date(2025, 8, 15)) == before
        assert resolve_version(updated, date(2026, 1, 1)).version_number == 3


class TestVersionOverlaps:
    """Test detection of conflicting version sets."""

    def test_same_effective_from(self):
        rule = _rule(_flat(1, date(2025, 1, 1)), _flat(2, date(2025, 1, 1), "0.12"))

        with pytest.raises(OverlappingVersionsError) as exc_info:
            resolve_version(rule, date(2025, 2, 1))

        assert exc_info.value.first_version == 1
        assert exc_info.value.second_version == 2
        assert exc_info.value.effective_date == date(2025, 1, 1)

    def test_effective_to_reaches_next_version(self):
        """effective_to is inclusive, so ending on the next start day overlaps."""
        rule = _rule(
            _flat(1, date(2025, 1, 1), effective_to=date(2025, 7, 1)),
            _flat(2, date(2025, 7, 1), "0.12"),
        )

        with pytest.raises(OverlappingVersionsError):
            check_version_overlaps(rule)

    def test_overlap_fails_even_for_unaffected_dates(self):
        """An inconsistent rule halts every calculation for that rule."""
        rule = _rule(
            _flat(1, date(2025, 1, 1), effective_to=date(2025, 9, 30)),
            _flat(2, date(2025, 7, 1), "0.12"),
        )

        with pytest.raises(OverlappingVersionsError):
            resolve_version(rule, date(2025, 2, 1))

    def test_adjacent_versions_do_not_overlap(self):
        rule = _rule(
            _flat(1, date(2025, 1, 1), effective_to=date(2025, 6, 30)),
            _flat(2, date(2025, 7, 1), "0.12"),
        )

        check_version_overlaps(rule)

    def test_gap_between_versions(self):
        """Dates inside a gap fall back to no applicable version."""
        rule = _rule(
            _flat(1, date(2025, 1, 1), effective_to=date(2025, 3, 31)),
            _flat(2, date(2025, 7, 1), "0.12"),
        )

        with pytest.raises(NoApplicableVersionError):
            resolve_version(rule, date(2025, 5, 1))


class TestVersionStatus:
    """Test derived lifecycle status."""

    def test_status_before_change(self, flat_rule):
        v1, v2 = flat_rule.versions

        assert version_status(flat_rule, v1, date(2025, 3, 1)) == VersionStatus.ACTIVE
        assert version_status(flat_rule, v2, date(2025, 3, 1)) == VersionStatus.PENDING

    def test_status_after_change(self, flat_rule):
        v1, v2 = flat_rule.versions

        assert version_status(flat_rule, v1, date(2025, 8, 15)) == VersionStatus.SUPERSEDED
        assert version_status(flat_rule, v2, date(2025, 8, 15)) == VersionStatus.ACTIVE

    def test_lapsed_version_is_superseded(self):
        rule = _rule(_flat(1, date(2024, 1, 1), effective_to=date(2024, 12, 31)))

        assert version_status(rule, rule.versions[0], date(2025, 1, 1)) == VersionStatus.SUPERSEDED


def _allowance(amount, effective_from, effective_to=None, allowance_type="tax_free_sum_monthly"):
    return TaxFreeAllowance(
        allowance_type=allowance_type,
        country="SR",
        amount=Decimal(amount),
        effective_from=effective_from,
        effective_to=effective_to,
    )


class TestResolveAllowance:
    """Allowances resolve by the same effective-date rule as versions."""

    @pytest.fixture
    def allowances(self):
        return [
            _allowance("9000", date(2025, 1, 1), date(2025, 12, 31)),
            _allowance("7500", date(2023, 1, 1), date(2024, 12, 31)),
            _allowance("108000", date(2025, 1, 1), allowance_type="tax_free_sum_annual"),
        ]

    def test_latest_effective_from_wins(self, allowances):
        selected = resolve_allowance(allowances, "tax_free_sum_monthly", date(2025, 1, 1))

        assert selected.amount == Decimal("9000")

    def test_previous_period(self, allowances):
        selected = resolve_allowance(allowances, "tax_free_sum_monthly", date(2024, 12, 31))

        assert selected.amount == Decimal("7500")

    def test_other_types_ignored(self, allowances):
        selected = resolve_allowance(allowances, "tax_free_sum_annual", date(2030, 1, 1))

        assert selected.amount == Decimal("108000")

    def test_before_first_period(self, allowances):
        with pytest.raises(NoApplicableVersionError, match="no allowance has taken effect"):
            resolve_allowance(allowances, "tax_free_sum_monthly", date(2022, 12, 31))

    def test_lapsed_period(self, allowances):
        with pytest.raises(NoApplicableVersionError, match="ended on 2025-12-31"):
            resolve_allowance(allowances, "tax_free_sum_monthly", date(2026, 1, 1))
