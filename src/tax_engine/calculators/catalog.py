"""Read-only rule lookup used by the engine."""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Mapping
from uuid import UUID

from tax_engine.calculators.errors import InvalidRuleError, RuleNotFoundError
from tax_engine.calculators.types import RuleType, TaxFreeAllowance, TaxRule


class RuleCatalog:
    """Immutable snapshot of tax rules keyed by id and by code.

    Also carries the tax-free allowances used to derive exemptions from gross
    income.

    Callers fetch rule data (see ``TaxRuleRepository.load_catalog``) before a
    payroll run and hand the snapshot to the engine. The catalog never
    refreshes itself.
    """

    def __init__(
        self,
        rules: Iterable[TaxRule] = (),
        allowances: Iterable[TaxFreeAllowance] = (),
    ):
        self._by_id: dict[UUID, TaxRule] = {}
        self._by_code: dict[str, TaxRule] = {}

        for rule in rules:
            if rule.rule_id in self._by_id:
                raise InvalidRuleError(f"Duplicate tax rule id {rule.rule_id}")
            if rule.code in self._by_code:
                raise InvalidRuleError(f"Duplicate tax rule code {rule.code}")
            self._by_id[rule.rule_id] = rule
            self._by_code[rule.code] = rule

        self._allowances: tuple[TaxFreeAllowance, ...] = tuple(
            sorted(allowances, key=lambda a: (a.allowance_type, a.effective_from))
        )
        seen: set[tuple[str, object]] = set()
        for allowance in self._allowances:
            key = (allowance.allowance_type, allowance.effective_from)
            if key in seen:
                raise InvalidRuleError(
                    f"Duplicate {allowance.allowance_type} allowance effective "
                    f"{allowance.effective_from}"
                )
            seen.add(key)

    @classmethod
    def from_definitions(
        cls,
        definitions: Iterable[Mapping[str, Any]],
        allowance_definitions: Iterable[Mapping[str, Any]] = (),
    ) -> RuleCatalog:
        """Build a catalog from rule definition payloads (seed files, stored JSON)."""
        from tax_engine.schemas import AllowanceDefinition, RuleDefinition

        return cls(
            (RuleDefinition.model_validate(d).to_domain() for d in definitions),
            (AllowanceDefinition.model_validate(d).to_domain() for d in allowance_definitions),
        )

    def get_rule(self, rule_id: UUID | str) -> TaxRule:
        """Look up a rule by id, or by code when given a non-UUID string.

        Raises:
            RuleNotFoundError: If no such rule exists
        """
        if isinstance(rule_id, UUID):
            rule = self._by_id.get(rule_id)
        else:
            try:
                rule = self._by_id.get(UUID(rule_id))
            except ValueError:
                rule = self._by_code.get(rule_id)

        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    def get_rule_by_code(self, code: str) -> TaxRule:
        rule = self._by_code.get(code)
        if rule is None:
            raise RuleNotFoundError(code)
        return rule

    def rules(
        self,
        rule_type: RuleType | str | None = None,
        country: str | None = None,
        active_only: bool = False,
    ) -> list[TaxRule]:
        """List rules, optionally filtered, ordered by code."""
        selected = []
        for rule in self._by_id.values():
            if rule_type is not None and rule.rule_type != RuleType(rule_type):
                continue
            if country is not None and rule.country != country:
                continue
            if active_only and not rule.is_active:
                continue
            selected.append(rule)
        return sorted(selected, key=lambda r: r.code)

    def allowances(self, allowance_type: str | None = None) -> list[TaxFreeAllowance]:
        """List allowances ordered by type and effective date."""
        return [
            a
            for a in self._allowances
            if allowance_type is None or a.allowance_type == allowance_type
        ]

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id or rule_id in self._by_code

    def __iter__(self) -> Iterator[TaxRule]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)
