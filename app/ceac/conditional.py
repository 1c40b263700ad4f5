"""Follow-up fields revealed by a triggering selection."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from app.ceac.field_resolver import FieldResolver, is_blank
from app.ceac.models import ConditionalRule, FieldMapping, FillPlan

LOGGER = logging.getLogger(__name__)


def _comparable(value: Any) -> str:
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value).strip().casefold()


class ConditionalFieldExpander:
    """Expand trigger tables into additional fill actions.

    Expansion walks an explicit worklist so nesting depth is data driven.
    Actions come out in depth-first pre-order: a revealed field is always
    planned before the fields it reveals in turn, and every action carries
    the key of the field that revealed it.
    """

    def __init__(self, resolver: FieldResolver) -> None:
        self._resolver = resolver

    def matching_rules(
        self,
        trigger_field: FieldMapping,
        trigger_value: Any,
        form_data: Mapping[str, Any],
    ) -> list[ConditionalRule]:
        candidates = {_comparable(trigger_value)}
        logical = form_data.get(trigger_field.key)
        if not is_blank(logical):
            candidates.add(_comparable(logical))

        matches: list[ConditionalRule] = []
        for rule in trigger_field.conditionals:
            expected = rule.trigger_value.strip().casefold()
            if rule.source_key:
                specified = form_data.get(rule.source_key)
                if not is_blank(specified) and _comparable(specified) == expected:
                    matches.append(rule)
            elif expected in candidates:
                matches.append(rule)
        return matches

    def expand(
        self,
        trigger_field: FieldMapping,
        trigger_value: Any,
        form_data: Mapping[str, Any],
    ) -> FillPlan:
        plan = FillPlan()
        worklist: list[tuple[FieldMapping, str]] = []

        def push_revealed(mapping: FieldMapping, value: Any) -> None:
            revealed = [
                field
                for rule in self.matching_rules(mapping, value, form_data)
                for field in rule.revealed_fields
            ]
            worklist.extend((field, mapping.key) for field in reversed(revealed))

        push_revealed(trigger_field, trigger_value)
        visited: set[str] = {trigger_field.key}
        while worklist:
            mapping, parent_key = worklist.pop()
            if mapping.key in visited:
                continue
            visited.add(mapping.key)
            actions = self._resolver.resolve_field(
                mapping, form_data, parent_key=parent_key, revealed=True
            )
            if not actions:
                plan.skipped.append(mapping.key)
                continue
            plan.actions.extend(actions)
            if mapping.conditionals:
                push_revealed(mapping, actions[0].value)

        if plan.actions:
            LOGGER.debug(
                "Expanded %s into %s revealed actions",
                trigger_field.key,
                len(plan.actions),
            )
        return plan
