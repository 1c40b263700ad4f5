"""Turn a step's field mappings and the applicant's form data into a fill plan."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Callable, Iterable, Mapping

from app.ceac.country_codes import lookup_country_code
from app.ceac.models import (
    DateComponent,
    DatePart,
    DateRepresentation,
    FieldMapping,
    FieldType,
    FillAction,
    FillPlan,
    StepDefinition,
)

LOGGER = logging.getLogger(__name__)

MONTH_ABBREVIATIONS = (
    "JAN",
    "FEB",
    "MAR",
    "APR",
    "MAY",
    "JUN",
    "JUL",
    "AUG",
    "SEP",
    "OCT",
    "NOV",
    "DEC",
)
_TRUTHY = {"true", "yes", "y", "1", "on", "checked"}
_DMY_RE = re.compile(r"^(\d{1,2})[/.](\d{1,2})[/.](\d{4})$")
_D_MON_Y_RE = re.compile(r"^(\d{1,2})[-\s]([A-Za-z]{3})[-\s](\d{4})$")


def is_blank(value: Any) -> bool:
    """Absent, ``None`` and empty strings all mean "leave the default"."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


def parse_date(value: Any) -> date:
    """Parse ISO, ``DD/MM/YYYY`` or ``DD-MON-YYYY`` dates."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text[:10]).date()
    except ValueError:
        pass
    match = _DMY_RE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return date(year, month, day)
    match = _D_MON_Y_RE.match(text)
    if match and match.group(2).upper() in MONTH_ABBREVIATIONS:
        month = MONTH_ABBREVIATIONS.index(match.group(2).upper()) + 1
        return date(int(match.group(3)), month, int(match.group(1)))
    raise ValueError(f"Unrecognized date value: {text!r}")


def render_date_part(value: date, part: DatePart) -> str:
    """Render one component in the representation its control expects."""
    if part.component == DateComponent.YEAR:
        return str(value.year)
    number = value.day if part.component == DateComponent.DAY else value.month
    if (
        part.component == DateComponent.MONTH
        and part.representation == DateRepresentation.MONTH_ABBREV
    ):
        return MONTH_ABBREVIATIONS[number - 1]
    if part.representation == DateRepresentation.ZERO_PADDED:
        return f"{number:02d}"
    return str(number)


def format_ceac_date(value: Any) -> str:
    """Single-box dates use ``DD-MON-YYYY``; unparseable input passes through."""
    try:
        parsed = parse_date(value)
    except ValueError:
        return str(value).strip()
    return f"{parsed.day:02d}-{MONTH_ABBREVIATIONS[parsed.month - 1]}-{parsed.year}"


def radio_option_locator(group_locator: str, code: str) -> str:
    return f'{group_locator} input[type="radio"][value="{code}"]'


def flatten_form_data(data: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Collapse nested sections into dotted keys; flat input is returned as is."""
    flat: dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(flatten_form_data(value, f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def missing_required(
    steps: Iterable[StepDefinition], form_data: Mapping[str, Any]
) -> list[str]:
    """List required top-level keys without a value in ``form_data``."""
    return [
        mapping.key
        for step in steps
        for mapping in step.fields
        if mapping.required and is_blank(form_data.get(mapping.key))
    ]


class FieldResolver:
    """Pure planner: decides what to put into each control, never touches a page."""

    def __init__(
        self,
        country_lookup: Callable[[str], str | None] = lookup_country_code,
    ) -> None:
        self._country_lookup = country_lookup

    def resolve_fill(
        self, step: StepDefinition, form_data: Mapping[str, Any]
    ) -> FillPlan:
        """Plan every mapping of ``step`` that has a value, in declared order."""
        plan = FillPlan()
        for mapping in step.fields:
            actions = self.resolve_field(mapping, form_data)
            if actions:
                plan.actions.extend(actions)
            else:
                plan.skipped.append(mapping.key)
        return plan

    def resolve_field(
        self,
        mapping: FieldMapping,
        form_data: Mapping[str, Any],
        *,
        parent_key: str | None = None,
        revealed: bool = False,
    ) -> list[FillAction]:
        raw = form_data.get(mapping.key)
        if is_blank(raw):
            return []

        def action(locator: str, field_type: FieldType, value: str | bool) -> FillAction:
            return FillAction(
                key=mapping.key,
                locator=locator,
                field_type=field_type,
                value=value,
                logical_value=raw,
                mapping=mapping,
                parent_key=parent_key,
                revealed=revealed,
            )

        field_type = mapping.field_type
        if field_type == FieldType.SELECT:
            return [action(mapping.locator, field_type, self.target_code(mapping, raw))]
        if field_type == FieldType.RADIO:
            code = self.target_code(mapping, raw)
            return [action(radio_option_locator(mapping.locator, code), field_type, code)]
        if field_type == FieldType.CHECKBOX:
            return [action(mapping.locator, field_type, is_truthy(raw))]
        if field_type == FieldType.DATE_SPLIT:
            try:
                parsed = parse_date(raw)
            except ValueError:
                LOGGER.warning(
                    "Skipping %s: cannot split date value", mapping.key
                )
                return []
            return [
                action(part.locator, part.control, render_date_part(parsed, part))
                for part in mapping.date_parts
            ]
        if field_type == FieldType.DATE:
            return [action(mapping.locator, field_type, format_ceac_date(raw))]
        return [action(mapping.locator, field_type, str(raw).strip())]

    def target_code(self, mapping: FieldMapping, raw: Any) -> str:
        """Value map, then the shared country table, then the value verbatim."""
        if isinstance(raw, bool):
            logical = "Yes" if raw else "No"
        else:
            logical = str(raw).strip()
        if mapping.value_map:
            mapped = mapping.value_map.get(logical)
            if mapped is None:
                folded = logical.casefold()
                mapped = next(
                    (
                        code
                        for label, code in mapping.value_map.items()
                        if label.casefold() == folded
                    ),
                    None,
                )
            if mapped is not None:
                return mapped
        if mapping.use_country_table:
            code = self._country_lookup(logical)
            if code:
                return code
        return logical
