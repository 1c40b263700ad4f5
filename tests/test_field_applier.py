from __future__ import annotations

import asyncio

import pytest

from app.ceac.errors import DriverTimeout, ElementNotFound, StoreUnavailable
from app.ceac.field_applier import FieldApplier
from app.ceac.models import FieldMapping, FieldType, FillAction, FillReport
from app.ceac.postback import PostbackSynchronizer
from tests.fakes import FakeDriver


def _action(
    key: str,
    field_type: FieldType = FieldType.TEXT,
    value: str | bool = "v",
    *,
    parent_key: str | None = None,
    postback: bool = False,
) -> FillAction:
    mapping = FieldMapping(
        key=key, locator=f"#{key}", field_type=field_type, triggers_postback=postback
    )
    return FillAction(
        key=key,
        locator=f"#{key}",
        field_type=field_type,
        value=value,
        logical_value=value,
        mapping=mapping,
        parent_key=parent_key,
        revealed=parent_key is not None,
    )


def _applier() -> FieldApplier:
    return FieldApplier(PostbackSynchronizer(idle_timeout_ms=10, settle_ms=5))


def test_applier_dispatches_on_control_type() -> None:
    driver = FakeDriver()
    actions = [
        _action("name", FieldType.TEXT, "EXAMPLE"),
        _action("sex", FieldType.SELECT, "M"),
        _action("yes", FieldType.RADIO, "Y"),
        _action("na", FieldType.CHECKBOX, True),
        _action("off", FieldType.CHECKBOX, False),
    ]

    report = asyncio.run(_applier().apply(driver, actions))

    assert report.applied == ["name", "sex", "yes", "na", "off"]
    assert [(verb, selector) for verb, selector, _ in driver.actions] == [
        ("fill", "#name"),
        ("select", "#sex"),
        ("check", "#yes"),
        ("check", "#na"),
        ("uncheck", "#off"),
    ]


def test_applier_isolates_missing_field_and_continues() -> None:
    driver = FakeDriver()
    driver.hide("#missing")
    actions = [_action("first"), _action("missing"), _action("last")]

    report = asyncio.run(_applier().apply(driver, actions))

    assert report.applied == ["first", "last"]
    assert list(report.failed) == ["missing"]
    assert report.attempted == 3


def test_applier_skips_descendants_of_failed_field() -> None:
    driver = FakeDriver()
    driver.failures["#trigger"] = DriverTimeout("select timed out")
    actions = [
        _action("trigger", FieldType.SELECT, "Y"),
        _action("child", parent_key="trigger"),
        _action("grandchild", parent_key="child"),
        _action("sibling"),
    ]

    report = asyncio.run(_applier().apply(driver, actions))

    assert list(report.failed) == ["trigger"]
    assert report.skipped_descendants == ["child", "grandchild"]
    assert report.applied == ["sibling"]


def test_applier_waits_for_postback_after_trigger() -> None:
    driver = FakeDriver()

    asyncio.run(_applier().apply(driver, [_action("country", FieldType.SELECT, "GER", postback=True)]))

    assert driver.load_state_waits == 1


def test_applier_propagates_job_fatal_faults() -> None:
    driver = FakeDriver()
    driver.failures["#boom"] = StoreUnavailable("disk gone")
    report = FillReport()

    with pytest.raises(StoreUnavailable):
        asyncio.run(_applier().apply(driver, [_action("ok"), _action("boom")], report))

    assert report.applied == ["ok"]


def test_apply_action_raises_element_not_found_for_hidden_control() -> None:
    driver = FakeDriver()
    driver.hide("#ghost")

    with pytest.raises(ElementNotFound):
        asyncio.run(_applier().apply_action(driver, _action("ghost")))
