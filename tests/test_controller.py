"""
Tests for the selection controller state machine.
"""

import asyncio
from typing import Any, Dict, List

import pytest

from entitypicker.catalog import Catalog, InMemoryCatalog
from entitypicker.controller import FAILED, IDLE, LOADING, READY, FieldProps, SelectionController
from entitypicker.errors import FetchFailed, MalformedFilter
from entitypicker.filters import matches
from entitypicker.schema import PickerOptions


class Recorder:
    """Collects values a field emits."""

    def __init__(self):
        self.values: List[Any] = []

    def __call__(self, value):
        self.values.append(value)


class CountingCatalog(InMemoryCatalog):
    def __init__(self, records):
        super().__init__(records)
        self.queries = []

    def find_records(self, query):
        self.queries.append(query)
        return super().find_records(query)


class FailingCatalog(Catalog):
    def __init__(self, error: Exception):
        self.error = error

    def find_records(self, query):
        raise self.error


class GatedCatalog(Catalog):
    """Async catalog whose fetches complete only when released."""

    def __init__(self, records):
        self.records = records
        self.gates: List[asyncio.Event] = []

    async def find_records(self, query):
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return [r for r in self.records if matches(r, query)]


def make_controller(catalog, value=None, **options) -> SelectionController:
    options.setdefault("catalogFilter", {"kind": "User"})
    props = FieldProps(value=value, on_change=Recorder(), on_hidden_change=Recorder())
    return SelectionController(catalog, options, props)


class TestLoading:
    """Test fetch and index lifecycle."""

    def test_mount_loads_records(self, catalog):
        controller = make_controller(catalog)
        assert controller.state == IDLE
        assert asyncio.run(controller.mount()) is True
        assert controller.state == READY
        assert len(controller.index) == 4
        assert controller.error is None

    def test_mount_only_fetches_once(self, users):
        catalog = CountingCatalog(users)
        controller = make_controller(catalog)

        async def scenario():
            await controller.mount()
            await controller.mount()

        asyncio.run(scenario())
        assert len(catalog.queries) == 1

    def test_option_labels(self, catalog):
        controller = make_controller(catalog, displayEntityFieldAfterFormatting="{{ metadata.title }}")
        asyncio.run(controller.mount())
        labels = dict(controller.option_labels())
        assert labels["user:default/jsmith"] == "John Smith"
        # Empty labels fall back to a humanized reference
        assert labels["user:default/ops-bot"] == "ops-bot"

    def test_existing_composite_value_is_resolved(self, catalog):
        controller = make_controller(catalog, value="John Smith|||user:default/jsmith")
        asyncio.run(controller.mount())
        assert controller.selected == "user:default/jsmith"
        assert controller.selected_record["metadata"]["name"] == "jsmith"
        assert controller.display_value == "John Smith"

    def test_existing_label_only_value_is_resolved_by_label(self, catalog):
        controller = make_controller(catalog, value="John Smith")
        asyncio.run(controller.mount())
        assert controller.selected == "user:default/jsmith"
        assert controller.last_decode.ambiguous is False

    def test_ambiguous_existing_value_picks_first(self, catalog):
        controller = make_controller(catalog, value="Jane Doe")
        asyncio.run(controller.mount())
        assert controller.selected == "user:default/jdoe"
        assert controller.last_decode.ambiguous is True

    def test_unresolvable_value_stays_raw(self, catalog):
        controller = make_controller(catalog, value="Somebody Else")
        asyncio.run(controller.mount())
        assert controller.state == READY
        assert controller.selected is None
        assert controller.display_value == "Somebody Else"

    def test_name_fragment_value_uses_filter_kind(self, catalog):
        controller = make_controller(catalog, value="Jane|||jdoe2", identityFragment="name")
        asyncio.run(controller.mount())
        assert controller.selected == "user:default/jdoe2"

    def test_name_fragment_value_uses_filter_namespace(self, catalog):
        controller = make_controller(
            catalog, value="payments|||payments", identityFragment="name",
            catalogFilter={"kind": "Group", "metadata.namespace": "finance"},
        )
        asyncio.run(controller.mount())
        assert controller.selected == "group:finance/payments"

    def test_filter_change_refetches_once(self, users, groups):
        catalog = CountingCatalog(users + groups)
        controller = make_controller(catalog)

        async def scenario():
            await controller.mount()
            assert await controller.set_filter({"kind": "User"}) is False
            assert await controller.set_filter({"kind": "Group"}) is True
            assert await controller.set_filter({"kind": "Group"}) is False

        asyncio.run(scenario())
        assert len(catalog.queries) == 2
        assert controller.index.identifiers() == ["group:default/platform", "group:finance/payments"]

    def test_invalid_filter_fails_fast(self, catalog):
        controller = make_controller(catalog)
        with pytest.raises(MalformedFilter):
            asyncio.run(controller.set_filter({"": "x"}))


class TestStaleFetches:
    """Only the latest fetch may update the index."""

    def test_last_fetch_wins(self, users, groups):
        catalog = GatedCatalog(users + groups)
        controller = make_controller(catalog)

        async def scenario():
            first = asyncio.create_task(controller.mount())
            await asyncio.sleep(0)
            second = asyncio.create_task(controller.set_filter({"kind": "Group"}))
            await asyncio.sleep(0)
            assert controller.state == LOADING
            assert len(catalog.gates) == 2

            catalog.gates[1].set()
            assert await second is True
            catalog.gates[0].set()
            assert await first is False

        asyncio.run(scenario())
        assert controller.state == READY
        assert len(controller.index) == 2
        assert all(r["kind"] == "Group" for r in controller.index.records())

    def test_stale_failure_is_ignored(self, users):
        class FlakyFirst(Catalog):
            def __init__(self):
                self.calls = 0

            async def find_records(self, query):
                self.calls += 1
                if self.calls == 1:
                    await asyncio.sleep(0.01)
                    raise FetchFailed("first fetch failed")
                return users

        controller = make_controller(FlakyFirst())

        async def scenario():
            first = asyncio.create_task(controller.mount())
            await asyncio.sleep(0)
            await controller.set_filter({"kind": ["User"]})
            assert await first is False

        asyncio.run(scenario())
        assert controller.state == READY
        assert controller.error is None


class TestFailures:
    """Fetch errors become state, never exceptions."""

    def test_fetch_failure_with_free_text(self):
        controller = make_controller(FailingCatalog(FetchFailed("catalog down")))
        assert asyncio.run(controller.mount()) is False
        assert controller.state == FAILED
        assert isinstance(controller.error, FetchFailed)
        assert controller.interactive is True
        assert controller.input_text("typed by hand") is True
        assert controller.props.on_change.values == ["typed by hand"]

    def test_fetch_failure_without_free_text_disables(self):
        controller = make_controller(FailingCatalog(RuntimeError("boom")), allowArbitraryValues=False)
        asyncio.run(controller.mount())
        assert controller.state == FAILED
        assert isinstance(controller.error, FetchFailed)
        assert controller.interactive is False
        assert controller.input_text("typed by hand") is False
        assert controller.props.on_change.values == []

    def test_failed_reload_keeps_last_good_index(self, users):
        class Toggle(Catalog):
            fail = False

            def find_records(self, query):
                if self.fail:
                    raise FetchFailed("down")
                return users

        catalog = Toggle()
        controller = make_controller(catalog)

        async def scenario():
            await controller.mount()
            catalog.fail = True
            await controller.load()

        asyncio.run(scenario())
        assert controller.state == FAILED
        assert len(controller.index) == 4

    def test_failed_reload_without_free_text_rejects_selection(self, users):
        class Toggle(Catalog):
            fail = False

            def find_records(self, query):
                if self.fail:
                    raise FetchFailed("down")
                return users

        catalog = Toggle()
        controller = make_controller(catalog, allowArbitraryValues=False)

        async def scenario():
            await controller.mount()
            catalog.fail = True
            await controller.load()

        asyncio.run(scenario())
        assert controller.state == FAILED
        assert controller.interactive is False
        assert controller.select(users[0]) is False
        assert controller.select("user:default/jsmith") is False
        assert controller.props.on_change.values == []


class TestSelection:
    """Test committing selections and typed input."""

    def test_select_record_emits_composite(self, catalog, jane):
        controller = make_controller(catalog, displayEntityFieldAfterFormatting="{{ metadata.title }} ({{ spec.profile.email }})")
        asyncio.run(controller.mount())
        assert controller.select(jane) is True
        assert controller.props.on_change.values == ["Jane Doe (jane@x.com)|||user:default/jdoe"]
        assert controller.value == "Jane Doe (jane@x.com)|||user:default/jdoe"
        assert controller.selected == "user:default/jdoe"

    def test_select_by_identifier(self, catalog):
        controller = make_controller(catalog)
        asyncio.run(controller.mount())
        assert controller.select("user:default/jsmith") is True
        assert controller.props.on_change.values == ["John Smith|||user:default/jsmith"]

    def test_select_unknown_identifier(self, catalog):
        controller = make_controller(catalog)
        asyncio.run(controller.mount())
        assert controller.select("user:default/ghost") is False
        assert controller.props.on_change.values == []

    def test_clear(self, catalog):
        controller = make_controller(catalog, value="John Smith|||user:default/jsmith")
        asyncio.run(controller.mount())
        assert controller.select(None) is True
        assert controller.props.on_change.values == [None]
        assert controller.selected is None

    def test_selection_does_not_fetch(self, users):
        catalog = CountingCatalog(users)
        controller = make_controller(catalog)
        asyncio.run(controller.mount())
        controller.select("user:default/jdoe")
        controller.input_text("John Smith")
        assert len(catalog.queries) == 1

    def test_hidden_field_receives_identifier(self, catalog):
        controller = make_controller(catalog, hiddenFieldName="selectedUserRef")
        asyncio.run(controller.mount())
        controller.select("user:default/jsmith")
        assert controller.props.on_hidden_change.values == ["user:default/jsmith"]

    def test_hidden_field_untouched_when_not_configured(self, catalog):
        controller = make_controller(catalog)
        asyncio.run(controller.mount())
        controller.select("user:default/jsmith")
        assert controller.props.on_hidden_change.values == []

    def test_disabled_field_ignores_input(self, catalog):
        controller = make_controller(catalog)
        controller.props.disabled = True
        asyncio.run(controller.mount())
        assert controller.select("user:default/jsmith") is False
        assert controller.input_text("John Smith") is False
        assert controller.props.on_change.values == []


class TestFreeText:
    """Test typed text handling."""

    def test_arbitrary_text_is_emitted_raw(self, catalog):
        controller = make_controller(catalog)
        asyncio.run(controller.mount())
        assert controller.input_text("external contractor") is True
        assert controller.props.on_change.values == ["external contractor"]
        assert controller.selected is None

    def test_rejected_when_arbitrary_values_disallowed(self, catalog):
        controller = make_controller(catalog, value="John Smith|||user:default/jsmith", allowArbitraryValues=False)
        asyncio.run(controller.mount())
        assert controller.input_text("external contractor") is False
        assert controller.props.on_change.values == []
        assert controller.value == "John Smith|||user:default/jsmith"

    def test_text_matching_one_label_selects_it(self, catalog):
        controller = make_controller(catalog, allowArbitraryValues=False)
        asyncio.run(controller.mount())
        assert controller.input_text("John Smith") is True
        assert controller.props.on_change.values == ["John Smith|||user:default/jsmith"]

    def test_ambiguous_text_is_not_auto_selected(self, catalog):
        controller = make_controller(catalog, allowArbitraryValues=False)
        asyncio.run(controller.mount())
        assert controller.input_text("Jane Doe") is False

    def test_empty_text_clears(self, catalog):
        controller = make_controller(catalog, value="John Smith|||user:default/jsmith", allowArbitraryValues=False)
        asyncio.run(controller.mount())
        assert controller.input_text("  ") is True
        assert controller.props.on_change.values == [None]


class TestOptions:

    def test_accepts_picker_options(self, catalog):
        options = PickerOptions(filter={"kind": "Group"}, template="{{ metadata.name }}")
        controller = SelectionController(catalog, options)
        asyncio.run(controller.mount())
        assert [label for _, label in controller.option_labels()] == ["platform", "payments"]

    def test_allowed_kinds(self, catalog):
        controller = SelectionController(catalog, {"allowedKinds": ["Group"]})
        asyncio.run(controller.mount())
        assert len(controller.index) == 2
        assert controller.kind == "Group"

    def test_invalid_options_fail_fast(self, catalog):
        with pytest.raises(MalformedFilter):
            SelectionController(catalog, {"identityFragment": "uid"})
