"""
Selection controller for one picker field.

Drives fetch -> index -> render -> encode for a single form field:

    IDLE -> LOADING -> READY | FAILED

Fetches run asynchronously. Only the most recently started fetch may
update the index; results of earlier fetches are dropped when they land
(a generation counter, not forced cancellation). Failures are kept as
controller state and never propagate to the form host.
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, Union

from .catalog import Catalog
from .codec import DecodeResult
from .errors import EntityPickerError, FetchFailed, MalformedFilter
from .filters import Query, build_query, filter_identity, kind_of, namespace_of
from .index import RecordIndex
from .logger import get_logger
from .normalize import compute_entity_ref, humanize_entity_ref
from .schema import PickerOptions

logger = get_logger()

IDLE = "idle"
LOADING = "loading"
READY = "ready"
FAILED = "failed"


def _ignore(value):
    pass


@dataclass
class FieldProps:
    """What the form host hands to a field."""

    value: Optional[str] = None
    on_change: Callable[[Optional[str]], None] = _ignore
    required: bool = False
    disabled: bool = False
    # Companion hidden field receiving the canonical identifier
    on_hidden_change: Optional[Callable[[Optional[str]], None]] = None


class SelectionController:
    """State machine over a single entity picker field."""

    def __init__(
        self,
        catalog: Catalog,
        options: Union[PickerOptions, Mapping[str, Any], None] = None,
        props: Optional[FieldProps] = None,
    ):
        if not isinstance(options, PickerOptions):
            options = PickerOptions.from_ui_options(options)
        self.catalog = catalog
        self.options = options
        self.props = props or FieldProps()
        self.codec = options.codec()

        self.state = IDLE
        self.index: Optional[RecordIndex] = None
        self.error: Optional[FetchFailed] = None
        self.selected: Optional[str] = None
        self.last_decode: Optional[DecodeResult] = None

        self._query: Query = options.query()
        self._generation = 0
        self.fetch_count = 0

    # -- derived state -----------------------------------------------------

    @property
    def value(self) -> Optional[str]:
        return self.props.value

    @property
    def query(self) -> Query:
        return self._query

    @property
    def interactive(self) -> bool:
        """Whether the field accepts input. A failed fetch leaves only free text."""
        if self.props.disabled:
            return False
        if self.state == FAILED:
            return self.options.allow_arbitrary_values
        return True

    @property
    def kind(self) -> Optional[str]:
        kind = kind_of(self.options.filter)
        if kind is None and self.options.allowed_kinds:
            kind = self.options.allowed_kinds[0]
        return kind or self.options.default_kind

    @property
    def selected_record(self) -> Optional[Mapping[str, Any]]:
        if self.selected is None or self.index is None:
            return None
        return self.index.lookup(self.selected)

    @property
    def display_value(self) -> str:
        """Text the field shows: the selected label, else the raw value's label part."""
        if self.selected is not None and self.index is not None:
            label = self.index.label_for(self.selected)
            if label is not None:
                return label
        if not self.value:
            return ""
        return self.codec.split(self.value)[0]

    def option_labels(self) -> List[Tuple[str, str]]:
        """(identifier, label) for every option, in index order."""
        if self.index is None:
            return []
        result = []
        for identifier, label in self.index.items():
            if not label.strip():
                label = humanize_entity_ref(self.index.lookup(identifier))
            result.append((identifier, label))
        return result

    # -- fetching ----------------------------------------------------------

    async def _find(self, query: Query):
        find = self.catalog.find_records
        if inspect.iscoroutinefunction(find):
            return await find(query)
        return await asyncio.to_thread(find, query)

    async def mount(self) -> bool:
        """Initial fetch. Does nothing once the controller has left IDLE."""
        if self.state != IDLE:
            return False
        return await self.load()

    async def load(self) -> bool:
        """
        Fetch records for the current filter and rebuild the index.

        Returns:
            True when this fetch's result was applied, False when it failed
            or was superseded by a newer fetch.
        """
        self._generation += 1
        generation = self._generation
        query = self._query
        self.state = LOADING
        self.fetch_count += 1
        logger.debug("Fetching records", generation=generation, groups=len(query))

        try:
            records = await self._find(query)
        except Exception as e:
            if generation != self._generation:
                logger.record_stale_fetch()
                return False
            self.error = e if isinstance(e, FetchFailed) else FetchFailed(str(e), query)
            self.state = FAILED
            logger.warning(
                "Record fetch failed",
                error=str(e), error_type=type(e).__name__,
                free_text=self.options.allow_arbitrary_values,
            )
            return False

        if generation != self._generation:
            logger.record_stale_fetch()
            logger.debug("Discarded stale fetch", generation=generation, current=self._generation)
            return False

        self.index = RecordIndex.build(records, self.options.template)
        self.error = None
        self.state = READY
        logger.info("Records loaded", count=len(self.index), generation=generation)
        self._resolve_current_value()
        return True

    async def set_filter(
        self,
        specs: Union[Mapping[str, Any], Sequence[Mapping[str, Any]], None] = None,
        allowed_kinds: Optional[Sequence[str]] = None,
        default_kind: Optional[str] = None,
    ) -> bool:
        """
        Change the filter. Fetches only when the built query differs from
        the current one; the previous index is discarded.

        Raises:
            MalformedFilter: The new filter is invalid
        """
        query = build_query(specs, allowed_kinds=allowed_kinds, default_kind=default_kind)
        if filter_identity(query) == filter_identity(self._query) and self.state != IDLE:
            return False
        self.options.filter = specs
        self.options.allowed_kinds = list(allowed_kinds) if allowed_kinds else None
        self.options.default_kind = default_kind
        self._query = query
        self.index = None
        self.selected = None
        return await self.load()

    def _resolve_current_value(self) -> None:
        """Best effort: map the existing field value back onto a record."""
        self.selected = None
        self.last_decode = None
        if not self.value:
            return
        try:
            result = self.codec.decode(
                self.value, kind=self.kind, index=self.index,
                namespace=namespace_of(self.options.filter),
            )
        except EntityPickerError as e:
            logger.debug("Existing value not resolved", value=self.value, reason=str(e))
            return
        self.last_decode = result
        self.selected = result.identifier
        if result.ambiguous:
            logger.warning(
                "Existing value matches several records, using the first",
                value=self.value, candidates=result.candidates,
            )

    # -- user input --------------------------------------------------------

    def _emit(self, value: Optional[str], identifier: Optional[str]) -> None:
        self.props.value = value
        self.props.on_change(value)
        if self.options.hidden_field_name and self.props.on_hidden_change is not None:
            self.props.on_hidden_change(identifier)

    def select(self, choice: Union[Mapping[str, Any], str, None]) -> bool:
        """
        Commit a selection: a record, an identifier from the index, or None
        to clear. Emits the composite value. Ignored while the field is
        not interactive.
        """
        if not self.interactive:
            return False
        if choice is None:
            self.selected = None
            self._emit(None, None)
            return True

        record = choice
        if isinstance(choice, str):
            record = self.index.lookup(choice) if self.index is not None else None
            if record is None:
                logger.warning("Selected identifier is not among the options", identifier=choice)
                return False

        try:
            identifier = compute_entity_ref(record)
        except MalformedFilter as e:
            logger.warning("Selected record has no identity", error=str(e))
            return False
        composite = self.codec.encode(record, self.options.template)
        self.selected = identifier
        self._emit(composite, identifier)
        return True

    def input_text(self, text: str) -> bool:
        """
        Handle typed text. Text equal to exactly one option's label selects
        that record; other text is emitted as-is only when arbitrary values
        are allowed.

        Returns:
            False when the input was rejected and the value left unchanged
        """
        if not self.interactive:
            return False
        if not text or not text.strip():
            return self.select(None)

        if self.index is not None:
            matches = self.index.lookup_by_label(text)
            if len(matches) == 1:
                return self.select(matches[0])

        if not self.options.allow_arbitrary_values:
            logger.debug("Rejected free text", text=text)
            return False
        self.selected = None
        self._emit(text, None)
        return True
