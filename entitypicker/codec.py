"""
Reference codec.

Encodes a record's canonical identifier alongside its rendered label into
one opaque string, and decodes such strings back into an identifier.

Composite value (label+identifier mode):

    "<label><SEPARATOR><fragment>"

The fragment is the full canonical identifier (``user:default/jdoe``) or,
with ``identity_fragment="name"``, just ``metadata.name``; both ends must
agree on which one is embedded. Decode splits on the *last* separator, so
a label that happens to contain the separator still yields an identifier.

Without a separator, decode falls back to matching the label against a
Record Index, and reports ambiguity instead of hiding it.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from .errors import AmbiguousMatch, MalformedFilter, NotFound
from .index import RecordIndex
from .normalize import entity_ref_of, make_entity_ref, parse_entity_ref
from .templating import render

DEFAULT_SEPARATOR = "|||"

FRAGMENT_FULL = "full"
FRAGMENT_NAME = "name"
IDENTITY_FRAGMENTS = (FRAGMENT_FULL, FRAGMENT_NAME)

MODE_LABEL_ONLY = "label-only"
MODE_LABEL_IDENTIFIER = "label+identifier"
MODES = (MODE_LABEL_ONLY, MODE_LABEL_IDENTIFIER)

ON_AMBIGUOUS_PICK_FIRST = "pick-first"
ON_AMBIGUOUS_FAIL = "fail"
AMBIGUITY_POLICIES = (ON_AMBIGUOUS_PICK_FIRST, ON_AMBIGUOUS_FAIL)

RESOLUTION_EXACT = "exact"
RESOLUTION_AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class DecodeResult:
    identifier: str
    label: str
    ambiguous: bool = False
    candidates: List[str] = field(default_factory=list)

    @property
    def resolution(self) -> str:
        return RESOLUTION_AMBIGUOUS if self.ambiguous else RESOLUTION_EXACT


class ReferenceCodec:
    """One codec, configured by separator, identity fragment, mode and ambiguity policy."""

    def __init__(
        self,
        separator: str = DEFAULT_SEPARATOR,
        identity_fragment: str = FRAGMENT_FULL,
        mode: str = MODE_LABEL_IDENTIFIER,
        on_ambiguous: str = ON_AMBIGUOUS_PICK_FIRST,
    ):
        if not separator:
            raise MalformedFilter("Separator must be a non-empty string")
        if identity_fragment not in IDENTITY_FRAGMENTS:
            raise MalformedFilter(f"identity_fragment must be one of {IDENTITY_FRAGMENTS}")
        if mode not in MODES:
            raise MalformedFilter(f"mode must be one of {MODES}")
        if on_ambiguous not in AMBIGUITY_POLICIES:
            raise MalformedFilter(f"on_ambiguous must be one of {AMBIGUITY_POLICIES}")
        self.separator = separator
        self.identity_fragment = identity_fragment
        self.mode = mode
        self.on_ambiguous = on_ambiguous

    def fragment(self, record: Mapping[str, Any]) -> str:
        ref = entity_ref_of(record)
        if self.identity_fragment == FRAGMENT_NAME:
            return ref.name
        return str(ref)

    def encode(self, record: Mapping[str, Any], template: str) -> str:
        """Composite value for a selected record."""
        label = render(template, record)
        if self.mode == MODE_LABEL_ONLY:
            return label
        return f"{label}{self.separator}{self.fragment(record)}"

    def split(self, composite: str) -> tuple:
        """(label, fragment) on the last separator; fragment is None when absent."""
        label, sep, fragment = composite.rpartition(self.separator)
        if not sep:
            return composite, None
        return label, fragment

    def decode(
        self,
        composite: str,
        kind: Optional[str] = None,
        index: Optional[RecordIndex] = None,
        namespace: Optional[str] = None,
    ) -> DecodeResult:
        """
        Recover the canonical identifier from a composite value.

        Args:
            composite: Stored field value
            kind: Entity kind, required when the fragment is just a name
            index: Record Index to validate against (and to match labels)
            namespace: Namespace for name fragments (default: "default")

        Raises:
            NotFound: Nothing matches, or the identifier is not in the index
            MalformedFilter: A name fragment was decoded without a kind
            AmbiguousMatch: Several labels match and the policy is "fail"
        """
        if not isinstance(composite, str) or not composite:
            raise NotFound("Empty value cannot be decoded")

        label, fragment = self.split(composite)
        if fragment is None:
            return self._decode_label(composite, index)

        if not fragment.strip():
            raise NotFound(f"Value '{composite}' has an empty identifier after the separator")

        if self.identity_fragment == FRAGMENT_NAME:
            if not kind:
                raise MalformedFilter("A kind is required to decode a name fragment")
            identifier = make_entity_ref(kind, fragment, namespace)
        else:
            identifier = str(parse_entity_ref(fragment, default_kind=kind, default_namespace=namespace))

        if index is not None and identifier not in index:
            raise NotFound(f"No record for identifier '{identifier}'", identifier=identifier)
        return DecodeResult(identifier=identifier, label=label, candidates=[identifier])

    def _decode_label(self, label: str, index: Optional[RecordIndex]) -> DecodeResult:
        if index is None:
            raise NotFound(f"Value '{label}' carries no identifier and no index was given")
        candidates = index.lookup_by_label(label)
        if not candidates:
            raise NotFound(f"No record renders as '{label}'")
        if len(candidates) == 1:
            return DecodeResult(identifier=candidates[0], label=label, candidates=candidates)
        if self.on_ambiguous == ON_AMBIGUOUS_FAIL:
            raise AmbiguousMatch(
                f"{len(candidates)} records render as '{label}'", candidates=candidates
            )
        return DecodeResult(identifier=candidates[0], label=label, ambiguous=True, candidates=candidates)
