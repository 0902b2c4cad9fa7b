from typing import Any, Mapping, NamedTuple

from .errors import MalformedFilter

DEFAULT_NAMESPACE = "default"


class EntityRef(NamedTuple):
    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.namespace}/{self.name}"


def normalize_text(s: str) -> str:
    return " ".join(s.strip().lower().split())


def normalize_kind(kind: str) -> str:
    return kind.strip().lower()


def normalize_namespace(namespace: str | None) -> str:
    if not namespace or not namespace.strip():
        return DEFAULT_NAMESPACE
    return namespace.strip().lower()


def entity_ref_of(record: Mapping[str, Any]) -> EntityRef:
    """Identity triple of a record. Kind and namespace are case-folded, name is kept."""
    metadata = record.get("metadata") or {}
    kind = record.get("kind")
    name = metadata.get("name")
    if not isinstance(kind, str) or not kind.strip():
        raise MalformedFilter(f"Record has no kind: {record!r}")
    if not isinstance(name, str) or not name.strip():
        raise MalformedFilter(f"Record has no metadata.name: {record!r}")
    return EntityRef(normalize_kind(kind), normalize_namespace(metadata.get("namespace")), name.strip())


def compute_entity_ref(record: Mapping[str, Any]) -> str:
    return str(entity_ref_of(record))


def make_entity_ref(kind: str, name: str, namespace: str | None = None) -> str:
    return str(EntityRef(normalize_kind(kind), normalize_namespace(namespace), name.strip()))


def parse_entity_ref(ref: str, default_kind: str | None = None, default_namespace: str | None = None) -> EntityRef:
    """
    Parse ``kind:namespace/name``. Kind and namespace may be omitted when
    defaults are given (``namespace/name``, ``kind:name``, ``name``).
    """
    if not isinstance(ref, str) or not ref.strip():
        raise MalformedFilter("Entity reference must be a non-empty string")
    ref = ref.strip()

    kind = default_kind
    rest = ref
    if ":" in ref:
        kind, rest = ref.split(":", 1)
    namespace = default_namespace
    name = rest
    if "/" in rest:
        namespace, name = rest.split("/", 1)

    if not kind or not kind.strip():
        raise MalformedFilter(f"Entity reference '{ref}' has no kind and no default kind was given")
    if not name or not name.strip():
        raise MalformedFilter(f"Entity reference '{ref}' has no name")
    return EntityRef(normalize_kind(kind), normalize_namespace(namespace), name.strip())


def humanize_entity_ref(record: Mapping[str, Any]) -> str:
    """Short human form: just the name in the default namespace, else namespace/name."""
    ref = entity_ref_of(record)
    if ref.namespace == DEFAULT_NAMESPACE:
        return ref.name
    return f"{ref.namespace}/{ref.name}"
