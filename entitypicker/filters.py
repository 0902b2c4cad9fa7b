"""
Filter builder.

Turns declarative filter specifications into the query handed to the
catalog capability. A query is a list of clause groups: the catalog ORs
across groups and ANDs the clauses inside one group.
"""

from typing import Any, Dict, List, Mapping, Sequence

from .errors import MalformedFilter
from .paths import get_path, has_path


class _ExistsToken:
    """Reserved query value meaning "field is present"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "EXISTS"


EXISTS = _ExistsToken()


class AnyOf(tuple):
    """OR-clause over literal values."""

    def __repr__(self) -> str:
        return f"AnyOf{tuple.__repr__(self)}"


Query = List[Dict[str, Any]]


def _is_exists_marker(value: Any) -> bool:
    return isinstance(value, Mapping) and set(value.keys()) == {"exists"}


def build_clause(key: str, value: Any) -> Any:
    if _is_exists_marker(value):
        if value["exists"] is not True:
            raise MalformedFilter(f"Filter '{key}': only {{exists: true}} is supported")
        return EXISTS
    if isinstance(value, (list, tuple)):
        if not value:
            raise MalformedFilter(f"Filter '{key}': empty value list matches nothing")
        return AnyOf(value)
    return value


def build_spec(spec: Mapping[str, Any]) -> Dict[str, Any]:
    """Build the clause group for one filter specification."""
    if not isinstance(spec, Mapping):
        raise MalformedFilter(f"Filter specification must be a mapping, got {type(spec).__name__}")
    group: Dict[str, Any] = {}
    for key, value in spec.items():
        if not isinstance(key, str) or not key.strip():
            raise MalformedFilter("Filter keys must be non-empty strings")
        group[key.strip()] = build_clause(key, value)
    return group


def build_query(
    specs: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
    allowed_kinds: Sequence[str] | None = None,
    default_kind: str | None = None,
) -> Query:
    """
    Returns the query for the catalog (a list of clause groups).
    specs: one filter specification or a list of them; explicit specs win.
    allowed_kinds: legacy shorthand for {kind: allowed_kinds}.
    default_kind: used only when neither specs nor allowed_kinds is given.
    An empty list means "no filter".
    """
    if specs:
        if isinstance(specs, Mapping):
            specs = [specs]
        return [build_spec(s) for s in specs]
    if allowed_kinds:
        return [build_spec({"kind": list(allowed_kinds)})]
    if default_kind:
        return [build_spec({"kind": default_kind})]
    return []


def _fold(value: Any) -> Any:
    return value.casefold() if isinstance(value, str) else value


def _value_matches(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple)):
        return any(_value_matches(a, expected) for a in actual)
    return _fold(actual) == _fold(expected)


def clause_matches(record: Any, key: str, clause: Any) -> bool:
    if clause is EXISTS:
        return has_path(record, key)
    actual = get_path(record, key)
    if isinstance(clause, AnyOf):
        return any(_value_matches(actual, v) for v in clause)
    return _value_matches(actual, clause)


def matches(record: Any, query: Query) -> bool:
    """Evaluate a query against one record (catalog-side semantics)."""
    if not query:
        return True
    return any(
        all(clause_matches(record, key, clause) for key, clause in group.items())
        for group in query
    )


def _freeze(value: Any) -> Any:
    if value is EXISTS:
        return ("exists",)
    if isinstance(value, Mapping):
        return tuple(sorted((k, _freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def filter_identity(query: Query) -> tuple:
    """Stable hashable key for a built query."""
    return tuple(_freeze(group) for group in query)


def _first_value(specs, key: str) -> str | None:
    if not specs:
        return None
    spec = specs if isinstance(specs, Mapping) else specs[0]
    if not isinstance(spec, Mapping):
        return None
    value = spec.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def kind_of(specs: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None) -> str | None:
    """The entity kind named by a filter (first spec, first value)."""
    return _first_value(specs, "kind")


def namespace_of(specs: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None) -> str | None:
    """The namespace a filter pins through ``metadata.namespace``, if any."""
    return _first_value(specs, "metadata.namespace")


def to_api_params(query: Query) -> List[tuple]:
    """
    Encode a query as REST catalog ``filter`` parameters.

    One ``filter`` parameter per group, clauses joined with commas. An
    OR-clause repeats the key, existence is a bare key.
    """
    params: List[tuple] = []
    for group in query:
        parts: List[str] = []
        for key, clause in group.items():
            if clause is EXISTS:
                parts.append(key)
            elif isinstance(clause, AnyOf):
                parts.extend(f"{key}={v}" for v in clause)
            else:
                parts.append(f"{key}={clause}")
        params.append(("filter", ",".join(parts)))
    return params
