"""
Decode action for downstream pipeline steps.

Recovers the canonical identifier from a picker's stored value. Runs in a
non-interactive context, so every failure is raised to the caller.
"""

from typing import Any, Dict, List, Mapping, Optional

from .catalog import Catalog
from .codec import DEFAULT_SEPARATOR, FRAGMENT_FULL, ON_AMBIGUOUS_PICK_FIRST, ReferenceCodec
from .errors import EntityPickerError, MalformedFilter, NotFound
from .filters import build_query, kind_of
from .index import RecordIndex
from .logger import get_logger
from .normalize import DEFAULT_NAMESPACE, normalize_namespace
from .schema import validate_action_input
from .templating import DEFAULT_TEMPLATE

logger = get_logger()

INPUT_ALIASES = {"catalogFilter": "filter", "entityNamespace": "namespace"}


def _normalize_input(data: Mapping[str, Any]) -> Dict[str, Any]:
    normalized = dict(data)
    for alias, key in INPUT_ALIASES.items():
        if alias in normalized and key not in normalized:
            normalized[key] = normalized.pop(alias)
    return normalized


def _narrow_to_namespace(specs: Any, namespace: str) -> List[Dict[str, Any]]:
    specs = [specs] if isinstance(specs, Mapping) else list(specs)
    if namespace == DEFAULT_NAMESPACE:
        return [dict(s) for s in specs]
    return [{**s, "metadata.namespace": namespace} for s in specs]


def resolve_entity_from_display(
    data: Mapping[str, Any],
    catalog: Catalog,
    template: Optional[str] = None,
    identity_fragment: str = FRAGMENT_FULL,
    separator: str = DEFAULT_SEPARATOR,
    on_ambiguous: str = ON_AMBIGUOUS_PICK_FIRST,
) -> Dict[str, Any]:
    """
    Resolve ``{displayValue, filter, namespace?}`` to an entity.

    Args:
        data: Action input; ``catalogFilter``/``entityNamespace`` are accepted as aliases
        catalog: Catalog capability used to fetch a fresh index
        template: Display template; required for values without a separator
        identity_fragment: Fragment the picker embedded ("full" or "name")
        separator: Separator the picker used
        on_ambiguous: "pick-first" or "fail"

    Returns:
        Dict with identifier, label, resolution ("exact"|"ambiguous"),
        entity and candidates

    Raises:
        MalformedFilter: Invalid input or a filter without a kind
        NotFound: No record matches
        FetchFailed: The catalog could not be queried
    """
    data = _normalize_input(data)
    errors = validate_action_input(data)
    if errors:
        raise MalformedFilter("Invalid input: " + "; ".join(errors))

    display_value = data["displayValue"]
    kind = kind_of(data["filter"])
    if not kind:
        raise MalformedFilter(f"Filter must contain a 'kind'. Received: {data['filter']!r}")
    namespace = normalize_namespace(data.get("namespace"))

    codec = ReferenceCodec(separator=separator, identity_fragment=identity_fragment, on_ambiguous=on_ambiguous)
    if codec.split(display_value)[1] is None and template is None:
        raise MalformedFilter(
            "Value has no separator; a display template is required to match it by label"
        )

    logger.info("Resolving entity from display value", display_value=display_value, kind=kind, namespace=namespace)
    query = build_query(_narrow_to_namespace(data["filter"], namespace))
    records = catalog.find_records(query)
    logger.info(f"Found {len(records)} records matching filter")
    if not records:
        logger.record_decode("failed")
        raise NotFound(f"No records found matching filter: {data['filter']!r}")

    index = RecordIndex.build(records, template or DEFAULT_TEMPLATE)
    try:
        result = codec.decode(display_value, kind=kind, index=index, namespace=namespace)
    except EntityPickerError as e:
        logger.record_decode("failed")
        logger.error("Entity resolution failed", display_value=display_value, error=str(e))
        raise

    logger.record_decode(result.resolution)
    if result.ambiguous:
        logger.warning(
            "Several records share this display value; using the first",
            selected=result.identifier, others=result.candidates[1:],
        )
        logger.warning("Include a more unique field (metadata.name, spec.profile.email) in the template")
    else:
        logger.info("Resolved entity", identifier=result.identifier)

    return {
        "identifier": result.identifier,
        "label": result.label,
        "resolution": result.resolution,
        "entity": index.lookup(result.identifier),
        "candidates": result.candidates,
    }
