"""
Picker options and their validation.

``validate_options`` returns a list of error messages (empty means
valid). ``PickerOptions.from_ui_options`` builds options from the
camelCase ``ui:options`` mapping a form host hands over, failing fast on
configuration errors.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .codec import (
    AMBIGUITY_POLICIES,
    DEFAULT_SEPARATOR,
    FRAGMENT_FULL,
    IDENTITY_FRAGMENTS,
    MODE_LABEL_IDENTIFIER,
    MODES,
    ON_AMBIGUOUS_PICK_FIRST,
    ReferenceCodec,
)
from .errors import MalformedFilter
from .filters import Query, build_query
from .templating import DEFAULT_TEMPLATE, PLACEHOLDER_RE

# ui:options key -> PickerOptions attribute
UI_OPTION_KEYS = {
    "displayEntityFieldAfterFormatting": "template",
    "template": "template",
    "catalogFilter": "filter",
    "filter": "filter",
    "allowedKinds": "allowed_kinds",
    "defaultKind": "default_kind",
    "allowArbitraryValues": "allow_arbitrary_values",
    "identityFragment": "identity_fragment",
    "separator": "separator",
    "mode": "mode",
    "onAmbiguous": "on_ambiguous",
    "hiddenFieldName": "hidden_field_name",
    "placeholder": "placeholder",
}


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _check_choice(errors: List[str], key: str, value: Any, choices: Sequence[str]) -> None:
    if value not in choices:
        errors.append(f"Option '{key}' must be one of: {', '.join(choices)}")


def validate_options(options: Mapping[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages for a ui:options mapping.
    """
    errors: List[str] = []

    for key in options:
        if key not in UI_OPTION_KEYS:
            errors.append(f"Unknown option: {key}")

    template = options.get("displayEntityFieldAfterFormatting", options.get("template"))
    if template is not None and not _is_non_empty_str(template):
        errors.append("Option 'template' must be a non-empty string")

    separator = options.get("separator", DEFAULT_SEPARATOR)
    if not _is_non_empty_str(separator):
        errors.append("Option 'separator' must be a non-empty string")
    elif _is_non_empty_str(template) and separator in PLACEHOLDER_RE.sub("", template):
        errors.append(f"Template text must not contain the separator '{separator}'")

    spec = options.get("catalogFilter", options.get("filter"))
    if spec is not None:
        if not isinstance(spec, (Mapping, list)):
            errors.append("Option 'filter' must be a mapping or a list of mappings")
        else:
            try:
                build_query(spec)
            except MalformedFilter as e:
                errors.append(str(e))

    kinds = options.get("allowedKinds")
    if kinds is not None:
        if not isinstance(kinds, list) or not all(_is_non_empty_str(k) for k in kinds):
            errors.append("Option 'allowedKinds' must be a list of non-empty strings")

    for key in ("defaultKind", "hiddenFieldName", "placeholder"):
        if key in options and not _is_non_empty_str(options[key]):
            errors.append(f"Option '{key}' must be a non-empty string if provided")

    if "allowArbitraryValues" in options and not isinstance(options["allowArbitraryValues"], bool):
        errors.append("Option 'allowArbitraryValues' must be a boolean")

    if "identityFragment" in options:
        _check_choice(errors, "identityFragment", options["identityFragment"], IDENTITY_FRAGMENTS)
    if "mode" in options:
        _check_choice(errors, "mode", options["mode"], MODES)
    if "onAmbiguous" in options:
        _check_choice(errors, "onAmbiguous", options["onAmbiguous"], AMBIGUITY_POLICIES)

    return errors


@dataclass
class PickerOptions:
    template: str = DEFAULT_TEMPLATE
    filter: Optional[Any] = None
    allowed_kinds: Optional[List[str]] = None
    default_kind: Optional[str] = None
    allow_arbitrary_values: bool = True
    identity_fragment: str = FRAGMENT_FULL
    separator: str = DEFAULT_SEPARATOR
    mode: str = MODE_LABEL_IDENTIFIER
    on_ambiguous: str = ON_AMBIGUOUS_PICK_FIRST
    hidden_field_name: Optional[str] = None
    placeholder: str = "Select an entity..."

    @classmethod
    def from_ui_options(cls, options: Optional[Mapping[str, Any]]) -> "PickerOptions":
        options = options or {}
        errors = validate_options(options)
        if errors:
            raise MalformedFilter("Invalid picker options: " + "; ".join(errors))
        values: Dict[str, Any] = {}
        for key, value in options.items():
            values[UI_OPTION_KEYS[key]] = value
        return cls(**values)

    def query(self) -> Query:
        return build_query(self.filter, allowed_kinds=self.allowed_kinds, default_kind=self.default_kind)

    def codec(self) -> ReferenceCodec:
        return ReferenceCodec(
            separator=self.separator,
            identity_fragment=self.identity_fragment,
            mode=self.mode,
            on_ambiguous=self.on_ambiguous,
        )


def validate_action_input(data: Mapping[str, Any]) -> List[str]:
    """Validation errors for resolve_entity_from_display input."""
    errors: List[str] = []
    if not _is_non_empty_str(data.get("displayValue")):
        errors.append("Field 'displayValue' must be a non-empty string")
    spec = data.get("filter")
    if spec is None:
        errors.append("Missing required field: filter")
    elif not isinstance(spec, (Mapping, list)):
        errors.append("Field 'filter' must be a mapping or a list of mappings")
    if "namespace" in data and data["namespace"] is not None and not _is_non_empty_str(data["namespace"]):
        errors.append("Field 'namespace' must be a non-empty string if provided")
    return errors
