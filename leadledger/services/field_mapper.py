"""
Field mapper - transforms a raw platform payload into the canonical lead record.

The mapping table is declarative: canonical field name -> dotted source path.
    {"email": "contact.email", "phone": "phone_number", "city": "address.city"}

Path resolution returns an explicit tagged value instead of None so that
"missing" and "present but empty" can never be confused:
    Absent()        path does not resolve (missing key, non-container step,
                    or a null met before the last step)
    Scalar(value)   resolved to a leaf value (str, number, bool, list, or None)
    Nested(value)   resolved to a mapping
Only Absent fields are omitted from the canonical record. An explicit null at the
end of a path is copied through as None. No required-field
enforcement happens here; that is the scorer's and the filters' job.
"""
from dataclasses import dataclass
from typing import Any, Mapping, Union


@dataclass(frozen=True)
class Absent:
    pass


@dataclass(frozen=True)
class Scalar:
    value: Any


@dataclass(frozen=True)
class Nested:
    value: Mapping[str, Any]


PathValue = Union[Absent, Scalar, Nested]

ABSENT = Absent()
_MISSING = object()


def _tag(value: Any) -> PathValue:
    if isinstance(value, Mapping):
        return Nested(value)
    return Scalar(value)


def _step(current: Any, key: str) -> Any:
    """One path step. Returns _MISSING when the step cannot be taken."""
    if isinstance(current, Mapping):
        return current.get(key, _MISSING)
    if isinstance(current, (list, tuple)) and key.isdigit():
        index = int(key)
        return current[index] if index < len(current) else _MISSING
    return _MISSING


def resolve_path(data: Mapping[str, Any], path: str) -> PathValue:
    """Resolve a dotted path ("contact.email", "phones.0") against a payload."""
    if not path:
        return ABSENT
    current: Any = data
    for key in path.split("."):
        current = _step(current, key)
        if current is _MISSING:
            return ABSENT
    return _tag(current)


def map_lead_fields(raw: Mapping[str, Any], mapping: Mapping[str, str]) -> dict[str, Any]:
    """Apply a mapping table to a raw payload. Pure and deterministic."""
    mapped: dict[str, Any] = {}
    for canonical_field, source_path in mapping.items():
        if not isinstance(source_path, str):
            continue
        resolved = resolve_path(raw, source_path)
        if isinstance(resolved, Absent):
            continue
        if isinstance(resolved, Nested):
            mapped[canonical_field] = dict(resolved.value)
        else:
            mapped[canonical_field] = resolved.value
    return mapped
