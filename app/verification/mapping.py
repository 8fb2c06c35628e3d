"""Attribute-mapping extraction from form definitions.

A form field is backed by a verifiable credential when its data source is
"verified" and it names a credential type and attribute. Mapping data may sit
on the component itself (``properties``) or in the form's field metadata
(``metadata.fields[<key>]``); component properties win.

extract_mappings() is total: malformed or partial form data yields fewer (or
zero) requirements, never an exception.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

log = logging.getLogger(__name__)

VERIFIED_SOURCE = "verified"
MODE_REQUIRED = "required"
MODE_OPTIONAL = "optional"
VALID_MODES = frozenset({MODE_REQUIRED, MODE_OPTIONAL})

# Layout containers nest deeper than any real form; guards self-referencing input.
MAX_NESTING_DEPTH = 32


@dataclass(frozen=True)
class AttributeRequirement:
    """One credential attribute a form needs disclosed."""

    credential_type: str
    attribute_name: str
    mode: str = MODE_OPTIONAL

    @property
    def key(self) -> Tuple[str, str]:
        return (self.credential_type, self.attribute_name)

    @property
    def required(self) -> bool:
        return self.mode == MODE_REQUIRED

    def to_dict(self) -> Dict[str, str]:
        return {
            "credentialType": self.credential_type,
            "attributeName": self.attribute_name,
            "mode": self.mode,
        }


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _components_of(form: Any) -> Tuple[List[Any], Dict[str, Any]]:
    """Locate the component list and field metadata in any accepted form shape."""
    if isinstance(form, list):
        return form, {}

    form = _as_dict(form)
    metadata = _as_dict(form.get("metadata"))
    field_meta = _as_dict(metadata.get("fields"))

    schema = form.get("formSchema", form.get("form_schema", form))
    components = _as_dict(schema).get("components")
    if not isinstance(components, list):
        return [], field_meta
    return components, field_meta


def _walk_components(components: List[Any], depth: int = 0) -> Iterator[Any]:
    """Yield components depth-first, descending into layout containers.

    Panels, fieldsets and tabs nest under ``components``; column layouts
    under ``columns[*].components``; tables under ``rows[*][*].components``.
    """
    if depth > MAX_NESTING_DEPTH:
        log.warning("Form layout nested too deeply, ignoring the remainder")
        return
    for component in components:
        yield component
        if not isinstance(component, dict):
            continue
        yield from _walk_components(_as_list(component.get("components")), depth + 1)
        for column in _as_list(component.get("columns")):
            yield from _walk_components(_as_list(_as_dict(column).get("components")), depth + 1)
        for row in _as_list(component.get("rows")):
            for cell in row if isinstance(row, list) else [row]:
                yield from _walk_components(_as_list(_as_dict(cell).get("components")), depth + 1)


def _requirement_for(component: Any, field_meta: Dict[str, Any]) -> Optional[AttributeRequirement]:
    component = _as_dict(component)
    props = _as_dict(component.get("properties"))
    key = component.get("key")
    meta = _as_dict(field_meta.get(key)) if isinstance(key, str) else {}

    data_source = props.get("dataSource") or meta.get("type")
    if data_source != VERIFIED_SOURCE:
        return None

    vc_mapping = _as_dict(props.get("vcMapping")) or _as_dict(meta.get("vcMapping"))
    credential_type = _non_empty_str(vc_mapping.get("credentialType"))
    attribute_name = _non_empty_str(vc_mapping.get("attributeName"))
    if credential_type is None or attribute_name is None:
        log.debug(f"Verified field {key!r} has no complete vcMapping, skipping")
        return None

    mode = props.get("credentialMode") or meta.get("credentialMode")
    if mode not in VALID_MODES:
        mode = MODE_OPTIONAL
    if _as_dict(component.get("validate")).get("required") is True:
        mode = MODE_REQUIRED

    return AttributeRequirement(credential_type, attribute_name, mode)


def extract_mappings(form: Any) -> List[AttributeRequirement]:
    """Derive the credential attributes a form needs.

    Args:
        form: A form record (``{"formSchema": {...}, "metadata": {...}}``), a
            bare form schema (``{"components": [...]}``) or a component list.

    Returns:
        Requirements in field order, deduplicated by (credential type,
        attribute). A duplicate marked required upgrades the kept entry.
    """
    try:
        components, field_meta = _components_of(form)
    except Exception as e:  # pragma: no cover - _components_of only inspects dicts
        log.warning(f"Unreadable form definition: {e}")
        return []

    by_key: Dict[Tuple[str, str], AttributeRequirement] = {}
    for component in _walk_components(components):
        try:
            req = _requirement_for(component, field_meta)
        except Exception as e:
            log.warning(f"Skipping unreadable form component: {e}")
            continue
        if req is None:
            continue

        existing = by_key.get(req.key)
        if existing is None:
            by_key[req.key] = req
        elif req.required and not existing.required:
            by_key[req.key] = AttributeRequirement(
                existing.credential_type, existing.attribute_name, MODE_REQUIRED
            )

    mappings = list(by_key.values())
    log.debug(f"Extracted {len(mappings)} VC mappings")
    return mappings
