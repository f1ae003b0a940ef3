"""
Field transformer for building the outbound advertiser payload.

When an advertiser has field rules, only allow-listed rules produce output:
an advertiser must opt in to every field it receives. Without rules, the
lead's standard contact fields are sent verbatim.
"""
import logging
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)

# Fixed key merged into every outbound payload by the caller.
TX_ID_KEY = 'az_tx_id'

VALUE_PLACEHOLDER = '{{value}}'


def get_nested_value(data: dict, path: str, default=None):
    """
    Get a value from a nested dictionary using dot notation.

    Args:
        data: The dictionary to search
        path: Dot-separated path (e.g., 'address.zip')
        default: Default value if path not found

    Returns:
        The value at the path or default
    """
    keys = path.split('.')
    value = data
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def resolve_source_value(source_field: str, raw_payload: Optional[dict], standard_fields: dict):
    """
    Resolve a rule's source field: raw tracking payload first, then the
    lead's standard fields. Exact keys win over dot-path lookups.
    """
    raw_payload = raw_payload if isinstance(raw_payload, dict) else {}

    value = raw_payload.get(source_field)
    if value is None and '.' in source_field:
        value = get_nested_value(raw_payload, source_field)
    if value is None:
        value = standard_fields.get(source_field)
    return value


def apply_transform(value: Any, transform: Optional[dict]) -> Any:
    """
    Apply a transform descriptor to a value.

    Supported kinds: uppercase, lowercase, trim, concat (with a template
    holding a single {{value}} placeholder). Non-string values and unknown
    kinds pass through unchanged.
    """
    if not transform or not isinstance(value, str):
        return value

    kind = transform.get('type')

    if kind == 'uppercase':
        return value.upper()
    elif kind == 'lowercase':
        return value.lower()
    elif kind == 'trim':
        return value.strip()
    elif kind == 'concat':
        template = transform.get('template')
        if not template:
            return value
        return template.replace(VALUE_PLACEHOLDER, value, 1)

    logger.warning(f"Unknown transform type: {kind}")
    return value


def build_payload(lead, raw_payload: Optional[dict], field_rules: Iterable) -> dict:
    """
    Builds the advertiser-facing fields for a lead.

    Args:
        lead: Lead (anything exposing ``standard_fields``)
        raw_payload: Raw tracking payload received from the affiliate
        field_rules: The advertiser's FieldMapping rules, enabled or not

    Returns:
        Outbound fields, without the transaction id
    """
    rules = list(field_rules)
    standard_fields = lead.standard_fields
    payload = {}

    if not rules:
        # Default safety mapping
        for key, value in standard_fields.items():
            if value is not None:
                payload[key] = value
        logger.debug(f"No field rules, sending {len(payload)} standard fields")
        return payload

    for rule in rules:
        if not rule.allowlist:
            continue

        value = resolve_source_value(rule.source_field, raw_payload, standard_fields)
        if value is None:
            continue

        # Target names are literal keys, dots included
        payload[rule.target_field] = apply_transform(value, rule.transform)

    logger.debug(f"Mapped payload with {len(payload)} fields from {len(rules)} rules")
    return payload
