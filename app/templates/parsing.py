"""Lenient template parsing.

Stored and user-supplied templates are frequently partial or carry fields of
the wrong type. ``parse_template`` deep-merges whatever is usable onto the
variant defaults so compilation always has a complete template to work with.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_snake

from app.templates.models import StructuredTemplate, TEMPLATE_VARIANTS

logger = logging.getLogger(__name__)

_SEQUENCE_TYPES = (list, tuple)


def _normalize_keys(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {to_snake(str(k)): _normalize_keys(v) for k, v in value.items()}
    if isinstance(value, _SEQUENCE_TYPES):
        return [_normalize_keys(v) for v in value]
    return value


def _compatible(default: Any, override: Any) -> bool:
    if override is None:
        return False
    if isinstance(default, bool):
        return isinstance(override, bool)
    if isinstance(default, str):
        return isinstance(override, str)
    if isinstance(default, (int, float)):
        return isinstance(override, (int, float)) and not isinstance(override, bool)
    if isinstance(default, _SEQUENCE_TYPES):
        return isinstance(override, _SEQUENCE_TYPES)
    return isinstance(override, type(default))


def _deep_merge(defaults: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(defaults)
    for key, value in override.items():
        if key not in defaults:
            continue
        current = defaults[key]
        if isinstance(current, dict):
            if isinstance(value, Mapping):
                merged[key] = _deep_merge(current, value)
        elif current is None:
            merged[key] = value
        elif _compatible(current, value):
            merged[key] = value
    return merged


def parse_template(raw: Any) -> BaseModel:
    """Return a complete template instance for ``raw``; never raises.

    ``raw`` may already be a template model, or a mapping in either snake_case
    or camelCase. An unknown or missing ``template_type`` selects the
    structured variant.
    """
    if isinstance(raw, tuple(TEMPLATE_VARIANTS.values())):
        return raw
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning("template_malformed reason=not_a_mapping type=%s", type(raw).__name__)
        return StructuredTemplate()

    data = _normalize_keys(raw)
    template_type = data.get("template_type")
    variant = TEMPLATE_VARIANTS.get(template_type) if isinstance(template_type, str) else None
    if variant is None:
        if template_type is not None:
            logger.warning("template_unknown_type template_type=%r", template_type)
        variant = StructuredTemplate

    defaults = variant().model_dump()
    merged = _deep_merge(defaults, data)
    try:
        return variant.model_validate(merged)
    except ValidationError as exc:
        bad_fields = {str(err["loc"][0]) for err in exc.errors() if err.get("loc")}
        logger.warning(
            "template_fields_reset template_type=%s fields=%s",
            variant.model_fields["template_type"].default,
            ",".join(sorted(bad_fields)),
        )
        for name in bad_fields:
            if name in defaults:
                merged[name] = defaults[name]
    try:
        return variant.model_validate(merged)
    except ValidationError:
        logger.warning("template_defaults_used template_type=%s", variant.model_fields["template_type"].default)
        return variant()
