from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from tooldex.errors import ValidationError

# Mapping fields merged key by key; every other field is replaced wholesale
MERGEABLE_MAPPINGS = frozenset({"weights", "per_partition_thresholds", "vector_type_weights", "source_weights"})


def merge_config[M: BaseModel](base: M, overrides: Mapping[str, Any] | None) -> M:
    """Apply a partial override to a frozen config model.

    Scalars and lists replace the base value. The declared mapping fields are
    shallow-merged so an override can adjust a single weight without restating
    the rest. Unknown keys and invalid values raise ValidationError.
    """
    if not overrides:
        return base

    model_cls = type(base)
    unknown = sorted(set(overrides) - set(model_cls.model_fields))
    if unknown:
        raise ValidationError(f"Unknown {model_cls.__name__} fields: {', '.join(unknown)}")

    merged = base.model_dump()
    for key, value in overrides.items():
        if key in MERGEABLE_MAPPINGS and isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value

    try:
        return model_cls.model_validate(merged)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model_cls.__name__}: {e}") from e


def build_config[M: BaseModel](model_cls: type[M], values: Mapping[str, Any] | None = None) -> M:
    try:
        return model_cls.model_validate(dict(values or {}))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model_cls.__name__}: {e}") from e
