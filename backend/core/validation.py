from __future__ import annotations

from typing import Any, Mapping

import pydantic

from backend.core.errors import ValidationError
from backend.core.schema import ConfigOperationsModel, SeedOptionsModel
from backend.domain import DATA_TYPES, ConfigOperations, DataType, SeedOptions


def _describe(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "request"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


def require_identifier(name: str, value: Any) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{name} is required")
    return text


def validate_data_type(value: Any) -> DataType:
    data_type = str(value or "").strip().lower()
    if data_type not in DATA_TYPES:
        raise ValidationError(f"data_type must be one of {', '.join(DATA_TYPES)}")
    return data_type  # type: ignore[return-value]


def validate_seed_options(options: SeedOptions | Mapping[str, Any] | None) -> SeedOptions:
    if isinstance(options, SeedOptions):
        options = {
            "batch_size": options.batch_size,
            "overwrite_existing": options.overwrite_existing,
            "auto_categorize": options.auto_categorize,
        }
    try:
        model = SeedOptionsModel(**dict(options or {}))
    except pydantic.ValidationError as exc:
        raise ValidationError(f"invalid seed options: {_describe(exc)}") from exc
    return SeedOptions(**model.model_dump())


def validate_config_operations(operations: ConfigOperations | Mapping[str, Any] | None) -> ConfigOperations:
    if isinstance(operations, ConfigOperations):
        return operations
    try:
        model = ConfigOperationsModel(**dict(operations or {}))
    except pydantic.ValidationError as exc:
        raise ValidationError(f"invalid config operations: {_describe(exc)}") from exc
    return ConfigOperations(**model.model_dump())
