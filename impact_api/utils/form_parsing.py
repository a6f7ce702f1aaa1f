"""
Helpers for multipart form payloads whose structured fields arrive as JSON strings
"""

import json
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from impact_api.core.exceptions import ValidationError
from impact_api.schemas.common import field_error

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_json_list(raw: Optional[str], field: str) -> Optional[list]:
    """
    Decode a JSON array sent as a form field.

    Returns None when the field is absent so callers can tell "not sent"
    from "sent empty".
    """
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError(f"Field '{field}' must be valid JSON", field=field)
    if not isinstance(value, list):
        raise ValidationError(f"Field '{field}' must be a JSON array", field=field)
    return value


def build_model(model: Type[ModelT], data: dict) -> ModelT:
    """Validate form data into ``model``, reporting problems as field errors."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        errors = [
            field_error(
                ".".join(str(loc) for loc in error["loc"]) or "body",
                error["msg"],
                error["type"]
            )
            for error in e.errors()
        ]
        raise ValidationError("Invalid form data", errors=errors)


def drop_unset(data: dict) -> dict:
    return {key: value for key, value in data.items() if value is not None}

