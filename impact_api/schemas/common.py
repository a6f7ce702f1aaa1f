"""
Response envelope shared by all endpoints
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class APIResponse(BaseModel):
    success: bool = Field(True, description="Whether the request succeeded")
    message: str = Field(..., description="Human readable result")
    data: Any = Field(None, description="Response payload")
    count: Optional[int] = Field(None, description="Number of items when data is a list")


class FieldError(BaseModel):
    field: str
    message: str
    type: str = "value_error"


def create_success_response(data: Any = None, message: str = "OK", count: Optional[int] = None) -> dict:
    """
    Create a standardized success response

    Args:
        data: Response payload (models are serialized by FastAPI)
        message: Success message
        count: Item count for list payloads

    Returns:
        Envelope dictionary
    """
    response = {
        "success": True,
        "message": message,
        "data": data,
    }
    if count is not None:
        response["count"] = count
    return response


def field_error(field: str, message: str, error_type: str = "value_error") -> dict:
    return FieldError(field=field, message=message, type=error_type).model_dump()
