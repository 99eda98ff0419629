# ==============================================================================
# BASE SCHEMAS - Response Envelope and Health
# ==============================================================================

from __future__ import annotations

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
    )


class APIResponse(BaseModel, Generic[T]):
    """
    Standard API response wrapper.

    Attributes:
        success: Whether the request was successful
        message: Optional status message
        data: Response payload
        errors: Optional error details
    """

    success: bool = Field(
        True,
        description="Whether the request was successful"
    )
    message: Optional[str] = Field(
        None,
        description="Status message"
    )
    data: Optional[T] = Field(
        None,
        description="Response data"
    )
    errors: Optional[List[Dict[str, Any]]] = Field(
        None,
        description="Error details if any"
    )

    @classmethod
    def ok(
        cls,
        data: T,
        message: Optional[str] = None,
    ) -> "APIResponse[T]":
        """Create a successful response."""
        return cls(success=True, data=data, message=message)

    @classmethod
    def error(
        cls,
        message: str,
        errors: Optional[List[Dict[str, Any]]] = None,
    ) -> "APIResponse[T]":
        """Create an error response."""
        return cls(success=False, message=message, errors=errors)


class HealthResponse(BaseSchema):
    """Health check response schema."""

    status: str = Field(
        ...,
        description="healthy when every data source answers, degraded otherwise"
    )
    version: str = Field(
        ...,
        description="Application version"
    )
    data_sources: Dict[str, bool] = Field(
        default_factory=dict,
        description="Health per data source, keyed backoffice/data_source"
    )


class BackofficeSummary(BaseSchema):
    """Backoffice entry in the index listing."""

    id: str
    name: str
    description: Optional[str] = None
    sections: List[str] = Field(
        default_factory=list,
        description="Section ids"
    )
