"""
Reusable field types for pydantic models and ``TypeAdapter`` validation.

Every factory returns a type that can be used as a model field annotation
or passed directly to ``validate``:

    class Signup(BaseModel):
        email: schemas.email()
        plan: schemas.slug()
        page: schemas.pagination(default_limit=20)

String-shaped values (UUIDs, dates, IP addresses) are checked with the
matching pydantic type but returned unchanged as strings.
"""

import re
from datetime import date as date_type
from ipaddress import IPv4Address, IPv6Address
from typing import Annotated, Any, Literal, NewType, Optional, Type
from uuid import UUID

from pydantic import (
    AfterValidator,
    AnyUrl,
    AwareDatetime,
    BaseModel,
    Field,
    IPvAnyAddress,
    Json,
    StrictInt,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    create_model,
)
from pydantic.networks import validate_email
from pydantic_core import PydanticCustomError

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

SortOrder = Literal["asc", "desc"]
Environment = Literal["development", "staging", "production", "test"]

_url_adapter = TypeAdapter(AnyUrl)
_uuid_adapter = TypeAdapter(UUID)
_datetime_adapter = TypeAdapter(AwareDatetime)
_date_adapter = TypeAdapter(date_type)
_ip_adapters = {
    None: TypeAdapter(IPvAnyAddress),
    4: TypeAdapter(IPv4Address),
    6: TypeAdapter(IPv6Address),
}


def _check_with(adapter: TypeAdapter, message: str):
    """Validate with ``adapter`` but keep the original string."""
    def check(value: str) -> str:
        try:
            adapter.validate_python(value)
        except ValidationError:
            raise ValueError(message)
        return value
    return check


def _check_uuid(message: str):
    return _check_with(_uuid_adapter, message)


def _check_email(value: str) -> str:
    try:
        validate_email(value)
    except PydanticCustomError:
        raise ValueError("Invalid email format")
    return value


_check_url = _check_with(_url_adapter, "Invalid URL format")


def _check_datetime(value: str) -> str:
    # UTC only: a "T" separator and a trailing Z, no numeric offsets
    if "T" not in value or not value.endswith("Z"):
        raise ValueError("Invalid ISO 8601 datetime format")
    return _check_with(_datetime_adapter, "Invalid ISO 8601 datetime format")(value)


def _check_date(value: str) -> str:
    message = "Invalid date format (expected YYYY-MM-DD)"
    if not DATE_PATTERN.match(value):
        raise ValueError(message)
    return _check_with(_date_adapter, message)(value)


def _check_pattern(pattern: "re.Pattern[str]", message: str):
    def check(value: str) -> str:
        if not pattern.match(value):
            raise ValueError(message)
        return value
    return check


def _check_ip(version: Optional[int], message: str):
    return _check_with(_ip_adapters[version], message)


class HttpResponseStatus(BaseModel):
    """Status block returned by downstream HTTP APIs."""
    status: str = Field(..., description="HTTP status code as string (e.g., '404')")
    message: Optional[str] = Field(None, description="Optional message from the API")


class schemas:
    """Factories for commonly validated values."""

    @staticmethod
    def uuid() -> Any:
        return Annotated[str, AfterValidator(_check_uuid("Invalid UUID format"))]

    @staticmethod
    def email() -> Any:
        return Annotated[str, AfterValidator(_check_email)]

    @staticmethod
    def url() -> Any:
        return Annotated[str, AfterValidator(_check_url)]

    @staticmethod
    def non_empty_string(max_length: Optional[int] = None) -> Any:
        """Non-empty string, optionally capped at ``max_length`` characters."""
        return Annotated[str, StringConstraints(min_length=1, max_length=max_length)]

    @staticmethod
    def datetime() -> Any:
        """UTC ISO 8601 datetime string such as ``2024-01-15T10:30:00Z``; offsets and naive values are rejected."""
        return Annotated[str, AfterValidator(_check_datetime)]

    @staticmethod
    def date() -> Any:
        """Calendar date string in ``YYYY-MM-DD`` form."""
        return Annotated[str, AfterValidator(_check_date)]

    @staticmethod
    def positive_int() -> Any:
        return Annotated[StrictInt, Field(gt=0)]

    @staticmethod
    def non_negative_int() -> Any:
        return Annotated[StrictInt, Field(ge=0)]

    @staticmethod
    def pagination(
        default_limit: int = 10,
        max_limit: int = 100,
        default_offset: int = 0,
    ) -> Type[BaseModel]:
        """
        Model with ``limit`` and ``offset`` query parameters.

        Example:
            Page = schemas.pagination(default_limit=20, max_limit=50)
            Page.model_validate({})  # limit=20, offset=0
        """
        return create_model(
            "Pagination",
            limit=(Annotated[StrictInt, Field(ge=1, le=max_limit)], default_limit),
            offset=(Annotated[StrictInt, Field(ge=0)], default_offset),
        )

    @staticmethod
    def http_response_status() -> Type[HttpResponseStatus]:
        return HttpResponseStatus

    @staticmethod
    def sort_order() -> Any:
        """``"asc"`` or ``"desc"``; defaults to ``"asc"`` when used as a model field."""
        return Annotated[SortOrder, Field(default="asc")]

    @staticmethod
    def environment() -> Any:
        return Environment

    @staticmethod
    def slug() -> Any:
        """URL-friendly identifier: lowercase letters, digits and single hyphens."""
        return Annotated[
            str,
            StringConstraints(min_length=1, max_length=100),
            AfterValidator(_check_pattern(
                SLUG_PATTERN,
                "Invalid slug format (lowercase letters, numbers, and hyphens only)",
            )),
        ]

    @staticmethod
    def semver() -> Any:
        return Annotated[
            str,
            AfterValidator(_check_pattern(SEMVER_PATTERN, "Invalid semantic version format")),
        ]

    @staticmethod
    def ip() -> Any:
        return Annotated[str, AfterValidator(_check_ip(None, "Invalid IP address"))]

    @staticmethod
    def ipv4() -> Any:
        return Annotated[str, AfterValidator(_check_ip(4, "Invalid IPv4 address"))]

    @staticmethod
    def ipv6() -> Any:
        return Annotated[str, AfterValidator(_check_ip(6, "Invalid IPv6 address"))]

    @staticmethod
    def json_string(inner: Any) -> Any:
        """
        JSON-encoded string whose decoded content is validated against ``inner``.

        The validated, decoded value is returned.
        """
        return Json[inner]

    @staticmethod
    def coerced_number() -> Any:
        """Number that also accepts numeric strings (query parameters)."""
        return float

    @staticmethod
    def coerced_boolean() -> Any:
        """Boolean that also accepts ``"true"``/``"false"``, ``"1"``/``"0"``, ``"yes"``/``"no"``."""
        return bool


def create_id_schema(entity_name: str) -> Any:
    """
    UUID identifier type for one entity, e.g. ``UserId = create_id_schema("User")``.

    The result is a distinct ``NewType`` so ids of different entities are
    not interchangeable for a type checker.
    """
    id_type = NewType(f"{entity_name}Id", str)
    return Annotated[id_type, AfterValidator(_check_uuid(f"Invalid {entity_name} ID format"))]


def optional_field(schema: Any) -> Any:
    """Field that may be omitted; defaults to None."""
    return Annotated[Optional[schema], Field(default=None)]


def nullable_field(schema: Any) -> Any:
    """Field that must be present but may be None."""
    return Optional[schema]
