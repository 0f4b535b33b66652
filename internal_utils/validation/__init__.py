"""
Validation module.

Thin helpers over pydantic for validating untrusted input against a model
class or any type a ``TypeAdapter`` accepts, and for turning the resulting
``ValidationError`` into API-friendly shapes.
"""

import copy
from dataclasses import dataclass
from typing import Annotated, Any, Awaitable, Callable, Dict, Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, create_model

from internal_utils.validation.schemas import (
    HttpResponseStatus,
    create_id_schema,
    nullable_field,
    optional_field,
    schemas,
)

T = TypeVar("T")

ROOT_ERROR_KEY = "_root"


def _is_model(schema: Any) -> bool:
    try:
        return issubclass(schema, BaseModel)
    except TypeError:
        return False


def validate(schema: Any, data: Any) -> Any:
    """
    Validate ``data`` against ``schema`` and return the validated value.

    Args:
        schema: A pydantic model class or any type accepted by ``TypeAdapter``
        data: Untrusted input

    Raises:
        ValidationError: If the data does not match the schema
    """
    if _is_model(schema):
        return schema.model_validate(data)
    return TypeAdapter(schema).validate_python(data)


@dataclass
class SafeValidationResult(Generic[T]):
    """Outcome of ``safe_validate``; exactly one of data/error is meaningful."""
    success: bool
    data: Optional[T] = None
    error: Optional[ValidationError] = None


def safe_validate(schema: Any, data: Any) -> SafeValidationResult:
    """Validate without raising."""
    try:
        return SafeValidationResult(success=True, data=validate(schema, data))
    except ValidationError as e:
        return SafeValidationResult(success=False, error=e)


def _error_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc)


def format_validation_errors(error: ValidationError) -> Dict[str, List[str]]:
    """
    Group error messages by dotted field path.

    Errors on the value itself are reported under ``"_root"``.

    Example:
        {"address.zip": ["String should have at least 5 characters"]}
    """
    formatted: Dict[str, List[str]] = {}
    for issue in error.errors():
        path = _error_path(issue["loc"]) or ROOT_ERROR_KEY
        formatted.setdefault(path, []).append(issue["msg"])
    return formatted


def flatten_validation_errors(error: ValidationError) -> List[str]:
    """Error messages as ``"path: message"`` strings (bare message at the root)."""
    messages = []
    for issue in error.errors():
        path = _error_path(issue["loc"])
        messages.append(f"{path}: {issue['msg']}" if path else issue["msg"])
    return messages


def create_validator(schema: Any) -> Callable[[Any], Awaitable[Any]]:
    """
    Build an async validation function for request handlers.

    Example:
        validate_order = create_validator(OrderRequest)
        order = await validate_order(payload)
    """
    adapter = None if _is_model(schema) else TypeAdapter(schema)

    async def validator(data: Any) -> Any:
        if adapter is None:
            return schema.model_validate(data)
        return adapter.validate_python(data)

    return validator


def merge_schemas(first: Type[BaseModel], second: Type[BaseModel]) -> Type[BaseModel]:
    """
    Combine the fields of two models into a new model.

    Fields of ``second`` replace same-named fields of ``first``. Validators
    defined on either model are not carried over.
    """
    fields: Dict[str, Any] = {}
    for model in (first, second):
        for name, info in model.model_fields.items():
            fields[name] = (info.annotation, copy.copy(info))
    return create_model(f"{first.__name__}{second.__name__}", **fields)


def create_discriminated_union(discriminator: str, *models: Type[BaseModel]) -> Any:
    """
    Tagged union of models selected by the ``discriminator`` field.

    Each model must declare the discriminator as a ``Literal`` field.

    Raises:
        ValueError: If fewer than two models are given
    """
    if len(models) < 2:
        raise ValueError("A discriminated union needs at least two models")
    return Annotated[Union[models], Field(discriminator=discriminator)]


__all__ = [
    "HttpResponseStatus",
    "SafeValidationResult",
    "create_discriminated_union",
    "create_id_schema",
    "create_validator",
    "flatten_validation_errors",
    "format_validation_errors",
    "merge_schemas",
    "nullable_field",
    "optional_field",
    "safe_validate",
    "schemas",
    "validate",
    "ValidationError",
]
