"""Type-erased JSON value used for metadata, tool arguments and results."""

import json
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from conductor.errors import InvalidJSONResponseError

T = TypeVar("T")


class OpaqueValue(BaseModel):
    """Serialized JSON text with explicit encode/decode.

    The payload is always stored as text so that values survive any storage
    backend unchanged, whatever Python type produced them.
    """

    model_config = ConfigDict(frozen=True)

    json_text: str = Field(default="{}", description="Serialized JSON payload")

    @classmethod
    def encode(cls, value: Any) -> "OpaqueValue":
        """Wrap any JSON-compatible value, pydantic models included."""
        if isinstance(value, OpaqueValue):
            return value
        if isinstance(value, BaseModel):
            return cls(json_text=value.model_dump_json())
        return cls(json_text=TypeAdapter(Any).dump_json(value).decode("utf-8"))

    @classmethod
    def from_json(cls, text: str) -> "OpaqueValue":
        """Wrap already serialized JSON text, validating that it parses.

        Raises:
            InvalidJSONResponseError: If the text is not valid JSON
        """
        try:
            json.loads(text)
        except ValueError as e:
            raise InvalidJSONResponseError(str(e)) from e
        return cls(json_text=text)

    def decode(self) -> Any:
        """Return the payload as plain Python data."""
        return json.loads(self.json_text)

    def decode_as(self, target: type[T]) -> T:
        """Validate the payload into the given type.

        Raises:
            InvalidJSONResponseError: If the payload does not match the type
        """
        try:
            return TypeAdapter(target).validate_json(self.json_text)
        except ValidationError as e:
            raise InvalidJSONResponseError(str(e)) from e

    def __str__(self) -> str:
        return self.json_text
