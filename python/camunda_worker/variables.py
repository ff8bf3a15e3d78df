"""Typed variable codec.

The engine exchanges variables as tagged values: ``{"value", "type",
"valueInfo"}``. This module converts native Python values into that shape
and back.

Encoding rules (by native shape):
    - ``None`` -> Null
    - ``bool`` -> Boolean
    - ``int`` -> Long
    - ``float`` -> Double
    - ``str`` -> String
    - ``bytes`` (already serialized JSON) -> Object, used verbatim
    - mapping -> Object, JSON string, map value info
    - other collection -> Object, JSON string, list value info
    - anything else -> Object, best-effort JSON

Object values travel as JSON encoded strings. On the way in they are parsed
back into dicts (or lists, when the JSON root is an array); values that do
not parse stay as the raw string.

Example:
    >>> from camunda_worker.variables import Variables, create_variables
    >>>
    >>> variables = create_variables({"amount": 30, "items": ["a", "b"]})
    >>> variables["amount"].type
    'Long'
    >>> variables.get_int("amount")
    30
    >>> variables.get_object("items")
    ['a', 'b']
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Set
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler
from pydantic.alias_generators import to_camel
from pydantic_core import core_schema, to_json

from .exceptions import VariableDecodeError, VariableNotFoundError, VariableTypeMismatchError

JSON_DATA_FORMAT = "application/json"

LIST_TYPE_NAME = "java.util.ArrayList"
MAP_TYPE_NAME = "java.util.HashMap"
OBJECT_TYPE_NAME = "java.lang.Object"


class ValueType(str, Enum):
    """Type tags understood by the engine."""

    STRING = "String"
    LONG = "Long"
    INTEGER = "Integer"
    SHORT = "Short"
    DOUBLE = "Double"
    BOOLEAN = "Boolean"
    JSON = "Json"
    OBJECT = "Object"
    NULL = "Null"
    DATE = "Date"
    BYTES = "Bytes"


# Tags are compared case-insensitively; the engine is not consistent about case
_INTEGER_TYPES = frozenset({"integer", "long", "short"})


class ValueInfo(BaseModel):
    """Value-type-dependent metadata.

    Only populated for Object-tagged variables, where it records the origin
    type name and the serialization format of the embedded payload.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    object_type_name: str | None = Field(
        default=None,
        description="String representation of the object's type name.",
    )
    serialization_data_format: str | None = Field(
        default=None,
        description="Serialization format used to store the variable.",
    )


class Variable(BaseModel):
    """A single tagged value.

    Attributes:
        value: The raw value. For Object tags this is the JSON string on the
            wire and the parsed dict or list after decoding.
        type: Type tag, see ValueType.
        value_info: Optional metadata for Object-tagged values.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    value: Any = None
    type: str = ValueType.NULL.value
    value_info: ValueInfo | None = None

    @property
    def type_tag(self) -> str:
        """Lower-cased type tag, for comparisons."""
        return self.type.lower()

    @classmethod
    def from_native(cls, value: Any) -> Variable:
        """Encode a native value, choosing the tag from its shape.

        Integers are tagged Long and floats Double, rather than tagging
        every number Long, so fractional values survive the round trip.

        Args:
            value: Any Python value.

        Returns:
            An encoded Variable ready to be sent to the engine.
        """
        if value is None:
            return cls(value=None, type=ValueType.NULL.value)
        if isinstance(value, bool):
            return cls(value=value, type=ValueType.BOOLEAN.value)
        if isinstance(value, int):
            return cls(value=value, type=ValueType.LONG.value)
        if isinstance(value, float):
            return cls(value=value, type=ValueType.DOUBLE.value)
        if isinstance(value, str):
            return cls(value=value, type=ValueType.STRING.value)
        return cls.object_from_native(value)

    @classmethod
    def object_from_native(cls, value: Any) -> Variable:
        """Encode a value as an Object-tagged JSON string.

        Byte payloads are treated as already serialized JSON and used as-is.
        """
        if isinstance(value, (bytes, bytearray)):
            serialized = bytes(value).decode("utf-8")
            type_name = _type_name_for_json(serialized)
        elif isinstance(value, Mapping):
            serialized = _dump_json(dict(value))
            type_name = MAP_TYPE_NAME
        elif isinstance(value, (list, tuple, Set)):
            serialized = _dump_json(list(value))
            type_name = LIST_TYPE_NAME
        else:
            serialized = _dump_json(value)
            type_name = _type_name_for_json(serialized)

        return cls(
            value=serialized,
            type=ValueType.OBJECT.value,
            value_info=ValueInfo(
                object_type_name=type_name,
                serialization_data_format=JSON_DATA_FORMAT,
            ),
        )

    @classmethod
    def from_wire(cls, data: Mapping[str, Any] | Variable) -> Variable:
        """Decode a variable received from the engine.

        Object-tagged JSON strings are parsed, see ``decoded()``.
        """
        variable = data if isinstance(data, Variable) else cls.model_validate(data)
        return variable.decoded()

    def decoded(self) -> Variable:
        """Return this variable with an embedded Object payload parsed.

        The payload is parsed as a JSON object first. When the root turns out
        to be an array the value becomes a list and the value info is marked
        with the list type. Anything else is left as the raw string.
        """
        if self.type_tag != "object" or not isinstance(self.value, str):
            return self

        data_format = self.value_info.serialization_data_format if self.value_info else None
        if data_format not in (None, JSON_DATA_FORMAT):
            return self

        try:
            parsed = json.loads(self.value)
        except ValueError:
            return self

        if isinstance(parsed, dict):
            return self.model_copy(update={"value": parsed})

        if isinstance(parsed, list):
            info = (self.value_info or ValueInfo()).model_copy(
                update={
                    "object_type_name": LIST_TYPE_NAME,
                    "serialization_data_format": JSON_DATA_FORMAT,
                }
            )
            return self.model_copy(update={"value": parsed, "value_info": info})

        return self

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the engine's ``{value, type, valueInfo}`` shape.

        Object and Json values that were decoded (or built) as native
        structures are serialized back into JSON strings.
        """
        value = self.value
        value_info = self.value_info

        if self.type_tag == "object":
            if not isinstance(value, str):
                encoded = Variable.object_from_native(value)
                value = encoded.value
                value_info = value_info or encoded.value_info
            if value_info is None:
                value_info = ValueInfo(
                    object_type_name=_type_name_for_json(value),
                    serialization_data_format=JSON_DATA_FORMAT,
                )
        elif self.type_tag == "json" and not isinstance(value, str):
            value = _dump_json(value)

        wire: dict[str, Any] = {"value": value, "type": self.type}
        if value_info is not None:
            wire["valueInfo"] = value_info.model_dump(by_alias=True, exclude_none=True)
        return wire


class Variables(dict[str, Variable]):
    """Mapping of variable name to Variable with typed accessors.

    Typed getters raise VariableNotFoundError when the name is absent and
    VariableTypeMismatchError when the stored tag disagrees with the
    requested interpretation. Values are never coerced across tags.

    Example:
        >>> variables = Variables()
        >>> variables.add_string("customer", "ACME")
        >>> variables.get_string("customer")
        'ACME'
        >>> variables.get_int("customer")
        Traceback (most recent call last):
        ...
        camunda_worker.exceptions.VariableTypeMismatchError: cannot convert value type String to Integer
    """

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: GetCoreSchemaHandler,
    ) -> core_schema.CoreSchema:
        """Validate from the wire mapping and serialize back to it."""
        return core_schema.no_info_plain_validator_function(
            cls._validate,
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda variables: variables.to_wire(),
            ),
        )

    @classmethod
    def _validate(cls, value: Any) -> Variables:
        if isinstance(value, cls):
            return value
        if value is None or isinstance(value, Mapping):
            return cls.from_wire(value)
        raise ValueError(f"expected a mapping of variables, got {type(value).__name__}")

    @classmethod
    def from_wire(cls, data: Mapping[str, Any] | None) -> Variables:
        """Decode a ``{name: {value, type, valueInfo}}`` mapping."""
        variables = cls()
        for name, raw in (data or {}).items():
            if raw is None:
                variables[name] = Variable(value=None, type=ValueType.NULL.value)
            else:
                variables[name] = Variable.from_wire(raw)
        return variables

    def to_wire(self) -> dict[str, dict[str, Any]]:
        """Serialize every variable to its wire shape."""
        return {name: variable.to_wire() for name, variable in self.items()}

    def to_dict(self) -> dict[str, Any]:
        """Return plain values without type tags or value info."""
        return {name: variable.value for name, variable in self.items()}

    # =========================================================================
    # Typed extraction
    # =========================================================================

    def get_string(self, name: str) -> str:
        variable = self._require(name)
        if variable.type_tag != "string":
            raise VariableTypeMismatchError(name, variable.type, ValueType.STRING.value)
        return variable.value

    def get_int(self, name: str) -> int:
        variable = self._require(name)
        if variable.type_tag not in _INTEGER_TYPES:
            raise VariableTypeMismatchError(name, variable.type, ValueType.INTEGER.value)
        return int(variable.value)

    def get_float(self, name: str) -> float:
        variable = self._require(name)
        if variable.type_tag != "double":
            raise VariableTypeMismatchError(name, variable.type, ValueType.DOUBLE.value)
        return float(variable.value)

    def get_bool(self, name: str) -> bool:
        variable = self._require(name)
        if variable.type_tag != "boolean":
            raise VariableTypeMismatchError(name, variable.type, ValueType.BOOLEAN.value)
        return bool(variable.value)

    def get_json(self, name: str) -> Any:
        """Return the parsed content of a Json-tagged variable."""
        variable = self._require(name)
        if variable.type_tag != "json":
            raise VariableTypeMismatchError(name, variable.type, ValueType.JSON.value)
        if isinstance(variable.value, (str, bytes, bytearray)):
            try:
                return json.loads(variable.value)
            except ValueError as e:
                raise VariableDecodeError(name, variable.type, str(e)) from e
        return variable.value

    def get_object(self, name: str) -> Any:
        """Return the decoded content of an Object-tagged variable.

        Payloads that could not be parsed are returned as the raw string.
        """
        variable = self._require(name)
        if variable.type_tag != "object":
            raise VariableTypeMismatchError(name, variable.type, ValueType.OBJECT.value)
        return variable.decoded().value

    def get_value(self, name: str, default: Any = None) -> Any:
        """Return the raw value of a variable, or ``default`` when absent."""
        variable = self.get(name)
        if variable is None:
            return default
        return variable.value

    def _require(self, name: str) -> Variable:
        variable = self.get(name)
        if variable is None:
            raise VariableNotFoundError(f"variable '{name}' not found", name)
        return variable

    # =========================================================================
    # Typed insertion
    # =========================================================================

    def add_string(self, name: str, value: str) -> None:
        self[name] = Variable(value=value, type=ValueType.STRING.value)

    def add_int(self, name: str, value: int) -> None:
        self[name] = Variable(value=value, type=ValueType.LONG.value)

    def add_bool(self, name: str, value: bool) -> None:
        self[name] = Variable(value=value, type=ValueType.BOOLEAN.value)

    def add_json(self, name: str, value: Any) -> None:
        """Add a Json-tagged variable, serializing ``value``."""
        self.add_json_bytes(name, to_json(value, fallback=str))

    def add_json_bytes(self, name: str, data: bytes | str) -> None:
        """Add a Json-tagged variable from an already serialized payload."""
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("utf-8")
        self[name] = Variable(value=data, type=ValueType.JSON.value)

    def add_object(self, name: str, value: Any) -> None:
        """Add an Object-tagged variable carrying ``value`` as JSON."""
        self[name] = Variable.object_from_native(value)

    def add_value(self, name: str, value: Any) -> None:
        """Add a variable, choosing the tag from the value's shape."""
        self[name] = Variable.from_native(value)


def create_variables(values: Mapping[str, Any] | None) -> Variables:
    """Build a Variables collection from plain native values.

    Variable instances are kept as they are; everything else is encoded
    with ``Variable.from_native``.

    Example:
        >>> create_variables({"approved": True})["approved"].type
        'Boolean'
    """
    variables = Variables()
    for name, value in (values or {}).items():
        if isinstance(value, Variable):
            variables[name] = value
        else:
            variables.add_value(name, value)
    return variables


def _dump_json(value: Any) -> str:
    return to_json(value, fallback=str).decode("utf-8")


def _type_name_for_json(serialized: str) -> str:
    stripped = serialized.lstrip()
    if stripped.startswith("["):
        return LIST_TYPE_NAME
    if stripped.startswith("{"):
        return MAP_TYPE_NAME
    return OBJECT_TYPE_NAME


__all__ = [
    "JSON_DATA_FORMAT",
    "LIST_TYPE_NAME",
    "MAP_TYPE_NAME",
    "OBJECT_TYPE_NAME",
    "ValueType",
    "ValueInfo",
    "Variable",
    "Variables",
    "create_variables",
]
