"""Shape descriptions and JSON-Schema-like parameter descriptors.

A *shape* is a small, explicit value describing the structure of tool
arguments or of a structured model reply::

    person = Record((
        Field("name", STRING, description="Full name"),
        Field("age", INTEGER, optional=True),
    ))
    derive(person).to_dict()
    # {"type": "object",
    #  "properties": {"name": {"type": "string", "description": "Full name"},
    #                 "age": {"type": "integer"}},
    #  "required": ["name"],
    #  "additionalProperties": False}

``derive`` is a plain structural fold over that value.  Anything it does
not recognise degrades to a property-less ``object`` rather than failing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

_PRIMITIVE_KINDS = ("string", "integer", "number", "boolean")


@dataclass(frozen=True)
class Primitive:
    kind: str

    def __post_init__(self) -> None:
        if self.kind not in _PRIMITIVE_KINDS:
            raise ValueError(f"Unknown primitive kind: {self.kind!r}")


STRING = Primitive("string")
INTEGER = Primitive("integer")
NUMBER = Primitive("number")
BOOLEAN = Primitive("boolean")


@dataclass(frozen=True)
class ArrayOf:
    items: Any


@dataclass(frozen=True)
class Field:
    """One record field.  ``optional`` fields are left out of ``required``."""

    name: str
    shape: Any
    optional: bool = False
    description: str = ""


@dataclass(frozen=True)
class Record:
    fields: tuple[Field, ...] = ()

    def __post_init__(self) -> None:
        # Accept any iterable of fields but store a tuple so the shape stays hashable
        object.__setattr__(self, "fields", tuple(self.fields))
        seen: set[str] = set()
        for f in self.fields:
            if f.name in seen:
                raise ValueError(f"Duplicate field name in record: {f.name!r}")
            seen.add(f.name)


Shape = Union[Primitive, ArrayOf, Record, type, None]

# Builtin types accepted as shorthand for the primitives
_BUILTIN_ALIASES: dict[Any, Primitive] = {
    str: STRING,
    int: INTEGER,
    float: NUMBER,
    bool: BOOLEAN,
}


@dataclass
class ParamDescriptor:
    """Subset of JSON Schema advertised to the model."""

    kind: str
    description: str = ""
    properties: dict[str, ParamDescriptor] | None = None
    required: list[str] = field(default_factory=list)
    items: ParamDescriptor | None = None
    closed: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.kind}
        if self.description:
            data["description"] = self.description
        if self.properties is not None:
            data["properties"] = {k: v.to_dict() for k, v in self.properties.items()}
        if self.required:
            data["required"] = list(self.required)
        if self.items is not None:
            data["items"] = self.items.to_dict()
        if self.closed:
            data["additionalProperties"] = False
        return data


def _resolve(shape: Any) -> Any:
    try:
        return _BUILTIN_ALIASES.get(shape, shape)
    except TypeError:
        # Unhashable values can never be aliases
        return shape


def derive(shape: Shape) -> ParamDescriptor:
    """Derive the descriptor for *shape*.  Total, never raises."""
    shape = _resolve(shape)

    if isinstance(shape, Primitive):
        return ParamDescriptor(kind=shape.kind)

    if isinstance(shape, ArrayOf):
        return ParamDescriptor(kind="array", items=derive(shape.items))

    if isinstance(shape, Record):
        properties: dict[str, ParamDescriptor] = {}
        required: list[str] = []
        for f in shape.fields:
            prop = derive(f.shape)
            if f.description:
                prop.description = f.description
            properties[f.name] = prop
            if not f.optional:
                required.append(f.name)
        return ParamDescriptor(
            kind="object",
            properties=properties,
            required=required,
            closed=True,
        )

    return ParamDescriptor(kind="object")


def conforms(shape: Shape, value: Any) -> bool:
    """Return True if a decoded JSON *value* fits *shape*.

    Missing record fields are tolerated; present ones must match.
    """
    shape = _resolve(shape)

    if isinstance(shape, Primitive):
        if shape.kind == "string":
            return isinstance(value, str)
        if shape.kind == "boolean":
            return isinstance(value, bool)
        if isinstance(value, bool):
            return False
        if shape.kind == "integer":
            return isinstance(value, int) or (
                isinstance(value, float) and value.is_integer()
            )
        return isinstance(value, (int, float))

    if isinstance(shape, ArrayOf):
        return isinstance(value, list) and all(conforms(shape.items, v) for v in value)

    if isinstance(shape, Record):
        if not isinstance(value, dict):
            return False
        return all(
            conforms(f.shape, value[f.name])
            for f in shape.fields
            if value.get(f.name) is not None
        )

    # Permissive fallback matches anything
    return True
