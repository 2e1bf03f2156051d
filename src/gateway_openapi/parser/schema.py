"""Type schema builder.

Expands structural types into JSON-schema fragments. Named types are
registered in a definitions dictionary owned by one builder, and a
placeholder is inserted before a type's members are expanded so that
self-referential and mutually-referential types terminate.
"""

import copy

from gateway_openapi.errors import UnresolvedTypeError
from gateway_openapi.parser.types import StructType, TypeExpr

REF_PREFIX = "#/components/schemas/"

PRIMITIVES: dict[str, dict] = {
    "str": {"type": "string"},
    "bytes": {"type": "string"},
    "int": {"type": "number"},
    "float": {"type": "number"},
    "Decimal": {"type": "number"},
    "bool": {"type": "boolean"},
    "datetime": {"type": "string", "format": "date-time"},
    "date": {"type": "string", "format": "date-time"},
    "UUID": {"type": "string", "format": "uuid"},
    "EmailStr": {"type": "string"},
    "HttpUrl": {"type": "string"},
    "AnyUrl": {"type": "string"},
    "dict": {"type": "object"},
    "object": {"type": "object"},
    "Any": {"type": "object"},
    "None": {"type": "object"},
}


def schema_ref(name: str) -> dict:
    return {"$ref": f"{REF_PREFIX}{name}"}


class SchemaBuilder:
    """Resolves type expressions against one service's type index.

    ``definitions`` is private to the builder for the whole analysis pass
    of a single service; the assembler reads it once analysis is done.
    """

    def __init__(self, types: dict[str, StructType] | None = None):
        self.types = types or {}
        self.definitions: dict[str, dict] = {}

    def resolve(self, expr: TypeExpr, context: str = "") -> dict:
        """Return an inline schema for primitives, or a reference for named types."""
        if expr.is_array:
            return {"type": "array", "items": self.resolve(expr.items, context)}

        if expr.name in PRIMITIVES:
            return copy.deepcopy(PRIMITIVES[expr.name])

        struct = self.types.get(expr.name)
        if struct is None:
            raise UnresolvedTypeError(expr.name, context)

        if struct.enum_values is not None:
            return {"type": "string", "enum": [str(v) for v in struct.enum_values]}

        if struct.name in self.definitions:
            return schema_ref(struct.name)

        self.definitions[struct.name] = {}

        properties = {}
        required = []
        for member in struct.members:
            properties[member.name] = self.resolve(member.type, f"{struct.name}.{member.name}")
            if not member.optional:
                required.append(member.name)

        schema: dict = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        self.definitions[struct.name] = schema
        return schema_ref(struct.name)

    def resolve_name(self, name: str, context: str = "") -> dict:
        return self.resolve(TypeExpr(name=name), context)
