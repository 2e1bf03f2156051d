"""Structural type index built from Python source.

Payload types are never imported: class bodies and annotations are read
from the syntax tree and turned into ``StructType`` / ``TypeExpr`` models
that the schema builder expands.
"""

import ast
from collections.abc import Iterable

from pydantic import BaseModel

ARRAY_NAMES = {
    "list", "List", "Sequence", "MutableSequence", "Iterable", "Collection",
    "set", "Set", "frozenset", "FrozenSet", "tuple", "Tuple",
}
MAPPING_NAMES = {"dict", "Dict", "Mapping", "MutableMapping", "DefaultDict", "OrderedDict"}
ENUM_BASES = {"Enum", "StrEnum", "IntEnum", "Flag", "IntFlag"}


class TypeExpr(BaseModel):
    """A type as written in an annotation: a name, or an array of items."""

    name: str
    items: "TypeExpr | None" = None
    optional: bool = False

    @property
    def is_array(self) -> bool:
        return self.items is not None


class Member(BaseModel):
    name: str
    type: TypeExpr
    optional: bool = False


class StructType(BaseModel):
    """A declared class: named members, or enum values for Enum subclasses."""

    name: str
    members: list[Member] = []
    enum_values: list | None = None


TypeExpr.model_rebuild()


def _last_name(node: ast.AST | None) -> str | None:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Subscript):
        return _last_name(node.value)
    return None


def _union(options: list[TypeExpr]) -> TypeExpr:
    concrete = [o for o in options if o.name != "None"]
    optional = len(concrete) < len(options)
    if len(concrete) == 1:
        return concrete[0].model_copy(update={"optional": optional or concrete[0].optional})
    # Unions of several types have no structural equivalent.
    return TypeExpr(name="Any", optional=optional)


def _flatten_bitor(node: ast.AST) -> list[ast.AST]:
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _flatten_bitor(node.left) + _flatten_bitor(node.right)
    return [node]


def parse_annotation(node: ast.AST | None) -> TypeExpr:
    """Convert an annotation node into a ``TypeExpr``."""
    if node is None:
        return TypeExpr(name="Any")

    if isinstance(node, ast.Constant):
        if node.value is None:
            return TypeExpr(name="None")
        if isinstance(node.value, str):
            # Forward reference: "User" or "list[User]"
            try:
                inner = ast.parse(node.value, mode="eval").body
            except SyntaxError:
                return TypeExpr(name=node.value.strip())
            return parse_annotation(inner)
        return TypeExpr(name="Any")

    if isinstance(node, (ast.Name, ast.Attribute)):
        name = _last_name(node)
        if name in ARRAY_NAMES:
            return TypeExpr(name="array", items=TypeExpr(name="Any"))
        if name in MAPPING_NAMES:
            return TypeExpr(name="dict")
        return TypeExpr(name=name)

    if isinstance(node, ast.List) and len(node.elts) == 1:
        return TypeExpr(name="array", items=parse_annotation(node.elts[0]))

    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _union([parse_annotation(n) for n in _flatten_bitor(node)])

    if isinstance(node, ast.Subscript):
        base = _last_name(node.value)
        args = list(node.slice.elts) if isinstance(node.slice, ast.Tuple) else [node.slice]

        if base == "Optional":
            return _union([parse_annotation(args[0]), TypeExpr(name="None")])
        if base == "Union":
            return _union([parse_annotation(a) for a in args])
        if base == "Annotated":
            return parse_annotation(args[0])
        if base == "Literal":
            return TypeExpr(name="str")
        if base in ARRAY_NAMES:
            return TypeExpr(name="array", items=parse_annotation(args[0]))
        if base in MAPPING_NAMES:
            return TypeExpr(name="dict")
        # User generics (Page[User]) resolve to their declared class.
        return TypeExpr(name=base or "Any")

    return TypeExpr(name="Any")


def _has_default(value: ast.AST | None) -> bool:
    if value is None:
        return False
    if isinstance(value, ast.Call) and _last_name(value.func) in ("Field", "field"):
        if any(kw.arg in ("default", "default_factory") for kw in value.keywords):
            return True
        if value.args:
            first = value.args[0]
            return not (isinstance(first, ast.Constant) and first.value is Ellipsis)
        return False
    return True


def _is_enum(node: ast.ClassDef, classes: dict[str, ast.ClassDef], seen: set[str]) -> bool:
    for base in node.bases:
        name = _last_name(base)
        if name in ENUM_BASES:
            return True
        if name in classes and name not in seen:
            if _is_enum(classes[name], classes, seen | {name}):
                return True
    return False


def _enum_values(node: ast.ClassDef) -> list:
    values = []
    for stmt in node.body:
        if not isinstance(stmt, ast.Assign) or len(stmt.targets) != 1:
            continue
        target = stmt.targets[0]
        if not isinstance(target, ast.Name) or target.id.startswith("_"):
            continue
        if isinstance(stmt.value, ast.Constant):
            values.append(stmt.value.value)
        else:
            values.append(target.id.lower())
    return values


def _build_struct(
    name: str,
    classes: dict[str, ast.ClassDef],
    types: dict[str, StructType],
    visiting: set[str],
) -> StructType:
    if name in types:
        return types[name]
    node = classes[name]

    if _is_enum(node, classes, {name}):
        types[name] = StructType(name=name, enum_values=_enum_values(node))
        return types[name]

    members: dict[str, Member] = {}
    visiting.add(name)
    for base in node.bases:
        base_name = _last_name(base)
        if base_name in classes and base_name not in visiting:
            for member in _build_struct(base_name, classes, types, visiting).members:
                members[member.name] = member
    visiting.discard(name)

    for stmt in node.body:
        if not isinstance(stmt, ast.AnnAssign) or not isinstance(stmt.target, ast.Name):
            continue
        field_name = stmt.target.id
        if field_name.startswith("_") or _last_name(stmt.annotation) == "ClassVar":
            continue
        expr = parse_annotation(stmt.annotation)
        members[field_name] = Member(
            name=field_name,
            type=expr,
            optional=expr.optional or _has_default(stmt.value),
        )

    types[name] = StructType(name=name, members=list(members.values()))
    return types[name]


def index_types(trees: Iterable[ast.Module]) -> dict[str, StructType]:
    """Index every class declared in the given modules by name.

    The first declaration of a name wins, so callers should pass modules
    in a stable order.
    """
    classes: dict[str, ast.ClassDef] = {}
    for tree in trees:
        for node in ast.walk(tree):
            if isinstance(node, ast.ClassDef):
                classes.setdefault(node.name, node)

    types: dict[str, StructType] = {}
    for name in classes:
        _build_struct(name, classes, types, set())
    return types
