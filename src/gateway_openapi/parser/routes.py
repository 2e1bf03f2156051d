"""Static route analyzer for decorated Python route groups.

A route group is a class decorated with ``@controller("users")``. Each
method carrying a verb decorator (``@get("/{id}")``, ``@post()``, ...) is a
route. Documentation comes from ``@api_tags``, ``@api_operation`` and
``@api_response``; parameters are marked with ``Body[T]``, ``Query[T]``,
``Param[T]`` or ``Annotated[T, Body()]``. Nothing is imported: decorators
are read from the syntax tree and looked up by name in a fixed table.
"""

import ast
import re
from typing import NamedTuple

from gateway_openapi.errors import AnalysisError
from gateway_openapi.parser.base import (
    ParameterDescriptor,
    ResponseDescriptor,
    RouteDefinition,
    ServiceSpecification,
)
from gateway_openapi.parser.schema import SchemaBuilder
from gateway_openapi.parser.types import parse_annotation

HTTP_METHODS = ("get", "post", "put", "delete", "patch", "options", "head")

# Normalized decorator name -> metadata kind
METADATA_KINDS = {
    "controller": "group",
    "router": "group",
    "apitags": "tags",
    "apioperation": "operation",
    "apiresponse": "response",
    **{m: "verb" for m in HTTP_METHODS},
}

PARAM_MARKERS = {"body": "body", "query": "query", "param": "path", "path": "path"}

PLACEHOLDER_PATTERN = re.compile(r":(\w+)|<(?:\w+:)?(\w+)>|\{(\w+)(?::[^}]*)?\}")


class Annotation(NamedTuple):
    kind: str
    name: str
    args: list[ast.expr]
    keywords: dict[str, ast.expr]
    lineno: int


def _normalize(name: str) -> str:
    return name.replace("_", "").lower()


def _last_name(node: ast.AST) -> str | None:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Subscript):
        return _last_name(node.value)
    return None


def read_annotations(decorators: list[ast.expr]) -> list[Annotation]:
    """Turn a decorator list into metadata entries, ignoring unknown decorators."""
    annotations = []
    for dec in decorators:
        call = dec if isinstance(dec, ast.Call) else None
        name = _last_name(call.func if call else dec)
        if name is None:
            continue
        kind = METADATA_KINDS.get(_normalize(name))
        if kind is None:
            continue
        annotations.append(
            Annotation(
                kind=kind,
                name=_normalize(name),
                args=list(call.args) if call else [],
                keywords={kw.arg: kw.value for kw in call.keywords if kw.arg} if call else {},
                lineno=dec.lineno,
            )
        )
    return annotations


def _find(annotations: list[Annotation], kind: str) -> Annotation | None:
    return next((a for a in annotations if a.kind == kind), None)


def normalize_path(path: str) -> str:
    """Rewrite every placeholder style to ``{name}`` and tidy slashes."""
    path = PLACEHOLDER_PATTERN.sub(lambda m: "{%s}" % next(g for g in m.groups() if g), path)
    return "/" + "/".join(seg for seg in path.split("/") if seg)


def join_path(prefix: str, sub_path: str) -> str:
    return normalize_path(f"/{prefix}/{sub_path}")


def path_parameters(path: str) -> list[str]:
    names: list[str] = []
    for name in re.findall(r"\{(\w+)\}", normalize_path(path)):
        if name not in names:
            names.append(name)
    return names


def module_constants(tree: ast.Module) -> dict[str, str | int]:
    """Module-level string and int constants, usable as decorator arguments."""
    constants = {}
    for stmt in tree.body:
        if isinstance(stmt, ast.Assign) and len(stmt.targets) == 1:
            target, value = stmt.targets[0], stmt.value
        elif isinstance(stmt, ast.AnnAssign):
            target, value = stmt.target, stmt.value
        else:
            continue
        if isinstance(target, ast.Name) and isinstance(value, ast.Constant) and isinstance(value.value, (str, int)):
            constants[target.id] = value.value
    return constants


class RouteAnalyzer:
    """Extracts route groups from one module into a specification fragment."""

    def __init__(self, builder: SchemaBuilder, filename: str = "<source>", constants: dict | None = None):
        self.builder = builder
        self.filename = filename
        self.constants = constants or {}

    def _error(self, node: ast.AST, message: str) -> AnalysisError:
        return AnalysisError(f"{self.filename}:{getattr(node, 'lineno', '?')}: {message}")

    def _literal(self, node: ast.AST | None, what: str):
        if node is None:
            return None
        if isinstance(node, ast.Constant) and isinstance(node.value, (str, int)):
            return node.value
        if isinstance(node, ast.Name) and node.id in self.constants:
            return self.constants[node.id]
        raise self._error(node, f"{what} must be a literal, got '{ast.unparse(node)}'")

    def _string_list(self, node: ast.AST, what: str) -> list[str]:
        if isinstance(node, (ast.List, ast.Tuple)):
            return [str(self._literal(elt, what)) for elt in node.elts]
        return [str(self._literal(node, what))]

    def _arg(self, annotation: Annotation, index: int, *keywords: str) -> ast.expr | None:
        for kw in keywords:
            if kw in annotation.keywords:
                return annotation.keywords[kw]
        if len(annotation.args) > index:
            return annotation.args[index]
        return None

    def analyze(self, tree: ast.Module) -> ServiceSpecification:
        fragment = ServiceSpecification()
        for node in ast.walk(tree):
            if isinstance(node, ast.ClassDef):
                self._analyze_group(node, fragment)
        fragment.definitions = dict(self.builder.definitions)
        return fragment

    def _analyze_group(self, cls: ast.ClassDef, fragment: ServiceSpecification) -> None:
        annotations = read_annotations(cls.decorator_list)
        group = _find(annotations, "group")
        if group is None:
            return

        prefix = self._literal(self._arg(group, 0, "prefix", "path"), "route group prefix") or ""
        tags = self._group_tags(annotations, group, str(prefix))
        for tag in tags:
            if tag not in fragment.tags:
                fragment.tags.append(tag)

        for member in cls.body:
            if isinstance(member, (ast.FunctionDef, ast.AsyncFunctionDef)):
                route = self._analyze_method(member, str(prefix), tags)
                if route is not None:
                    fragment.add_route(route)

    def _group_tags(self, annotations: list[Annotation], group: Annotation, prefix: str) -> list[str]:
        api_tags = _find(annotations, "tags")
        if api_tags is not None and api_tags.args:
            tags = []
            for arg in api_tags.args:
                tags.extend(self._string_list(arg, "tag"))
            return tags
        if "tags" in group.keywords:
            return self._string_list(group.keywords["tags"], "tag")
        segments = [s for s in prefix.split("/") if s and not PLACEHOLDER_PATTERN.fullmatch(s)]
        return [segments[0]] if segments else ["default"]

    def _analyze_method(self, func: ast.FunctionDef | ast.AsyncFunctionDef, prefix: str, tags: list[str]) -> RouteDefinition | None:
        annotations = read_annotations(func.decorator_list)
        verb = _find(annotations, "verb")
        if verb is None:
            return None

        sub_path = self._literal(self._arg(verb, 0, "path"), "route path") or ""
        path = join_path(prefix, str(sub_path))

        operation = _find(annotations, "operation")
        summary = None
        operation_id = None
        if operation is not None:
            summary = self._literal(self._arg(operation, 0, "summary"), "operation summary")
            operation_id = self._literal(operation.keywords.get("operation_id") or operation.keywords.get("operationId"), "operation id")
        if not summary:
            doc = ast.get_docstring(func)
            summary = doc.strip().splitlines()[0] if doc and doc.strip() else f"{verb.name.upper()} {path}"

        parameters = [
            ParameterDescriptor(name=name, location="path", required=True, param_type="string")
            for name in path_parameters(path)
        ]
        parameters.extend(self._method_parameters(func))

        return RouteDefinition(
            method=verb.name,
            path=path,
            summary=str(summary),
            operation_id=str(operation_id or func.name),
            tags=list(tags),
            parameters=parameters,
            responses=self._responses(annotations, func.name),
        )

    def _param_marker(self, annotation: ast.expr | None, default: ast.expr | None) -> tuple[str | None, ast.expr | None]:
        if isinstance(annotation, ast.Subscript):
            base = _last_name(annotation.value)
            if base and _normalize(base) in PARAM_MARKERS:
                return PARAM_MARKERS[_normalize(base)], annotation.slice
            if base == "Annotated" and isinstance(annotation.slice, ast.Tuple):
                type_node, *extras = annotation.slice.elts
                for extra in extras:
                    name = _last_name(extra.func if isinstance(extra, ast.Call) else extra)
                    if name and _normalize(name) in PARAM_MARKERS:
                        return PARAM_MARKERS[_normalize(name)], type_node
        if isinstance(default, ast.Call):
            name = _last_name(default.func)
            if name and _normalize(name) in PARAM_MARKERS:
                return PARAM_MARKERS[_normalize(name)], annotation
        return None, None

    def _method_parameters(self, func: ast.FunctionDef | ast.AsyncFunctionDef) -> list[ParameterDescriptor]:
        args = func.args
        positional = args.posonlyargs + args.args
        defaults: list[ast.expr | None] = [None] * (len(positional) - len(args.defaults)) + list(args.defaults)
        pairs = list(zip(positional, defaults)) + list(zip(args.kwonlyargs, args.kw_defaults))

        parameters = []
        body_seen = False
        for arg, default in pairs:
            if arg.arg in ("self", "cls"):
                continue
            marker, type_node = self._param_marker(arg.annotation, default)
            if marker == "query":
                parameters.append(ParameterDescriptor(name=arg.arg, location="query", required=False, param_type="string"))
            elif marker == "body":
                if body_seen:
                    raise self._error(arg, f"'{func.name}' declares more than one request body")
                body_seen = True
                schema = self.builder.resolve(parse_annotation(type_node), f"{func.name}({arg.arg})")
                parameters.append(ParameterDescriptor(name=arg.arg, location="body", required=True, param_type="object", payload_schema=schema))
        return parameters

    def _responses(self, annotations: list[Annotation], func_name: str) -> list[ResponseDescriptor]:
        responses = []
        for ann in annotations:
            if ann.kind != "response":
                continue
            status = self._literal(self._arg(ann, 0, "status", "status_code"), "response status")
            description = self._literal(self._arg(ann, 1, "description"), "response description")
            type_node = ann.keywords.get("type") or ann.keywords.get("model")
            schema = None
            if type_node is not None:
                schema = self.builder.resolve(parse_annotation(type_node), f"{func_name} response")
            responses.append(
                ResponseDescriptor(
                    status_code=str(status or 200),
                    description=str(description or "Success"),
                    payload_schema=schema,
                )
            )
        if not responses:
            responses.append(ResponseDescriptor())
        return responses


def analyze_source(source: str, builder: SchemaBuilder, filename: str = "<source>") -> ServiceSpecification:
    """Analyze module source text into a specification fragment."""
    try:
        tree = ast.parse(source, filename=filename)
    except SyntaxError as e:
        raise AnalysisError(f"{filename}:{e.lineno}: SyntaxError: {e.msg}") from e
    return RouteAnalyzer(builder, filename, module_constants(tree)).analyze(tree)
