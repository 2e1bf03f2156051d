"""Specification assembler.

Runs the route analyzer over each service's own tree and its library
dependencies, renders one OpenAPI 3 document per service, and merges those
documents into the combined specification.
"""

import ast
import copy
import logging
import re
from pathlib import Path

from gateway_openapi.errors import AnalysisError
from gateway_openapi.parser.base import (
    ResponseDescriptor,
    RouteDefinition,
    ServiceDescriptor,
    ServiceSpecification,
)
from gateway_openapi.parser.detect import is_route_module, iter_source_files
from gateway_openapi.parser.routes import RouteAnalyzer, module_constants, normalize_path
from gateway_openapi.parser.schema import SchemaBuilder
from gateway_openapi.parser.types import index_types

logger = logging.getLogger(__name__)

OPENAPI_VERSION = "3.0.3"
JSON = "application/json"

HEALTH_SCHEMA = {
    "type": "object",
    "properties": {
        "status": {"type": "string", "example": "ok"},
        "service": {"type": "string"},
    },
}


def health_route(service: ServiceDescriptor) -> RouteDefinition:
    return RouteDefinition(
        method="get",
        path=normalize_path(f"{service.prefix}/health"),
        summary="Health check",
        operation_id=f"{service.name.replace('-', '_')}_health_check",
        tags=["health"],
        responses=[
            ResponseDescriptor(
                status_code="200",
                description="Service is healthy",
                payload_schema=copy.deepcopy(HEALTH_SCHEMA),
            )
        ],
    )


def _service_files(service: ServiceDescriptor, workspace_root: Path) -> list[Path]:
    files: list[Path] = []
    roots = [service.project.root] + [lib.root for lib in service.libraries]
    for root in roots:
        for path in iter_source_files(workspace_root / root):
            if path not in files:
                files.append(path)
    return files


def _parse_modules(files: list[Path]) -> list[tuple[Path, str, ast.Module]]:
    modules = []
    for path in files:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise AnalysisError(f"Cannot read {path}: {e}") from e
        try:
            tree = ast.parse(text, filename=str(path))
        except SyntaxError as e:
            if is_route_module(text):
                raise AnalysisError(f"{path}:{e.lineno}: SyntaxError: {e.msg}") from e
            logger.warning("Skipping unparsable module %s: %s", path, e.msg)
            continue
        modules.append((path, text, tree))
    return modules


def build_service_specification(
    service: ServiceDescriptor,
    workspace_root: Path,
    version: str = "1.0.0",
) -> ServiceSpecification:
    """Analyze one service and its libraries into a single specification."""
    modules = _parse_modules(_service_files(service, workspace_root))
    builder = SchemaBuilder(index_types(tree for _, _, tree in modules))

    spec = ServiceSpecification(
        title=service.title,
        version=version,
        description=f"Auto-generated API documentation for {service.project.name}",
        prefix=service.prefix,
        tags=["health"],
        server={"url": service.backend_url, "description": f"{service.project.name} service"},
    )
    spec.add_route(health_route(service))

    for path, text, tree in modules:
        if not is_route_module(text):
            continue
        fragment = RouteAnalyzer(builder, str(path), module_constants(tree)).analyze(tree)
        logger.info("  %s: %d routes", path.relative_to(workspace_root), fragment.route_count)
        spec.merge(fragment)

    spec.definitions = dict(builder.definitions)
    if spec.tags == ["health"]:
        spec.tags.append(service.name)
    return spec


def render_operation(route: RouteDefinition) -> dict:
    operation: dict = {
        "summary": route.summary,
        "operationId": route.operation_id,
        "tags": route.tags or ["default"],
    }

    parameters = [p for p in route.parameters if p.location != "body"]
    if parameters:
        operation["parameters"] = [
            {"name": p.name, "in": p.location, "required": p.required, "schema": {"type": p.param_type}}
            for p in parameters
        ]

    body = next((p for p in route.parameters if p.location == "body"), None)
    if body is not None:
        operation["requestBody"] = {
            "required": True,
            "content": {JSON: {"schema": copy.deepcopy(body.payload_schema or {"type": "object"})}},
        }

    responses = {}
    for response in route.responses:
        entry: dict = {"description": response.description}
        if response.payload_schema is not None:
            entry["content"] = {JSON: {"schema": copy.deepcopy(response.payload_schema)}}
        responses[response.status_code] = entry
    operation["responses"] = responses
    return operation


def render_service_document(spec: ServiceSpecification) -> dict:
    """Render a service specification as an OpenAPI 3 document."""
    document: dict = {
        "openapi": OPENAPI_VERSION,
        "info": {"title": spec.title, "version": spec.version, "description": spec.description},
    }
    if spec.server:
        document["servers"] = [dict(spec.server)]
    document["tags"] = [{"name": tag} for tag in spec.tags]

    paths: dict = {}
    for path, methods in spec.routes.items():
        for method, route in methods.items():
            paths.setdefault(path, {})[method] = render_operation(route)
    document["paths"] = paths
    document["components"] = {"schemas": copy.deepcopy(spec.definitions)}
    return document


def analyze_services(
    services: list[ServiceDescriptor],
    workspace_root: Path,
    version: str = "1.0.0",
) -> list[ServiceSpecification]:
    """Analyze every service; a failing service is logged and skipped."""
    specs = []
    failures = []
    for service in services:
        try:
            spec = build_service_specification(service, workspace_root, version)
        except AnalysisError as e:
            logger.error("Skipping %s: %s", service.project.name, e)
            failures.append(service.project.name)
            continue
        logger.info("%s: %d routes, %d definitions", service.project.name, spec.route_count, len(spec.definitions))
        specs.append(spec)

    if not specs:
        raise AnalysisError(f"No service could be analysed (failed: {', '.join(failures)})")
    return specs


def _unique_operation_id(operation: dict, used: set[str]) -> str:
    operation_id = operation.get("operationId", "operation")
    if operation_id not in used:
        return operation_id
    tag = re.sub(r"\W+", "_", (operation.get("tags") or ["default"])[0])
    candidate = f"{tag}_{operation_id}"
    counter = 2
    while candidate in used:
        candidate = f"{tag}_{operation_id}_{counter}"
        counter += 1
    return candidate


def combine_documents(documents: list[dict], title: str, description: str, version: str) -> dict:
    """Merge per-service OpenAPI 3 documents; the first writer wins on collisions."""
    combined: dict = {
        "openapi": OPENAPI_VERSION,
        "info": {"title": title, "description": description, "version": version},
        "tags": [],
        "paths": {},
        "components": {"schemas": {}, "securitySchemes": {}},
    }
    schemas = combined["components"]["schemas"]
    security_schemes = combined["components"]["securitySchemes"]
    used_ids: set[str] = set()

    for document in documents:
        source = document.get("info", {}).get("title", "?")

        for path, item in document.get("paths", {}).items():
            target = combined["paths"].setdefault(path, {})
            for method, operation in item.items():
                if method in target:
                    logger.warning("%s %s from %s is already defined; keeping the first", method.upper(), path, source)
                    continue
                operation = copy.deepcopy(operation)
                operation["operationId"] = _unique_operation_id(operation, used_ids)
                used_ids.add(operation["operationId"])
                target[method] = operation

        components = document.get("components", {})
        for name, schema in components.get("schemas", {}).items():
            if name not in schemas:
                schemas[name] = copy.deepcopy(schema)
            elif schemas[name] != schema:
                logger.warning("Schema '%s' from %s differs from an earlier definition; keeping the first", name, source)
        for name, scheme in components.get("securitySchemes", {}).items():
            security_schemes.setdefault(name, copy.deepcopy(scheme))

        known = {t["name"] for t in combined["tags"]}
        for tag in document.get("tags", []):
            if tag["name"] not in known:
                combined["tags"].append(dict(tag))
                known.add(tag["name"])

    return combined


def assemble(
    services: list[ServiceDescriptor],
    workspace_root: Path,
    title: str,
    description: str,
    version: str,
) -> dict:
    """Analyze all services and return the combined OpenAPI 3 document."""
    specs = analyze_services(services, workspace_root, version)
    return combine_documents([render_service_document(s) for s in specs], title, description, version)
