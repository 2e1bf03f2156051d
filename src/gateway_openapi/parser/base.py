"""Unified data models for workspace projects and analysed routes.

Discovery, the route analyzer and the assembler all exchange these models,
so every stage sees the same shape regardless of where the data came from.
"""

import logging

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class WorkspaceProject(BaseModel):
    """A single project node from the workspace dependency graph."""

    model_config = ConfigDict(frozen=True)

    name: str
    root: str
    kind: str  # application / library
    tags: list[str] = []
    dependencies: list[str] = []


class ServiceDescriptor(BaseModel):
    """An exposable application with its resolved backend address."""

    project: WorkspaceProject
    backend_url: str
    env_var: str
    prefix: str  # /users
    libraries: list[WorkspaceProject] = []

    @property
    def name(self) -> str:
        return self.prefix.strip("/")

    @property
    def title(self) -> str:
        words = self.name.replace("_", "-").split("-")
        return " ".join(w.capitalize() for w in words if w) + " API"


class ParameterDescriptor(BaseModel):
    """A single route parameter (path, query, or body)."""

    name: str
    location: str  # path / query / body
    required: bool
    param_type: str = "string"
    payload_schema: dict | None = None  # body parameters only


class ResponseDescriptor(BaseModel):
    status_code: str = "200"
    description: str = "Success"
    payload_schema: dict | None = None


class RouteDefinition(BaseModel):
    """A single HTTP operation found in a route group."""

    method: str  # get / post / put / delete / patch / options / head
    path: str  # /users/{id}
    summary: str
    operation_id: str
    tags: list[str]
    parameters: list[ParameterDescriptor] = []
    responses: list[ResponseDescriptor] = []


class ServiceSpecification(BaseModel):
    """Routes, schema definitions and tags collected for one service."""

    title: str = ""
    version: str = "1.0.0"
    description: str = ""
    prefix: str = ""
    routes: dict[str, dict[str, RouteDefinition]] = {}
    definitions: dict[str, dict] = {}
    tags: list[str] = []
    server: dict | None = None

    def add_route(self, route: RouteDefinition) -> bool:
        """Add a route, merging into an existing path. Returns False on a method conflict."""
        methods = self.routes.setdefault(route.path, {})
        if route.method in methods:
            logger.warning(
                "Duplicate route %s %s (%s); keeping %s",
                route.method.upper(), route.path, route.operation_id,
                methods[route.method].operation_id,
            )
            return False
        methods[route.method] = route
        return True

    def merge(self, other: "ServiceSpecification") -> None:
        """Fold another fragment's routes, definitions and tags into this one."""
        for methods in other.routes.values():
            for route in methods.values():
                self.add_route(route)
        for name, schema in other.definitions.items():
            self.definitions.setdefault(name, schema)
        for tag in other.tags:
            if tag not in self.tags:
                self.tags.append(tag)

    @property
    def route_count(self) -> int:
        return sum(len(methods) for methods in self.routes.values())
