"""Workspace discovery.

Reads the Nx project graph, picks the application projects tagged as
exposable, and pairs each with a backend address taken from a
``<PREFIX>_BACKEND_URL`` environment variable.
"""

import json
import logging
import os
import re
import shlex
import subprocess
import tempfile
from collections import deque
from collections.abc import Mapping
from pathlib import Path

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from gateway_openapi.errors import ConfigError, DiscoveryError
from gateway_openapi.parser.base import ServiceDescriptor, WorkspaceProject

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_COMMAND = "npx nx graph --file={file}"
DEFAULT_GRAPH_TIMEOUT = 120
DEFAULT_EXPOSE_TAG = "type:api"

BACKEND_URL_PATTERN = re.compile(r"^(.+)_BACKEND_URL$")

_url_adapter = TypeAdapter(AnyHttpUrl)

NO_SERVICES_HELP = """No API services were resolved. Auto-discovery needs:
  1. Application projects tagged '{tag}' in the workspace graph (e.g. apps/api-users)
  2. A matching <PREFIX>_BACKEND_URL variable for each (e.g. USERS_BACKEND_URL)
Example:
  export USERS_BACKEND_URL=https://api-users-xxx.run.app/api"""


def normalize_name(name: str) -> str:
    """Normalize a project or variable prefix: 'api-orders_detail' -> 'orders-detail'."""
    name = name.strip().lower().replace("_", "-")
    return name[len("api-"):] if name.startswith("api-") else name


def expected_env_var(project_name: str) -> str:
    return normalize_name(project_name).replace("-", "_").upper() + "_BACKEND_URL"


def _project_kind(node: dict) -> str:
    project_type = node.get("data", {}).get("projectType")
    if project_type in ("application", "library"):
        return project_type
    return "library" if node.get("type") == "lib" else "application"


def parse_project_graph(data: dict) -> dict[str, WorkspaceProject]:
    """Convert ``nx graph --file`` JSON into workspace projects keyed by name."""
    graph = data.get("graph", data) if isinstance(data, dict) else None
    nodes = graph.get("nodes") if isinstance(graph, dict) else None
    if not isinstance(nodes, dict):
        raise DiscoveryError("Project graph has no 'nodes' mapping")
    edges = graph.get("dependencies") or {}

    projects = {}
    for name, node in nodes.items():
        if node.get("type") == "e2e" or name.endswith("-e2e"):
            continue
        node_data = node.get("data", {})
        dependencies = []
        for edge in edges.get(name, []):
            target = edge.get("target", "")
            if target.startswith("npm:") or target not in nodes or target in dependencies:
                continue
            dependencies.append(target)
        projects[name] = WorkspaceProject(
            name=name,
            root=node_data.get("root", name),
            kind=_project_kind(node),
            tags=list(node_data.get("tags", [])),
            dependencies=dependencies,
        )
    return projects


def _read_graph_json(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise DiscoveryError(f"Cannot read project graph {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise DiscoveryError(f"Project graph {path} is not valid JSON: {e}") from e


def run_graph_command(workspace_root: Path, command: str, timeout: float) -> dict:
    """Run the graph command, which must write JSON to the ``{file}`` placeholder."""
    with tempfile.TemporaryDirectory() as tmpdir:
        out = Path(tmpdir) / "graph.json"
        args = shlex.split(command.format(file=out))
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                cwd=workspace_root,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise DiscoveryError(f"Project graph command timed out after {timeout}s: {command}") from e
        except OSError as e:
            raise DiscoveryError(f"Cannot run project graph command '{command}': {e}") from e

        if result.returncode != 0:
            output = (result.stderr or result.stdout).strip()
            raise DiscoveryError(f"Project graph command exited with {result.returncode}: {output[:500]}")
        if not out.exists():
            raise DiscoveryError(f"Project graph command did not write {out}")
        return _read_graph_json(out)


def load_project_graph(
    workspace_root: Path,
    graph_file: Path | None = None,
    command: str | None = None,
    timeout: float = DEFAULT_GRAPH_TIMEOUT,
) -> dict[str, WorkspaceProject]:
    if graph_file is not None:
        data = _read_graph_json(graph_file)
    else:
        data = run_graph_command(workspace_root, command or DEFAULT_GRAPH_COMMAND, timeout)
    return parse_project_graph(data)


def library_closure(name: str, projects: Mapping[str, WorkspaceProject]) -> list[WorkspaceProject]:
    """All library projects reachable from ``name`` through workspace dependency edges."""
    seen = {name}
    queue = deque(projects[name].dependencies)
    libraries = []
    while queue:
        dep = queue.popleft()
        if dep in seen or dep not in projects:
            continue
        seen.add(dep)
        project = projects[dep]
        if project.kind == "library":
            libraries.append(project)
        queue.extend(project.dependencies)
    return sorted(libraries, key=lambda p: p.name)


def backend_urls_from_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect and validate every ``<PREFIX>_BACKEND_URL`` variable, sorted by name."""
    environ = os.environ if environ is None else environ
    urls = {}
    invalid = []
    for key in sorted(environ):
        value = (environ[key] or "").strip()
        if not BACKEND_URL_PATTERN.match(key) or not value:
            continue
        try:
            _url_adapter.validate_python(value)
        except ValidationError:
            invalid.append(key)
            continue
        urls[key] = value

    if invalid:
        lines = [f"  - {key} must be a valid http/https URL: {environ[key]!r}" for key in invalid]
        lines.append("Example of valid values:")
        lines.extend(
            f"  export {key}=https://api-{normalize_name(BACKEND_URL_PATTERN.match(key).group(1))}-xxx.run.app/api"
            for key in invalid
        )
        raise ConfigError("Invalid backend URLs:\n" + "\n".join(lines))
    return urls


def match_project(candidate: str, projects: list[WorkspaceProject]) -> WorkspaceProject | None:
    """Exact normalized-name match first, then the closest substring match."""
    for project in projects:
        if normalize_name(project.name) == candidate:
            return project

    partial = [
        p for p in projects
        if candidate in normalize_name(p.name) or normalize_name(p.name) in candidate
    ]
    if not partial:
        return None
    return min(partial, key=lambda p: (abs(len(normalize_name(p.name)) - len(candidate)), p.name))


def discover_services(
    workspace_root: Path,
    environ: Mapping[str, str] | None = None,
    expose_tag: str = DEFAULT_EXPOSE_TAG,
    graph_file: Path | None = None,
    graph_command: str | None = None,
    timeout: float = DEFAULT_GRAPH_TIMEOUT,
) -> list[ServiceDescriptor]:
    """Return the exposable services that have a backend address, ordered by name."""
    projects = load_project_graph(workspace_root, graph_file, graph_command, timeout)
    exposable = sorted(
        (p for p in projects.values() if p.kind == "application" and expose_tag in p.tags),
        key=lambda p: p.name,
    )
    urls = backend_urls_from_env(environ)

    candidates = {env_var: normalize_name(BACKEND_URL_PATTERN.match(env_var).group(1)) for env_var in urls}
    by_name = {normalize_name(p.name): p for p in exposable}

    # Exact names bind before the substring fallback.
    claimed: dict[str, tuple[str, str]] = {}
    pending = []
    for env_var, candidate in candidates.items():
        project = by_name.get(candidate)
        if project is None:
            pending.append(env_var)
        elif project.name in claimed:
            logger.warning("%s also matches %s (already bound to %s); ignored", env_var, project.name, claimed[project.name][0])
        else:
            claimed[project.name] = (env_var, urls[env_var])

    for env_var in pending:
        candidate = candidates[env_var]
        project = match_project(candidate, [p for p in exposable if p.name not in claimed])
        if project is not None:
            claimed[project.name] = (env_var, urls[env_var])
            continue
        taken = match_project(candidate, exposable)
        if taken is not None:
            logger.warning("%s also matches %s (already bound to %s); ignored", env_var, taken.name, claimed[taken.name][0])
        else:
            logger.warning("%s is set but no project tagged '%s' matches '%s'", env_var, expose_tag, candidate)

    services = []
    for project in exposable:
        if project.name not in claimed:
            logger.warning("%s has no backend URL (set %s); excluded", project.name, expected_env_var(project.name))
            continue
        env_var, url = claimed[project.name]
        services.append(
            ServiceDescriptor(
                project=project,
                backend_url=url,
                env_var=env_var,
                prefix=f"/{normalize_name(project.name)}",
                libraries=library_closure(project.name, projects),
            )
        )

    if not services:
        raise ConfigError(NO_SERVICES_HELP.format(tag=expose_tag))
    return services
