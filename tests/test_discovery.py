import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from gateway_openapi.errors import ConfigError, DiscoveryError
from gateway_openapi.parser.base import WorkspaceProject
from gateway_openapi.parser.detect import is_route_module, iter_source_files
from gateway_openapi.workspace.discovery import (
    backend_urls_from_env,
    discover_services,
    expected_env_var,
    library_closure,
    load_project_graph,
    match_project,
    normalize_name,
    parse_project_graph,
)

FIXTURES = Path(__file__).parent / "fixtures"
WORKSPACE = FIXTURES / "workspace"
GRAPH = WORKSPACE / "graph.json"
ENV = {
    "USERS_BACKEND_URL": "https://users.example.com/api",
    "ORDERS_BACKEND_URL": "https://orders.example.com",
    "PATH": "/usr/bin",
}


def _app(name: str) -> WorkspaceProject:
    return WorkspaceProject(name=name, root=f"apps/{name}", kind="application", tags=["type:api"])


class TestNames:
    def test_normalize_name(self):
        assert normalize_name("api-orders-detail") == "orders-detail"
        assert normalize_name("ORDERS_DETAIL") == "orders-detail"
        assert normalize_name("users") == "users"

    def test_expected_env_var(self):
        assert expected_env_var("api-orders-detail") == "ORDERS_DETAIL_BACKEND_URL"


class TestProjectGraph:
    def test_load_from_file(self):
        projects = load_project_graph(WORKSPACE, graph_file=GRAPH)
        assert "api-users-e2e" not in projects
        assert projects["api-users"].root == "apps/api-users"
        assert projects["api-users"].dependencies == ["users-domain"]
        assert projects["users-domain"].kind == "library"
        assert projects["api-orders"].tags == ["type:api", "scope:orders"]

    def test_kind_from_node_type(self):
        projects = parse_project_graph({"nodes": {"shared": {"type": "lib", "data": {}}, "web": {"type": "app"}}})
        assert projects["shared"].kind == "library"
        assert projects["shared"].root == "shared"
        assert projects["web"].kind == "application"

    def test_missing_nodes(self):
        with pytest.raises(DiscoveryError, match="nodes"):
            parse_project_graph({"graph": {}})

    def test_invalid_json(self, tmp_path):
        bad = tmp_path / "graph.json"
        bad.write_text("{not json")
        with pytest.raises(DiscoveryError, match="not valid JSON"):
            load_project_graph(tmp_path, graph_file=bad)

    def test_library_closure_is_transitive(self):
        projects = load_project_graph(WORKSPACE, graph_file=GRAPH)
        assert [p.name for p in library_closure("api-orders", projects)] == ["orders-domain", "shared-models"]
        assert [p.name for p in library_closure("admin-portal", projects)] == []

    def test_library_closure_tolerates_cycles(self):
        projects = {
            "app": WorkspaceProject(name="app", root="app", kind="application", dependencies=["a"]),
            "a": WorkspaceProject(name="a", root="a", kind="library", dependencies=["b"]),
            "b": WorkspaceProject(name="b", root="b", kind="library", dependencies=["a", "app"]),
        }
        assert [p.name for p in library_closure("app", projects)] == ["a", "b"]


class TestGraphCommand:
    @patch("gateway_openapi.workspace.discovery.subprocess.run")
    def test_command_writes_graph(self, mock_run, tmp_path):
        def fake_run(args, **kwargs):
            target = args[-1].split("=", 1)[1]
            Path(target).write_text(GRAPH.read_text())
            return MagicMock(returncode=0, stdout="", stderr="")

        mock_run.side_effect = fake_run
        projects = load_project_graph(tmp_path, timeout=5)

        assert "api-orders" in projects
        args = mock_run.call_args[0][0]
        assert args[:3] == ["npx", "nx", "graph"]
        assert mock_run.call_args[1]["timeout"] == 5
        assert mock_run.call_args[1]["cwd"] == tmp_path

    @patch("gateway_openapi.workspace.discovery.subprocess.run")
    def test_timeout(self, mock_run, tmp_path):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="npx", timeout=1)
        with pytest.raises(DiscoveryError, match="timed out"):
            load_project_graph(tmp_path, timeout=1)

    @patch("gateway_openapi.workspace.discovery.subprocess.run")
    def test_nonzero_exit(self, mock_run, tmp_path):
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="nx: command not found")
        with pytest.raises(DiscoveryError, match="nx: command not found"):
            load_project_graph(tmp_path)

    @patch("gateway_openapi.workspace.discovery.subprocess.run")
    def test_no_output_file(self, mock_run, tmp_path):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")
        with pytest.raises(DiscoveryError, match="did not write"):
            load_project_graph(tmp_path)

    @patch("gateway_openapi.workspace.discovery.subprocess.run")
    def test_missing_executable(self, mock_run, tmp_path):
        mock_run.side_effect = FileNotFoundError("npx")
        with pytest.raises(DiscoveryError, match="Cannot run"):
            load_project_graph(tmp_path)


class TestBackendUrls:
    def test_collects_only_backend_variables(self):
        env = {"USERS_BACKEND_URL": "https://x.example.com", "OTHER": "y", "EMPTY_BACKEND_URL": ""}
        assert backend_urls_from_env(env) == {"USERS_BACKEND_URL": "https://x.example.com"}

    def test_invalid_url_names_variable_and_example(self):
        with pytest.raises(ConfigError) as exc:
            backend_urls_from_env({"USERS_BACKEND_URL": "not-a-url"})
        message = str(exc.value)
        assert "USERS_BACKEND_URL" in message
        assert "export USERS_BACKEND_URL=https://api-users-xxx.run.app/api" in message

    def test_non_http_scheme_rejected(self):
        with pytest.raises(ConfigError):
            backend_urls_from_env({"FILES_BACKEND_URL": "ftp://files.example.com"})


class TestMatchProject:
    def test_exact_before_substring(self):
        projects = [_app("api-orders"), _app("api-orders-detail")]
        assert match_project("orders", projects).name == "api-orders"
        assert match_project("orders-detail", projects).name == "api-orders-detail"

    def test_substring_fallback(self):
        projects = [_app("api-orders"), _app("api-orders-detail")]
        assert match_project("detail", projects).name == "api-orders-detail"

    def test_no_match(self):
        assert match_project("billing", [_app("api-orders")]) is None


class TestDiscoverServices:
    def test_fixture_workspace(self):
        services = discover_services(WORKSPACE, environ=ENV, graph_file=GRAPH)
        assert [s.project.name for s in services] == ["api-orders", "api-users"]

        orders, users = services
        assert orders.prefix == "/orders"
        assert orders.env_var == "ORDERS_BACKEND_URL"
        assert orders.backend_url == "https://orders.example.com"
        assert [lib.name for lib in orders.libraries] == ["orders-domain", "shared-models"]
        assert users.prefix == "/users"
        assert [lib.name for lib in users.libraries] == ["users-domain"]

    def test_project_without_url_is_excluded_with_warning(self, caplog):
        discover_services(WORKSPACE, environ=ENV, graph_file=GRAPH)
        assert "api-reports has no backend URL (set REPORTS_BACKEND_URL)" in caplog.text

    def test_untagged_projects_are_not_exposed(self):
        env = dict(ENV, ADMIN_PORTAL_BACKEND_URL="https://admin.example.com")
        services = discover_services(WORKSPACE, environ=env, graph_file=GRAPH)
        assert "admin-portal" not in [s.project.name for s in services]

    def test_unmatched_variable_warns(self, caplog):
        env = dict(ENV, BILLING_BACKEND_URL="https://billing.example.com")
        services = discover_services(WORKSPACE, environ=env, graph_file=GRAPH)
        assert len(services) == 2
        assert "BILLING_BACKEND_URL is set but no project" in caplog.text

    def test_exact_variable_wins_over_earlier_substring(self, tmp_path, caplog):
        graph = tmp_path / "graph.json"
        graph.write_text(json.dumps({"graph": {"nodes": {
            "api-users": {"type": "app", "data": {"root": "apps/api-users", "tags": ["type:api"]}},
        }, "dependencies": {}}}))
        env = {
            "USERS_ADMIN_BACKEND_URL": "https://admin.example.com",
            "USERS_BACKEND_URL": "https://users.example.com",
        }

        services = discover_services(tmp_path, environ=env, graph_file=graph)

        assert [(s.env_var, s.backend_url) for s in services] == [("USERS_BACKEND_URL", "https://users.example.com")]
        assert "USERS_ADMIN_BACKEND_URL also matches api-users (already bound to USERS_BACKEND_URL)" in caplog.text

    def test_substring_binds_remaining_project(self):
        projects_env = {
            "ORDERS_BACKEND_URL": "https://orders.example.com",
            "USER_BACKEND_URL": "https://users.example.com",
        }
        services = discover_services(WORKSPACE, environ=projects_env, graph_file=GRAPH)
        assert {s.project.name: s.env_var for s in services} == {
            "api-orders": "ORDERS_BACKEND_URL",
            "api-users": "USER_BACKEND_URL",
        }

    def test_custom_expose_tag(self):
        services = discover_services(WORKSPACE, environ=ENV, expose_tag="scope:users", graph_file=GRAPH)
        assert [s.project.name for s in services] == ["api-users"]

    def test_no_services(self):
        with pytest.raises(ConfigError, match="USERS_BACKEND_URL"):
            discover_services(WORKSPACE, environ={}, graph_file=GRAPH)


class TestDetect:
    def test_skips_test_directories(self):
        files = iter_source_files(WORKSPACE / "libs" / "users-domain")
        names = [f.name for f in files]
        assert "users_controller.py" in names
        assert "user.py" in names
        assert "fake_controller.py" not in names

    def test_missing_root(self, tmp_path):
        assert iter_source_files(tmp_path / "missing") == []

    def test_is_route_module(self):
        assert is_route_module('@controller("users")\nclass A: pass\n')
        assert is_route_module('@routing.router(prefix="/x")\nclass A: pass\n')
        assert is_route_module("@controller\nclass A: pass\n")
        assert not is_route_module("@controllers.register\nclass A: pass\n")
        assert not is_route_module("class User(BaseModel):\n    id: str\n")
