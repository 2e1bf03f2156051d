from gateway_openapi.parser.base import (
    ParameterDescriptor,
    ResponseDescriptor,
    RouteDefinition,
    ServiceDescriptor,
    ServiceSpecification,
    WorkspaceProject,
)


def _route(method: str, path: str, operation_id: str = "op") -> RouteDefinition:
    return RouteDefinition(
        method=method,
        path=path,
        summary="",
        operation_id=operation_id,
        tags=["users"],
    )


class TestParameterDescriptor:
    def test_defaults(self):
        p = ParameterDescriptor(name="id", location="path", required=True)
        assert p.param_type == "string"
        assert p.payload_schema is None


class TestResponseDescriptor:
    def test_defaults_to_success(self):
        r = ResponseDescriptor()
        assert r.status_code == "200"
        assert r.description == "Success"
        assert r.payload_schema is None


class TestServiceDescriptor:
    def test_name_and_title_from_prefix(self):
        project = WorkspaceProject(name="api-orders-detail", root="apps/api-orders-detail", kind="application")
        service = ServiceDescriptor(
            project=project,
            backend_url="https://orders-detail.example.com",
            env_var="ORDERS_DETAIL_BACKEND_URL",
            prefix="/orders-detail",
        )
        assert service.name == "orders-detail"
        assert service.title == "Orders Detail API"
        assert service.libraries == []


class TestServiceSpecification:
    def test_add_route_merges_methods_on_same_path(self):
        spec = ServiceSpecification()
        assert spec.add_route(_route("get", "/users")) is True
        assert spec.add_route(_route("post", "/users")) is True
        assert set(spec.routes["/users"]) == {"get", "post"}
        assert spec.route_count == 2

    def test_add_route_keeps_first_on_conflict(self, caplog):
        spec = ServiceSpecification()
        spec.add_route(_route("get", "/users", "first"))
        assert spec.add_route(_route("get", "/users", "second")) is False
        assert spec.routes["/users"]["get"].operation_id == "first"
        assert "Duplicate route GET /users" in caplog.text

    def test_merge_combines_routes_definitions_and_tags(self):
        spec = ServiceSpecification(tags=["health"], definitions={"User": {"type": "object"}})
        other = ServiceSpecification(
            tags=["health", "orders"],
            definitions={"User": {"type": "string"}, "Order": {"type": "object"}},
        )
        other.add_route(_route("get", "/orders"))

        spec.merge(other)

        assert spec.tags == ["health", "orders"]
        assert spec.definitions["User"] == {"type": "object"}
        assert "Order" in spec.definitions
        assert "/orders" in spec.routes

    def test_instances_do_not_share_state(self):
        a = ServiceSpecification()
        b = ServiceSpecification()
        a.add_route(_route("get", "/a"))
        assert b.routes == {}
