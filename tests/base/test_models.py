"""Tests for the data model and error hierarchy."""

from pathlib import Path

import pytest

from dockyard.base.errors import (
    BackendTransientError,
    ConfigError,
    DependencyFailed,
    ExitCode,
    RegistryError,
    SchemaError,
    ServiceFailed,
)
from dockyard.base.models import (
    AppRecord,
    ObservedState,
    Operation,
    PortMapping,
    ReconcileResult,
    ServiceDecl,
    ServiceGraph,
    ServicePhase,
    ServiceSpec,
    ServiceStatus,
    VolumeMapping,
    container_name,
    project_slug,
)


class TestNaming:
    @pytest.mark.parametrize(
        "app_name, slug",
        [("demo", "demo"), ("lando-test", "landotest"), ("My App_2", "myapp2")],
    )
    def test_project_slug(self, app_name, slug):
        assert project_slug(app_name) == slug

    def test_container_name(self):
        assert container_name("demo", "redis") == "demo_redis_1"


class TestServiceDecl:
    def test_kind_and_version(self):
        decl = ServiceDecl("db", "Postgres:16")

        assert decl.kind == "postgres"
        assert decl.version == "16"

    def test_no_version(self):
        assert ServiceDecl("db", "postgres").version is None
        assert ServiceDecl("db", "postgres:").version is None


class TestMappings:
    def test_port_string_forms(self):
        assert str(PortMapping(80)) == "80/tcp"
        assert str(PortMapping(80, host_port=8080, host_ip="127.0.0.1")) == "127.0.0.1:8080:80/tcp"

    def test_volume_bind_detection(self):
        assert VolumeMapping("/src", "/app").is_bind
        assert not VolumeMapping("demo_data", "/data").is_bind


def graph_of(**deps):
    specs = {
        name: ServiceSpec(service_name=name, kind="redis", version="7", image="redis:7", depends_on=frozenset(d))
        for name, d in deps.items()
    }
    return ServiceGraph(app_name="shop", root_path=Path("/srv/shop"), specs=specs)


class TestServiceGraph:
    def test_names(self):
        graph = graph_of(a=[])

        assert graph.project == "shop"
        assert graph.network == "shop_default"
        assert graph.container_name("a") == "shop_a_1"
        assert len(graph) == 1

    def test_orders(self):
        graph = graph_of(web=["app"], app=["db"], db=[], cache=[])

        assert graph.topological_order() == ["db", "app", "web", "cache"]
        assert graph.reverse_order() == ["cache", "web", "app", "db"]
        assert graph.dependents("db") == ["app"]

    def test_cycle_in_hand_built_graph(self):
        with pytest.raises(ValueError, match="cycle"):
            graph_of(a=["b"], b=["a"]).topological_order()

    def test_from_names(self):
        graph = ServiceGraph.from_names("shop", Path("/gone"), ["web", "db"])

        assert graph.service_names() == ["web", "db"]
        assert graph.topological_order() == ["web", "db"]


class TestObservedState:
    def test_missing(self):
        state = ObservedState.missing("redis", "demo_redis_1")

        assert state.status is ServiceStatus.MISSING
        assert not state.exists
        assert not state.is_running


class TestReconcileResult:
    def test_merge_later_outcome_wins(self):
        first = ReconcileResult(Operation.STOP, "demo")
        first.failed["redis"] = ServiceFailed("redis", "stop failed")
        first.phases["redis"] = ServicePhase.FAILED
        first.actions.append(("stop", "redis"))

        second = ReconcileResult(Operation.START, "demo", succeeded={"redis"})
        second.phases["redis"] = ServicePhase.RUNNING
        second.actions.append(("start", "redis"))

        merged = ReconcileResult(Operation.RESTART, "demo").merge(first).merge(second)

        assert merged.ok
        assert merged.succeeded == {"redis"}
        assert merged.phases["redis"] is ServicePhase.RUNNING
        assert merged.actions == [("stop", "redis"), ("start", "redis")]


class TestAppRecord:
    def test_round_trip_through_dict(self):
        record = AppRecord("demo", "/src/demo", ("node", "redis"), updated_at="2026-01-01T00:00:00+00:00")

        data = record.to_dict()

        assert data == {
            "name": "demo",
            "root": "/src/demo",
            "services": ["node", "redis"],
            "updated_at": "2026-01-01T00:00:00+00:00",
        }
        assert AppRecord.from_dict(data) == record

    def test_duplicate_services_are_dropped(self):
        assert AppRecord.from_dict({"name": "x", "services": ["a", "b", "a"]}).services == ("a", "b")


class TestErrors:
    def test_exit_codes(self):
        assert SchemaError("bad").exit_code is ExitCode.CONFIG_ERROR
        assert isinstance(SchemaError("bad"), ConfigError)
        assert BackendTransientError("slow").exit_code is ExitCode.SERVICE_FAILURE
        assert RegistryError("locked").exit_code == 1

    def test_schema_error_lists_problems(self):
        error = SchemaError("Invalid descriptor", ["name: is required", "services: is required"])

        assert str(error).splitlines() == [
            "Invalid descriptor:",
            "  - name: is required",
            "  - services: is required",
        ]

    def test_dependency_failed_reason(self):
        error = DependencyFailed("app", "db")

        assert error.service_name == "app"
        assert error.reason == "dependency 'db' failed"
        assert isinstance(error, ServiceFailed)
