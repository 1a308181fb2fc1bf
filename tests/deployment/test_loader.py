"""Tests for descriptor discovery, parsing and validation."""

import pytest

from dockyard.base.errors import DescriptorNotFound, DescriptorParseError, SchemaError
from dockyard.deployment.loader import find_descriptor, load_descriptor, parse_descriptor
from tests.conftest import DEMO_DESCRIPTOR, write_descriptor


class TestFindDescriptor:
    """Upward search for the descriptor file."""

    def test_finds_descriptor_in_start_directory(self, demo_app):
        assert find_descriptor(demo_app) == demo_app / ".dockyard.yml"

    def test_finds_descriptor_in_parent_directory(self, demo_app):
        """Commands run from a subdirectory use the app's descriptor."""
        nested = demo_app / "src" / "lib"
        nested.mkdir(parents=True)

        assert find_descriptor(nested) == demo_app / ".dockyard.yml"

    def test_accepts_yaml_extension(self, tmp_path):
        app = write_descriptor(tmp_path / "app", DEMO_DESCRIPTOR, filename=".dockyard.yaml")
        assert find_descriptor(app).name == ".dockyard.yaml"

    def test_raises_when_no_descriptor(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()

        with pytest.raises(DescriptorNotFound) as exc_info:
            find_descriptor(empty)

        assert ".dockyard.yml" in str(exc_info.value)


class TestLoadDescriptor:
    """Loading the demo descriptor and its error cases."""

    def test_loads_demo_app(self, demo_app):
        descriptor = load_descriptor(demo_app)

        assert descriptor.name == "demo"
        assert descriptor.root_path == demo_app
        assert descriptor.service_names() == ["node", "redis"]
        assert descriptor.services["node"].type == "node:8.9"
        assert descriptor.services["redis"].kind == "redis"
        assert descriptor.services["redis"].version == "4.0"

    def test_root_is_descriptor_directory_when_loaded_from_subdirectory(self, demo_app):
        nested = demo_app / "web"
        nested.mkdir()

        assert load_descriptor(nested).root_path == demo_app

    def test_service_options_are_preserved(self, tmp_path):
        app = write_descriptor(
            tmp_path / "app",
            """
            name: shop
            services:
              web:
                type: nginx
                backend: php
                ports: ["8080:80"]
              php:
                type: php:8.2-fpm
            """,
        )

        descriptor = load_descriptor(app)

        assert descriptor.services["web"].options == {"backend": "php", "ports": ["8080:80"]}
        assert descriptor.services["php"].options == {}

    def test_malformed_yaml_raises_parse_error(self, tmp_path):
        app = write_descriptor(tmp_path / "app", "name: demo\nservices: [unclosed\n")

        with pytest.raises(DescriptorParseError):
            load_descriptor(app)

    def test_top_level_list_raises_parse_error(self, tmp_path):
        app = write_descriptor(tmp_path / "app", "- name: demo\n")

        with pytest.raises(DescriptorParseError, match="mapping"):
            load_descriptor(app)

    def test_local_override_is_deep_merged(self, demo_app):
        """.dockyard.local.yml adds options without replacing the service."""
        write_descriptor(
            demo_app,
            """
            services:
              node:
                ports: ["3000:3000"]
            """,
            filename=".dockyard.local.yml",
        )

        descriptor = load_descriptor(demo_app)

        assert descriptor.services["node"].type == "node:8.9"
        assert descriptor.services["node"].options == {"ports": ["3000:3000"]}

    def test_environment_variables_are_expanded(self, tmp_path, monkeypatch):
        monkeypatch.setenv("NODE_VERSION", "20")
        app = write_descriptor(
            tmp_path / "app",
            """
            name: demo
            services:
              node:
                type: node:${NODE_VERSION}
                environment:
                  MODE: ${MODE:-development}
            """,
        )

        descriptor = load_descriptor(app)

        assert descriptor.services["node"].type == "node:20"
        assert descriptor.services["node"].options["environment"] == {"MODE": "development"}


class TestSchemaValidation:
    """parse_descriptor reports every violation at once."""

    def test_missing_name_and_services(self, tmp_path):
        with pytest.raises(SchemaError) as exc_info:
            parse_descriptor({}, tmp_path)

        problems = exc_info.value.problems
        assert "name: is required" in problems
        assert "services: is required" in problems

    def test_empty_services(self, tmp_path):
        with pytest.raises(SchemaError) as exc_info:
            parse_descriptor({"name": "demo", "services": {}}, tmp_path)

        assert any(p.startswith("services") for p in exc_info.value.problems)

    def test_services_must_be_mapping(self, tmp_path):
        with pytest.raises(SchemaError):
            parse_descriptor({"name": "demo", "services": ["node"]}, tmp_path)

    def test_service_without_type(self, tmp_path):
        with pytest.raises(SchemaError) as exc_info:
            parse_descriptor({"name": "demo", "services": {"node": {"ports": [80]}}}, tmp_path)

        assert "services.node.type: is required" in exc_info.value.problems

    def test_invalid_service_name(self, tmp_path):
        with pytest.raises(SchemaError, match="Web Server"):
            parse_descriptor({"name": "demo", "services": {"Web Server": {"type": "nginx"}}}, tmp_path)

    def test_invalid_app_name(self, tmp_path):
        with pytest.raises(SchemaError):
            parse_descriptor({"name": "-bad", "services": {"node": {"type": "node"}}}, tmp_path)

    def test_schema_error_exits_with_config_code(self, tmp_path):
        with pytest.raises(SchemaError) as exc_info:
            parse_descriptor({"name": "demo"}, tmp_path)

        assert exc_info.value.exit_code == 2
