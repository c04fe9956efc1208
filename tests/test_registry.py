"""Tests for the service registry."""

import pytest

from zero_models.codegen.core.config import ConfigurationService
from zero_models.codegen.core.generator import ServiceInitializationError
from zero_models.codegen.registry import RegistryError, ServiceRegistry, build_default_registry


class TestServiceRegistry:
    def test_dependency_order(self):
        registry = ServiceRegistry()
        registry.register("generator", lambda renderer, config: ("gen", renderer, config),
                          ["renderer", "config"])
        registry.register("renderer", lambda config: ("renderer", config), ["config"])
        registry.register_instance("config", "cfg")

        assert registry.initialization_order() == ["config", "renderer", "generator"]
        registry.initialize()
        assert registry.get("generator") == ("gen", ("renderer", "cfg"), "cfg")

    def test_unknown_dependency(self):
        registry = ServiceRegistry()
        registry.register("a", lambda b: b, ["b"])
        with pytest.raises(RegistryError, match="unknown service 'b'"):
            registry.initialization_order()

    def test_cycle(self):
        registry = ServiceRegistry()
        registry.register("a", lambda b: b, ["b"])
        registry.register("b", lambda a: a, ["a"])
        with pytest.raises(RegistryError, match="Dependency cycle between services: a, b"):
            registry.initialize()

    def test_duplicate_registration(self):
        registry = ServiceRegistry()
        registry.register_instance("a", 1)
        with pytest.raises(RegistryError, match="already registered"):
            registry.register_instance("a", 2)
        registry.register_instance("a", 2, replace=True)
        assert registry.initialize().get("a") == 2

    def test_factory_failure_is_wrapped(self):
        def broken():
            raise RuntimeError("no renderer")

        registry = ServiceRegistry()
        registry.register("renderer", broken)
        with pytest.raises(ServiceInitializationError, match="Failed to initialize service 'renderer'"):
            registry.initialize()

    def test_get_before_initialize(self):
        registry = ServiceRegistry()
        registry.register_instance("a", 1)
        with pytest.raises(RegistryError, match="not been initialized"):
            registry.get("a")
        with pytest.raises(RegistryError, match="Unknown service: b"):
            registry.get("b")

    def test_register_after_initialize(self):
        registry = ServiceRegistry().initialize()
        with pytest.raises(RegistryError):
            registry.register_instance("late", 1)


class TestDefaultRegistry:
    def test_builds_every_service(self, introspector, output_dir):
        config = ConfigurationService()
        config.update_from_generator_options({"output_dir": str(output_dir), "skip_prettier": True})
        registry = build_default_registry(config, introspector).initialize()

        assert registry.list_services() == [
            "configuration", "default_value_converter", "file_manager", "formatter",
            "introspector", "model_generator", "polymorphic_loader", "schema_service",
            "semantic_comparator", "template_renderer", "type_mapper",
        ]
        assert str(registry.get("file_manager").base_dir) == str(output_dir)
        assert registry.get("file_manager").enable_formatting is False
        assert registry.statistics()["services_initialized"] == 11

    def test_health_check(self, introspector):
        registry = build_default_registry(ConfigurationService(), introspector).initialize()
        health = registry.health_check()
        assert health["healthy"]
        assert health["services"]["schema_service"]["table_count"] == 3

    def test_type_overrides_reach_the_mapper(self, introspector):
        config = ConfigurationService(overrides={"type_overrides": {"citext": "string"}})
        registry = build_default_registry(config, introspector).initialize()
        assert registry.get("type_mapper").map_type("citext") == "string"
