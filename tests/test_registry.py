import pytest

from buildgraph import Task
from buildgraph.exceptions import (
    DuplicateDefinitionWarning,
    FrozenRegistryError,
    UnknownTaskError,
)


def test_define_and_get(registry):
    def styles(): ...

    runner = registry.define("styles", action=styles)

    assert registry.get("styles") is runner
    assert runner.fn is styles
    assert runner.prerequisites == ()
    assert "styles" in registry
    assert len(registry) == 1


def test_get_unknown(registry):
    with pytest.raises(UnknownTaskError, match="'nope'"):
        registry.get("nope")


def test_prerequisites_keep_order_without_duplicates(registry):
    runner = registry.define("build", ["lint", "html", "lint", "styles"])

    assert runner.prerequisites == ("lint", "html", "styles")


def test_single_prerequisite_string(registry):
    assert registry.define("html", "styles").prerequisites == ("styles",)


def test_unknown_prerequisite_is_not_checked_at_definition(registry):
    registry.define("html", ["styles"])

    assert registry.names() == ["html"]


def test_redefinition_warns_and_replaces(registry, caplog):
    def first(): ...

    def second(): ...

    registry.define("x", action=first)
    with pytest.warns(DuplicateDefinitionWarning, match="'x' is already defined"):
        registry.define("x", action=second)

    assert registry.get("x").fn is second
    assert "already defined" in caplog.text


def test_decorator_form(registry):
    @registry.task("styles", description="Compile stylesheets.")
    def _styles(): ...

    assert registry.get("styles") is _styles
    assert _styles.task == Task(name="styles", description="Compile stylesheets.")


def test_decorator_uses_docstring(registry):
    @registry.task("fonts")
    def _fonts():
        """Copy fonts."""

    assert _fonts.task.description == "Copy fonts."


def test_frozen_registry_rejects_definitions(registry):
    registry.define("a")
    registry.freeze()

    assert registry.frozen
    with pytest.raises(FrozenRegistryError):
        registry.define("b")


def test_empty_task_name_rejected(registry):
    with pytest.raises(ValueError):
        registry.define("  ")
