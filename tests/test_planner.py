"""
Tests for the Enable/Disable Planner
====================================
"""

from module_engine.modules.catalog import ModuleCatalog, ModuleDefinition
from module_engine.modules.planner import (
    can_disable,
    describe_enable,
    plan_enable,
)
from module_engine.modules.resolver import get_dependents


class TestPlanEnable:
    """Test enabling with dependencies."""

    def test_enable_pulls_in_dependencies(self, chain_catalog):
        plan = plan_enable(set(), "C", chain_catalog)
        assert plan.enabled == {"A", "B", "C"}
        assert set(plan.new_dependencies) == {"A", "B"}

    def test_already_enabled_dependencies_not_new(self, chain_catalog):
        plan = plan_enable({"A"}, "C", chain_catalog)
        assert plan.enabled == {"A", "B", "C"}
        assert plan.new_dependencies == ["B"]

    def test_enable_is_idempotent(self, chain_catalog):
        first = plan_enable(set(), "C", chain_catalog)
        second = plan_enable(first.enabled, "C", chain_catalog)
        assert second.new_dependencies == []
        assert second.enabled == first.enabled

    def test_keeps_unrelated_modules(self, chain_catalog):
        plan = plan_enable({"other"}, "B", chain_catalog)
        assert plan.enabled == {"other", "A", "B"}

    def test_unknown_module(self, chain_catalog):
        plan = plan_enable({"A"}, "missing", chain_catalog)
        assert plan.enabled == {"A", "missing"}
        assert plan.new_dependencies == []

    def test_input_not_mutated(self, chain_catalog):
        current = {"A"}
        plan_enable(current, "C", chain_catalog)
        assert current == {"A"}


class TestCanDisable:
    """Test disable checks."""

    def test_blocked_by_transitive_dependents(self, chain_catalog):
        check = can_disable({"A", "B", "C"}, "A", chain_catalog)
        assert check.allowed is False
        assert check.required_by == ["B", "C"]

    def test_leaf_can_be_disabled(self, chain_catalog):
        check = can_disable({"A", "B", "C"}, "C", chain_catalog)
        assert check.allowed is True
        assert check.required_by == []

    def test_matches_get_dependents(self, chain_catalog):
        enabled = {"A", "B", "C"}
        for module_id in enabled:
            check = can_disable(enabled, module_id, chain_catalog)
            dependents = get_dependents(module_id, enabled, chain_catalog)
            assert check.allowed == (not dependents)
            assert set(check.required_by) == dependents

    def test_disabled_dependents_do_not_block(self, chain_catalog):
        check = can_disable({"A"}, "A", chain_catalog)
        assert check.allowed is True


class TestDescribeEnable:

    def test_lists_dependency_names(self, chain_catalog):
        plan = plan_enable(set(), "C", chain_catalog)
        message = describe_enable(plan, "C", chain_catalog)
        assert message == "Enabled Gamma and also: Alpha, Beta (dependencies)."

    def test_nothing_new(self, chain_catalog):
        plan = plan_enable({"A", "B"}, "C", chain_catalog)
        assert describe_enable(plan, "C", chain_catalog) is None

    def test_falls_back_to_ids(self):
        catalog = ModuleCatalog([ModuleDefinition(id="x", name="", dependencies=("y",))])
        plan = plan_enable(set(), "x", catalog)
        assert describe_enable(plan, "x", catalog) == "Enabled x and also: y (dependencies)."
