import pytest

from mpcal.ast.factory_helpers import *
from mpcal.data_structures import InstancePlan, ParameterBinding
from mpcal.exceptions import ErrorCode, InternalCompilerError
from mpcal.expansion.core.name_supply import FreshNameSupply
from mpcal.expansion.core.planner import check_plan, plan_instances
from mpcal.expansion.core.resolver import resolve_block


def two_instance_block():
    archetype = get_archetype(
        "Counter",
        params=["ref out", "step"],
        variables=[get_variable("count", 0)],
        body=[get_label("loop"), get_assignment("count", get_binary_op("+", "count", "step")), get_assignment("out", "count")],
    )
    return get_block(
        variables=[get_variable("a", 0), get_variable("b", 0)],
        archetypes=[archetype],
        mapping_macros=[get_mapping_macro("Log", [get_yield(get_mapped_variable())], [get_assignment(get_mapped_variable(), get_written_value())])],
        instances=[
            get_instance("First", "Counter", [get_instance_argument("a", ref=True, mapping="Log"), 1]),
            get_instance("Second", "Counter", [get_instance_argument("b", ref=True), get_binary_op("*", 2, "b")], self_value=get_set_constructor([2, 3]), self_kind="set"),
        ],
    )


def test_bindings_capture_values_and_ref_targets():
    # --- ACT ---
    first, second = plan_instances(resolve_block(two_instance_block()))

    # --- ASSERT ---
    assert first.bindings["out"] == ParameterBinding(parameter="out", is_ref=True, target="a", mapping_macro="Log", span=first.bindings["out"].span)
    assert first.bindings["out"].is_mapped
    assert first.bindings["step"].value == get_number_literal(1)
    assert not second.bindings["out"].is_mapped
    assert second.bindings["step"].value == get_binary_op("*", 2, "b")


def test_locals_and_labels_are_prefixed_with_the_instance_name():
    first, second = plan_instances(resolve_block(two_instance_block()))

    assert first.renamings == {"count": "First_count"}
    assert second.renamings == {"count": "Second_count"}
    assert first.labels == {"loop": "First_loop"}
    assert second.labels == {"loop": "Second_loop"}


def test_process_kind_and_self_expression_come_from_the_instance():
    first, second = plan_instances(resolve_block(two_instance_block()))

    assert (first.self_kind, first.self_value) == ("single", get_number_literal(1))
    assert (second.self_kind, second.self_value) == ("set", get_set_constructor([2, 3]))


def test_fresh_names_avoid_existing_user_names():
    # --- ARRANGE ---
    block = two_instance_block()
    block = block.model_copy(update={"variables": block.variables + [get_variable("First_count", 0)]})

    # --- ACT ---
    first, _ = plan_instances(resolve_block(block))

    # --- ASSERT ---
    assert first.renamings == {"count": "First_count1"}


def test_instances_share_the_supply_in_declaration_order():
    resolved = resolve_block(two_instance_block())
    supply = FreshNameSupply(resolved.visible_names)

    plan_instances(resolved, supply)

    assert supply.is_used("First_count")
    assert supply.is_used("Second_loop")
    assert supply.fresh("First_count") == "First_count1"


def test_plan_naming_an_unknown_parameter_is_inconsistent():
    # --- ARRANGE ---
    archetype = get_archetype("A", params=["ref x"])
    plan = InstancePlan(instance="P", archetype="A", self_kind="single", self_value=get_number_literal(1))
    plan.bindings["x"] = ParameterBinding(parameter="x", is_ref=True, target="g")
    plan.bindings["ghost"] = ParameterBinding(parameter="ghost", is_ref=False, value=get_number_literal(0))

    # --- ACT & ASSERT ---
    with pytest.raises(InternalCompilerError) as exc_info:
        check_plan(plan, archetype)

    assert exc_info.value.code == ErrorCode.PLAN_INCONSISTENT
    assert exc_info.value.category == "internal"
