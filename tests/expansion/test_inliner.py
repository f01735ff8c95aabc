import pytest

from mpcal.ast.classes import *
from mpcal.ast.factory_helpers import *
from mpcal.exceptions import ErrorCode, ModularPlusCalError
from mpcal.expansion.core.inliner import inline_instances
from mpcal.expansion.core.name_supply import FreshNameSupply
from mpcal.expansion.core.planner import plan_instances
from mpcal.expansion.core.resolver import resolve_block

from tests.utils.assertion_helper import assert_asts_equal, label_names


def inline(block):
    resolved = resolve_block(block)
    supply = FreshNameSupply(resolved.visible_names)
    return inline_instances(resolved, plan_instances(resolved, supply), supply)


def queue_macro():
    """read { yield Head($variable) } write { $variable := Append($variable, $value) }"""
    return get_mapping_macro(
        "Queue",
        [get_yield(get_operator_call("Head", [get_mapped_variable()]))],
        [get_assignment(get_mapped_variable(), get_operator_call("Append", [get_mapped_variable(), get_written_value()]))],
    )


def mapped_block(body, variables=None, macro=None, extra_globals=None):
    """Archetype `A(ref x)` with `x` bound to global `q` through a mapping macro (Queue by default)."""
    macro = macro or queue_macro()
    return get_block(
        variables=[get_variable("q", get_tuple_literal([])), get_variable("out", 0)] + (extra_globals or []),
        archetypes=[get_archetype("A", params=["ref x"], variables=variables, body=body)],
        mapping_macros=[macro],
        instances=[get_instance("P", "A", [get_instance_argument("q", ref=True, mapping=macro.name)])],
    )


# --- Parameter substitution ---


def test_unmapped_ref_parameter_becomes_its_global():
    block = get_block(
        variables=[get_variable("g", 0)],
        archetypes=[get_archetype("A", params=["ref x"], body=[get_assignment("x", get_binary_op("+", "x", 1))])],
        instances=[get_instance("P", "A", [get_instance_argument("g", ref=True)])],
    )

    (result,) = inline(block)

    assert_asts_equal(result.body, [get_assignment("g", get_binary_op("+", "g", 1))])
    assert result.variables == []


def test_by_value_capture_is_a_copy_located_at_the_instance_site():
    # --- ARRANGE ---
    capture_span = get_span(20, 9, 20, 14)
    captured = BinaryOp(span=capture_span, operator="+", lhs=get_number_literal(1), rhs=get_identifier("g"))
    block = get_block(
        variables=[get_variable("g", 0)],
        archetypes=[get_archetype("A", params=["ref x", "y"], body=[get_assignment("x", "y")])],
        instances=[get_instance("P", "A", [get_instance_argument("g", ref=True), captured])],
    )

    # --- ACT ---
    (result,) = inline(block)

    # --- ASSERT ---
    rhs = result.body[0].pairs[0].rhs
    assert rhs == captured
    assert rhs is not captured
    assert rhs.span == capture_span


def test_locals_are_renamed_in_initializers_and_body():
    block = get_block(
        variables=[get_variable("g", 0)],
        archetypes=[
            get_archetype(
                "A",
                params=["ref x"],
                variables=[get_variable("a", "x"), get_variable("b", get_binary_op("+", "a", 1))],
                body=[get_assignment("b", get_binary_op("*", "a", 2))],
            )
        ],
        instances=[get_instance("P", "A", [get_instance_argument("g", ref=True)])],
    )

    (result,) = inline(block)

    assert_asts_equal(result.variables, [get_variable("P_a", "g"), get_variable("P_b", get_binary_op("+", "P_a", 1))])
    assert_asts_equal(result.body, [get_assignment("P_b", get_binary_op("*", "P_a", 2))])


def test_labels_and_gotos_are_renamed():
    block = mapped_block([get_label("start"), get_skip(), get_label("again"), get_goto("start")])

    (result,) = inline(block)

    assert_asts_equal(result.body, [get_label("P_start"), get_skip(), get_label("P_again"), get_goto("P_start")])


# --- Read lifting ---


def test_mapped_read_is_lifted_into_a_temporary():
    (result,) = inline(mapped_block([get_assignment("out", "x")]))

    assert_asts_equal(result.body, [get_assignment("xRead", get_operator_call("Head", ["q"])), get_assignment("out", "xRead")])
    assert_asts_equal(result.variables, [get_variable("xRead", "defaultInitValue")])


def test_reads_in_one_statement_are_coalesced():
    (result,) = inline(mapped_block([get_assignment("out", get_binary_op("+", "x", "x"))]))

    assert_asts_equal(result.body, [get_assignment("xRead", get_operator_call("Head", ["q"])), get_assignment("out", get_binary_op("+", "xRead", "xRead"))])


def test_reads_in_separate_statements_are_not_coalesced():
    (result,) = inline(mapped_block([get_assignment("out", "x"), get_print("x")]))

    assert [stmt.kind for stmt in result.body] == ["assignment", "assignment", "assignment", "print"]
    assert [v.name for v in result.variables] == ["xRead", "xRead1"]
    assert_asts_equal(result.body[3], get_print("xRead1"))


def test_if_condition_read_runs_before_the_if():
    (result,) = inline(mapped_block([get_if(get_binary_op(">", "x", 0), [get_assignment("out", 1)])]))

    assert_asts_equal(result.body, [get_assignment("xRead", get_operator_call("Head", ["q"])), get_if(get_binary_op(">", "xRead", 0), [get_assignment("out", 1)])])


def test_read_body_statements_and_labels_are_expanded_per_site():
    # --- ARRANGE ---
    macro = get_mapping_macro(
        "Net",
        [get_label("rd"), get_await(get_binary_op(">", get_operator_call("Len", [get_mapped_variable()]), 0)), get_yield(get_operator_call("Head", [get_mapped_variable()]))],
        [get_assignment(get_mapped_variable(), get_written_value())],
    )
    block = mapped_block([get_assignment("out", "x"), get_print("x")], macro=macro)

    # --- ACT ---
    (result,) = inline(block)

    # --- ASSERT ---
    assert label_names(result.body) == ["P_rd", "P_rd1"]
    assert_asts_equal(result.body[1], get_await(get_binary_op(">", get_operator_call("Len", ["q"]), 0)))


def test_yield_nested_in_the_read_body_assigns_the_temporary_in_place():
    # --- ARRANGE ---
    macro = get_mapping_macro(
        "Chan",
        [
            get_with(
                [("msg", get_operator_call("Head", [get_mapped_variable()]))],
                [get_assignment(get_mapped_variable(), get_operator_call("Tail", [get_mapped_variable()])), get_yield("msg")],
            )
        ],
        [get_assignment(get_mapped_variable(), get_operator_call("Append", [get_mapped_variable(), get_written_value()]))],
    )
    block = mapped_block([get_assignment("out", "x")], macro=macro)

    # --- ACT ---
    (result,) = inline(block)

    # --- ASSERT ---
    read = get_with(
        [("msg", get_operator_call("Head", ["q"]))],
        [get_assignment("q", get_operator_call("Tail", ["q"])), get_assignment("xRead", "msg")],
    )
    assert_asts_equal(result.body, [read, get_assignment("out", "xRead")])
    assert [v.name for v in result.variables] == ["xRead"]


def test_while_test_is_re_read_at_the_end_of_each_iteration():
    # --- ARRANGE ---
    block = mapped_block([get_label("l"), get_while(get_binary_op(">", "x", 0), [get_print(get_string_literal("tick"))])])

    # --- ACT ---
    (result,) = inline(block)

    # --- ASSERT ---
    read = get_assignment("xRead", get_operator_call("Head", ["q"]))
    expected = [
        get_label("P_l"),
        read,
        get_label("P_lLoop"),
        get_while(get_binary_op(">", "xRead", 0), [get_print(get_string_literal("tick")), read]),
    ]
    assert_asts_equal(result.body, expected)
    assert [v.name for v in result.variables] == ["xRead"]


def test_while_without_mapped_reads_is_unchanged():
    (result,) = inline(mapped_block([get_while(get_binary_op(">", "out", 0), [get_assignment("out", get_binary_op("-", "out", 1))])]))

    assert_asts_equal(result.body, [get_while(get_binary_op(">", "out", 0), [get_assignment("out", get_binary_op("-", "out", 1))])])


def test_required_action_refers_to_the_global_without_lifting():
    (result,) = inline(mapped_block([get_await(get_required_action(get_binary_op("=", "x", 1), "x"))]))

    assert_asts_equal(result.body, [get_await(get_required_action(get_binary_op("=", "q", 1), "q"))])
    assert result.variables == []


# --- Writes ---


def test_mapped_write_substitutes_the_value():
    (result,) = inline(mapped_block([get_assignment("x", get_binary_op("+", "out", 1))]))

    assert_asts_equal(result.body, [get_assignment("q", get_operator_call("Append", ["q", get_binary_op("+", "out", 1)]))])


def test_mapped_write_of_its_own_read():
    (result,) = inline(mapped_block([get_assignment("x", get_binary_op("+", "x", 1))]))

    assert_asts_equal(
        result.body,
        [
            get_assignment("xRead", get_operator_call("Head", ["q"])),
            get_assignment("q", get_operator_call("Append", ["q", get_binary_op("+", "xRead", 1)])),
        ],
    )


def test_indexed_write_goes_through_except():
    macro = get_mapping_macro("Store", [get_yield(get_mapped_variable())], [get_assignment(get_mapped_variable(), get_written_value())])

    (result,) = inline(mapped_block([get_assignment(get_lhs("x", [1]), 5)], macro=macro))

    assert_asts_equal(result.body, [get_assignment("xRead", "q"), get_assignment("q", get_except("xRead", [([1], 5)]))])


def test_multi_assignment_evaluates_every_right_hand_side_first():
    # x := 1 || out := x
    (result,) = inline(mapped_block([get_multi_assignment([("x", 1), ("out", "x")])]))

    expected = [
        get_assignment("xRead", get_operator_call("Head", ["q"])),
        get_assignment("xValue", 1),
        get_assignment("outValue", "xRead"),
        get_assignment("out", "outValue"),
        get_assignment("q", get_operator_call("Append", ["q", "xValue"])),
    ]
    assert_asts_equal(result.body, expected)
    assert [v.name for v in result.variables] == ["xRead", "xValue", "outValue"]


# --- Hygiene ---


def test_with_binder_capturing_a_ref_target_is_renamed():
    # with (g = 1) { x := g + y }, with x bound to global `g` and y to 5
    block = get_block(
        variables=[get_variable("g", 0)],
        archetypes=[get_archetype("A", params=["ref x", "y"], body=[get_with([("g", 1)], [get_assignment("x", get_binary_op("+", "g", "y"))])])],
        instances=[get_instance("P", "A", [get_instance_argument("g", ref=True), 5])],
    )

    (result,) = inline(block)

    assert_asts_equal(result.body, [get_with([("g1", 1)], [get_assignment("g", get_binary_op("+", "g1", 5))])])


def test_quantifier_capturing_a_by_value_capture_is_renamed():
    block = get_block(
        variables=[get_variable("k", 0), get_variable("ok", True)],
        archetypes=[get_archetype("A", params=["y"], body=[get_assignment("ok", get_quantified("\\A", ["k"], get_set_constructor([1]), get_binary_op(">", "k", "y")))])],
        instances=[get_instance("P", "A", ["k"])],
    )

    (result,) = inline(block)

    expected = get_assignment("ok", get_quantified("\\A", ["k1"], get_set_constructor([1]), get_binary_op(">", "k1", "k")))
    assert_asts_equal(result.body, [expected])


def test_macro_binder_capturing_the_written_value_is_renamed():
    # --- ARRANGE ---
    macro = get_mapping_macro(
        "Boxed",
        [get_yield(get_mapped_variable())],
        [get_with([("v", get_written_value())], [get_assignment(get_mapped_variable(), get_tuple_literal(["v"]))])],
    )
    block = mapped_block([get_assignment("x", "v")], macro=macro, extra_globals=[get_variable("v", 0)])

    # --- ACT ---
    (result,) = inline(block)

    # --- ASSERT ---
    assert_asts_equal(result.body, [get_with([("v1", "v")], [get_assignment("q", get_tuple_literal(["v1"]))])])


# --- Errors ---


def test_mapped_read_in_local_initializer_is_rejected():
    with pytest.raises(ModularPlusCalError) as exc_info:
        inline(mapped_block([get_skip()], variables=[get_variable("c", "x")]))

    assert exc_info.value.code == ErrorCode.MAPPED_READ_IN_INITIALIZER
    assert exc_info.value.details == {"name": "c", "param": "x"}


def test_mapped_parameter_cannot_be_passed_by_ref():
    block = mapped_block([get_call("Bump", [get_ref_call_argument("x")])])
    block = block.model_copy(update={"procedures": [get_procedure("Bump", params=["ref y"])]})

    with pytest.raises(ModularPlusCalError) as exc_info:
        inline(block)

    assert exc_info.value.code == ErrorCode.NOT_MAPPABLE
