import pytest
from textwrap import dedent

from mpcal.ast.classes import PlusCalAlgorithm
from mpcal.ast.factory_helpers import *
from mpcal.exceptions import ErrorCode, ModularPlusCalError
from mpcal.expansion.core.expander import expand_block
from mpcal.formatter.pluscal_formatter import format_pluscal


@pytest.mark.parametrize(
    "expression, expected",
    [
        (get_binary_op("*", get_binary_op("+", "a", 1), "b"), "(a + 1) * b"),
        (get_binary_op("\\in", "x", get_operator_call("SUBSET", ["S"])), "x \\in SUBSET S"),
        (get_operator_call("Head", ["q"]), "Head(q)"),
        (get_operator_call("Max", []), "Max"),
        (get_except("f", [([1, "k"], 0)]), "[f EXCEPT ![1][k] = 0]"),
        (get_quantified("\\E", ["i"], get_binary_op("..", 1, "N"), get_binary_op(">", "i", 0)), "\\E i \\in 1 .. N : i > 0"),
        (get_required_action(get_binary_op("=", "x", 1), "x"), "<<x = 1>>_x"),
        (get_unary_op("UNCHANGED", "x"), "UNCHANGED x"),
        (get_unary_op("~", "p"), "~p"),
        (get_tuple_literal([]), "<<>>"),
        (get_tuple_literal([1, "a"]), "<<1, a>>"),
        (get_set_constructor([1, 2]), "{1, 2}"),
        (get_record([("a", 1), ("b", True)]), "[a |-> 1, b |-> TRUE]"),
        (get_function_apply("f", ["x"]), "f[x]"),
        (get_instance_reference("M", "Op", [1]), "M!Op(1)"),
        (get_string_literal('say "hi"'), '"say \\"hi\\""'),
        (get_written_value(), "$value"),
        (get_mapped_variable(), "$variable"),
    ],
)
def test_expressions(expression, expected):
    assert format_pluscal(expression) == expected


def test_compound_statements():
    # --- ARRANGE ---
    statement = get_while(
        get_boolean_literal(True),
        [
            get_if(get_binary_op(">", "x", 0), [get_skip()], [get_goto("l")]),
            get_either([[get_skip()], [get_print(1)]]),
            get_with([("v", get_set_constructor([1, 2]))], [get_assert(get_binary_op(">", "v", 0))], is_set=True),
        ],
    )

    # --- ACT ---
    text = format_pluscal(statement)

    # --- ASSERT ---
    expected = dedent(
        """\
        while (TRUE) {
            if (x > 0) {
                skip;
            } else {
                goto l;
            }
            either {
                skip;
            } or {
                print 1;
            }
            with (v \\in {1, 2}) {
                assert v > 0;
            }
        }"""
    )
    assert text == expected


def test_multi_assignment_and_indexed_target():
    statement = get_multi_assignment([(get_lhs("f", [1]), 2), ("g", "h")])

    assert format_pluscal(statement) == "f[1] := 2 || g := h;"


def test_calls_mark_ref_arguments():
    assert format_pluscal(get_call("Bump", [get_ref_call_argument("g"), 1])) == "call Bump(ref g, 1);"


def test_algorithm_layout():
    # --- ARRANGE ---
    procedure = get_procedure("Bump", params=["by"], body=[get_assignment("g", get_binary_op("+", "g", "by")), get_return()])
    process = get_process(
        "Main",
        [get_label("l"), get_multi_assignment([("n", get_binary_op("+", "n", 1)), ("g", 0)]), get_call("Bump", [1])],
        variables=[get_variable("n", 0)],
    )
    algorithm = PlusCalAlgorithm(
        span=get_span(),
        name="Counter",
        constants=[get_constant("N")],
        units=[get_operator_definition("Inc", ["v"], get_binary_op("+", "v", 1))],
        variables=[get_variable("g", 0), get_variable("s", get_set_constructor([1, 2]), is_set=True)],
        procedures=[procedure],
        processes=[process],
    )

    # --- ACT ---
    text = format_pluscal(algorithm)

    # --- ASSERT ---
    expected = dedent(
        """\
        CONSTANTS N
        Inc(v) == v + 1

        --algorithm Counter {
            variables g = 0, s \\in {1, 2};

            procedure Bump(by)
            {
                g := g + by;
                return;
            }

            process (Main = 1)
                variables n = 0;
            {
                l:
                n := n + 1 || g := 0;
                call Bump(1);
            }
        }"""
    )
    assert text == expected


def test_process_set_uses_membership():
    process = get_process("Workers", [get_skip()], self_value=get_binary_op("..", 1, "N"), self_kind="set")

    assert format_pluscal(process).splitlines()[0] == "process (Workers \\in 1 .. N)"


def test_module_instances():
    assert format_pluscal(get_module_instance("Sequences")) == "INSTANCE Sequences"
    assert format_pluscal(get_module_instance("Channel", [get_remapping("Data", "Nat")], local=True, name="C")) == "LOCAL C == INSTANCE Channel WITH Data <- Nat"


def test_archetype_declaration():
    archetype = get_archetype("A", params=["ref x", "y"], variables=[get_variable("n", 0)], body=[get_assignment("x", "y")])

    expected = dedent(
        """\
        archetype A(ref x, y)
            variables n = 0;
        {
            x := y;
        }"""
    )
    assert format_pluscal(archetype) == expected


def test_mapping_macro_declaration():
    macro = get_mapping_macro(
        "M",
        [get_yield(get_operator_call("Head", [get_mapped_variable()]))],
        [get_assignment(get_mapped_variable(), get_operator_call("Tail", [get_mapped_variable()]))],
    )

    expected = dedent(
        """\
        mapping macro M {
            read {
                yield Head($variable);
            }
            write {
                $variable := Tail($variable);
            }
        }"""
    )
    assert format_pluscal(macro) == expected


@pytest.mark.parametrize(
    "node",
    [
        get_block(),
        get_instance("P", "A"),
    ],
)
def test_modular_constructs_without_printed_syntax_are_rejected(node):
    with pytest.raises(ModularPlusCalError) as exc_info:
        format_pluscal(node)

    assert exc_info.value.code == ErrorCode.UNSUPPORTED_FORMAT


def test_expanded_algorithm_round_trips_to_text():
    block = get_block(
        name="Inc",
        variables=[get_variable("g", 0)],
        archetypes=[get_archetype("A", params=["ref x"], body=[get_label("step"), get_assignment("x", get_binary_op("+", "x", 1))])],
        instances=[get_instance("P", "A", [get_instance_argument("g", ref=True)])],
    )

    text = format_pluscal(expand_block(block))

    assert "process (P = 1)" in text
    assert "        P_step:\n        g := g + 1;" in text
