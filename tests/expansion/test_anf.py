from mpcal.ast.classes import *
from mpcal.ast.factory_helpers import *
from mpcal.config.config import DEFAULT_CONFIG
from mpcal.expansion.core.anf import LiftContext
from mpcal.expansion.core.name_supply import FreshNameSupply

from tests.utils.assertion_helper import assert_asts_equal


class RecordingReadExpander:
    """Expands every read as `skip; <temporary> := Head(<param>Queue)` and counts the calls."""

    def __init__(self):
        self.calls = []

    def __call__(self, parameter, temporary):
        self.calls.append(parameter)
        return [get_skip(), get_assignment(temporary, get_operator_call("Head", [f"{parameter}Queue"]))]


def make_context(reserved=()):
    temporaries = []
    expander = RecordingReadExpander()
    ctx = LiftContext(FreshNameSupply(reserved), DEFAULT_CONFIG, temporaries, expander)
    return ctx, temporaries, expander


def test_bind_assigns_a_fresh_temporary_before_the_statement():
    ctx, temporaries, _ = make_context(reserved={"xValue"})

    temp = ctx.bind(get_binary_op("+", "a", 1), "xValue", get_span())

    assert temp.name == "xValue1"
    assert_asts_equal(ctx.pre_statements, [get_assignment("xValue1", get_binary_op("+", "a", 1))])
    assert_asts_equal(temporaries, [get_variable("xValue1", "defaultInitValue")])


def test_lift_read_expands_the_read_body_into_a_fresh_temporary():
    ctx, temporaries, expander = make_context()

    temp = ctx.lift_read("x", get_span())

    assert temp.name == "xRead"
    assert expander.calls == ["x"]
    assert_asts_equal(ctx.pre_statements, [get_skip(), get_assignment("xRead", get_operator_call("Head", ["xQueue"]))])
    assert [v.name for v in temporaries] == ["xRead"]


def test_repeated_reads_are_coalesced():
    ctx, temporaries, expander = make_context()

    first = ctx.lift_read("x", get_span(1, 1, 1, 2))
    second = ctx.lift_read("x", get_span(1, 5, 1, 6))

    assert first.name == second.name == "xRead"
    assert second.span.s_col == 5
    assert expander.calls == ["x"]
    assert len(temporaries) == 1


def test_reads_of_different_parameters_keep_request_order():
    ctx, _, expander = make_context()

    ctx.lift_read("x", get_span())
    ctx.lift_read("y", get_span())

    assert expander.calls == ["x", "y"]
    assert [s.pairs[0].lhs.variable.name for s in ctx.pre_statements if isinstance(s, Assignment)] == ["xRead", "yRead"]


def test_replay_re_reads_into_the_same_temporaries():
    ctx, temporaries, expander = make_context()
    ctx.lift_read("x", get_span())

    replayed = ctx.replay()

    assert expander.calls == ["x", "x"]
    assert_asts_equal(replayed, [get_skip(), get_assignment("xRead", get_operator_call("Head", ["xQueue"]))])
    assert len(temporaries) == 1


def test_context_without_reads_replays_nothing():
    ctx, _, _ = make_context()
    ctx.bind(get_number_literal(1), "v", get_span())

    assert not ctx.has_lifted_reads
    assert ctx.replay() == []
