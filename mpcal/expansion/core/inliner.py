import logging
from collections import Counter
from typing import Dict, List, Optional, Set, Tuple

from mpcal.ast.classes import *
from mpcal.ast.helpers import collect_labels, free_names, map_children
from mpcal.config.config import DEFAULT_CONFIG, ExpansionConfig
from mpcal.data_structures import BindingKind, InlinedInstance, InstancePlan, ParameterBinding, ResolvedBlock
from mpcal.exceptions import ErrorCode, InternalCompilerError, ModularPlusCalError

from .anf import LiftContext, make_assignment
from .name_supply import FreshNameSupply
from .planner import check_plan

logger = logging.getLogger(__name__)

_COMPOUND_EXPRESSIONS = (
    RecordConstructor,
    RecordField,
    FunctionApply,
    OperatorCall,
    SetConstructor,
    BinaryOp,
    UnaryOp,
    TupleLiteral,
    Except,
    ExceptUpdate,
    InstanceReference,
)


class MacroInstantiation:
    """
    One expansion of a mapping-macro body at a use site: `$variable` becomes
    the bound global, `$value` the value being written, and the yield of a read
    body becomes an assignment to `yield_target`. Labels get fresh names, and
    binders that would capture one of the substituted names are α-renamed.
    """

    def __init__(
        self,
        body: List[Statement],
        target: str,
        value: Optional[Expression],
        supply: FreshNameSupply,
        label_prefix: str,
        yield_target: Optional[str] = None,
    ):
        self.target = target
        self.value = value
        self.yield_target = yield_target
        self.supply = supply
        self.at_risk: Set[str] = {target} | (free_names(value) if value is not None else set())
        if yield_target is not None:
            self.at_risk.add(yield_target)
        self.labels = {label.name: supply.fresh(f"{label_prefix}{label.name}") for label in collect_labels(body)}
        self._frames: List[Dict[str, str]] = []

    def statements(self, statements: List[Statement]) -> List[Statement]:
        return [self.rewrite(stmt) for stmt in statements]

    def rewrite(self, node: ASTNode) -> ASTNode:
        if isinstance(node, WrittenValue):
            return self.value
        if isinstance(node, MappedVariable):
            return Identifier(name=self.target, span=node.span)
        if isinstance(node, Identifier):
            return _rename_bound(node, self._frames)
        if isinstance(node, Yield):
            return make_assignment(self.yield_target, self.rewrite(node.value), node.span)
        if isinstance(node, Label):
            return node.model_copy(update={"name": self.labels[node.name]})
        if isinstance(node, Goto):
            return node.model_copy(update={"target": self.labels[node.target]})
        if isinstance(node, With):
            frame: Dict[str, str] = {}
            self._frames.append(frame)
            bindings = []
            for binding in node.bindings:
                value = self.rewrite(binding.value)
                frame[binding.name] = self._binder_name(binding.name)
                bindings.append(binding.model_copy(update={"name": frame[binding.name], "value": value}))
            body = self.statements(node.body)
            self._frames.pop()
            return node.model_copy(update={"bindings": bindings, "body": body})
        if isinstance(node, Quantified):
            domains = [self.rewrite(bound.domain) for bound in node.bounds]
            frame = {name: self._binder_name(name) for bound in node.bounds for name in bound.names}
            self._frames.append(frame)
            body = self.rewrite(node.body)
            self._frames.pop()
            bounds = [b.model_copy(update={"names": [frame[n] for n in b.names], "domain": d}) for b, d in zip(node.bounds, domains)]
            return node.model_copy(update={"bounds": bounds, "body": body})
        return map_children(node, self.rewrite)

    def _binder_name(self, name: str) -> str:
        return self.supply.fresh(name) if name in self.at_risk else name


def _rename_bound(identifier: Identifier, frames: List[Dict[str, str]]) -> Identifier:
    for frame in reversed(frames):
        if identifier.name in frame:
            new_name = frame[identifier.name]
            return identifier if new_name == identifier.name else Identifier(name=new_name, span=identifier.span)
    return identifier


class ArchetypeInliner:
    """
    Rewrites one archetype body under the plan of one instance, producing a
    statement list that no longer mentions archetype parameters or mapping
    macros.

    Each statement is rewritten under its own LiftContext: reads of mapped
    parameters are lifted into temporaries that run before the statement, and
    writes to them are replaced by the macro's write body.
    """

    def __init__(self, resolved: ResolvedBlock, plan: InstancePlan, supply: FreshNameSupply, config: ExpansionConfig = DEFAULT_CONFIG):
        self.table = resolved.bindings
        self.plan = plan
        self.supply = supply
        self.config = config
        self.archetype = next(a for a in resolved.block.archetypes if a.name == plan.archetype)
        self.macros: Dict[str, MappingMacro] = {m.name: m for m in resolved.block.mapping_macros}

        self.temporaries: List[Variable] = []
        self.read_expansions: Counter = Counter()
        self._frames: List[Dict[str, str]] = []
        self._required_action_depth = 0
        self._initializing: Optional[str] = None
        self._preceding_label: Optional[str] = None
        self._label_prefix = f"{plan.instance}{config.name_separator}"

        # Binders with these names would capture part of a substituted expression.
        self._captured_names: Set[str] = set()
        for binding in plan.bindings.values():
            if binding.is_ref:
                self._captured_names.add(binding.target)
            else:
                self._captured_names |= free_names(binding.value)

    def inline(self) -> InlinedInstance:
        check_plan(self.plan, self.archetype)

        variables = []
        for variable in self.archetype.variables:
            self._initializing = variable.name
            value = self._rewrite_expression(variable.value, None)
            variables.append(Variable(name=self.plan.renamings[variable.name], value=value, is_set=variable.is_set, span=variable.span))
        self._initializing = None

        body = self._rewrite_statements(self.archetype.body)
        logger.debug("Inlined '%s' as '%s': %d temporaries, reads %s", self.archetype.name, self.plan.instance, len(self.temporaries), dict(self.read_expansions))
        return InlinedInstance(plan=self.plan, variables=variables + self.temporaries, body=body)

    # --- Mapping Macros ---

    def _context(self) -> LiftContext:
        return LiftContext(self.supply, self.config, self.temporaries, self._expand_read)

    def _expand_read(self, parameter: str, temporary: str) -> List[Statement]:
        binding = self.plan.bindings[parameter]
        macro = self.macros[binding.mapping_macro]
        instantiation = MacroInstantiation(macro.read_body, binding.target, None, self.supply, self._label_prefix, yield_target=temporary)
        self.read_expansions[parameter] += 1
        return instantiation.statements(macro.read_body)

    def _expand_write(self, parameter: str, value: Expression) -> List[Statement]:
        binding = self.plan.bindings[parameter]
        macro = self.macros[binding.mapping_macro]
        instantiation = MacroInstantiation(macro.write_body, binding.target, value, self.supply, self._label_prefix)
        return instantiation.statements(macro.write_body)

    def _parameter_binding(self, identifier: Identifier) -> Optional[ParameterBinding]:
        binding = self.table.lookup(identifier)
        if binding is None or binding.kind != BindingKind.PARAMETER or binding.owner != self.archetype.name:
            return None
        if identifier.name not in self.plan.bindings:
            raise InternalCompilerError(ErrorCode.PLAN_INCONSISTENT, identifier.span, instance=self.plan.instance, param=identifier.name, archetype=self.archetype.name)
        return self.plan.bindings[identifier.name]

    def _mapped_target(self, lhs: LhsTarget) -> Optional[ParameterBinding]:
        if not isinstance(lhs.variable, Identifier):
            return None
        binding = self._parameter_binding(lhs.variable)
        return binding if binding is not None and binding.is_mapped else None

    # --- Statements ---

    def _rewrite_statements(self, statements: List[Statement]) -> List[Statement]:
        result: List[Statement] = []
        preceding_label = None
        for stmt in statements:
            self._preceding_label = preceding_label
            result.extend(self._rewrite_statement(stmt))
            preceding_label = stmt.name if isinstance(stmt, Label) else None
        return result

    def _rewrite_statement(self, stmt: Statement) -> List[Statement]:
        if isinstance(stmt, Assignment):
            return self._rewrite_assignment(stmt)

        if isinstance(stmt, If):
            ctx = self._context()
            condition = self._rewrite_expression(stmt.condition, ctx)
            then_body = self._rewrite_statements(stmt.then_body)
            else_body = self._rewrite_statements(stmt.else_body)
            return ctx.pre_statements + [stmt.model_copy(update={"condition": condition, "then_body": then_body, "else_body": else_body})]

        if isinstance(stmt, While):
            return self._rewrite_while(stmt)

        if isinstance(stmt, Either):
            return [stmt.model_copy(update={"branches": [self._rewrite_statements(branch) for branch in stmt.branches]})]

        if isinstance(stmt, With):
            ctx = self._context()
            frame: Dict[str, str] = {}
            self._frames.append(frame)
            bindings = []
            for binding in stmt.bindings:
                value = self._rewrite_expression(binding.value, ctx)
                frame[binding.name] = self._binder_name(binding.name)
                bindings.append(binding.model_copy(update={"name": frame[binding.name], "value": value}))
            body = self._rewrite_statements(stmt.body)
            self._frames.pop()
            return ctx.pre_statements + [stmt.model_copy(update={"bindings": bindings, "body": body})]

        if isinstance(stmt, (Await, Assert)):
            ctx = self._context()
            condition = self._rewrite_expression(stmt.condition, ctx)
            return ctx.pre_statements + [stmt.model_copy(update={"condition": condition})]

        if isinstance(stmt, Print):
            ctx = self._context()
            value = self._rewrite_expression(stmt.value, ctx)
            return ctx.pre_statements + [stmt.model_copy(update={"value": value})]

        if isinstance(stmt, Call):
            ctx = self._context()
            args = []
            for arg in stmt.args:
                value = self._rewrite_ref_argument(arg, stmt.procedure) if arg.ref else self._rewrite_expression(arg.value, ctx)
                args.append(arg.model_copy(update={"value": value}))
            return ctx.pre_statements + [stmt.model_copy(update={"args": args})]

        if isinstance(stmt, Label):
            return [stmt.model_copy(update={"name": self.plan.labels[stmt.name]})]

        if isinstance(stmt, Goto):
            return [stmt.model_copy(update={"target": self.plan.labels[stmt.target]})]

        if isinstance(stmt, (Return, Skip)):
            return [stmt]

        raise InternalCompilerError(ErrorCode.UNHANDLED_NODE, stmt.span, stage="inliner", node=type(stmt).__name__)

    def _rewrite_assignment(self, stmt: Assignment) -> List[Statement]:
        ctx = self._context()
        values = [self._rewrite_expression(pair.rhs, ctx) for pair in stmt.pairs]
        mapped = [self._mapped_target(pair.lhs) for pair in stmt.pairs]

        if not any(mapped):
            pairs = [pair.model_copy(update={"lhs": self._rewrite_lhs(pair.lhs, ctx), "rhs": value}) for pair, value in zip(stmt.pairs, values)]
            return ctx.pre_statements + [stmt.model_copy(update={"pairs": pairs})]

        # Every right-hand side is evaluated before any write happens.
        if len(stmt.pairs) > 1:
            values = [ctx.bind(value, f"{pair.lhs.variable.name}{self.config.value_temporary_suffix}", pair.span) for pair, value in zip(stmt.pairs, values)]

        plain_pairs = []
        writes: Dict[str, List[Tuple[List[Expression], Expression, Span]]] = {}
        for pair, binding, value in zip(stmt.pairs, mapped, values):
            if binding is None:
                plain_pairs.append(pair.model_copy(update={"lhs": self._rewrite_lhs(pair.lhs, ctx), "rhs": value}))
            else:
                indices = [self._rewrite_expression(index, ctx) for index in pair.lhs.indices]
                writes.setdefault(binding.parameter, []).append((indices, value, pair.span))

        written = {parameter: self._written_value(parameter, updates, ctx) for parameter, updates in writes.items()}

        statements = list(ctx.pre_statements)
        if plain_pairs:
            statements.append(stmt.model_copy(update={"pairs": plain_pairs}))
        for parameter, value in written.items():
            statements.extend(self._expand_write(parameter, value))
        return statements

    def _written_value(self, parameter: str, updates: List[Tuple[List[Expression], Expression, Span]], ctx: LiftContext) -> Expression:
        whole = [value for indices, value, _ in updates if not indices]
        if whole:
            return whole[-1]
        span = updates[0][2]
        current = ctx.lift_read(parameter, span)
        except_updates = [ExceptUpdate(path=indices, value=value, span=update_span) for indices, value, update_span in updates]
        return Except(function=current, updates=except_updates, span=span)

    def _rewrite_lhs(self, lhs: LhsTarget, ctx: LiftContext) -> LhsTarget:
        indices = [self._rewrite_expression(index, ctx) for index in lhs.indices]
        variable = self._rewrite_expression(lhs.variable, ctx)
        return lhs.model_copy(update={"variable": variable, "indices": indices})

    def _rewrite_while(self, stmt: While) -> List[Statement]:
        source = self._preceding_label or "while"
        ctx = self._context()
        condition = self._rewrite_expression(stmt.condition, ctx)
        body = self._rewrite_statements(stmt.body)
        if not ctx.has_lifted_reads:
            return ctx.pre_statements + [stmt.model_copy(update={"condition": condition, "body": body})]

        # The test is read before the loop and again at the end of every iteration.
        loop_label = Label(name=self.supply.fresh(f"{self._label_prefix}{source}{self.config.loop_label_suffix}"), span=stmt.span)
        loop = stmt.model_copy(update={"condition": condition, "body": body + ctx.replay()})
        return ctx.pre_statements + [loop_label, loop]

    def _rewrite_ref_argument(self, arg: CallArgument, procedure: str) -> Expression:
        binding = self._parameter_binding(arg.value) if isinstance(arg.value, Identifier) else None
        if binding is None:
            return arg.value
        if binding.is_mapped:
            raise ModularPlusCalError(ErrorCode.NOT_MAPPABLE, arg.span, param=binding.parameter, reason=f"it is passed by reference to procedure '{procedure}'")
        return Identifier(name=binding.target, span=arg.value.span)

    # --- Expressions ---

    def _rewrite_expression(self, expr: Expression, ctx: Optional[LiftContext]) -> Expression:
        if isinstance(expr, Identifier):
            return self._rewrite_identifier(expr, ctx)

        if isinstance(expr, (NumberLiteral, StringLiteral, BooleanLiteral)):
            return expr

        if isinstance(expr, Quantified):
            domains = [self._rewrite_expression(bound.domain, ctx) for bound in expr.bounds]
            frame = {name: self._binder_name(name) for bound in expr.bounds for name in bound.names}
            self._frames.append(frame)
            body = self._rewrite_expression(expr.body, ctx)
            self._frames.pop()
            bounds = [b.model_copy(update={"names": [frame[n] for n in b.names], "domain": d}) for b, d in zip(expr.bounds, domains)]
            return expr.model_copy(update={"bounds": bounds, "body": body})

        if isinstance(expr, RequiredAction):
            # Mapped parameters inside a required action stand for their global; nothing is lifted.
            self._required_action_depth += 1
            try:
                return map_children(expr, lambda child: self._rewrite_expression(child, ctx))
            finally:
                self._required_action_depth -= 1

        if isinstance(expr, _COMPOUND_EXPRESSIONS):
            return map_children(expr, lambda child: self._rewrite_expression(child, ctx))

        raise InternalCompilerError(ErrorCode.UNHANDLED_NODE, expr.span, stage="inliner", node=type(expr).__name__)

    def _rewrite_identifier(self, identifier: Identifier, ctx: Optional[LiftContext]) -> Expression:
        binding = self.table.lookup(identifier)
        if binding is None:
            return identifier

        if binding.kind == BindingKind.PARAMETER and binding.owner == self.archetype.name:
            parameter = self._parameter_binding(identifier)
            if not parameter.is_ref:
                return parameter.value.model_copy(deep=True)
            if not parameter.is_mapped or self._required_action_depth:
                return Identifier(name=parameter.target, span=identifier.span)
            if ctx is None:
                raise ModularPlusCalError(ErrorCode.MAPPED_READ_IN_INITIALIZER, identifier.span, name=self._initializing, param=identifier.name)
            return ctx.lift_read(identifier.name, identifier.span)

        if binding.kind == BindingKind.LOCAL_VARIABLE and binding.owner == self.archetype.name:
            return Identifier(name=self.plan.renamings[identifier.name], span=identifier.span)

        if binding.kind == BindingKind.BOUND_VARIABLE:
            return _rename_bound(identifier, self._frames)

        return identifier

    def _binder_name(self, name: str) -> str:
        return self.supply.fresh(name) if name in self._captured_names else name


def inline_instances(
    resolved: ResolvedBlock,
    plans: List[InstancePlan],
    supply: FreshNameSupply,
    config: ExpansionConfig = DEFAULT_CONFIG,
) -> List[InlinedInstance]:
    """The main entry point for inlining: one rewritten body per plan, in plan order."""
    return [ArchetypeInliner(resolved, plan, supply, config).inline() for plan in plans]
