import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from mpcal.ast.classes import *
from mpcal.ast.helpers import collect_labels, collect_names, iter_child_nodes, walk
from mpcal.config.config import BUILTIN_OPERATORS, BUILTIN_VALUES, DEFAULT_CONFIG, ExpansionConfig
from mpcal.data_structures import VALUE_KINDS, Binding, BindingKind, BindingTable, ResolvedBlock, Scope
from mpcal.diagnostics import DiagnosticSink
from mpcal.exceptions import ErrorCode, InternalCompilerError

logger = logging.getLogger(__name__)

VALUE_PLACEHOLDER = "$value"
VARIABLE_PLACEHOLDER = "$variable"


@dataclass
class _Unit:
    """The declaration whose body is being resolved."""

    kind: str
    name: str
    labels: Set[str] = field(default_factory=set)
    placeholders: Set[str] = field(default_factory=set)
    uses_written_value: bool = False


GLOBAL_UNIT = _Unit(kind="global", name="<global>")


class Resolver:
    """
    Binds every identifier occurrence of a Modular PlusCal block to its
    definition site and checks the block's shape: arities, the `ref`
    discipline of instance and call arguments, mapping-macro attachments and
    the structure of mapping-macro bodies.

    Errors are collected into the sink; the resolver keeps going after an
    error so that a single run reports everything it can, and only raises once
    the whole block has been visited.
    """

    def __init__(self, block: ModularPlusCalBlock, config: ExpansionConfig = DEFAULT_CONFIG, sink: Optional[DiagnosticSink] = None):
        self.block = block
        self.config = config
        self.sink = sink if sink is not None else DiagnosticSink()
        self.table = BindingTable()

        self.builtin_scope = Scope()
        for name in sorted(BUILTIN_VALUES):
            self.builtin_scope.symbols[name] = Binding(kind=BindingKind.BUILTIN, name=name)
        for name, arity in BUILTIN_OPERATORS.items():
            self.builtin_scope.symbols[name] = Binding(kind=BindingKind.BUILTIN, name=name, arity=arity)
        self.global_scope = self.builtin_scope.child()

        self.process_names: Dict[str, Span] = {}
        # Labels of plain processes and procedures share the flat algorithm's namespace.
        self.algorithm_labels: Dict[str, Span] = {}
        # An unnamed `INSTANCE M` pulls M's definitions into scope, which we cannot see.
        self.open_modules: List[str] = []

    def resolve(self) -> ResolvedBlock:
        self._declare_globals()

        for unit in self.block.units:
            self._resolve_tla_unit(unit)
        for variable in self.block.variables:
            self._resolve_expression(variable.value, self.global_scope, GLOBAL_UNIT)
        for macro in self.block.mapping_macros:
            self._resolve_mapping_macro(macro)
        for archetype in self.block.archetypes:
            self._resolve_archetype(archetype)
        for procedure in self.block.procedures:
            self._resolve_procedure(procedure)
        for process in self.block.processes:
            self._resolve_process(process)
        for instance in self.block.instances:
            self._resolve_instance(instance)

        logger.debug("Resolved %d occurrences in block '%s'", len(self.table), self.block.name)
        self.sink.raise_if_errors()

        visible_names = collect_names(self.block) | set(BUILTIN_VALUES) | set(BUILTIN_OPERATORS)
        return ResolvedBlock(block=self.block, bindings=self.table, visible_names=visible_names)

    # --- Declarations ---

    def _declare(self, scope: Scope, name: str, binding: Binding, span: Span):
        prior = scope.symbols.get(name)
        if prior is not None:
            related = [prior.span] if prior.span else []
            self.sink.error(ErrorCode.REDEFINITION, span, related=related, name=name)
            return
        if scope is self.global_scope and name in self.builtin_scope.symbols:
            self.sink.error(ErrorCode.REDEFINITION, span, name=name)
            return
        scope.symbols[name] = binding

    def _declare_globals(self):
        for constant in self.block.constants:
            self._declare(self.global_scope, constant.name, Binding(BindingKind.CONSTANT, constant.name, constant.span), constant.span)
        for unit in self.block.units:
            if isinstance(unit, OperatorDefinition):
                binding = Binding(BindingKind.DEFINITION, unit.name, unit.span, arity=len(unit.params))
                self._declare(self.global_scope, unit.name, binding, unit.span)
            elif unit.name:
                self._declare(self.global_scope, unit.name, Binding(BindingKind.MODULE_INSTANCE, unit.name, unit.span), unit.span)
            else:
                self.open_modules.append(unit.module_name)
        for variable in self.block.variables:
            self._declare(self.global_scope, variable.name, Binding(BindingKind.GLOBAL_VARIABLE, variable.name, variable.span), variable.span)
        for archetype in self.block.archetypes:
            binding = Binding(BindingKind.ARCHETYPE, archetype.name, archetype.span, arity=len(archetype.params))
            self._declare(self.global_scope, archetype.name, binding, archetype.span)
        for macro in self.block.mapping_macros:
            self._declare(self.global_scope, macro.name, Binding(BindingKind.MAPPING_MACRO, macro.name, macro.span), macro.span)
        for procedure in self.block.procedures:
            binding = Binding(BindingKind.PROCEDURE, procedure.name, procedure.span, arity=len(procedure.params))
            self._declare(self.global_scope, procedure.name, binding, procedure.span)

        # Processes and instances become processes of the same algorithm.
        for node in list(self.block.processes) + list(self.block.instances):
            if node.name in self.process_names:
                self.sink.error(ErrorCode.REDEFINITION, node.span, related=[self.process_names[node.name]], name=node.name)
            else:
                self.process_names[node.name] = node.span

    def _declare_labels(self, unit: _Unit, statements: List[Statement]) -> Dict[str, Span]:
        seen: Dict[str, Span] = {}
        for label in collect_labels(statements):
            if label.name in seen:
                self.sink.error(ErrorCode.REDEFINITION, label.span, related=[seen[label.name]], name=label.name)
            else:
                seen[label.name] = label.span
        unit.labels = set(seen)
        return seen

    def _declare_algorithm_labels(self, labels: Dict[str, Span]):
        for name, span in labels.items():
            if name in self.algorithm_labels:
                self.sink.error(ErrorCode.REDEFINITION, span, related=[self.algorithm_labels[name]], name=name)
            else:
                self.algorithm_labels[name] = span

    def _declare_parameters(self, owner: str, params: List[Parameter], scope: Scope):
        for param in params:
            binding = Binding(BindingKind.PARAMETER, param.name, param.span, owner=owner, is_ref=param.ref)
            self._declare(scope, param.name, binding, param.span)

    def _declare_locals(self, owner: str, variables: List[Variable], param_scope: Scope, unit: _Unit) -> Scope:
        local_scope = param_scope.child()
        for variable in variables:
            # Each initializer sees the parameters and the locals declared before it.
            self._resolve_expression(variable.value, local_scope, unit)
            shadowed = param_scope.symbols.get(variable.name)
            if shadowed is not None and not self.config.allow_parameter_shadowing:
                self.sink.error(ErrorCode.REDEFINITION, variable.span, related=[shadowed.span], name=variable.name)
                continue
            binding = Binding(BindingKind.LOCAL_VARIABLE, variable.name, variable.span, owner=owner)
            self._declare(local_scope, variable.name, binding, variable.span)
        return local_scope

    # --- Units ---

    def _resolve_tla_unit(self, unit: TlaUnit):
        if isinstance(unit, OperatorDefinition):
            scope = self.global_scope.child()
            for param in unit.params:
                scope.symbols[param] = Binding(BindingKind.BOUND_VARIABLE, param, unit.span)
            self._resolve_expression(unit.body, scope, GLOBAL_UNIT)
        else:
            # Remappings rename parameters of the instantiated module; only the right-hand sides are ours.
            for remapping in unit.remappings:
                self._resolve_expression(remapping.to, self.global_scope, GLOBAL_UNIT)

    def _resolve_mapping_macro(self, macro: MappingMacro):
        yields = [node for stmt in macro.read_body for node in walk(stmt) if isinstance(node, Yield)]
        if len(yields) != 1:
            self.sink.error(ErrorCode.MACRO_YIELD_MISPLACED, macro.span, name=macro.name, details=f"its read body must yield exactly once, found {len(yields)} yields.")

        for node in (n for stmt in macro.write_body for n in walk(stmt)):
            if isinstance(node, Yield):
                self.sink.error(ErrorCode.MACRO_YIELD_MISPLACED, node.span, name=macro.name, details="its write body cannot yield.")

        read_unit = _Unit(kind="macro_read", name=macro.name, placeholders={VARIABLE_PLACEHOLDER})
        self._declare_labels(read_unit, macro.read_body)
        self._resolve_statements(macro.read_body, self.global_scope.child(), read_unit)

        write_unit = _Unit(kind="macro_write", name=macro.name, placeholders={VARIABLE_PLACEHOLDER, VALUE_PLACEHOLDER})
        self._declare_labels(write_unit, macro.write_body)
        self._resolve_statements(macro.write_body, self.global_scope.child(), write_unit)
        if not write_unit.uses_written_value:
            self.sink.warn(ErrorCode.WRITE_IGNORES_VALUE, macro.span, name=macro.name)

    def _resolve_archetype(self, archetype: Archetype):
        unit = _Unit(kind="archetype", name=archetype.name)
        self._declare_labels(unit, archetype.body)
        param_scope = self.global_scope.child()
        self._declare_parameters(archetype.name, archetype.params, param_scope)
        local_scope = self._declare_locals(archetype.name, archetype.variables, param_scope, unit)
        self._resolve_statements(archetype.body, local_scope, unit)

    def _resolve_procedure(self, procedure: Procedure):
        unit = _Unit(kind="procedure", name=procedure.name)
        self._declare_algorithm_labels(self._declare_labels(unit, procedure.body))
        param_scope = self.global_scope.child()
        self._declare_parameters(procedure.name, procedure.params, param_scope)
        local_scope = self._declare_locals(procedure.name, procedure.variables, param_scope, unit)
        self._resolve_statements(procedure.body, local_scope, unit)

    def _resolve_process(self, process: Process):
        unit = _Unit(kind="process", name=process.name)
        self._declare_algorithm_labels(self._declare_labels(unit, process.body))
        self._resolve_expression(process.self_value, self.global_scope, GLOBAL_UNIT)
        local_scope = self._declare_locals(process.name, process.variables, self.global_scope.child(), unit)
        self._resolve_statements(process.body, local_scope, unit)

    def _resolve_instance(self, instance: Instance):
        self._resolve_expression(instance.self_value, self.global_scope, GLOBAL_UNIT)

        archetype = self._lookup_declaration(instance.archetype, BindingKind.ARCHETYPE, instance.span, "as an archetype")
        params = []
        if archetype is not None:
            params = next(a.params for a in self.block.archetypes if a.name == instance.archetype)
            if len(params) != len(instance.args):
                self.sink.error(ErrorCode.ARITY_MISMATCH, instance.span, name=instance.archetype, expected=len(params), actual=len(instance.args))

        for index, arg in enumerate(instance.args):
            param = params[index] if index < len(params) else None
            if param is not None:
                if param.ref:
                    self._check_ref_argument(param, arg.value, arg.ref, arg.span, self.global_scope, allow_ref_parameters=False)
                elif arg.ref:
                    self.sink.error(ErrorCode.REF_FORBIDDEN, arg.span, param=param.name)
                if arg.mapping and not param.ref:
                    self.sink.error(ErrorCode.NOT_MAPPABLE, arg.span, param=param.name, reason="only 'ref' parameters can be mapped")
            if arg.mapping:
                self._lookup_declaration(arg.mapping, BindingKind.MAPPING_MACRO, arg.span, "as a mapping macro")
            self._resolve_expression(arg.value, self.global_scope, GLOBAL_UNIT)

    def _lookup_declaration(self, name: str, kind: BindingKind, span: Span, usage: str) -> Optional[Binding]:
        binding = self.global_scope.lookup(name)
        if binding is None:
            self.sink.error(ErrorCode.UNKNOWN_NAME, span, name=name)
            return None
        if binding.kind != kind:
            self.sink.error(ErrorCode.WRONG_CATEGORY, span, name=name, category=binding.kind.value, usage=usage)
            return None
        return binding

    def _check_ref_argument(self, param: Parameter, value: Expression, marked_ref: bool, span: Span, scope: Scope, allow_ref_parameters: bool):
        if not marked_ref or not isinstance(value, Identifier):
            self.sink.error(ErrorCode.REF_EXPECTED, span, param=param.name)
            return
        binding = scope.lookup(value.name)
        if binding is None:
            # Reported when the argument itself is resolved.
            return
        if binding.kind == BindingKind.GLOBAL_VARIABLE:
            return
        if allow_ref_parameters and binding.kind == BindingKind.PARAMETER and binding.is_ref:
            return
        self.sink.error(ErrorCode.REF_EXPECTED, span, param=param.name)

    # --- Statements ---

    def _resolve_statements(self, statements: List[Statement], scope: Scope, unit: _Unit):
        for stmt in statements:
            self._resolve_statement(stmt, scope, unit)

    def _resolve_statement(self, stmt: Statement, scope: Scope, unit: _Unit):
        if isinstance(stmt, Assignment):
            for pair in stmt.pairs:
                self._resolve_expression(pair.rhs, scope, unit)
                self._resolve_assignment_target(pair.lhs, scope, unit)
        elif isinstance(stmt, If):
            self._resolve_expression(stmt.condition, scope, unit)
            self._resolve_statements(stmt.then_body, scope, unit)
            self._resolve_statements(stmt.else_body, scope, unit)
        elif isinstance(stmt, While):
            self._resolve_expression(stmt.condition, scope, unit)
            self._resolve_statements(stmt.body, scope, unit)
        elif isinstance(stmt, Either):
            for branch in stmt.branches:
                self._resolve_statements(branch, scope, unit)
        elif isinstance(stmt, With):
            with_scope = scope.child()
            for binding in stmt.bindings:
                self._resolve_expression(binding.value, with_scope, unit)
                with_scope.symbols[binding.name] = Binding(BindingKind.BOUND_VARIABLE, binding.name, binding.span)
            self._resolve_statements(stmt.body, with_scope, unit)
        elif isinstance(stmt, (Await, Assert)):
            self._resolve_expression(stmt.condition, scope, unit)
        elif isinstance(stmt, Print):
            self._resolve_expression(stmt.value, scope, unit)
        elif isinstance(stmt, Goto):
            if stmt.target not in unit.labels:
                self.sink.error(ErrorCode.UNKNOWN_LABEL, stmt.span, name=stmt.target)
        elif isinstance(stmt, Call):
            self._resolve_call(stmt, scope, unit)
        elif isinstance(stmt, Yield):
            if unit.kind == "macro_read":
                self._resolve_expression(stmt.value, scope, unit)
            elif unit.kind != "macro_write":
                self.sink.error(ErrorCode.PLACEHOLDER_MISPLACED, stmt.span, placeholder="yield", allowed="inside the read body of a mapping macro")
        elif isinstance(stmt, (Label, Return, Skip)):
            pass
        else:
            raise InternalCompilerError(ErrorCode.UNHANDLED_NODE, stmt.span, stage="resolver", node=type(stmt).__name__)

    def _resolve_assignment_target(self, lhs: LhsTarget, scope: Scope, unit: _Unit):
        for index in lhs.indices:
            self._resolve_expression(index, scope, unit)

        if isinstance(lhs.variable, MappedVariable):
            self._check_placeholder(VARIABLE_PLACEHOLDER, lhs.variable, unit)
            return

        target = lhs.variable
        binding = scope.lookup(target.name)
        if binding is None:
            self._report_unknown(target, scope)
            return
        self.table.record(target, binding)

        if binding.kind in (BindingKind.GLOBAL_VARIABLE, BindingKind.LOCAL_VARIABLE):
            return
        if binding.kind == BindingKind.PARAMETER and (binding.is_ref or unit.kind == "procedure"):
            return
        category = "by-value parameter" if binding.kind == BindingKind.PARAMETER else binding.kind.value
        self.sink.error(ErrorCode.WRONG_CATEGORY, target.span, name=target.name, category=category, usage="as an assignment target")

    def _resolve_call(self, call: Call, scope: Scope, unit: _Unit):
        for arg in call.args:
            self._resolve_expression(arg.value, scope, unit)

        binding = scope.lookup(call.procedure)
        if binding is None:
            self.sink.error(ErrorCode.UNKNOWN_NAME, call.span, name=call.procedure)
            return
        if binding.kind != BindingKind.PROCEDURE:
            self.sink.error(ErrorCode.WRONG_CATEGORY, call.span, name=call.procedure, category=binding.kind.value, usage="in a call")
            return
        if binding.arity != len(call.args):
            self.sink.error(ErrorCode.ARITY_MISMATCH, call.span, name=call.procedure, expected=binding.arity, actual=len(call.args))

        params = next(p.params for p in self.block.procedures if p.name == call.procedure)
        allow_ref_parameters = unit.kind in ("archetype", "procedure")
        for param, arg in zip(params, call.args):
            if param.ref:
                self._check_ref_argument(param, arg.value, arg.ref, arg.span, scope, allow_ref_parameters)
            elif arg.ref:
                self.sink.error(ErrorCode.REF_FORBIDDEN, arg.span, param=param.name)

    # --- Expressions ---

    def _resolve_expression(self, expr: Expression, scope: Scope, unit: _Unit):
        if isinstance(expr, Identifier):
            binding = scope.lookup(expr.name)
            if binding is None:
                self._report_unknown(expr, scope)
                return
            self.table.record(expr, binding)
            if binding.kind not in VALUE_KINDS:
                self.sink.error(ErrorCode.WRONG_CATEGORY, expr.span, name=expr.name, category=binding.kind.value, usage="as a value")
            elif binding.kind == BindingKind.BUILTIN and binding.arity is not None:
                self.sink.error(ErrorCode.WRONG_CATEGORY, expr.span, name=expr.name, category="builtin operator", usage="as a value")
        elif isinstance(expr, WrittenValue):
            self._check_placeholder(VALUE_PLACEHOLDER, expr, unit)
        elif isinstance(expr, MappedVariable):
            self._check_placeholder(VARIABLE_PLACEHOLDER, expr, unit)
        elif isinstance(expr, OperatorCall):
            self._resolve_operator_call(expr, scope, unit)
        elif isinstance(expr, Quantified):
            inner = scope.child()
            for bound in expr.bounds:
                self._resolve_expression(bound.domain, scope, unit)
                for name in bound.names:
                    inner.symbols[name] = Binding(BindingKind.BOUND_VARIABLE, name, bound.span)
            self._resolve_expression(expr.body, inner, unit)
        elif isinstance(expr, InstanceReference):
            binding = scope.lookup(expr.prefix)
            if binding is None:
                self.sink.error(ErrorCode.UNKNOWN_NAME, expr.span, name=expr.prefix)
            elif binding.kind != BindingKind.MODULE_INSTANCE:
                self.sink.error(ErrorCode.WRONG_CATEGORY, expr.span, name=expr.prefix, category=binding.kind.value, usage="as a module instance prefix")
            for arg in expr.args:
                self._resolve_expression(arg, scope, unit)
        else:
            for child in iter_child_nodes(expr):
                self._resolve_expression(child, scope, unit)

    def _resolve_operator_call(self, call: OperatorCall, scope: Scope, unit: _Unit):
        for arg in call.args:
            self._resolve_expression(arg, scope, unit)

        binding = scope.lookup(call.name)
        if binding is None:
            if not self.open_modules:
                self.sink.error(ErrorCode.UNKNOWN_NAME, call.span, name=call.name)
            return
        self.table.record(call, binding)

        if binding.kind == BindingKind.CONSTANT:
            return
        if binding.kind not in (BindingKind.BUILTIN, BindingKind.DEFINITION) or binding.arity is None:
            self.sink.error(ErrorCode.WRONG_CATEGORY, call.span, name=call.name, category=binding.kind.value, usage="as an operator")
            return
        if binding.arity != len(call.args):
            self.sink.error(ErrorCode.ARITY_MISMATCH, call.span, name=call.name, expected=binding.arity, actual=len(call.args))

    def _check_placeholder(self, placeholder: str, node: ASTNode, unit: _Unit):
        if placeholder not in unit.placeholders:
            allowed = "inside the write body of a mapping macro" if placeholder == VALUE_PLACEHOLDER else "inside a mapping macro"
            self.sink.error(ErrorCode.PLACEHOLDER_MISPLACED, node.span, placeholder=placeholder, allowed=allowed)
        elif placeholder == VALUE_PLACEHOLDER:
            unit.uses_written_value = True

    def _report_unknown(self, identifier: Identifier, scope: Scope):
        if self.open_modules:
            # Could be a definition of a module instantiated without a name.
            binding = Binding(BindingKind.DEFINITION, identifier.name, owner=self.open_modules[0])
            self.table.record(identifier, binding)
            return
        self.sink.error(ErrorCode.UNKNOWN_NAME, identifier.span, name=identifier.name)


def resolve_block(block: ModularPlusCalBlock, config: ExpansionConfig = DEFAULT_CONFIG, sink: Optional[DiagnosticSink] = None) -> ResolvedBlock:
    """
    The main entry point for name resolution. Raises CompilationErrors carrying
    every collected diagnostic if the block has errors.

    Bindings are recorded per node object; a block that reuses one node in
    several places should go through `unshare` first, as `expand_block` does.
    """
    return Resolver(block, config, sink).resolve()
