import logging
from typing import Dict, List, Optional, Set, Tuple

from mpcal.ast.classes import *
from mpcal.ast.helpers import collect_labels, transform, walk
from mpcal.config.config import DEFAULT_CONFIG, ExpansionConfig
from mpcal.data_structures import BindingKind, InlinedInstance, ResolvedBlock
from mpcal.diagnostics import DiagnosticSink
from mpcal.exceptions import ErrorCode, InternalCompilerError, ModularPlusCalError

logger = logging.getLogger(__name__)


class AlgorithmEmitter:
    """
    Assembles the flat PlusCal algorithm: the block's plain processes, then one
    process per inlined instance in declaration order, with the block's
    constants, TLA+ units, globals and procedures copied once.

    Procedure `ref` parameters have no counterpart in flat PlusCal. Each one is
    bound to the single global passed to it at every call site, substituted into
    the procedure, and removed from the parameter list and the calls.
    """

    def __init__(self, resolved: ResolvedBlock, inlined: List[InlinedInstance], sink: Optional[DiagnosticSink] = None, config: ExpansionConfig = DEFAULT_CONFIG):
        self.resolved = resolved
        self.block = resolved.block
        self.inlined = inlined
        self.sink = sink if sink is not None else DiagnosticSink()
        self.config = config
        self.procedures: Dict[str, Procedure] = {p.name: p for p in self.block.procedures}

    def emit(self) -> PlusCalAlgorithm:
        processes = list(self.block.processes) + [self._emit_process(instance) for instance in self.inlined]
        procedures = list(self.block.procedures)

        bound = self._bind_procedure_refs(processes)
        if bound:
            procedures = [self._emit_procedure(procedure, bound) for procedure in procedures]
            processes = [self._drop_bound_arguments(process, bound) for process in processes]

        algorithm = PlusCalAlgorithm(
            name=self.block.name,
            constants=self.block.constants,
            units=self.block.units,
            variables=self.block.variables,
            procedures=procedures,
            processes=processes,
            span=self.block.span,
        )
        check_unique_labels(algorithm)
        logger.debug("Emitted algorithm '%s' with %d process(es) and %d procedure(s)", algorithm.name, len(processes), len(procedures))
        return algorithm

    def _emit_process(self, instance: InlinedInstance) -> Process:
        plan = instance.plan
        return Process(
            name=plan.instance,
            self_kind=plan.self_kind,
            self_value=plan.self_value,
            variables=instance.variables,
            body=instance.body,
            span=plan.span,
        )

    # --- Procedure ref parameters ---

    def _bind_procedure_refs(self, processes: List[Process]) -> Dict[str, Dict[str, str]]:
        ref_params = {name: [p.name for p in proc.params if p.ref] for name, proc in self.procedures.items()}
        ref_params = {name: params for name, params in ref_params.items() if params}
        if not ref_params:
            return {}

        bindings: Dict[Tuple[str, str], Tuple[str, Span]] = {}

        # Process bodies only ever pass globals: instance bodies were rewritten by the inliner.
        for process in processes:
            for call in self._calls_in(process.body, ref_params):
                for param, arg in self._ref_arguments(call):
                    self._record_binding(bindings, call.procedure, param, arg.value.name, arg.span)

        # A procedure may forward one of its own ref parameters; follow those until nothing changes.
        changed = True
        while changed:
            changed = False
            for procedure in self.procedures.values():
                for call in self._calls_in(procedure.body, ref_params):
                    for param, arg in self._ref_arguments(call):
                        target = self._forwarded_target(procedure, arg.value, bindings)
                        if target is None:
                            continue
                        if (call.procedure, param) not in bindings:
                            changed = True
                        self._record_binding(bindings, call.procedure, param, target, arg.span)

        bound: Dict[str, Dict[str, str]] = {}
        for name, params in ref_params.items():
            for param in params:
                if (name, param) in bindings:
                    bound.setdefault(name, {})[param] = bindings[(name, param)][0]
                else:
                    self.sink.warn(ErrorCode.UNBOUND_REF_PARAMETER, self.procedures[name].span, name=name, param=param)
        return bound

    def _calls_in(self, statements: List[Statement], ref_params: Dict[str, List[str]]) -> List[Call]:
        return [node for stmt in statements for node in walk(stmt) if isinstance(node, Call) and node.procedure in ref_params]

    def _ref_arguments(self, call: Call) -> List[Tuple[str, CallArgument]]:
        params = self.procedures[call.procedure].params
        return [(param.name, arg) for param, arg in zip(params, call.args) if param.ref and isinstance(arg.value, Identifier)]

    def _forwarded_target(self, caller: Procedure, value: Identifier, bindings) -> Optional[str]:
        binding = self.resolved.bindings.lookup(value)
        if binding is not None and binding.kind == BindingKind.PARAMETER and binding.owner == caller.name:
            known = bindings.get((caller.name, value.name))
            return known[0] if known else None
        return value.name

    def _record_binding(self, bindings, procedure: str, param: str, target: str, span: Span):
        key = (procedure, param)
        if key not in bindings:
            bindings[key] = (target, span)
            return
        first, first_span = bindings[key]
        if first != target:
            raise ModularPlusCalError(ErrorCode.REF_BINDING_CONFLICT, span, related=[first_span], name=procedure, first=first, second=target, param=param)

    def _emit_procedure(self, procedure: Procedure, bound: Dict[str, Dict[str, str]]) -> Procedure:
        substitutions = bound.get(procedure.name, {})

        def visit(node: ASTNode) -> ASTNode:
            if isinstance(node, Identifier) and node.name in substitutions:
                binding = self.resolved.bindings.lookup(node)
                if binding is not None and binding.kind == BindingKind.PARAMETER and binding.owner == procedure.name:
                    return Identifier(name=substitutions[node.name], span=node.span)
            if isinstance(node, Call) and node.procedure in bound:
                return self._without_bound_arguments(node, bound)
            return node

        params = [p for p in procedure.params if p.name not in substitutions]
        variables = [transform(v, visit) for v in procedure.variables]
        body = [transform(stmt, visit) for stmt in procedure.body]
        return procedure.model_copy(update={"params": params, "variables": variables, "body": body})

    def _drop_bound_arguments(self, process: Process, bound: Dict[str, Dict[str, str]]) -> Process:
        def visit(node: ASTNode) -> ASTNode:
            if isinstance(node, Call) and node.procedure in bound:
                return self._without_bound_arguments(node, bound)
            return node

        return process.model_copy(update={"body": [transform(stmt, visit) for stmt in process.body]})

    def _without_bound_arguments(self, call: Call, bound: Dict[str, Dict[str, str]]) -> Call:
        params = self.procedures[call.procedure].params
        args = [arg for param, arg in zip(params, call.args) if param.name not in bound[call.procedure]]
        return call.model_copy(update={"args": args})


def check_unique_labels(algorithm: PlusCalAlgorithm):
    """Raises an internal error if any label appears twice across the algorithm's procedures and processes."""
    seen: Set[str] = set()
    for unit in list(algorithm.procedures) + list(algorithm.processes):
        for label in collect_labels(unit.body):
            if label.name in seen:
                raise InternalCompilerError(ErrorCode.LABEL_CONFLICT, label.span, name=label.name)
            seen.add(label.name)


def emit_algorithm(
    resolved: ResolvedBlock,
    inlined: List[InlinedInstance],
    sink: Optional[DiagnosticSink] = None,
    config: ExpansionConfig = DEFAULT_CONFIG,
) -> PlusCalAlgorithm:
    """The main entry point for emission."""
    return AlgorithmEmitter(resolved, inlined, sink, config).emit()
