from typing import List, Optional, Tuple, Union

from mpcal.ast.classes import *


def get_span(s_line: int = 1, s_col: int = 1, e_line: int = 1, e_col: int = 1, file_path: Optional[str] = None):
    return Span(s_line=s_line, s_col=s_col, e_line=e_line, e_col=e_col, file_path=file_path)


def _span_or_default(span: Optional[Span]) -> Span:
    return span if span is not None else get_span()


def _as_expression(value: Union[Expression, str, int, bool]):
    """Lets tests write `"x"` for an identifier and `1` for a number literal."""
    if isinstance(value, bool):
        return get_boolean_literal(value)
    if isinstance(value, int):
        return get_number_literal(value)
    if isinstance(value, str):
        return get_identifier(value)
    return value


# --- Expressions ---


def get_identifier(name: str, span: Optional[Span] = None):
    return Identifier(span=_span_or_default(span), name=name)


def get_number_literal(value: int):
    return NumberLiteral(span=get_span(), value=value)


def get_string_literal(value: str):
    return StringLiteral(span=get_span(), value=value)


def get_boolean_literal(value: bool):
    return BooleanLiteral(span=get_span(), value=value)


def get_written_value():
    return WrittenValue(span=get_span())


def get_mapped_variable():
    return MappedVariable(span=get_span())


def get_binary_op(operator: str, lhs, rhs):
    return BinaryOp(span=get_span(), operator=operator, lhs=_as_expression(lhs), rhs=_as_expression(rhs))


def get_unary_op(operator: str, operand):
    return UnaryOp(span=get_span(), operator=operator, operand=_as_expression(operand))


def get_operator_call(name: str, args: List):
    return OperatorCall(span=get_span(), name=name, args=[_as_expression(a) for a in args])


def get_function_apply(function, args: List):
    return FunctionApply(span=get_span(), function=_as_expression(function), args=[_as_expression(a) for a in args])


def get_tuple_literal(items: List):
    return TupleLiteral(span=get_span(), items=[_as_expression(i) for i in items])


def get_set_constructor(items: List):
    return SetConstructor(span=get_span(), items=[_as_expression(i) for i in items])


def get_record(entries: List[Tuple[str, Expression]]):
    return RecordConstructor(span=get_span(), entries=[RecordField(span=get_span(), name=n, value=_as_expression(v)) for n, v in entries])


def get_quantified(quantifier: str, names: List[str], domain, body):
    bound = QuantifierBound(span=get_span(), names=names, domain=_as_expression(domain))
    return Quantified(span=get_span(), quantifier=quantifier, bounds=[bound], body=_as_expression(body))


def get_except(function, updates: List[Tuple[List, Expression]]):
    return Except(
        span=get_span(),
        function=_as_expression(function),
        updates=[ExceptUpdate(span=get_span(), path=[_as_expression(p) for p in path], value=_as_expression(value)) for path, value in updates],
    )


def get_required_action(body, vars):
    return RequiredAction(span=get_span(), body=_as_expression(body), vars=_as_expression(vars))


def get_instance_reference(prefix: str, name: str, args: Optional[List] = None):
    return InstanceReference(span=get_span(), prefix=prefix, name=name, args=[_as_expression(a) for a in args or []])


# --- Statements ---


def get_lhs(target: Union[str, MappedVariable], indices: Optional[List] = None):
    variable = get_identifier(target) if isinstance(target, str) else target
    return LhsTarget(span=get_span(), variable=variable, indices=[_as_expression(i) for i in indices or []])


def get_assignment(target: Union[str, MappedVariable, LhsTarget], rhs, span: Optional[Span] = None):
    lhs = target if isinstance(target, LhsTarget) else get_lhs(target)
    pair = AssignmentPair(span=_span_or_default(span), lhs=lhs, rhs=_as_expression(rhs))
    return Assignment(span=_span_or_default(span), pairs=[pair])


def get_multi_assignment(pairs: List[Tuple[Union[str, LhsTarget], Expression]]):
    built = []
    for target, rhs in pairs:
        lhs = target if isinstance(target, LhsTarget) else get_lhs(target)
        built.append(AssignmentPair(span=get_span(), lhs=lhs, rhs=_as_expression(rhs)))
    return Assignment(span=get_span(), pairs=built)


def get_if(condition, then_body: List, else_body: Optional[List] = None):
    return If(span=get_span(), condition=_as_expression(condition), then_body=then_body, else_body=else_body or [])


def get_while(condition, body: List):
    return While(span=get_span(), condition=_as_expression(condition), body=body)


def get_either(branches: List[List]):
    return Either(span=get_span(), branches=branches)


def get_with(bindings: List[Tuple[str, Expression]], body: List, is_set: bool = False):
    return With(span=get_span(), bindings=[WithBinding(span=get_span(), name=n, value=_as_expression(v), is_set=is_set) for n, v in bindings], body=body)


def get_await(condition):
    return Await(span=get_span(), condition=_as_expression(condition))


def get_print(value):
    return Print(span=get_span(), value=_as_expression(value))


def get_assert(condition):
    return Assert(span=get_span(), condition=_as_expression(condition))


def get_label(name: str):
    return Label(span=get_span(), name=name)


def get_call(procedure: str, args: Optional[List[Union[CallArgument, Expression, str, int]]] = None):
    built = [a if isinstance(a, CallArgument) else CallArgument(span=get_span(), value=_as_expression(a)) for a in args or []]
    return Call(span=get_span(), procedure=procedure, args=built)


def get_ref_call_argument(name: str):
    return CallArgument(span=get_span(), value=get_identifier(name), ref=True)


def get_return():
    return Return(span=get_span())


def get_skip():
    return Skip(span=get_span())


def get_goto(target: str):
    return Goto(span=get_span(), target=target)


def get_yield(value):
    return Yield(span=get_span(), value=_as_expression(value))


# --- Declarations ---


def get_parameter(name: str, ref: bool = False):
    return Parameter(span=get_span(), name=name, ref=ref)


def get_variable(name: str, value, is_set: bool = False):
    return Variable(span=get_span(), name=name, value=_as_expression(value), is_set=is_set)


def get_constant(name: str):
    return Constant(span=get_span(), name=name)


def get_archetype(name: str, params: Optional[List[Union[Parameter, str]]] = None, variables: Optional[List[Variable]] = None, body: Optional[List] = None):
    """
    A flexible factory to build Archetype nodes for tests.

    Args:
        name: The name of the archetype.
        params: Parameter nodes, or plain strings for by-value parameters.
                A string starting with "ref " declares a ref parameter.
        variables: The archetype's local variable declarations.
        body: The statement list. Defaults to a single `skip`.
    """
    param_nodes = []
    for p in params or []:
        if isinstance(p, Parameter):
            param_nodes.append(p)
        elif p.startswith("ref "):
            param_nodes.append(get_parameter(p[4:], ref=True))
        else:
            param_nodes.append(get_parameter(p))

    body_nodes = body if body is not None else [get_skip()]
    return Archetype(span=get_span(), name=name, params=param_nodes, variables=variables or [], body=body_nodes)


def get_mapping_macro(name: str, read_body: List, write_body: List):
    return MappingMacro(span=get_span(), name=name, read_body=read_body, write_body=write_body)


def get_instance_argument(value, ref: bool = False, mapping: Optional[str] = None, span: Optional[Span] = None):
    expression = _as_expression(value)
    return InstanceArgument(span=_span_or_default(span), value=expression, ref=ref, mapping=mapping)


def get_instance(name: str, archetype: str, args: Optional[List[Union[InstanceArgument, Expression, str, int]]] = None, self_value=None, self_kind: str = "single"):
    """
    Builds an Instance. Plain strings and numbers become by-value arguments;
    use `get_instance_argument(..., ref=True)` for ref arguments.
    """
    built = [a if isinstance(a, InstanceArgument) else get_instance_argument(a) for a in args or []]
    self_expr = _as_expression(self_value) if self_value is not None else get_number_literal(1)
    return Instance(span=get_span(), name=name, self_kind=self_kind, self_value=self_expr, archetype=archetype, args=built)


def get_procedure(name: str, params: Optional[List[Union[Parameter, str]]] = None, variables: Optional[List[Variable]] = None, body: Optional[List] = None):
    param_nodes = []
    for p in params or []:
        if isinstance(p, Parameter):
            param_nodes.append(p)
        elif p.startswith("ref "):
            param_nodes.append(get_parameter(p[4:], ref=True))
        else:
            param_nodes.append(get_parameter(p))
    return Procedure(span=get_span(), name=name, params=param_nodes, variables=variables or [], body=body if body is not None else [get_return()])


def get_process(name: str, body: List, variables: Optional[List[Variable]] = None, self_value=None, self_kind: str = "single"):
    self_expr = _as_expression(self_value) if self_value is not None else get_number_literal(1)
    return Process(span=get_span(), name=name, self_kind=self_kind, self_value=self_expr, variables=variables or [], body=body)


def get_remapping(from_name: str, to):
    return Remapping(span=get_span(), from_name=from_name, to=_as_expression(to))


def get_module_instance(module_name: str, remappings: Optional[List[Remapping]] = None, local: bool = False, name: Optional[str] = None):
    return ModuleInstance(span=get_span(), module_name=module_name, remappings=remappings or [], local=local, name=name)


def get_operator_definition(name: str, params: Optional[List[str]] = None, body=None):
    return OperatorDefinition(span=get_span(), name=name, params=params or [], body=_as_expression(body if body is not None else True))


def get_block(
    name: str = "Test",
    constants: Optional[List[str]] = None,
    variables: Optional[List[Variable]] = None,
    archetypes: Optional[List[Archetype]] = None,
    mapping_macros: Optional[List[MappingMacro]] = None,
    instances: Optional[List[Instance]] = None,
    procedures: Optional[List[Procedure]] = None,
    processes: Optional[List[Process]] = None,
    units: Optional[List] = None,
):
    return ModularPlusCalBlock(
        span=get_span(),
        name=name,
        constants=[get_constant(c) for c in constants or []],
        units=units or [],
        variables=variables or [],
        archetypes=archetypes or [],
        mapping_macros=mapping_macros or [],
        instances=instances or [],
        procedures=procedures or [],
        processes=processes or [],
    )
