"""
Defines the formal data structures (contracts) for the Modular PlusCal Abstract
Syntax Tree consumed by the expansion pass, and for the flat PlusCal algorithm
it produces.

Each node is a frozen pydantic model with a `Span` so that diagnostics can point
back into the source. Every node also carries a `kind` literal: it is the
discriminator that lets a whole tree round-trip through JSON.

Equality and hashing are structural and ignore spans, so two occurrences of the
same subtree compare equal wherever they come from.
"""

from typing import Annotated, Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

# --- Core Data Structures ---


class Span(BaseModel):
    """Represents a location in the source code for precise error reporting."""

    model_config = ConfigDict(frozen=True)

    s_line: int
    s_col: int
    e_line: int
    e_col: int
    file_path: Optional[str] = None


def _structural_key(value: Any) -> Any:
    if isinstance(value, ASTNode):
        return value.structural_key()
    if isinstance(value, (list, tuple)):
        return tuple(_structural_key(item) for item in value)
    return value


class ASTNode(BaseModel):
    """A base class for all AST nodes, ensuring they have a span."""

    model_config = ConfigDict(frozen=True)

    span: Span

    def structural_key(self) -> Tuple[Any, ...]:
        fields = tuple(_structural_key(getattr(self, name)) for name in type(self).model_fields if name != "span")
        return (type(self).__name__,) + fields

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ASTNode):
            return NotImplemented
        return type(self) is type(other) and self.structural_key() == other.structural_key()

    def __hash__(self) -> int:
        return hash(self.structural_key())


# --- Literals and Identifiers ---


class Identifier(ASTNode):
    kind: Literal["identifier"] = "identifier"
    name: str


class NumberLiteral(ASTNode):
    kind: Literal["number"] = "number"
    value: int


class StringLiteral(ASTNode):
    kind: Literal["string"] = "string"
    value: str


class BooleanLiteral(ASTNode):
    kind: Literal["boolean"] = "boolean"
    value: bool


# --- Mapping Macro Placeholders ---


class WrittenValue(ASTNode):
    """`$value`: the value being written, only meaningful inside a mapping macro's write body."""

    kind: Literal["written_value"] = "written_value"


class MappedVariable(ASTNode):
    """`$variable`: the global variable the mapped parameter is bound to."""

    kind: Literal["mapped_variable"] = "mapped_variable"


# --- Expressions ---


class RecordField(ASTNode):
    kind: Literal["record_field"] = "record_field"
    name: str
    value: "Expression"


class RecordConstructor(ASTNode):
    kind: Literal["record"] = "record"
    entries: List[RecordField]


class FunctionApply(ASTNode):
    """`f[a, b]`"""

    kind: Literal["function_apply"] = "function_apply"
    function: "Expression"
    args: List["Expression"]


class OperatorCall(ASTNode):
    """`Op(a, b)`, for builtins such as `Head(q)` and for TLA+ definitions."""

    kind: Literal["operator_call"] = "operator_call"
    name: str
    args: List["Expression"]


class SetConstructor(ASTNode):
    kind: Literal["set"] = "set"
    items: List["Expression"]


class QuantifierBound(ASTNode):
    kind: Literal["quantifier_bound"] = "quantifier_bound"
    names: List[str]
    domain: "Expression"


class Quantified(ASTNode):
    kind: Literal["quantified"] = "quantified"
    quantifier: Literal["\\A", "\\E"]
    bounds: List[QuantifierBound]
    body: "Expression"


class BinaryOp(ASTNode):
    kind: Literal["binary"] = "binary"
    operator: str
    lhs: "Expression"
    rhs: "Expression"


class UnaryOp(ASTNode):
    kind: Literal["unary"] = "unary"
    operator: str
    operand: "Expression"


class TupleLiteral(ASTNode):
    kind: Literal["tuple"] = "tuple"
    items: List["Expression"]


class ExceptUpdate(ASTNode):
    """`![a][b] = value`"""

    kind: Literal["except_update"] = "except_update"
    path: List["Expression"]
    value: "Expression"


class Except(ASTNode):
    kind: Literal["except"] = "except"
    function: "Expression"
    updates: List[ExceptUpdate]


class RequiredAction(ASTNode):
    """`<< body >>_vars`"""

    kind: Literal["required_action"] = "required_action"
    body: "Expression"
    vars: "Expression"


class InstanceReference(ASTNode):
    """`M!Op(args)`: an operator reached through a named TLA+ INSTANCE."""

    kind: Literal["instance_reference"] = "instance_reference"
    prefix: str
    name: str
    args: List["Expression"] = Field(default_factory=list)


Expression = Annotated[
    Union[
        Identifier,
        NumberLiteral,
        StringLiteral,
        BooleanLiteral,
        WrittenValue,
        MappedVariable,
        RecordConstructor,
        FunctionApply,
        OperatorCall,
        SetConstructor,
        Quantified,
        BinaryOp,
        UnaryOp,
        TupleLiteral,
        Except,
        RequiredAction,
        InstanceReference,
    ],
    Field(discriminator="kind"),
]


# --- Statements ---


class LhsTarget(ASTNode):
    """The left-hand side of an assignment: `x`, `x[i]`, or `$variable` inside a macro."""

    kind: Literal["lhs"] = "lhs"
    variable: Union[Identifier, MappedVariable] = Field(discriminator="kind")
    indices: List[Expression] = Field(default_factory=list)


class AssignmentPair(ASTNode):
    kind: Literal["assignment_pair"] = "assignment_pair"
    lhs: LhsTarget
    rhs: Expression


class Assignment(ASTNode):
    """`x := a || y[i] := b`. A single assignment has one pair."""

    kind: Literal["assignment"] = "assignment"
    pairs: List[AssignmentPair]


class If(ASTNode):
    kind: Literal["if"] = "if"
    condition: Expression
    then_body: List["Statement"]
    else_body: List["Statement"] = Field(default_factory=list)


class While(ASTNode):
    kind: Literal["while"] = "while"
    condition: Expression
    body: List["Statement"]


class Either(ASTNode):
    kind: Literal["either"] = "either"
    branches: List[List["Statement"]]


class WithBinding(ASTNode):
    kind: Literal["with_binding"] = "with_binding"
    name: str
    value: Expression
    is_set: bool = False


class With(ASTNode):
    kind: Literal["with"] = "with"
    bindings: List[WithBinding]
    body: List["Statement"]


class Await(ASTNode):
    kind: Literal["await"] = "await"
    condition: Expression


class Print(ASTNode):
    kind: Literal["print"] = "print"
    value: Expression


class Assert(ASTNode):
    kind: Literal["assert"] = "assert"
    condition: Expression


class Label(ASTNode):
    """Marks the statement that follows it in the enclosing statement list."""

    kind: Literal["label"] = "label"
    name: str


class CallArgument(ASTNode):
    kind: Literal["call_argument"] = "call_argument"
    value: Expression
    ref: bool = False


class Call(ASTNode):
    kind: Literal["call"] = "call"
    procedure: str
    args: List[CallArgument] = Field(default_factory=list)


class Return(ASTNode):
    kind: Literal["return"] = "return"


class Skip(ASTNode):
    kind: Literal["skip"] = "skip"


class Goto(ASTNode):
    kind: Literal["goto"] = "goto"
    target: str


class Yield(ASTNode):
    """Produces the value of a mapping macro's read body."""

    kind: Literal["yield"] = "yield"
    value: Expression


Statement = Annotated[
    Union[Assignment, If, While, Either, With, Await, Print, Assert, Label, Call, Return, Skip, Goto, Yield],
    Field(discriminator="kind"),
]


# --- Declarations ---


class Parameter(ASTNode):
    kind: Literal["parameter"] = "parameter"
    name: str
    ref: bool = False


class Variable(ASTNode):
    """`name = value`, or `name \\in value` when `is_set` is true."""

    kind: Literal["variable"] = "variable"
    name: str
    value: Expression
    is_set: bool = False


class Constant(ASTNode):
    kind: Literal["constant"] = "constant"
    name: str


class Archetype(ASTNode):
    kind: Literal["archetype"] = "archetype"
    name: str
    params: List[Parameter] = Field(default_factory=list)
    variables: List[Variable] = Field(default_factory=list)
    body: List[Statement] = Field(default_factory=list)


class MappingMacro(ASTNode):
    kind: Literal["mapping_macro"] = "mapping_macro"
    name: str
    read_body: List[Statement]
    write_body: List[Statement]


class InstanceArgument(ASTNode):
    kind: Literal["instance_argument"] = "instance_argument"
    value: Expression
    ref: bool = False
    mapping: Optional[str] = None


class Instance(ASTNode):
    """`process (name = self_value) == instance archetype(args)`; `self_kind="set"` uses `\\in`."""

    kind: Literal["instance"] = "instance"
    name: str
    self_kind: Literal["single", "set"] = "single"
    self_value: Expression
    archetype: str
    args: List[InstanceArgument] = Field(default_factory=list)


class Procedure(ASTNode):
    kind: Literal["procedure"] = "procedure"
    name: str
    params: List[Parameter] = Field(default_factory=list)
    variables: List[Variable] = Field(default_factory=list)
    body: List[Statement] = Field(default_factory=list)


class Process(ASTNode):
    kind: Literal["process"] = "process"
    name: str
    self_kind: Literal["single", "set"] = "single"
    self_value: Expression
    variables: List[Variable] = Field(default_factory=list)
    body: List[Statement] = Field(default_factory=list)


# --- TLA+ Units ---


class Remapping(ASTNode):
    """`from <- to` inside `INSTANCE M WITH ...`."""

    kind: Literal["remapping"] = "remapping"
    from_name: str
    to: Expression


class ModuleInstance(ASTNode):
    """`[name ==] [LOCAL] INSTANCE module_name [WITH remappings]`"""

    kind: Literal["module_instance"] = "module_instance"
    module_name: str
    remappings: List[Remapping] = Field(default_factory=list)
    local: bool = False
    name: Optional[str] = None


class OperatorDefinition(ASTNode):
    kind: Literal["operator_definition"] = "operator_definition"
    name: str
    params: List[str] = Field(default_factory=list)
    body: Expression


TlaUnit = Annotated[Union[ModuleInstance, OperatorDefinition], Field(discriminator="kind")]


# --- Top-level Structures ---


class ModularPlusCalBlock(ASTNode):
    """The root of the input AST: a whole Modular PlusCal block."""

    kind: Literal["modular_pluscal_block"] = "modular_pluscal_block"
    name: str
    constants: List[Constant] = Field(default_factory=list)
    units: List[TlaUnit] = Field(default_factory=list)
    variables: List[Variable] = Field(default_factory=list)
    archetypes: List[Archetype] = Field(default_factory=list)
    mapping_macros: List[MappingMacro] = Field(default_factory=list)
    instances: List[Instance] = Field(default_factory=list)
    procedures: List[Procedure] = Field(default_factory=list)
    processes: List[Process] = Field(default_factory=list)


class PlusCalAlgorithm(ASTNode):
    """The root of the output AST: a flat PlusCal algorithm."""

    kind: Literal["pluscal_algorithm"] = "pluscal_algorithm"
    name: str
    constants: List[Constant] = Field(default_factory=list)
    units: List[TlaUnit] = Field(default_factory=list)
    variables: List[Variable] = Field(default_factory=list)
    procedures: List[Procedure] = Field(default_factory=list)
    processes: List[Process] = Field(default_factory=list)


for _model in list(globals().values()):
    if isinstance(_model, type) and issubclass(_model, ASTNode) and _model is not ASTNode:
        _model.model_rebuild()
