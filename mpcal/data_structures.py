from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from mpcal.ast.classes import ASTNode, Expression, ModularPlusCalBlock, Span, Statement, Variable

"""
Defines the core data structures shared by the stages of the expansion pass.
The Resolver produces a binding table, the Planner one InstancePlan per
instance, and the Inliner one InlinedInstance per plan.
"""


class BindingKind(Enum):
    CONSTANT = "constant"
    GLOBAL_VARIABLE = "global variable"
    PARAMETER = "parameter"
    LOCAL_VARIABLE = "local variable"
    BOUND_VARIABLE = "bound variable"
    DEFINITION = "definition"
    MODULE_INSTANCE = "module instance"
    ARCHETYPE = "archetype"
    MAPPING_MACRO = "mapping macro"
    PROCEDURE = "procedure"
    BUILTIN = "builtin"


VALUE_KINDS = {
    BindingKind.CONSTANT,
    BindingKind.GLOBAL_VARIABLE,
    BindingKind.PARAMETER,
    BindingKind.LOCAL_VARIABLE,
    BindingKind.BOUND_VARIABLE,
    BindingKind.DEFINITION,
    BindingKind.BUILTIN,
}


@dataclass
class Binding:
    """The definition site an identifier occurrence refers to."""

    kind: BindingKind
    name: str
    span: Optional[Span] = None
    # The archetype, procedure or process that declares a parameter or local.
    owner: Optional[str] = None
    is_ref: bool = False
    arity: Optional[int] = None


@dataclass
class Scope:
    """Represents a lexical scope containing bindings."""

    symbols: Dict[str, Binding] = field(default_factory=dict)
    parent: Optional["Scope"] = None

    def lookup(self, name: str) -> Optional[Binding]:
        scope = self
        while scope is not None:
            if name in scope.symbols:
                return scope.symbols[name]
            scope = scope.parent
        return None

    def child(self) -> "Scope":
        return Scope(parent=self)


class BindingTable:
    """
    Maps identifier occurrences to their bindings. Occurrences are keyed by
    object identity: structurally equal nodes at different places in the tree
    are different occurrences. The table holds on to each node so its identity
    stays valid for as long as the table lives.
    """

    def __init__(self):
        self._entries: Dict[int, tuple] = {}

    def record(self, node: ASTNode, binding: Binding):
        self._entries[id(node)] = (node, binding)

    def lookup(self, node: ASTNode) -> Optional[Binding]:
        entry = self._entries.get(id(node))
        return entry[1] if entry else None

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> List[Dict[str, Any]]:
        return [
            {"occurrence": node.kind, "span": node.span, "binding": binding}
            for node, binding in self._entries.values()
        ]


@dataclass
class ResolvedBlock:
    block: ModularPlusCalBlock
    bindings: BindingTable
    # Every name that appears anywhere in the block; seeds the fresh-name supply.
    visible_names: set = field(default_factory=set)


@dataclass
class ParameterBinding:
    """How one archetype parameter is bound by an instance."""

    parameter: str
    is_ref: bool
    # By-value: the instance argument, substituted at every use.
    value: Optional[Expression] = None
    # By-ref: the global variable the parameter stands for.
    target: Optional[str] = None
    mapping_macro: Optional[str] = None
    span: Optional[Span] = None

    @property
    def is_mapped(self) -> bool:
        return self.mapping_macro is not None


@dataclass
class InstancePlan:
    instance: str
    archetype: str
    self_kind: str
    self_value: Expression
    bindings: Dict[str, ParameterBinding] = field(default_factory=dict)
    renamings: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    span: Optional[Span] = None


@dataclass
class InlinedInstance:
    plan: InstancePlan
    variables: List[Variable] = field(default_factory=list)
    body: List[Statement] = field(default_factory=list)
