"""
Generic traversal helpers over the AST. They work off each model's declared
fields, so new node types are picked up without touching this module.
"""

from typing import Any, Callable, FrozenSet, Iterator, List, Set

from mpcal.ast.classes import *


def iter_child_nodes(node: ASTNode) -> Iterator[ASTNode]:
    """Yields the direct children of `node`, in field order."""
    for name in type(node).model_fields:
        if name == "span":
            continue
        yield from _iter_nodes_in(getattr(node, name))


def _iter_nodes_in(value: Any) -> Iterator[ASTNode]:
    if isinstance(value, ASTNode):
        yield value
    elif isinstance(value, list):
        for item in value:
            yield from _iter_nodes_in(item)


def walk(node: ASTNode) -> Iterator[ASTNode]:
    """Pre-order traversal of `node` and all of its descendants."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(list(iter_child_nodes(current))))


def transform(node: ASTNode, visit: Callable[[ASTNode], ASTNode]) -> ASTNode:
    """
    Rebuilds `node` bottom-up, passing every rebuilt node through `visit`.
    Subtrees that come back unchanged are shared rather than copied, so leaves
    keep their identity.
    """
    updates = {}
    for name in type(node).model_fields:
        if name == "span":
            continue
        value = getattr(node, name)
        new_value = _transform_value(value, visit)
        if new_value is not value:
            updates[name] = new_value
    rebuilt = node.model_copy(update=updates) if updates else node
    return visit(rebuilt)


def _transform_value(value: Any, visit: Callable[[ASTNode], ASTNode]) -> Any:
    if isinstance(value, ASTNode):
        return transform(value, visit)
    if isinstance(value, list):
        new_items = [_transform_value(item, visit) for item in value]
        if any(new is not old for new, old in zip(new_items, value)) or len(new_items) != len(value):
            return new_items
        return value
    return value


def map_children(node: ASTNode, rewrite: Callable[[ASTNode], ASTNode]) -> ASTNode:
    """Copies `node` with `rewrite` applied to each direct child (one level only, left to right)."""
    updates = {}
    for name in type(node).model_fields:
        if name == "span":
            continue
        value = getattr(node, name)
        if isinstance(value, (ASTNode, list)):
            updates[name] = _map_value(value, rewrite)
    return node.model_copy(update=updates) if updates else node


def _map_value(value: Any, rewrite: Callable[[ASTNode], ASTNode]) -> Any:
    if isinstance(value, ASTNode):
        return rewrite(value)
    if isinstance(value, list):
        return [_map_value(item, rewrite) for item in value]
    return value


def unshare(node: ASTNode) -> ASTNode:
    """
    Copies `node` so that every position in the result holds its own object,
    even where the input reuses one node object in several places.
    """
    copy = map_children(node, unshare)
    return copy if copy is not node else node.model_copy()


def free_names(expr: ASTNode, bound: FrozenSet[str] = frozenset()) -> Set[str]:
    """Identifier names occurring free in `expr` (quantifier variables are bound in their body)."""
    if isinstance(expr, Identifier):
        return set() if expr.name in bound else {expr.name}
    if isinstance(expr, Quantified):
        names: Set[str] = set()
        inner = set(bound)
        for b in expr.bounds:
            names |= free_names(b.domain, bound)
            inner.update(b.names)
        return names | free_names(expr.body, frozenset(inner))
    names = set()
    for child in iter_child_nodes(expr):
        names |= free_names(child, bound)
    return names


def collect_labels(statements: List[ASTNode]) -> List[Label]:
    """Every Label in `statements`, including those nested in compound statements."""
    return [node for stmt in statements for node in walk(stmt) if isinstance(node, Label)]


def collect_names(root: ASTNode) -> Set[str]:
    """Every name appearing anywhere under `root`: identifiers, declarations, labels and binders."""
    names: Set[str] = set()
    for node in walk(root):
        if isinstance(node, (Identifier, Label, Parameter, Variable, Constant, Archetype, MappingMacro, Procedure, Process, WithBinding, ModularPlusCalBlock, PlusCalAlgorithm)):
            names.add(node.name)
        elif isinstance(node, OperatorCall):
            names.add(node.name)
        elif isinstance(node, InstanceReference):
            names.update((node.prefix, node.name))
        elif isinstance(node, Goto):
            names.add(node.target)
        elif isinstance(node, QuantifierBound):
            names.update(node.names)
        elif isinstance(node, Instance):
            names.update((node.name, node.archetype))
            names.update(a.mapping for a in node.args if a.mapping)
        elif isinstance(node, Call):
            names.add(node.procedure)
        elif isinstance(node, ModuleInstance):
            names.add(node.module_name)
            if node.name:
                names.add(node.name)
        elif isinstance(node, Remapping):
            names.add(node.from_name)
        elif isinstance(node, OperatorDefinition):
            names.add(node.name)
            names.update(node.params)
    return names
