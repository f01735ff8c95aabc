from typing import Any, List, Tuple

from mpcal.ast.classes import ASTNode, Label, Statement
from mpcal.ast.helpers import walk


def assert_asts_equal(actual, expected):
    """
    Asserts that two ASTs (or lists of them) are structurally equal, spans
    ignored. On a mismatch the message names the path to the first differing
    field, with the kind of every node along the way.
    """
    if actual == expected:
        return
    path, actual_part, expected_part = _first_difference(actual, expected, "")
    raise AssertionError(f"ASTs differ at {path or '<root>'}\n  actual:   {_describe(actual_part)}\n  expected: {_describe(expected_part)}")


def _first_difference(actual: Any, expected: Any, path: str) -> Tuple[str, Any, Any]:
    if isinstance(actual, ASTNode) and isinstance(expected, ASTNode) and type(actual) is type(expected):
        for field_name in type(actual).model_fields:
            if field_name == "span":
                continue
            actual_value, expected_value = getattr(actual, field_name), getattr(expected, field_name)
            if actual_value != expected_value:
                return _first_difference(actual_value, expected_value, f"{path}<{_kind(actual)}>.{field_name}")
    elif isinstance(actual, list) and isinstance(expected, list) and len(actual) == len(expected):
        for index, (actual_item, expected_item) in enumerate(zip(actual, expected)):
            if actual_item != expected_item:
                return _first_difference(actual_item, expected_item, f"{path}[{index}]")
    return path, actual, expected


def _describe(value: Any) -> str:
    if isinstance(value, ASTNode):
        return f"{_kind(value)} node {value.model_dump(exclude={'span'})}"
    if isinstance(value, list):
        return f"{len(value)} item(s) of kind {[_kind(item) for item in value]}"
    return repr(value)


def _kind(value: Any) -> str:
    return getattr(value, "kind", type(value).__name__)


def label_names(statements: List[Statement]) -> List[str]:
    return [node.name for stmt in statements for node in walk(stmt) if isinstance(node, Label)]
