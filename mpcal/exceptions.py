"""
Custom exception types for the Modular PlusCal compiler.
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from mpcal.ast.classes import Span
    from mpcal.diagnostics import Diagnostic


class ErrorCode(Enum):

    # --- Binding Errors ---
    UNKNOWN_NAME = "Unknown name '{name}'."
    UNKNOWN_LABEL = "Unknown label '{name}' in goto."
    REDEFINITION = "'{name}' is defined more than once."
    WRONG_CATEGORY = "'{name}' is a {category} and cannot be used {usage}."
    PLACEHOLDER_MISPLACED = "The placeholder '{placeholder}' can only be used {allowed}."

    # --- Arity & Shape Errors ---
    ARITY_MISMATCH = "'{name}' expects {expected} argument(s), but got {actual}."
    REF_EXPECTED = "Parameter '{param}' is declared 'ref' and needs a 'ref' argument naming a variable."
    REF_FORBIDDEN = "Parameter '{param}' is not declared 'ref' and cannot receive a 'ref' argument."
    NOT_MAPPABLE = "Parameter '{param}' cannot be mapped: {reason}."
    MACRO_YIELD_MISPLACED = "Mapping macro '{name}': {details}"
    MAPPED_READ_IN_INITIALIZER = "The initializer of '{name}' reads the mapped parameter '{param}', which cannot be lifted out of a declaration."
    REF_BINDING_CONFLICT = "Procedure '{name}' receives both '{first}' and '{second}' for its 'ref' parameter '{param}'."

    # --- Hygiene & Internal Invariants ---
    LABEL_CONFLICT = "Label '{name}' appears more than once in the expanded algorithm."
    PLAN_INCONSISTENT = "The plan for instance '{instance}' binds '{param}', which is not a parameter of archetype '{archetype}'."
    UNHANDLED_NODE = "The {stage} has no rule for a '{node}' node."

    # --- Warnings ---
    WRITE_IGNORES_VALUE = "The write body of mapping macro '{name}' never uses '$value'."
    UNBOUND_REF_PARAMETER = "Procedure '{name}' is never called, so its 'ref' parameter '{param}' is kept as an ordinary parameter."

    # --- Driver Errors ---
    INVALID_AST = "The input is not a valid Modular PlusCal AST. Details: {details}"
    UNSUPPORTED_FORMAT = "Formatting a {node} is not supported: {reason}."


ERROR_CATEGORIES = {
    ErrorCode.UNKNOWN_NAME: "binding",
    ErrorCode.UNKNOWN_LABEL: "binding",
    ErrorCode.REDEFINITION: "binding",
    ErrorCode.WRONG_CATEGORY: "binding",
    ErrorCode.PLACEHOLDER_MISPLACED: "binding",
    ErrorCode.ARITY_MISMATCH: "shape",
    ErrorCode.REF_EXPECTED: "shape",
    ErrorCode.REF_FORBIDDEN: "shape",
    ErrorCode.NOT_MAPPABLE: "shape",
    ErrorCode.MACRO_YIELD_MISPLACED: "shape",
    ErrorCode.MAPPED_READ_IN_INITIALIZER: "shape",
    ErrorCode.REF_BINDING_CONFLICT: "shape",
    ErrorCode.LABEL_CONFLICT: "hygiene",
    ErrorCode.PLAN_INCONSISTENT: "internal",
    ErrorCode.UNHANDLED_NODE: "internal",
    ErrorCode.WRITE_IGNORES_VALUE: "warning",
    ErrorCode.UNBOUND_REF_PARAMETER: "warning",
    ErrorCode.INVALID_AST: "driver",
    ErrorCode.UNSUPPORTED_FORMAT: "driver",
}


class ModularPlusCalError(Exception):
    def __init__(
        self,
        code: ErrorCode,
        span: Optional["Span"] = None,
        file_path: Optional[str] = None,
        related: Optional[List["Span"]] = None,
        **kwargs,
    ):
        self.code = code
        self.span = span
        self.related = related or []
        self.details = kwargs

        # The format string (e.g., "Unknown name '{name}'") is populated
        # with any extra data it needs from kwargs.
        self.core_message = code.value.format(**kwargs)

        location_prefix = ""
        if span:
            location = f"'{span.file_path}' " if span.file_path else ""
            location_prefix = f"Error in {location}(Line: {span.s_line}, Column: {span.s_col}):\n"
        elif file_path:
            location_prefix = f"Error in '{file_path}': "

        self.message = location_prefix + self.core_message

        super().__init__(self.message)

    @property
    def category(self) -> str:
        return ERROR_CATEGORIES[self.code]


class InternalCompilerError(ModularPlusCalError):
    """An invariant of the expansion pass was violated. Indicates a compiler bug, not a user error."""


class CompilationErrors(Exception):
    """Raised once resolution finishes with at least one error; carries every diagnostic collected."""

    def __init__(self, diagnostics: List["Diagnostic"]):
        self.diagnostics = diagnostics
        errors = [d for d in diagnostics if d.severity.value == "error"]
        lines = [f"{len(errors)} error(s) found:"]
        lines.extend(d.render() for d in errors)
        super().__init__("\n".join(lines))

    @property
    def codes(self) -> List[ErrorCode]:
        return [ErrorCode[d.kind] for d in self.diagnostics if d.severity.value == "error"]
