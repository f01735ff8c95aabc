"""
Static configuration data for the Modular PlusCal compiler.
This includes the builtin names every block can see, the stage map used by the
driver, and the options that tune how the expansion pass names what it introduces.
"""

from pydantic import BaseModel, ConfigDict

# Builtin TLA+/PlusCal names usable as values. `self` is only meaningful
# inside a process body, but it is always in scope.
BUILTIN_VALUES = {
    "self",
    "defaultInitValue",
    "TRUE",
    "FALSE",
    "BOOLEAN",
    "Nat",
    "Int",
    "STRING",
}

# Builtin operators and their arity. `None` marks a variadic operator.
BUILTIN_OPERATORS = {
    # Sequences
    "Head": 1,
    "Tail": 1,
    "Append": 2,
    "Len": 1,
    "SubSeq": 3,
    "Seq": 1,
    "SelectSeq": 2,
    # FiniteSets
    "Cardinality": 1,
    "IsFiniteSet": 1,
    # TLC
    "ToString": 1,
    "Print": 2,
    "Assert": 2,
    "Permutations": 1,
    "SortSeq": 2,
    # Sets and functions
    "SUBSET": 1,
    "UNION": 1,
    "DOMAIN": 1,
}

BINARY_OPERATORS = {
    "+", "-", "*", "\\div", "%", "^", "..",
    "=", "#", "/=", "<", ">", "<=", ">=", "=<",
    "/\\", "\\/", "=>", "<=>",
    "\\in", "\\notin", "\\cup", "\\cap", "\\", "\\subseteq", "\\X",
    "\\o", ":>", "@@",
}

UNARY_OPERATORS = {"~", "-", "[]", "<>", "UNCHANGED", "ENABLED"}

STAGE_MAP = {
    "1": ("ast", "Modular PlusCal AST"),
    "2a": ("resolver", "Binding Table"),
    "2b": ("planner", "Instance Substitution Plans"),
    "2c": ("inliner", "Inlined Archetype Bodies"),
    "2": ("emitter", "Flat PlusCal Algorithm"),
}


class ExpansionConfig(BaseModel):
    """Options for a single run of the expansion pass."""

    model_config = ConfigDict(frozen=True)

    # Archetype locals may shadow a parameter of the same name.
    allow_parameter_shadowing: bool = False

    # Joins an instance name to the archetype names it renames (labels, locals).
    name_separator: str = "_"

    read_temporary_suffix: str = "Read"
    value_temporary_suffix: str = "Value"
    loop_label_suffix: str = "Loop"

    # Initial value of the process variables that hold temporaries.
    temporary_initializer: str = "defaultInitValue"


DEFAULT_CONFIG = ExpansionConfig()
