import logging
from typing import Callable, Dict, List, Tuple

from mpcal.ast.classes import Assignment, AssignmentPair, Expression, Identifier, LhsTarget, Span, Statement, Variable
from mpcal.config.config import ExpansionConfig
from mpcal.expansion.core.name_supply import FreshNameSupply

logger = logging.getLogger(__name__)

# Expands the read body of the mapping macro attached to a parameter, with its
# yield turned into an assignment to the given temporary.
ReadExpander = Callable[[str, str], List[Statement]]


class LiftContext:
    """
    Puts a single statement into A-normal form around the values it needs first.

    Anything that has to be computed before the statement runs (a mapping-macro
    read, or a right-hand side that must be evaluated before any write) is bound
    to a fresh temporary, and the statements doing so accumulate in
    `pre_statements`, in the order the values were requested.

    Reads are coalesced: reading the same mapped parameter twice within one
    statement expands the read body once and reuses its temporary.
    """

    def __init__(
        self,
        supply: FreshNameSupply,
        config: ExpansionConfig,
        temporaries: List[Variable],
        read_expander: ReadExpander,
    ):
        self.supply = supply
        self.config = config
        self.temporaries = temporaries
        self.read_expander = read_expander
        self.pre_statements: List[Statement] = []
        self.read_cache: Dict[str, str] = {}
        self._lifted_reads: List[Tuple[str, str]] = []

    @property
    def has_lifted_reads(self) -> bool:
        return bool(self._lifted_reads)

    def _declare_temporary(self, base: str, span: Span) -> str:
        name = self.supply.fresh(base)
        self.temporaries.append(Variable(name=name, value=Identifier(name=self.config.temporary_initializer, span=span), span=span))
        return name

    def bind(self, value: Expression, base: str, span: Span) -> Identifier:
        """Assigns `value` to a fresh temporary before the statement, and returns that temporary."""
        name = self._declare_temporary(base, span)
        self.pre_statements.append(make_assignment(name, value, span))
        return Identifier(name=name, span=span)

    def lift_read(self, parameter: str, span: Span) -> Identifier:
        """Returns the temporary holding the value of a mapped parameter, expanding its read body on first use."""
        if parameter in self.read_cache:
            logger.debug("Reusing lifted read of '%s'", parameter)
            return Identifier(name=self.read_cache[parameter], span=span)

        temporary = self._declare_temporary(f"{parameter}{self.config.read_temporary_suffix}", span)
        self.pre_statements.extend(self.read_expander(parameter, temporary))
        self.read_cache[parameter] = temporary
        self._lifted_reads.append((parameter, temporary))
        logger.debug("Lifted read of '%s' into '%s'", parameter, temporary)
        return Identifier(name=temporary, span=span)

    def replay(self) -> List[Statement]:
        """
        Expands every lifted read again, into the temporaries it used the first
        time. A loop appends this to its body so each iteration re-reads.
        """
        statements: List[Statement] = []
        for parameter, temporary in self._lifted_reads:
            statements.extend(self.read_expander(parameter, temporary))
        return statements


def make_assignment(name: str, value: Expression, span: Span) -> Assignment:
    target = LhsTarget(variable=Identifier(name=name, span=span), span=span)
    return Assignment(pairs=[AssignmentPair(lhs=target, rhs=value, span=span)], span=span)
