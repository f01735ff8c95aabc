"""
Structured diagnostics and the sink that collects them during one expansion run.
"""

import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from mpcal.ast.classes import Span
from mpcal.exceptions import CompilationErrors, ErrorCode, ModularPlusCalError

logger = logging.getLogger(__name__)


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class Diagnostic(BaseModel):
    severity: Severity
    location: Optional[Span] = None
    kind: str
    message: str
    related: List[Span] = Field(default_factory=list)

    def render(self) -> str:
        where = f"L{self.location.s_line}:{self.location.s_col}: " if self.location else ""
        text = f"{self.severity.value}: {where}[{self.kind}] {self.message}"
        for span in self.related:
            text += f"\n    see also L{span.s_line}:{span.s_col}"
        return text


class DiagnosticSink:
    """
    Collects diagnostics for a single run of the pass. Resolution reports every
    problem it finds here and only aborts once it is done, so the user sees as
    many issues as possible at once.
    """

    def __init__(self):
        self.diagnostics: List[Diagnostic] = []

    def report(self, error: ModularPlusCalError):
        diagnostic = Diagnostic(
            severity=Severity.ERROR,
            location=error.span,
            kind=error.code.name,
            message=error.core_message,
            related=list(error.related),
        )
        logger.debug("Diagnostic collected: %s", diagnostic.render())
        self.diagnostics.append(diagnostic)

    def error(self, code: ErrorCode, span: Optional[Span] = None, related: Optional[List[Span]] = None, **kwargs):
        self.report(ModularPlusCalError(code, span=span, related=related, **kwargs))

    def warn(self, code: ErrorCode, span: Optional[Span] = None, **kwargs):
        diagnostic = Diagnostic(severity=Severity.WARNING, location=span, kind=code.name, message=code.value.format(**kwargs))
        logger.warning(diagnostic.render())
        self.diagnostics.append(diagnostic)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def raise_if_errors(self):
        if self.has_errors:
            raise CompilationErrors(self.diagnostics)
