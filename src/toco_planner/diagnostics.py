"""
Diagnostics channel shared by the resolvers, the boundary policy and the scheduler.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


MISSING_RANGE = "missing-range"
QUANTIZATION_INFEASIBLE = "quantization-infeasible"
SYNTHETIC_RANGE = "synthetic-range"
SOFT_BOUNDARY_CROSSED = "soft-boundary-crossed"
BOUNDARY_RELAXED = "boundary-relaxed"
SITE_REJECTED = "site-rejected"
CUSTOM_OP = "custom-op"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single notice emitted during planning.

    Attributes:
        severity: How serious the notice is
        code: Stable machine-readable code (e.g. 'missing-range')
        message: Human-readable explanation
        subject: Name of the array, operator or pass the notice is about
    """

    severity: Severity
    code: str
    message: str
    subject: Optional[str] = None

    def __str__(self) -> str:
        subject = f" [{self.subject}]" if self.subject else ""
        return f"{self.severity.value.upper()} {self.code}{subject}: {self.message}"


class DiagnosticLog:
    """Append-only, ordered collection of diagnostics."""

    def __init__(self, diagnostics: Optional[Iterable[Diagnostic]] = None):
        self._items: List[Diagnostic] = list(diagnostics or [])

    def emit(self, severity: Severity, code: str, message: str,
             subject: Optional[str] = None) -> Diagnostic:
        diagnostic = Diagnostic(severity, code, message, subject)
        self._items.append(diagnostic)
        return diagnostic

    def info(self, code: str, message: str, subject: Optional[str] = None) -> Diagnostic:
        return self.emit(Severity.INFO, code, message, subject)

    def warning(self, code: str, message: str, subject: Optional[str] = None) -> Diagnostic:
        return self.emit(Severity.WARNING, code, message, subject)

    def error(self, code: str, message: str, subject: Optional[str] = None) -> Diagnostic:
        return self.emit(Severity.ERROR, code, message, subject)

    def extend(self, diagnostics: Iterable[Diagnostic]) -> None:
        self._items.extend(diagnostics)

    def warnings(self) -> List[Diagnostic]:
        return [d for d in self._items if d.severity is Severity.WARNING]

    def errors(self) -> List[Diagnostic]:
        return [d for d in self._items if d.severity is Severity.ERROR]

    def by_code(self, code: str) -> List[Diagnostic]:
        return [d for d in self._items if d.code == code]

    def for_subject(self, subject: str) -> List[Diagnostic]:
        return [d for d in self._items if d.subject == subject]

    def __iter__(self):
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return (f"DiagnosticLog(total={len(self._items)}, "
                f"warnings={len(self.warnings())}, errors={len(self.errors())})")
