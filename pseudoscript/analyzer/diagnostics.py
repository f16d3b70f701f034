"""
Diagnostic classification for pseudoscript.

Maps tokenizer and parser findings to editor diagnostics through one fixed
severity table. Classification is a pure function of its input: the same
findings always produce the same, identically ordered list.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from ..lexer.errors import LEXER_ERROR_CODES, Finding, FindingOrigin, Severity
from ..lexer.tokens import SourceSpan
from ..parser.errors import PARSER_ERROR_CODES

DIAGNOSTIC_SOURCE = "pseudoscript"

# The only Error conditions are lexical ones with no recovery point
SEVERITY_TABLE: Dict[str, Severity] = {
    "L001": Severity.ERROR,     # unterminated string literal
    "L002": Severity.ERROR,     # unterminated block comment
    "L003": Severity.WARNING,   # unrecognized character
    "P001": Severity.WARNING,   # unexpected token
    "P002": Severity.WARNING,   # construct not closed
    "P003": Severity.WARNING,   # unmatched closing marker
    "P004": Severity.WARNING,   # expected token missing
    "P005": Severity.WARNING,   # missing expression
    "P006": Severity.WARNING,   # nesting too deep
}

ERROR_CODE_TITLES: Dict[str, str] = {**LEXER_ERROR_CODES, **PARSER_ERROR_CODES}


def severity_for(code: str) -> Severity:
    """Severity for a finding code; unknown codes are warnings."""
    return SEVERITY_TABLE.get(code, Severity.WARNING)


@dataclass(frozen=True)
class Diagnostic:
    """A severity-classified, editor-publishable finding."""
    span: SourceSpan
    severity: Severity
    message: str
    code: str
    origin: FindingOrigin
    source: str = DIAGNOSTIC_SOURCE

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def sort_key(self) -> Tuple[int, int, str, str]:
        return (self.span.start.offset, self.span.end.offset, self.code, self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Editor-facing form: 0-based line/column range plus severity and code."""
        return {
            "range": {
                "start": {"line": self.span.start.line, "character": self.span.start.column},
                "end": {"line": self.span.end.line, "character": self.span.end.column},
            },
            "severity": self.severity.value,
            "message": self.message,
            "code": self.code,
            "source": self.source,
        }

    def __str__(self) -> str:
        return f"{self.span.start}: {self.severity.value} {self.code}: {self.message}"


def classify_finding(finding: Finding) -> Diagnostic:
    """
    Classify one finding.

    The proposed severity carried by the finding is ignored: the table is
    the single source of truth.
    """
    return Diagnostic(
        span=finding.span,
        severity=severity_for(finding.code),
        message=finding.message,
        code=finding.code,
        origin=finding.origin,
    )


def classify(findings: Iterable[Finding]) -> List[Diagnostic]:
    """
    Classify findings into a sorted, de-duplicated diagnostic list.

    Diagnostics are ordered by (start, end, code, message); two findings
    with the same code, span and message collapse into one diagnostic.
    """
    unique: Dict[Tuple[int, int, str, str], Diagnostic] = {}
    for finding in findings:
        diagnostic = classify_finding(finding)
        unique.setdefault(diagnostic.sort_key(), diagnostic)
    return [unique[key] for key in sorted(unique)]


def has_errors(diagnostics: Iterable[Diagnostic]) -> bool:
    return any(d.is_error for d in diagnostics)
