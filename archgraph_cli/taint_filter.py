"""Stage 2: syntactic context and lightweight taint tracing to drop false positives.

Each finding is re-examined against its file's text. The checks run in a
fixed order and the first one that applies decides:

1. line is a comment                        -> false positive, 0.95
2. line is a logging/print statement        -> false positive, 0.90
3. file follows test naming conventions     -> false positive, 0.85
4. SQL sink uses placeholders               -> false positive, 0.95
5. sanitizer applied to the same value in the preceding lines -> false positive, 0.80
6. tainted variable was sanitized elsewhere -> false positive, 0.85
7. tainted variable reaches the sink raw    -> confirmed, 0.80
8. nothing conclusive                       -> kept, 0.50

A finding is removed only when it is a false positive *and* its confidence
meets the configured threshold.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .extractor import detect_language
from .models import FilteredVulnerability, SecurityVulnerability
from .security_patterns import (
    DANGEROUS_SINKS,
    SANITIZER_CALLS,
    is_comment_line,
    is_logging_line,
    is_parameterized_query,
    is_test_file,
    mentions,
    tainted_assignment,
)

logger = logging.getLogger(__name__)

SANITIZER_WINDOW = 5
DEFAULT_AST_THRESHOLD = 0.85

_ASSIGNED_FROM_RE = re.compile(r"(?:^|[\s{(,])(?:const|let|var|mut)?\s*(\w+)\s*(?::\s*[^=]+)?=(?![=>])")


@dataclass
class FilterDecision:
    is_false_positive: bool
    confidence: float
    reason: str = ""


@dataclass
class SanitizationPoint:
    method: str
    category: str
    line: int
    input_variable: str
    output_variable: Optional[str]


@dataclass
class TaintedVariable:
    name: str
    source: str
    declared_line: int
    sanitized_at: Optional[SanitizationPoint] = None
    used_at: List[Tuple[int, str]] = field(default_factory=list)


class SourceContext:
    """Per-file view answering the questions the filter asks about one line."""

    def __init__(self, path: str, content: str):
        self.path = path
        self.language = detect_language(path)
        self.lines = content.split("\n")
        self._tainted: Optional[List[TaintedVariable]] = None
        self._sanitizers: Optional[List[SanitizationPoint]] = None

    def line(self, number: int) -> str:
        if 1 <= number <= len(self.lines):
            return self.lines[number - 1]
        return ""

    def is_comment(self, number: int) -> bool:
        return is_comment_line(self.lines, number, hash_comments=self.language == "python")

    def is_logging(self, number: int) -> bool:
        return is_logging_line(self.line(number))

    def is_test_file(self) -> bool:
        return is_test_file(self.path)

    def sink_type_at(self, number: int) -> Optional[str]:
        text = self.line(number)
        for sink in DANGEROUS_SINKS:
            if sink.pattern.search(text):
                return sink.sink_type
        return None

    def is_parameterized(self, number: int) -> bool:
        return is_parameterized_query(self.line(number))

    def sanitization_points(self) -> List[SanitizationPoint]:
        if self._sanitizers is None:
            points: List[SanitizationPoint] = []
            for index, text in enumerate(self.lines, start=1):
                for method, category, pattern in SANITIZER_CALLS:
                    match = pattern.search(text)
                    if not match:
                        continue
                    assigned = _ASSIGNED_FROM_RE.search(text[: match.start()])
                    points.append(
                        SanitizationPoint(
                            method=method,
                            category=category,
                            line=index,
                            input_variable=match.group(1),
                            output_variable=assigned.group(1) if assigned else None,
                        )
                    )
            self._sanitizers = points
        return self._sanitizers

    def sanitizer_near(self, number: int, window: int = SANITIZER_WINDOW) -> Optional[SanitizationPoint]:
        """A sanitizer within ``window`` lines above the sink that covers a value the sink uses."""
        sink_line = self.line(number)
        for point in self.sanitization_points():
            if not number - window <= point.line <= number:
                continue
            if point.line == number:
                return point
            if point.output_variable and mentions(sink_line, point.output_variable):
                return point
            if point.input_variable and point.input_variable in sink_line:
                return point
        return None

    def tainted_variables(self) -> List[TaintedVariable]:
        if self._tainted is None:
            tainted: List[TaintedVariable] = []
            for index, text in enumerate(self.lines, start=1):
                for name, source in tainted_assignment(text):
                    tainted.append(TaintedVariable(name=name, source=source, declared_line=index))
            for variable in tainted:
                for index, text in enumerate(self.lines, start=1):
                    if index == variable.declared_line or not mentions(text, variable.name):
                        continue
                    variable.used_at.append((index, self._usage_context(index)))
                    if variable.sanitized_at is None:
                        variable.sanitized_at = self._sanitization_of(variable.name, index)
            self._tainted = tainted
        return self._tainted

    def flow_into(self, number: int) -> Optional[TaintedVariable]:
        """The tainted variable whose use at ``number`` is a dangerous sink."""
        for variable in self.tainted_variables():
            for line, context in variable.used_at:
                if line == number and not context.startswith(("sanitization:", "general")):
                    return variable
        return None

    def _usage_context(self, number: int) -> str:
        sink_type = self.sink_type_at(number)
        if sink_type:
            return sink_type
        for point in self.sanitization_points():
            if point.line == number:
                return f"sanitization:{point.category}"
        return "general"

    def _sanitization_of(self, name: str, number: int) -> Optional[SanitizationPoint]:
        for point in self.sanitization_points():
            if point.line == number and (mentions(point.input_variable, name) or point.output_variable == name):
                return point
        return None


def evaluate(vuln: SecurityVulnerability, context: SourceContext) -> FilterDecision:
    """Decide whether one finding is likely a false positive."""
    line = vuln.location.line

    if context.is_comment(line):
        return FilterDecision(True, 0.95, "Code is in a comment")
    if context.is_logging(line):
        return FilterDecision(True, 0.9, "Code is a logging statement")
    if context.is_test_file():
        return FilterDecision(True, 0.85, "Code is in a test file")

    sink_type = vuln.sink_type or context.sink_type_at(line)
    if sink_type == "sql_query" and context.is_parameterized(line):
        return FilterDecision(True, 0.95, "Uses parameterized query")

    if sink_type:
        nearby = context.sanitizer_near(line)
        if nearby is not None:
            return FilterDecision(True, 0.8, f"Input is sanitized before use ({nearby.method})")

    flow = context.flow_into(line)
    if flow is not None and flow.sanitized_at is not None:
        return FilterDecision(True, 0.85, f"Sanitized with {flow.sanitized_at.method}")
    if flow is not None:
        return FilterDecision(False, 0.8, f"Tainted variable '{flow.name}' from {flow.source} reaches the sink unsanitized")

    return FilterDecision(False, 0.5, "")


class TaintFilter:
    """Apply ``evaluate`` to a finding set with a removal threshold."""

    def __init__(
        self,
        threshold: float = DEFAULT_AST_THRESHOLD,
        on_filtered: Optional[Callable[[SecurityVulnerability, str, str], None]] = None,
        on_progress: Optional[Callable[[str, int, int], None]] = None,
    ):
        self.threshold = threshold
        self.on_filtered = on_filtered
        self.on_progress = on_progress

    def apply(
        self, vulnerabilities: List[SecurityVulnerability], contents: Dict[str, str]
    ) -> Tuple[List[SecurityVulnerability], List[FilteredVulnerability]]:
        remaining: List[SecurityVulnerability] = []
        filtered: List[FilteredVulnerability] = []
        contexts: Dict[str, SourceContext] = {}
        total = len(vulnerabilities)

        for index, vuln in enumerate(vulnerabilities, start=1):
            if self.on_progress:
                self.on_progress("ast_filtering", index, total)
            content = contents.get(vuln.location.file)
            if not content:
                remaining.append(vuln)
                continue
            context = contexts.get(vuln.location.file)
            if context is None:
                context = contexts[vuln.location.file] = SourceContext(vuln.location.file, content)

            decision = evaluate(vuln, context)
            if decision.is_false_positive and decision.confidence >= self.threshold:
                filtered.append(FilteredVulnerability(vuln=vuln, reason=decision.reason, method="ast", confidence=decision.confidence))
                logger.debug("Filtered %s at %s [ast]: %s", vuln.title, vuln.key, decision.reason)
                if self.on_filtered:
                    self.on_filtered(vuln, decision.reason, "ast")
            else:
                remaining.append(vuln)

        logger.info("Syntactic filter removed %d of %d findings", len(filtered), total)
        return remaining, filtered
