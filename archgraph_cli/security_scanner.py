"""Stage 1: high-recall source-to-sink scan, secrets and rule patterns."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .models import SEVERITIES, FileInfo, SecurityVulnerability, VulnLocation
from .security_patterns import (
    CONFIDENCE_ORDER,
    DANGEROUS_SINKS,
    DYNAMIC_STRING_RE,
    RULE_PATTERNS,
    SECRET_PATTERNS,
    SINK_RULES,
    find_taint_source,
    is_comment_line,
    is_parameterized_query,
    is_placeholder,
    is_test_file,
    line_window,
    mentions,
    reduce_severity,
    redact_secret,
    severity_rank,
    shannon_entropy,
    tainted_assignment,
)

logger = logging.getLogger(__name__)

CODE_LANGUAGES = frozenset({"typescript", "javascript", "python", "rust"})
TAINT_WINDOW = 5

_INPUT_KINDS = {
    "request.query": "query_param",
    "request.params": "path_param",
    "request.body": "body",
    "request.headers": "header",
    "process.argv": "cli_arg",
    "env": "env_var",
    "stdin": "stdin",
}


@dataclass
class InputPoint:
    type: str
    name: str
    file: str
    line: int


@dataclass
class SinkHit:
    """A matched dangerous operation, reported or not."""

    type: str
    name: str
    file: str
    line: int
    uses_user_input: bool = False
    parameterized: bool = False
    snippet: str = ""


@dataclass
class AttackSurface:
    input_points: List[InputPoint] = field(default_factory=list)
    external_calls: List[SinkHit] = field(default_factory=list)
    database_operations: List[SinkHit] = field(default_factory=list)
    file_operations: List[SinkHit] = field(default_factory=list)
    process_executions: List[SinkHit] = field(default_factory=list)


@dataclass
class DataFlowRisk:
    variable: str
    source_type: str
    source: VulnLocation
    sink_type: str
    sink: VulnLocation
    risk: str
    severity: str = "high"


@dataclass
class SecretFinding:
    type: str
    value: str
    file: str
    line: int
    entropy: float
    confidence: str


@dataclass
class SecurityReport:
    summary: Dict[str, int]
    vulnerabilities: List[SecurityVulnerability]
    by_category: Dict[str, List[SecurityVulnerability]]
    attack_surface: AttackSurface = field(default_factory=AttackSurface)
    data_flow_risks: List[DataFlowRisk] = field(default_factory=list)
    secrets_found: List[SecretFinding] = field(default_factory=list)


def build_summary(vulnerabilities: Iterable[SecurityVulnerability]) -> Dict[str, int]:
    summary = {severity: 0 for severity in SEVERITIES}
    total = 0
    for vuln in vulnerabilities:
        summary[vuln.severity] = summary.get(vuln.severity, 0) + 1
        total += 1
    summary["total"] = total
    return summary


def group_by_category(vulnerabilities: Iterable[SecurityVulnerability]) -> Dict[str, List[SecurityVulnerability]]:
    grouped: Dict[str, List[SecurityVulnerability]] = {}
    for vuln in vulnerabilities:
        grouped.setdefault(vuln.category, []).append(vuln)
    return grouped


def deduplicate(vulnerabilities: Iterable[SecurityVulnerability]) -> List[SecurityVulnerability]:
    """One finding per ``file:line:category``; higher severity wins, then higher confidence."""
    kept: Dict[str, SecurityVulnerability] = {}
    for vuln in vulnerabilities:
        key = f"{vuln.location.file}:{vuln.location.line}:{vuln.category}"
        existing = kept.get(key)
        if existing is None:
            kept[key] = vuln
            continue
        new_rank = (severity_rank(vuln.severity), CONFIDENCE_ORDER.get(vuln.confidence, 2))
        old_rank = (severity_rank(existing.severity), CONFIDENCE_ORDER.get(existing.confidence, 2))
        if new_rank < old_rank:
            kept[key] = vuln
    return list(kept.values())


class SecurityScanner:
    """Regex taint-source to dangerous-sink matcher.

    Intentionally noisy: the later stages exist to remove what this one
    over-reports. Every scan starts with empty state.
    """

    def __init__(self):
        self._reset()

    def _reset(self) -> None:
        self._vulnerabilities: List[SecurityVulnerability] = []
        self._counter = 0
        self._surface = AttackSurface()
        self._risks: List[DataFlowRisk] = []
        self._secrets: List[SecretFinding] = []

    def scan(self, files: List[FileInfo], contents: Dict[str, str]) -> SecurityReport:
        self._reset()
        for file in files:
            content = contents.get(file.path)
            if not content:
                continue
            lines = content.split("\n")
            self._detect_secrets(file, lines)
            if file.language in CODE_LANGUAGES:
                self._detect_sinks(file, lines)
                self._detect_rules(file, lines)

        vulnerabilities = deduplicate(self._vulnerabilities)
        vulnerabilities.sort(key=lambda v: severity_rank(v.severity))
        logger.info(
            "Base scan: %d findings (%d before dedup) across %d files",
            len(vulnerabilities), len(self._vulnerabilities), len(files),
        )
        return SecurityReport(
            summary=build_summary(vulnerabilities),
            vulnerabilities=vulnerabilities,
            by_category=group_by_category(vulnerabilities),
            attack_surface=self._surface,
            data_flow_risks=self._risks,
            secrets_found=self._secrets,
        )

    def _add(self, **fields) -> SecurityVulnerability:
        self._counter += 1
        vuln = SecurityVulnerability(id=f"vuln-{self._counter}", **fields)
        self._vulnerabilities.append(vuln)
        return vuln

    # -- sinks ----------------------------------------------------------

    def _detect_sinks(self, file: FileInfo, lines: List[str]) -> None:
        tainted: Dict[str, Tuple[str, int]] = {}
        for index, line in enumerate(lines, start=1):
            source = find_taint_source(line)
            if source:
                self._surface.input_points.append(
                    InputPoint(type=_INPUT_KINDS.get(source, "unknown"), name=source, file=file.path, line=index)
                )

            tainted_here = [name for name in tainted if mentions(line, name)]
            taint_on_line = source is not None or bool(tainted_here)
            seen_types = set()
            for sink in DANGEROUS_SINKS:
                if sink.sink_type in seen_types:
                    continue
                match = sink.pattern.search(line)
                if not match:
                    continue
                seen_types.add(sink.sink_type)
                self._record_sink(file, sink.sink_type, sink.name, line, index, taint_on_line)
                self._report_sink(file, lines, sink.sink_type, sink.name, line, index, match.start(), taint_on_line)

                for name in tainted_here:
                    source_type, declared = tainted[name]
                    self._risks.append(
                        DataFlowRisk(
                            variable=name,
                            source_type=source_type,
                            source=VulnLocation(file=file.path, line=declared),
                            sink_type=sink.sink_type,
                            sink=VulnLocation(file=file.path, line=index, snippet=line.strip()[:200]),
                            risk=f"'{name}' from {source_type} reaches a {sink.sink_type} sink",
                        )
                    )

            for name, source_type in tainted_assignment(line):
                tainted[name] = (source_type, index)

    def _record_sink(self, file: FileInfo, sink_type: str, name: str, line: str, index: int, user_input: bool) -> None:
        hit = SinkHit(
            type=sink_type,
            name=name,
            file=file.path,
            line=index,
            uses_user_input=user_input,
            parameterized=sink_type == "sql_query" and is_parameterized_query(line),
            snippet=line.strip()[:100],
        )
        if sink_type == "sql_query":
            self._surface.database_operations.append(hit)
        elif sink_type == "url_fetch":
            self._surface.external_calls.append(hit)
        elif sink_type == "file_operation":
            self._surface.file_operations.append(hit)
        elif sink_type == "command_exec":
            self._surface.process_executions.append(hit)

    def _report_sink(
        self, file: FileInfo, lines: List[str], sink_type: str, name: str, line: str, index: int, column: int, taint_on_line: bool
    ) -> None:
        rule = SINK_RULES[sink_type]
        dynamic = DYNAMIC_STRING_RE.search(line, column) is not None
        nearby = any(find_taint_source(text) for text in line_window(lines, index, TAINT_WINDOW))
        if not rule.always and not (taint_on_line or dynamic or nearby):
            return

        if taint_on_line:
            confidence = "high"
        elif dynamic or nearby:
            confidence = "medium"
        else:
            confidence = "low"

        if sink_type in ("command_exec", "sql_query", "eval"):
            severity = "critical" if taint_on_line or (dynamic and sink_type != "sql_query") else "high"
        else:
            severity = "high"
        if confidence == "low":
            severity = reduce_severity(severity)

        origin = "user-controlled input" if taint_on_line else "dynamically built input"
        self._add(
            category=rule.category,
            severity=severity,
            title=f"{rule.title}: {name}",
            description=f"{origin.capitalize()} may reach the dangerous operation '{name}' ({sink_type}).",
            location=VulnLocation(file=file.path, line=index, column=column + 1, snippet=line.strip()[:200]),
            sink_type=sink_type,
            cwe=rule.cwe,
            owasp=rule.owasp,
            remediation=rule.remediation,
            confidence=confidence,
        )

    # -- rule patterns --------------------------------------------------

    def _detect_rules(self, file: FileInfo, lines: List[str]) -> None:
        for index, line in enumerate(lines, start=1):
            for rule in RULE_PATTERNS:
                match = rule.pattern.search(line)
                if not match:
                    continue
                self._add(
                    category=rule.category,
                    severity=rule.severity,
                    title=rule.title,
                    description=f"{rule.title} detected.",
                    location=VulnLocation(file=file.path, line=index, column=match.start() + 1, snippet=line.strip()[:200]),
                    cwe=rule.cwe,
                    remediation="Review this line and replace the insecure construct.",
                    confidence="medium",
                )

    # -- secrets --------------------------------------------------------

    def _detect_secrets(self, file: FileInfo, lines: List[str]) -> None:
        in_test = is_test_file(file.path)
        for index, line in enumerate(lines, start=1):
            stripped = line.strip()
            if not stripped or is_comment_line(lines, index, hash_comments=file.language == "python"):
                continue
            if stripped.startswith(("import ", "from ", "use ", "export type", "type ", "interface ")):
                continue
            if _references_environment(line):
                continue
            for secret in SECRET_PATTERNS:
                match = secret.pattern.search(line)
                if not match:
                    continue
                value = match.group(1) if match.groups() else match.group(0)
                if is_placeholder(value):
                    continue
                entropy = shannon_entropy(value)
                confidence = _secret_confidence(secret.name, value, entropy, in_test)
                if confidence is None:
                    continue
                severity = reduce_severity(secret.severity) if in_test else secret.severity
                note = " (test file; may be intentional fixture data)" if in_test else ""
                snippet = redact_secret(line)
                self._add(
                    category="secrets",
                    severity=severity,
                    title=f"Hardcoded {secret.name}",
                    description=f"Found a potential {secret.name} in source code{note}.",
                    location=VulnLocation(file=file.path, line=index, column=match.start() + 1, snippet=snippet),
                    cwe="CWE-798",
                    owasp="A02:2021 Cryptographic Failures",
                    remediation="Move secrets to environment variables or a secrets manager and rotate the exposed value.",
                    confidence=confidence,
                )
                self._secrets.append(
                    SecretFinding(
                        type=secret.name,
                        value=snippet,
                        file=file.path,
                        line=index,
                        entropy=round(entropy, 2),
                        confidence=confidence,
                    )
                )
                break


def _references_environment(line: str) -> bool:
    return any(marker in line for marker in ("process.env.", "os.environ", "os.getenv", "getenv(", "env::var", "ENV["))


def _secret_confidence(name: str, value: str, entropy: float, in_test: bool) -> Optional[str]:
    """Confidence label, or ``None`` when the value is too regular to be a secret."""
    if entropy < 2.5:
        return None
    if name in ("Private Key", "Connection String"):
        return "medium" if in_test else "high"
    if entropy > 4.5 or value.startswith(("ghp_", "gho_", "AKIA", "sk_live_", "sk-ant-")):
        return "medium" if in_test else "high"
    if in_test:
        return "low" if entropy > 4 else None
    return "medium" if entropy > 3.5 else "low"
