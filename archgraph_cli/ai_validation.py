"""Stage 3: batched, rate-limited judgement of remaining findings by an LLM.

Every request has its own timeout. A timeout, a transport error or an
unparseable answer makes that one item non-committal: it stays in the
report and counts as needing review.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .extractor import detect_language, find_block_end, find_python_block_end, leading_indent, position_at_line
from .llm import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, DEFAULT_TIMEOUT, LocalLLM, extract_json, run_blocking
from .models import SEVERITIES, AIVerdict, FileInfo, FilteredVulnerability, SecurityVulnerability

logger = logging.getLogger(__name__)

VERDICTS = ("TRUE_POSITIVE", "FALSE_POSITIVE", "NEEDS_REVIEW")
SURROUNDING_LINES = 30
MAX_FUNCTION_LINES = 150

_BRACE_FUNCTION_RE = re.compile(
    r"\bfunction\b|=>\s*\{|\bfn\s+\w+|^\s*(?:pub\s+)?(?:async\s+)?(?:static\s+)?(?:private\s+|public\s+|protected\s+)?\w+\s*\([^;]*\)\s*(?::\s*[^{]+)?\{\s*$"
)
_PYTHON_FUNCTION_RE = re.compile(r"^\s*(?:async\s+)?def\s+\w+")

SYSTEM_PROMPT = (
    "You are a senior application security engineer reviewing findings from a static scanner. "
    "Decide whether each finding is exploitable in context. Answer with JSON only."
)


@dataclass
class VulnerabilityContext:
    vulnerability: SecurityVulnerability
    full_function: str
    surrounding_code: str
    file_imports: List[str] = field(default_factory=list)


@dataclass
class ValidatorStats:
    requested: int = 0
    validated: int = 0
    failed: int = 0
    timed_out: int = 0


def surrounding_context(content: str, line: int, radius: int = SURROUNDING_LINES) -> str:
    """Numbered source lines around ``line``; the flagged line is marked."""
    lines = content.split("\n")
    start = max(1, line - radius)
    end = min(len(lines), line + radius)
    rendered = []
    for number in range(start, end + 1):
        marker = ">>" if number == line else "  "
        rendered.append(f"{marker}{number:5d} | {lines[number - 1]}")
    return "\n".join(rendered)


def extract_function_context(content: str, line: int, language: str) -> str:
    """Source of the function enclosing ``line``, or a small window when none is found."""
    lines = content.split("\n")
    if not 1 <= line <= len(lines):
        return ""

    target_indent = leading_indent(lines[line - 1])
    for header in range(line, max(0, line - MAX_FUNCTION_LINES), -1):
        text = lines[header - 1]
        if language == "python":
            if not _PYTHON_FUNCTION_RE.match(text) or (header != line and leading_indent(text) >= target_indent):
                continue
            end = find_python_block_end(content, position_at_line(content, header - 1))
        else:
            if not _BRACE_FUNCTION_RE.search(text):
                continue
            end = find_block_end(content, position_at_line(content, header - 1))
        if end >= line:
            return "\n".join(lines[header - 1 : min(end, header - 1 + MAX_FUNCTION_LINES)])

    return "\n".join(lines[max(0, line - 11) : min(len(lines), line + 10)])


def build_context(vuln: SecurityVulnerability, content: str, file: Optional[FileInfo]) -> VulnerabilityContext:
    language = file.language if file else detect_language(vuln.location.file)
    return VulnerabilityContext(
        vulnerability=vuln,
        full_function=extract_function_context(content, vuln.location.line, language),
        surrounding_code=surrounding_context(content, vuln.location.line),
        file_imports=[imp.module for imp in file.imports] if file else [],
    )


def build_prompt(context: VulnerabilityContext) -> str:
    vuln = context.vulnerability
    imports = ", ".join(context.file_imports[:30]) or "(none)"
    return f"""Finding: {vuln.title}
Category: {vuln.category}
Severity: {vuln.severity}
CWE: {vuln.cwe or "n/a"}
Location: {vuln.location.file}:{vuln.location.line}
Flagged code: {vuln.location.snippet}

File imports: {imports}

Enclosing function:
```
{context.full_function}
```

Surrounding code (flagged line marked with >>):
```
{context.surrounding_code}
```

Consider whether the input can be attacker-controlled, whether it is sanitized,
validated or parameterized before reaching the operation, and whether the code
is reachable in production.

Respond with a single JSON object:
{{"verdict": "TRUE_POSITIVE" | "FALSE_POSITIVE" | "NEEDS_REVIEW",
  "confidence": <number between 0 and 1>,
  "reasoning": "<one or two sentences>",
  "suggested_severity": "critical" | "high" | "medium" | "low" | "info"}}"""


def parse_verdict(data: Any) -> Optional[AIVerdict]:
    """Validate a decoded response; ``None`` for anything malformed."""
    if not isinstance(data, dict):
        return None
    verdict = str(data.get("verdict", "")).strip().upper().replace(" ", "_")
    if verdict not in VERDICTS:
        return None
    try:
        confidence = float(data.get("confidence", 0.0))
    except (TypeError, ValueError):
        return None
    if confidence > 1.0:
        confidence = confidence / 100.0
    severity = data.get("suggested_severity")
    return AIVerdict(
        verdict=verdict,
        confidence=max(0.0, min(1.0, confidence)),
        reasoning=str(data.get("reasoning", "")),
        suggested_severity=severity if severity in SEVERITIES else None,
    )


class AIValidator:
    """Send finding contexts to an LLM in fixed-size batches."""

    def __init__(
        self,
        llm: LocalLLM,
        batch_size: int = 5,
        rate_limit_ms: int = 200,
        timeout: float = DEFAULT_TIMEOUT,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        self.llm = llm
        self.batch_size = max(1, batch_size)
        self.rate_limit_ms = rate_limit_ms
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.stats = ValidatorStats()

    async def validate_one(self, context: VulnerabilityContext) -> Optional[AIVerdict]:
        self.stats.requested += 1
        key = context.vulnerability.key
        try:
            text = await run_blocking(
                self.llm.generate,
                build_prompt(context),
                system=SYSTEM_PROMPT,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            self.stats.timed_out += 1
            logger.warning("AI validation timed out for %s", key)
            return None
        except Exception as exc:  # one bad request must not sink the batch
            self.stats.failed += 1
            logger.warning("AI validation failed for %s: %s", key, exc)
            return None

        verdict = parse_verdict(extract_json(text))
        if verdict is None:
            self.stats.failed += 1
            logger.warning("Malformed AI verdict for %s", key)
            return None
        self.stats.validated += 1
        return verdict

    async def validate_batch(
        self,
        contexts: List[VulnerabilityContext],
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[Optional[AIVerdict]]:
        """Verdicts aligned with ``contexts``; batches are separated by the rate-limit delay."""
        results: List[Optional[AIVerdict]] = []
        total = len(contexts)
        for start in range(0, total, self.batch_size):
            if start:
                await asyncio.sleep(self.rate_limit_ms / 1000)
            batch = contexts[start : start + self.batch_size]
            results.extend(await asyncio.gather(*(self.validate_one(context) for context in batch)))
            if on_progress:
                on_progress(len(results), total)
        return results


@dataclass
class ValidationOutcome:
    remaining: List[SecurityVulnerability]
    filtered: List[FilteredVulnerability]
    validations: Dict[str, AIVerdict]
    true_positives: int = 0
    needs_review: int = 0


def apply_ai_validation(
    validator: AIValidator,
    vulnerabilities: List[SecurityVulnerability],
    contents: Dict[str, str],
    files: Dict[str, FileInfo],
    max_items: int = 50,
    threshold: float = 0.80,
    on_filtered: Optional[Callable[[SecurityVulnerability, str, str], None]] = None,
    on_progress: Optional[Callable[[str, int, int], None]] = None,
) -> ValidationOutcome:
    """Judge at most ``max_items`` findings; the rest pass through as needing review."""
    to_validate = vulnerabilities[:max_items]
    overflow = vulnerabilities[max_items:]
    contexts = [
        build_context(vuln, contents.get(vuln.location.file, ""), files.get(vuln.location.file))
        for vuln in to_validate
    ]

    def progress(current: int, total: int) -> None:
        if on_progress:
            on_progress("ai_validation", current, total)

    verdicts = asyncio.run(validator.validate_batch(contexts, on_progress=progress)) if contexts else []

    outcome = ValidationOutcome(remaining=[], filtered=[], validations={})
    for vuln, verdict in zip(to_validate, verdicts):
        if verdict is None:
            outcome.remaining.append(vuln)
            outcome.needs_review += 1
            continue
        outcome.validations[vuln.key] = verdict
        if verdict.verdict == "FALSE_POSITIVE" and verdict.confidence >= threshold:
            reason = verdict.reasoning or "AI validation"
            outcome.filtered.append(FilteredVulnerability(vuln=vuln, reason=reason, method="ai", confidence=verdict.confidence))
            logger.debug("Filtered %s at %s [ai]: %s", vuln.title, vuln.key, reason)
            if on_filtered:
                on_filtered(vuln, reason, "ai")
        elif verdict.verdict == "TRUE_POSITIVE":
            outcome.true_positives += 1
            outcome.remaining.append(vuln)
        else:
            outcome.needs_review += 1
            outcome.remaining.append(vuln)

    outcome.remaining.extend(overflow)
    outcome.needs_review += len(overflow)
    logger.info(
        "AI validation: %d judged, %d removed, %d confirmed, %d need review",
        len(to_validate), len(outcome.filtered), outcome.true_positives, outcome.needs_review,
    )
    return outcome
