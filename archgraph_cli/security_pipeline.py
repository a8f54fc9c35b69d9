"""Three-stage security pipeline: base scan, syntactic filter, AI validation."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .ai_validation import AIValidator, apply_ai_validation
from .config import SECURITY_DEFAULTS
from .llm import LocalLLM
from .models import AIVerdict, FileInfo, FilteredVulnerability, SecurityVulnerability
from .security_scanner import (
    AttackSurface,
    DataFlowRisk,
    SecretFinding,
    SecurityScanner,
    build_summary,
    group_by_category,
)
from .taint_filter import TaintFilter

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]
FilteredCallback = Callable[[SecurityVulnerability, str, str], None]


@dataclass
class PipelineStats:
    original_count: int = 0
    after_ast_filter: int = 0
    after_ai_validation: int = 0
    false_positives_removed: int = 0
    true_positives_confirmed: int = 0
    needs_manual_review: int = 0
    processing_time_ms: float = 0.0


@dataclass
class EnhancedSecurityReport:
    summary: Dict[str, int]
    vulnerabilities: List[SecurityVulnerability]
    by_category: Dict[str, List[SecurityVulnerability]]
    attack_surface: AttackSurface
    data_flow_risks: List[DataFlowRisk]
    secrets_found: List[SecretFinding]
    pipeline: PipelineStats
    ast_filtered: List[FilteredVulnerability] = field(default_factory=list)
    ai_filtered: List[FilteredVulnerability] = field(default_factory=list)
    ai_validations: Dict[str, AIVerdict] = field(default_factory=dict)
    ai_used: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EnhancedSecurityPipeline:
    """Run the stages in order, each one only ever removing findings.

    Stage 2 and stage 3 can be switched off independently. Stage 3 also
    switches itself off when no LLM client is given or the client's
    availability probe fails; every finding left after stage 2 then
    counts as needing manual review.
    """

    def __init__(
        self,
        llm: Optional[LocalLLM] = None,
        settings: Optional[Dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_vulnerability_filtered: Optional[FilteredCallback] = None,
    ):
        self.settings = dict(SECURITY_DEFAULTS)
        self.settings.update(settings or {})
        self.llm = llm
        self.on_progress = on_progress
        self.on_vulnerability_filtered = on_vulnerability_filtered

    def _progress(self, stage: str, current: int, total: int) -> None:
        if self.on_progress:
            self.on_progress(stage, current, total)

    def _ai_enabled(self) -> bool:
        if not self.settings["enable_ai_validation"] or self.llm is None:
            return False
        if not self.llm.is_available():
            logger.warning("LLM unavailable; skipping AI validation")
            return False
        return True

    def analyze(self, files: List[FileInfo], contents: Dict[str, str]) -> EnhancedSecurityReport:
        started = time.perf_counter()
        stats = PipelineStats()

        self._progress("base_scan", 0, len(files))
        base = SecurityScanner().scan(files, contents)
        self._progress("base_scan", len(files), len(files))
        vulnerabilities = list(base.vulnerabilities)
        stats.original_count = len(vulnerabilities)

        ast_filtered: List[FilteredVulnerability] = []
        if self.settings["enable_ast_filtering"]:
            taint_filter = TaintFilter(
                threshold=self.settings["ast_confidence_to_filter"],
                on_filtered=self.on_vulnerability_filtered,
                on_progress=self.on_progress,
            )
            vulnerabilities, ast_filtered = taint_filter.apply(vulnerabilities, contents)
        stats.after_ast_filter = len(vulnerabilities)

        ai_filtered: List[FilteredVulnerability] = []
        validations: Dict[str, AIVerdict] = {}
        ai_used = self._ai_enabled()
        if ai_used:
            validator = AIValidator(
                self.llm,
                batch_size=self.settings["batch_size"],
                rate_limit_ms=self.settings["rate_limit_ms"],
                timeout=self.settings["timeout"],
                temperature=self.settings.get("temperature", 0.2),
                max_tokens=self.settings.get("max_tokens", 4000),
            )
            outcome = apply_ai_validation(
                validator,
                vulnerabilities,
                contents,
                {file.path: file for file in files},
                max_items=self.settings["max_vulns_for_ai_validation"],
                threshold=self.settings["ai_confidence_to_filter"],
                on_filtered=self.on_vulnerability_filtered,
                on_progress=self.on_progress,
            )
            vulnerabilities = outcome.remaining
            ai_filtered = outcome.filtered
            validations = outcome.validations
            stats.true_positives_confirmed = outcome.true_positives
            stats.needs_manual_review = outcome.needs_review
        else:
            stats.needs_manual_review = len(vulnerabilities)

        stats.after_ai_validation = len(vulnerabilities)
        stats.false_positives_removed = len(ast_filtered) + len(ai_filtered)
        stats.processing_time_ms = round((time.perf_counter() - started) * 1000, 2)

        logger.info(
            "Security pipeline: %d -> %d (syntactic) -> %d (ai) in %.0f ms",
            stats.original_count, stats.after_ast_filter, stats.after_ai_validation, stats.processing_time_ms,
        )
        return EnhancedSecurityReport(
            summary=build_summary(vulnerabilities),
            vulnerabilities=vulnerabilities,
            by_category=group_by_category(vulnerabilities),
            attack_surface=base.attack_surface,
            data_flow_risks=base.data_flow_risks,
            secrets_found=base.secrets_found,
            pipeline=stats,
            ast_filtered=ast_filtered,
            ai_filtered=ai_filtered,
            ai_validations=validations,
            ai_used=ai_used,
        )
