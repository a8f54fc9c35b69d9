"""Score catalog patterns against a project's files and folders."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .arch_patterns import (
    ALL_PATTERNS,
    ArchitectureLayer,
    ArchitecturePattern,
    ArchitectureViolation,
    DetectionResult,
    PatternIndicator,
)
from .graph_builder import resolve_import
from .llm import DEFAULT_TIMEOUT, LocalLLM, extract_json, generate_with_timeout
from .models import FileInfo

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 30
DEFAULT_AI_WEIGHT = 0.4
INDICATOR_POINTS = 80
LAYER_POINTS = 20
MISSING_REQUIRED_PENALTY = 0.3


@dataclass
class ContextFile:
    path: str
    imports: List[str] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)


@dataclass
class DetectionContext:
    files: List[ContextFile]
    folders: List[str]
    project_root: str = ""


def extract_folders(paths: Sequence[str]) -> List[str]:
    """Every ancestor folder of the given file paths, sorted."""
    folders = set()
    for path in paths:
        parts = path.replace("\\", "/").split("/")
        for index in range(1, len(parts)):
            folders.add("/".join(parts[:index]))
    return sorted(folders)


def create_detection_context(files: Sequence[FileInfo], project_root: str = "") -> DetectionContext:
    """Build a context from scanned files, mapping imports to project paths where they resolve."""
    known = {file.path for file in files}
    context_files = []
    for file in files:
        imports = []
        for imp in file.imports:
            resolved = resolve_import(file.path, imp.module, file.language, known)
            imports.append(resolved or imp.module)
        context_files.append(ContextFile(path=file.path, imports=imports, exports=[e.name for e in file.exports]))
    return DetectionContext(files=context_files, folders=extract_folders([f.path for f in files]), project_root=project_root)


def is_dependency_allowed(source: ArchitectureLayer, target: ArchitectureLayer) -> bool:
    return source.allows(target.name)


class ArchitectureDetector:
    """Rank every catalog pattern by weighted indicator and layer coverage.

    An LLM handle is optional. When one is given and reachable, the ranked
    heuristic confidences are blended with the model's adjustments.
    """

    def __init__(
        self,
        min_confidence: int = DEFAULT_MIN_CONFIDENCE,
        detect_violations: bool = True,
        llm: Optional[LocalLLM] = None,
        ai_weight: float = DEFAULT_AI_WEIGHT,
        timeout: float = DEFAULT_TIMEOUT,
        patterns: Sequence[ArchitecturePattern] = ALL_PATTERNS,
    ):
        self.min_confidence = min_confidence
        self.detect_violations = detect_violations
        self.llm = llm
        self.ai_weight = ai_weight
        self.timeout = timeout
        self.patterns = tuple(patterns)

    def detect(self, context: DetectionContext) -> List[DetectionResult]:
        results = []
        for pattern in self.patterns:
            result = self.score_pattern(pattern, context)
            if result.confidence >= self.min_confidence:
                results.append(result)
        results.sort(key=lambda r: r.confidence, reverse=True)

        if results and self.llm is not None:
            if self.llm.is_available():
                self._enhance_with_ai(results, context)
            else:
                logger.warning("LLM unavailable; using heuristic architecture detection only")

        if results:
            logger.info("Top architecture candidate: %s (%d%%)", results[0].pattern.name, results[0].confidence)
        else:
            logger.info("No architecture pattern cleared %d%% confidence", self.min_confidence)
        return results

    def score_pattern(self, pattern: ArchitecturePattern, context: DetectionContext) -> DetectionResult:
        matched: List[PatternIndicator] = []
        total_weight = 0
        matched_weight = 0
        for indicator in pattern.indicators:
            total_weight += indicator.weight
            if self._check_indicator(indicator, context):
                matched.append(indicator)
                matched_weight += indicator.weight

        all_required = all(indicator in matched for indicator in pattern.indicators if indicator.required)

        distribution = self.layer_distribution(pattern, context)
        layers_present = sum(1 for count in distribution.values() if count > 0)
        layer_bonus = layers_present / len(pattern.layers) * LAYER_POINTS

        confidence = matched_weight / max(total_weight, 1) * INDICATOR_POINTS + layer_bonus
        if not all_required:
            confidence *= MISSING_REQUIRED_PENALTY
        confidence = min(100, round(confidence))

        violations: List[ArchitectureViolation] = []
        if self.detect_violations and confidence >= self.min_confidence:
            violations = self.find_violations(pattern, context)

        return DetectionResult(
            pattern=pattern,
            confidence=confidence,
            matched_indicators=matched,
            layer_distribution=distribution,
            violations=violations,
        )

    def _check_indicator(self, indicator: PatternIndicator, context: DetectionContext) -> bool:
        if indicator.type == "folder":
            return any(indicator.pattern.search(folder + "/") for folder in context.folders)
        if indicator.type in ("file", "naming"):
            return any(indicator.pattern.search(file.path) for file in context.files)
        if indicator.type == "import":
            return any(indicator.pattern.search(imp) for file in context.files for imp in file.imports)
        return False

    def layer_distribution(self, pattern: ArchitecturePattern, context: DetectionContext) -> Dict[str, int]:
        """Files per layer; a file counts toward the first layer it matches."""
        distribution = {layer.name: 0 for layer in pattern.layers}
        for file in context.files:
            layer = pattern.layer_for(file.path)
            if layer is not None:
                distribution[layer.name] += 1
        return distribution

    def find_violations(self, pattern: ArchitecturePattern, context: DetectionContext) -> List[ArchitectureViolation]:
        violations = []
        for file in context.files:
            source = pattern.layer_for(file.path)
            if source is None:
                continue
            for target_path in file.imports:
                target = pattern.layer_for(target_path)
                if target is None or is_dependency_allowed(source, target):
                    continue
                violations.append(
                    ArchitectureViolation(
                        type="dependency",
                        severity=pattern.violation_severity,
                        source_file=file.path,
                        target_file=target_path,
                        source_layer=source.name,
                        target_layer=target.name,
                        message=f"Violation: {source.name} should not depend on {target.name}",
                    )
                )
        return violations

    def classify_file(self, path: str, pattern: ArchitecturePattern) -> Optional[ArchitectureLayer]:
        return pattern.layer_for(path)

    # -- AI blending ----------------------------------------------------

    def _enhance_with_ai(self, results: List[DetectionResult], context: DetectionContext) -> None:
        top = [
            {"name": r.pattern.name, "confidence": r.confidence, "layers": r.layer_distribution}
            for r in results[:3]
        ]
        prompt = f"""Review this project structure and confirm or adjust the detected architecture.

Project structure:
{summarize_structure(context)}

Heuristic candidates:
{json.dumps(top, indent=2)}

Respond in JSON:
{{
  "primaryPattern": "main pattern name",
  "confidence": <0-100>,
  "reasoning": "short explanation",
  "adjustments": [{{"pattern": "name", "newConfidence": <0-100>}}]
}}"""
        data = extract_json(generate_with_timeout(self.llm, prompt, timeout=self.timeout))
        if not isinstance(data, dict):
            logger.warning("AI architecture review returned no usable JSON; keeping heuristic ranking")
            return

        by_name = {r.pattern.name.lower(): r for r in results}
        adjustments = data.get("adjustments")
        for adjustment in adjustments if isinstance(adjustments, list) else []:
            if not isinstance(adjustment, dict) or not isinstance(adjustment.get("pattern"), str):
                continue
            result = by_name.get(adjustment["pattern"].lower())
            try:
                suggested = float(adjustment.get("newConfidence"))
            except (TypeError, ValueError):
                continue
            if result is None:
                continue
            suggested = max(0.0, min(100.0, suggested))
            result.confidence = round(result.confidence * (1 - self.ai_weight) + suggested * self.ai_weight)

        results.sort(key=lambda r: r.confidence, reverse=True)
        reasoning = data.get("reasoning")
        if reasoning:
            results[0].ai_reasoning = str(reasoning)


def summarize_structure(context: DetectionContext, max_folders: int = 50, max_files: int = 30) -> str:
    folders = "\n".join(f"  {folder}" for folder in context.folders[:max_folders])
    files = "\n".join(f"  {file.path}" for file in context.files[:max_files])
    return f"Main folders:\n{folders}\n\nSample files:\n{files}"
