"""Assign each file a layer of the detected pattern and a functional role."""

from __future__ import annotations

import asyncio
import json
import logging
import posixpath
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from .arch_patterns import ArchitectureLayer, ArchitecturePattern, dir_patterns, file_patterns
from .llm import DEFAULT_TIMEOUT, LocalLLM, extract_json, generate_async
from .models import FileInfo

logger = logging.getLogger(__name__)

ALIAS_SCORE = 50
PATTERN_SCORE = 30
UNCERTAIN_BELOW = 50
DEFAULT_AI_WEIGHT = 0.6


def _role(role: str, folders: Sequence[str], suffixes: Sequence[str], exact: Sequence[str] = ()) -> Tuple[str, Tuple[Pattern[str], ...]]:
    patterns = file_patterns(*suffixes) + dir_patterns(*folders) + tuple(re.compile(p) for p in exact)
    return role, patterns


# Ordered; the first role with a matching pattern wins
ROLE_PATTERNS: Tuple[Tuple[str, Tuple[Pattern[str], ...]], ...] = (
    _role("controller", ["controllers?"], [r"\.controller\.(ts|js)$", r"_controller\.py$"], [r"Controller\.(ts|js)$"]),
    _role("service", ["services?"], [r"\.service\.(ts|js)$", r"_service\.py$"], [r"Service\.(ts|js)$"]),
    _role(
        "repository",
        ["repositories", "repository"],
        [r"\.repository\.(ts|js)$", r"\.repo\.(ts|js)$", r"_repository\.py$"],
        [r"Repository\.(ts|js)$"],
    ),
    _role("entity", ["entities", "entity"], [r"\.entity\.(ts|js)$"], [r"Entity\.(ts|js)$"]),
    _role("dto", ["dtos?"], [r"\.dto\.(ts|js)$", r"\.request\.(ts|js)$", r"\.response\.(ts|js)$"], [r"DTO\.(ts|js)$"]),
    _role("mapper", ["mappers?"], [r"\.mapper\.(ts|js)$"], [r"Mapper\.(ts|js)$"]),
    _role("validator", ["validators?", "schemas?"], [r"\.validator\.(ts|js)$", r"\.schema\.(ts|js)$"]),
    _role("middleware", ["middlewares?"], [r"\.middleware\.(ts|js)$"], [r"Middleware\.(ts|js)$"]),
    _role("handler", ["handlers?"], [r"\.handler\.(ts|js)$", r"_handler\.py$"], [r"Handler\.(ts|js)$"]),
    _role("usecase", ["use-?cases?"], [r"\.usecase\.(ts|js)$", r"\.interactor\.(ts|js)$"], [r"UseCase\.(ts|js)$"]),
    _role("aggregate", ["aggregates?"], [r"\.aggregate\.(ts|js)$"], [r"Aggregate\.(ts|js)$"]),
    _role("value-object", ["value-?objects?"], [r"\.value-?object\.(ts|js)$", r"\.vo\.(ts|js)$"]),
    _role("factory", ["factories", "factory"], [r"\.factory\.(ts|js)$"], [r"Factory\.(ts|js)$"]),
    _role("event", ["events?"], [r"\.event\.(ts|js)$"], [r"Event\.(ts|js)$"]),
    _role("command", ["commands?"], [r"\.command\.(ts|js)$"], [r"Command\.(ts|js)$"]),
    _role("query", ["queries"], [r"\.query\.(ts|js)$"], [r"Query\.(ts|js)$"]),
    _role("port", ["ports?"], [r"\.port\.(ts|js)$"], [r"Port\.(ts|js)$"]),
    _role("adapter", ["adapters?"], [r"\.adapter\.(ts|js)$"], [r"Adapter\.(ts|js)$"]),
    _role("config", ["config", "configuration"], [r"\.config\.(ts|js)$", r"settings\.(ts|js|py)$"]),
    _role("util", ["utils?", "utilities", "utility"], [r"\.util\.(ts|js)$"]),
    _role("helper", ["helpers?"], [r"\.helper\.(ts|js)$"]),
    _role("type", ["types?", "interfaces?"], [r"\.types?\.(ts|js)$", r"\.interface\.(ts|js)$", r"\.d\.ts$"]),
    _role("constant", ["constants?"], [r"\.constants?\.(ts|js)$", r"\.enum\.(ts|js)$"]),
    _role("test", ["__tests__", "tests?"], [r"\.test\.(ts|js|tsx|jsx)$", r"\.spec\.(ts|js|tsx|jsx)$"]),
    _role("view", ["views?", "pages?", "screens?"], [r"\.view\.(ts|js|tsx|jsx)$"]),
    _role("component", ["components?"], [r"\.component\.(ts|js|tsx|jsx)$"]),
    _role("store", ["stores?"], [r"\.store\.(ts|js)$", r"\.state\.(ts|js)$"]),
    _role("hook", ["hooks?"], [r"\.hook\.(ts|js)$"]),
)
ROLES = tuple(role for role, _ in ROLE_PATTERNS) + ("unknown",)

_HOOK_NAME_RE = re.compile(r"^use[A-Z]")


@dataclass
class AIClassification:
    role: str
    description: str = ""
    responsibilities: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)


@dataclass
class ClassifiedFile:
    path: str
    layer: Optional[ArchitectureLayer]
    layer_name: str
    confidence: int
    role: str
    ai_classification: Optional[AIClassification] = None

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "layer": self.layer_name,
            "confidence": self.confidence,
            "role": self.role,
            "ai_classification": vars(self.ai_classification) if self.ai_classification else None,
        }


@dataclass
class ClassificationStats:
    total_files: int = 0
    classified_files: int = 0
    unclassified_files: int = 0
    classification_rate: int = 0
    layer_distribution: Dict[str, int] = field(default_factory=dict)
    role_distribution: Dict[str, int] = field(default_factory=dict)


@dataclass
class ClassificationResult:
    files: List[ClassifiedFile]
    by_layer: Dict[str, List[ClassifiedFile]]
    by_role: Dict[str, List[ClassifiedFile]]
    unclassified: List[ClassifiedFile]
    stats: ClassificationStats

    def file(self, path: str) -> Optional[ClassifiedFile]:
        for classified in self.files:
            if classified.path == path:
                return classified
        return None


def detect_role(path: str) -> str:
    for role, patterns in ROLE_PATTERNS:
        if any(pattern.search(path) for pattern in patterns):
            return role
    if _HOOK_NAME_RE.match(posixpath.basename(path)):
        return "hook"
    return "unknown"


def layer_confidence(path: str, layer: ArchitectureLayer) -> int:
    score = 0
    if layer.matches_alias(path):
        score += ALIAS_SCORE
    if layer.matches_pattern(path):
        score += PATTERN_SCORE
    return min(100, score)


def classify_file(path: str, pattern: ArchitecturePattern) -> ClassifiedFile:
    best: Optional[ArchitectureLayer] = None
    best_score = 0
    for layer in pattern.layers:
        score = layer_confidence(path, layer)
        if score > best_score:
            best, best_score = layer, score
    return ClassifiedFile(
        path=path,
        layer=best,
        layer_name=best.name if best else "unknown",
        confidence=best_score,
        role=detect_role(path),
    )


class ArchitectureClassifier:
    """Heuristic classification with optional batched LLM re-classification.

    Files whose role is unknown or whose layer confidence is below 50 are
    sent to the model in batches. The model's confidence is blended with
    the heuristic one rather than replacing it.
    """

    def __init__(
        self,
        llm: Optional[LocalLLM] = None,
        batch_size: int = 10,
        ai_weight: float = DEFAULT_AI_WEIGHT,
        include_file_content: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.llm = llm
        self.batch_size = max(1, batch_size)
        self.ai_weight = ai_weight
        self.include_file_content = include_file_content
        self.timeout = timeout

    def classify(
        self,
        files: Sequence[FileInfo],
        pattern: ArchitecturePattern,
        contents: Optional[Dict[str, str]] = None,
    ) -> ClassificationResult:
        classified = [classify_file(file.path, pattern) for file in files]

        if self.llm is not None:
            if self.llm.is_available():
                uncertain = [c for c in classified if c.role == "unknown" or c.confidence < UNCERTAIN_BELOW]
                if uncertain:
                    asyncio.run(self._enhance_with_ai(uncertain, {f.path: f for f in files}, pattern, contents or {}))
            else:
                logger.warning("LLM unavailable; using heuristic file classification only")

        by_layer: Dict[str, List[ClassifiedFile]] = {}
        by_role: Dict[str, List[ClassifiedFile]] = {}
        unclassified = []
        for item in classified:
            by_layer.setdefault(item.layer_name or "unclassified", []).append(item)
            by_role.setdefault(item.role, []).append(item)
            if item.layer is None or item.role == "unknown":
                unclassified.append(item)

        stats = _calculate_stats(classified, by_layer, by_role)
        logger.info(
            "Classified %d of %d files against %s", stats.classified_files, stats.total_files, pattern.name
        )
        return ClassificationResult(
            files=classified, by_layer=by_layer, by_role=by_role, unclassified=unclassified, stats=stats
        )

    async def _enhance_with_ai(
        self,
        uncertain: List[ClassifiedFile],
        originals: Dict[str, FileInfo],
        pattern: ArchitecturePattern,
        contents: Dict[str, str],
    ) -> None:
        for start in range(0, len(uncertain), self.batch_size):
            batch = uncertain[start : start + self.batch_size]
            prompt = self._batch_prompt(batch, originals, pattern, contents)
            data = extract_json(await generate_async(self.llm, prompt, timeout=self.timeout))
            if not isinstance(data, dict):
                logger.warning("AI classification returned no usable JSON for a batch of %d files", len(batch))
                continue
            self._apply(batch, data.get("classifications"), pattern)

    def _batch_prompt(
        self,
        batch: List[ClassifiedFile],
        originals: Dict[str, FileInfo],
        pattern: ArchitecturePattern,
        contents: Dict[str, str],
    ) -> str:
        infos = []
        for item in batch:
            original = originals.get(item.path)
            info = {
                "path": item.path,
                "imports": [imp.module for imp in original.imports] if original else [],
                "exports": [exp.name for exp in original.exports] if original else [],
            }
            if self.include_file_content:
                info["content"] = contents.get(item.path, "")[:500]
            infos.append(info)

        return f"""Classify these files according to the {pattern.name} architecture.

Available layers: {", ".join(layer.name for layer in pattern.layers)}

Files:
{json.dumps(infos, indent=2)}

Respond in JSON:
{{
  "classifications": [
    {{
      "path": "path/to/file",
      "layer": "layer name",
      "role": "controller, service, repository, entity, ...",
      "description": "short description of the file's role",
      "responsibilities": ["responsibility"],
      "confidence": <0-100>
    }}
  ]
}}"""

    def _apply(self, batch: List[ClassifiedFile], classifications: Any, pattern: ArchitecturePattern) -> None:
        """Merge model answers into ``batch``; entries with unusable fields are skipped or ignored."""
        if not isinstance(classifications, list):
            logger.warning("AI classification answer has no classification list")
            return
        by_path = {item.path: item for item in batch}
        for entry in classifications:
            if not isinstance(entry, dict) or not isinstance(entry.get("path"), str):
                continue
            item = by_path.get(entry["path"])
            if item is None:
                continue
            layer_name = entry.get("layer")
            layer = pattern.layer(layer_name) if isinstance(layer_name, str) else None
            if layer is not None:
                item.layer = layer
                item.layer_name = layer.name

            role = entry.get("role")
            role = role if isinstance(role, str) else ""
            if item.role == "unknown" and role:
                item.role = role

            responsibilities = entry.get("responsibilities")
            item.ai_classification = AIClassification(
                role=role,
                description=str(entry.get("description", "")),
                responsibilities=[str(r) for r in responsibilities] if isinstance(responsibilities, list) else [],
            )
            try:
                suggested = max(0.0, min(100.0, float(entry.get("confidence", 0))))
            except (TypeError, ValueError):
                continue
            item.confidence = round(item.confidence * (1 - self.ai_weight) + suggested * self.ai_weight)


def _calculate_stats(
    files: List[ClassifiedFile],
    by_layer: Dict[str, List[ClassifiedFile]],
    by_role: Dict[str, List[ClassifiedFile]],
) -> ClassificationStats:
    classified = [f for f in files if f.layer is not None and f.role != "unknown"]
    return ClassificationStats(
        total_files=len(files),
        classified_files=len(classified),
        unclassified_files=len(files) - len(classified),
        classification_rate=round(len(classified) / len(files) * 100) if files else 0,
        layer_distribution={name: len(items) for name, items in by_layer.items()},
        role_distribution={name: len(items) for name, items in by_role.items()},
    )
