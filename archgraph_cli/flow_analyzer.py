"""Trace request and event flows through classified files.

Flows start at entry-point files and follow file-level import edges
depth first. A file is visited at most once per flow, so a diamond
dependency contributes only its first traversal order.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence

from .arch_classifier import ClassificationResult, ClassifiedFile
from .arch_patterns import ArchitecturePattern, ArchitectureViolation
from .llm import DEFAULT_TIMEOUT, LocalLLM, generate_with_timeout
from .models import AnalysisResult

logger = logging.getLogger(__name__)

FLOW_TYPES = (
    "request-response",
    "event-driven",
    "cqrs-command",
    "cqrs-query",
    "data-pipeline",
    "messaging",
    "batch",
    "unknown",
)
ENTRY_ROLES = ("controller", "handler", "adapter")
ENTRY_LAYERS = ("presentation", "adapters-in", "interface")
MAX_ENTRY_POINTS = 20
DEFAULT_MAX_FLOW_DEPTH = 20

ACTIONS = {
    "controller": "Receives the request",
    "handler": "Handles the event",
    "service": "Runs business logic",
    "usecase": "Orchestrates the use case",
    "repository": "Accesses data",
    "adapter": "Adapts the interface",
    "entity": "Represents the entity",
    "mapper": "Transforms data",
    "validator": "Validates data",
    "middleware": "Intercepts and transforms",
    "factory": "Creates the instance",
    "event": "Publishes the event",
    "command": "Executes the command",
    "query": "Queries data",
}
DEFAULT_ACTION = "Processes data"

_SOURCE_SUFFIX_RE = re.compile(r"\.(ts|js|tsx|jsx|py|rs)$")


@dataclass
class Dependency:
    source: str
    target: str
    type: str = "imports"


@dataclass
class FlowStep:
    order: int
    file: str
    layer: str
    role: str
    action: str
    next_steps: List[str] = field(default_factory=list)
    input_type: Optional[str] = None
    output_type: Optional[str] = None


@dataclass
class DataFlow:
    id: str
    name: str
    description: str
    type: str
    steps: List[FlowStep]
    entry_point: str
    exit_point: str
    layers: List[str]
    direction: str  # inbound, outbound, internal


@dataclass
class LayerConnection:
    source_layer: str
    target_layer: str
    connection_count: int = 0
    files: List[Dependency] = field(default_factory=list)
    is_allowed: bool = True
    direction: str = "lateral"  # down, up, lateral


@dataclass
class FlowMetrics:
    total_flows: int = 0
    avg_flow_length: float = 0.0
    max_flow_length: int = 0
    layer_coverage: int = 0
    violation_count: int = 0
    cyclic_dependencies: int = 0


@dataclass
class FlowAnalysisResult:
    flows: List[DataFlow]
    layer_connections: List[LayerConnection]
    violations: List[ArchitectureViolation]
    metrics: FlowMetrics
    ai_explanation: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def file_dependencies(result: AnalysisResult) -> List[Dependency]:
    """File-to-file import edges of an analysis result."""
    nodes = result.node_by_id()
    dependencies = []
    for edge in result.edges:
        if edge.type != "imports":
            continue
        source, target = nodes[edge.source], nodes[edge.target]
        if source.type == "file" and target.type == "file":
            dependencies.append(Dependency(source.full_path, target.full_path, edge.type))
    return dependencies


def infer_action(role: str) -> str:
    return ACTIONS.get(role, DEFAULT_ACTION)


def infer_flow_type(steps: Sequence[FlowStep]) -> str:
    roles = {step.role for step in steps}
    if roles & {"command", "handler"}:
        if "query" in roles:
            return "cqrs-query"
        if "command" in roles:
            return "cqrs-command"
    if "event" in roles:
        return "event-driven"
    if roles & {"controller", "handler"}:
        return "request-response"
    return "unknown"


def infer_flow_direction(steps: Sequence[FlowStep], pattern: ArchitecturePattern) -> str:
    if not steps:
        return "internal"
    first = pattern.layer(steps[0].layer)
    last = pattern.layer(steps[-1].layer)
    if first is None or last is None:
        return "internal"
    if first.level == 0 and last.level > 0:
        return "inbound"
    if first.level > 0 and last.level == 0:
        return "outbound"
    return "internal"


def connection_direction(source_layer: str, target_layer: str, pattern: ArchitecturePattern) -> str:
    source = pattern.layer(source_layer)
    target = pattern.layer(target_layer)
    if source is None or target is None:
        return "lateral"
    if source.level < target.level:
        return "down"
    if source.level > target.level:
        return "up"
    return "lateral"


def count_layer_cycles(connections: Sequence[LayerConnection]) -> int:
    """Number of DFS roots from which a back edge is reached."""
    graph: Dict[str, List[str]] = {}
    for connection in connections:
        graph.setdefault(connection.source_layer, []).append(connection.target_layer)

    visited = set()
    on_stack = set()

    def has_cycle(node: str) -> bool:
        visited.add(node)
        on_stack.add(node)
        for neighbour in graph.get(node, []):
            if neighbour not in visited:
                if has_cycle(neighbour):
                    return True
            elif neighbour in on_stack:
                return True
        on_stack.discard(node)
        return False

    cycles = 0
    for node in list(graph):
        if node not in visited:
            on_stack.clear()
            if has_cycle(node):
                cycles += 1
    return cycles


class FlowAnalyzer:
    def __init__(
        self,
        max_flow_depth: int = DEFAULT_MAX_FLOW_DEPTH,
        detect_cycles: bool = True,
        llm: Optional[LocalLLM] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.max_flow_depth = max_flow_depth
        self.detect_cycles = detect_cycles
        self.llm = llm
        self.timeout = timeout

    def analyze(
        self,
        classification: ClassificationResult,
        pattern: ArchitecturePattern,
        dependencies: Sequence[Dependency],
    ) -> FlowAnalysisResult:
        files = {item.path: item for item in classification.files}
        outgoing: Dict[str, List[str]] = {}
        for dep in dependencies:
            if dep.target in files:
                targets = outgoing.setdefault(dep.source, [])
                if dep.target not in targets:
                    targets.append(dep.target)

        connections = self.layer_connections(files, dependencies, pattern)
        flows = self.detect_flows(classification, files, outgoing, pattern)
        violations = self.find_violations(connections, pattern)
        metrics = self.calculate_metrics(flows, connections, violations)

        explanation = None
        if self.llm is not None:
            if self.llm.is_available():
                explanation = self._explain(flows, connections, pattern, classification)
            else:
                logger.warning("LLM unavailable; skipping flow explanation")

        logger.info(
            "Flow analysis: %d flows, %d layer connections, %d violations",
            len(flows), len(connections), len(violations),
        )
        return FlowAnalysisResult(
            flows=flows, layer_connections=connections, violations=violations, metrics=metrics, ai_explanation=explanation
        )

    def layer_connections(
        self, files: Dict[str, ClassifiedFile], dependencies: Sequence[Dependency], pattern: ArchitecturePattern
    ) -> List[LayerConnection]:
        connections: Dict[str, LayerConnection] = {}
        for dep in dependencies:
            source = files.get(dep.source)
            target = files.get(dep.target)
            if source is None or target is None or source.layer is None or target.layer is None:
                continue
            key = f"{source.layer_name}->{target.layer_name}"
            connection = connections.get(key)
            if connection is None:
                source_layer = pattern.layer(source.layer_name)
                connection = connections[key] = LayerConnection(
                    source_layer=source.layer_name,
                    target_layer=target.layer_name,
                    is_allowed=source_layer.allows(target.layer_name) if source_layer else True,
                    direction=connection_direction(source.layer_name, target.layer_name, pattern),
                )
            connection.connection_count += 1
            connection.files.append(Dependency(dep.source, dep.target, dep.type))
        return list(connections.values())

    def detect_flows(
        self,
        classification: ClassificationResult,
        files: Dict[str, ClassifiedFile],
        outgoing: Dict[str, List[str]],
        pattern: ArchitecturePattern,
    ) -> List[DataFlow]:
        entries = [
            item for item in classification.files
            if item.role in ENTRY_ROLES or item.layer_name in ENTRY_LAYERS
        ]
        flows = []
        for entry in entries[:MAX_ENTRY_POINTS]:
            flow = self.trace_flow(entry, files, outgoing, pattern)
            if flow is not None:
                flows.append(flow)
        return flows

    def trace_flow(
        self,
        entry: ClassifiedFile,
        files: Dict[str, ClassifiedFile],
        outgoing: Dict[str, List[str]],
        pattern: ArchitecturePattern,
    ) -> Optional[DataFlow]:
        steps: List[FlowStep] = []
        visited = set()
        layers: List[str] = []

        def trace(item: ClassifiedFile, order: int) -> None:
            if item.path in visited or order > self.max_flow_depth:
                return
            visited.add(item.path)
            following = outgoing.get(item.path, [])
            steps.append(
                FlowStep(
                    order=order,
                    file=item.path,
                    layer=item.layer_name,
                    role=item.role,
                    action=infer_action(item.role),
                    next_steps=list(following),
                )
            )
            if item.layer_name not in layers:
                layers.append(item.layer_name)
            for path in following:
                if path not in visited:
                    trace(files[path], order + 1)

        trace(entry, 0)
        if len(steps) < 2:
            return None

        base = _SOURCE_SUFFIX_RE.sub("", posixpath.basename(entry.path))
        return DataFlow(
            id="flow-" + re.sub(r"[^a-zA-Z0-9]", "-", entry.path),
            name=f"{entry.role}: {base}",
            description=f"Flow starting from {entry.path}",
            type=infer_flow_type(steps),
            steps=steps,
            entry_point=entry.path,
            exit_point=steps[-1].file,
            layers=layers,
            direction=infer_flow_direction(steps, pattern),
        )

    def find_violations(self, connections: Sequence[LayerConnection], pattern: ArchitecturePattern) -> List[ArchitectureViolation]:
        violations = []
        for connection in connections:
            first = connection.files[0] if connection.files else None
            source_file = first.source if first else "unknown"
            target_file = first.target if first else "unknown"
            if not connection.is_allowed:
                violations.append(
                    ArchitectureViolation(
                        type="dependency",
                        severity=pattern.violation_severity,
                        source_file=source_file,
                        target_file=target_file,
                        source_layer=connection.source_layer,
                        target_layer=connection.target_layer,
                        message=(
                            f"{connection.source_layer} should not depend on {connection.target_layer} "
                            f"({connection.connection_count} occurrences)"
                        ),
                    )
                )
            if connection.direction == "up" and pattern.flow_direction == "top-down":
                violations.append(
                    ArchitectureViolation(
                        type="dependency",
                        severity="warning",
                        source_file=source_file,
                        target_file=target_file,
                        source_layer=connection.source_layer,
                        target_layer=connection.target_layer,
                        message=f"Upward dependency: {connection.source_layer} -> {connection.target_layer}",
                    )
                )
        return violations

    def calculate_metrics(
        self,
        flows: Sequence[DataFlow],
        connections: Sequence[LayerConnection],
        violations: Sequence[ArchitectureViolation],
    ) -> FlowMetrics:
        lengths = [len(flow.steps) for flow in flows]
        layers = {layer for flow in flows for layer in flow.layers}
        return FlowMetrics(
            total_flows=len(flows),
            avg_flow_length=round(sum(lengths) / len(lengths), 1) if lengths else 0.0,
            max_flow_length=max(lengths) if lengths else 0,
            layer_coverage=len(layers),
            violation_count=len(violations),
            cyclic_dependencies=count_layer_cycles(connections) if self.detect_cycles else 0,
        )

    def _explain(
        self,
        flows: Sequence[DataFlow],
        connections: Sequence[LayerConnection],
        pattern: ArchitecturePattern,
        classification: ClassificationResult,
    ) -> Optional[str]:
        summary = {
            "architecture": pattern.name,
            "total_flows": len(flows),
            "main_flows": [
                {"name": f.name, "type": f.type, "layers": f.layers, "steps": len(f.steps)} for f in flows[:5]
            ],
            "layer_connections": [
                {"from": c.source_layer, "to": c.target_layer, "count": c.connection_count, "allowed": c.is_allowed}
                for c in connections[:10]
            ],
            "stats": asdict(classification.stats),
        }
        prompt = f"""Analyse this {pattern.name} architecture and explain its data flows:

{json.dumps(summary, indent=2)}

Give a structured explanation:
1. Architecture overview
2. Main data flows
3. Strengths
4. Potential problems or suggested improvements
5. Conformance with {pattern.name} principles

Be concise and technical."""
        return generate_with_timeout(self.llm, prompt, timeout=self.timeout) or None


def flows_to_visualization(flows: Sequence[DataFlow], pattern: ArchitecturePattern) -> Dict[str, list]:
    """Deduplicated node and edge lists for rendering the traced flows."""
    nodes: Dict[str, dict] = {}
    edges: List[dict] = []
    seen_edges = set()
    for flow in flows:
        for step in flow.steps:
            if step.file not in nodes:
                layer = pattern.layer(step.layer)
                nodes[step.file] = {
                    "id": step.file,
                    "label": posixpath.basename(step.file),
                    "layer": step.layer,
                    "role": step.role,
                    "level": layer.level if layer else 0,
                    "color": layer.color if layer else "#888888",
                }
            for target in step.next_steps:
                edge_id = f"{step.file}->{target}"
                if edge_id in seen_edges:
                    continue
                seen_edges.add(edge_id)
                edges.append({"id": edge_id, "source": step.file, "target": target, "style": "solid", "color": "#00ccff"})
    return {"nodes": list(nodes.values()), "edges": edges}
