"""Seven-level code graph construction, call graph, data flow and issue detection.

Levels: L1 system, L2 module (top path segment), L3 file, L4 type,
L5 function/method, L6 block (reserved, never populated), L7
attribute/parameter/module variable.
"""

from __future__ import annotations

import logging
import posixpath
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from . import __version__
from .config import DEFAULT_MAX_DEPTH
from .models import (
    L1,
    L2,
    L3,
    L4,
    L5,
    L7,
    LANGUAGES,
    LAYERS,
    LEVEL_NAMES,
    AnalysisMeta,
    AnalysisResult,
    CallGraph,
    CallGraphEdge,
    CallGraphNode,
    CodeEdge,
    CodeIssue,
    CodeNode,
    FileInfo,
    FlowTarget,
    FunctionInfo,
    LayerInfo,
    Location,
    ProjectStats,
    VariableFlow,
)
from .scanner import FileScanner, ScanResult

logger = logging.getLogger(__name__)

CALLABLE_TYPES = frozenset({"function", "method", "constructor", "arrow"})
ISSUE_FUNCTION_TYPES = frozenset({"function", "method", "arrow"})
IMPORT_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".rs", ".py", "/index.ts", "/index.js")

COMPLEXITY_WARNING = 10
COMPLEXITY_ERROR = 20
LONG_METHOD_INFO = 50
LONG_METHOD_WARNING = 100
GOD_CLASS_MEMBERS = 20

LAYER_LEGEND = [
    LayerInfo("frontend", "Frontend", "#2196F3", "User interface code under src/"),
    LayerInfo("backend", "Backend", "#FF9800", "Native backend code under src-tauri/"),
    LayerInfo("sidecar", "Sidecar", "#4CAF50", "Auxiliary services under sidecar/"),
    LayerInfo("data", "Data Layer", "#9C27B0", "Everything else: libraries, scripts, manifests"),
    LayerInfo("external", "External Services", "#607D8B", "Third-party APIs and packages"),
]


def build_signature(func: FunctionInfo) -> str:
    """Render ``name(p: T, q?): R``."""
    params = []
    for param in func.parameters:
        text = param.name
        if param.type:
            text += f": {param.type}"
        if param.is_optional:
            text += "?"
        params.append(text)
    signature = f"{func.name}({', '.join(params)})"
    if func.return_type:
        signature += f": {func.return_type}"
    return signature


class GraphBuilder:
    """Materialize one immutable ``AnalysisResult`` from a scan.

    A builder is single-use: ids, maps and counters start empty and belong
    to exactly one run.
    """

    def __init__(self, scan: ScanResult, project_name: Optional[str] = None):
        self.scan = scan
        self.files: List[FileInfo] = scan.files
        self.root_path = str(scan.root)
        self.project_name = project_name or Path(self.root_path).name

        self.nodes: List[CodeNode] = []
        self.edges: List[CodeEdge] = []
        self.issues: List[CodeIssue] = []
        self._nodes_by_id: Dict[str, CodeNode] = {}
        self._nodes_by_path: Dict[str, CodeNode] = {}
        self._file_nodes: Dict[str, CodeNode] = {}
        self._edge_keys: Set[Tuple[str, str, str]] = set()
        self._call_sites: Dict[Tuple[str, str, str], List[int]] = {}
        self._node_counter = 0
        self._edge_counter = 0

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def build(self) -> AnalysisResult:
        self._build_nodes()
        self._build_relationships()
        call_graph = self._build_call_graph()
        data_flows = self._build_data_flows()
        self._detect_issues()
        logger.info(
            "Built %d nodes, %d edges, %d issues for %s",
            len(self.nodes), len(self.edges), len(self.issues), self.project_name,
        )
        return AnalysisResult(
            meta=AnalysisMeta(
                project_name=self.project_name,
                analyzed_at=datetime.now(timezone.utc).isoformat(),
                version=__version__,
                root_path=self.root_path,
            ),
            stats=self._calculate_stats(),
            nodes=self.nodes,
            edges=self.edges,
            files=self.files,
            layers=list(LAYER_LEGEND),
            call_graph=call_graph,
            data_flows=data_flows,
            issues=self.issues,
            skipped_files=list(self.scan.skipped_files),
        )

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _create_node(
        self,
        level: int,
        node_type: str,
        full_path: str,
        name: str,
        location: Location,
        parent: Optional[CodeNode] = None,
        **attrs,
    ) -> CodeNode:
        self._node_counter += 1
        node = CodeNode(
            id=f"node-{self._node_counter}",
            level=level,
            type=node_type,
            name=name,
            full_path=full_path,
            location=location,
            **attrs,
        )
        if parent is not None:
            node.parent = parent.id
            parent.children.append(node.id)
        self.nodes.append(node)
        self._nodes_by_id[node.id] = node
        self._nodes_by_path.setdefault(full_path, node)
        return node

    def _build_nodes(self) -> None:
        system = self._create_node(L1, "system", self.root_path, self.project_name, Location(file="", line=0))

        modules: Dict[str, CodeNode] = {}
        for file in self.files:
            parts = file.path.split("/")
            if len(parts) > 1 and parts[0] not in modules:
                modules[parts[0]] = self._create_node(
                    L2, "module", parts[0], parts[0], Location(file=parts[0], line=0), parent=system, layer=file.layer
                )

        for file in self.files:
            parts = file.path.split("/")
            parent = modules[parts[0]] if len(parts) > 1 else system
            file_node = self._create_node(
                L3,
                "file",
                file.path,
                file.name,
                Location(file=file.path, line=1, end_line=file.line_count),
                parent=parent,
                layer=file.layer,
                language=file.language,
            )
            file_node.metrics.loc = file.line_count
            self._file_nodes[file.path] = file_node

            for cls in file.classes:
                self._add_class(file, file_node, cls)
            for func in file.functions:
                if func.parent_class:
                    continue
                self._add_function(file, file_node, func, f"{file.path}::{func.name}")
            for variable in file.variables:
                modifiers = []
                if variable.is_const:
                    modifiers.append("const")
                if variable.is_mutable:
                    modifiers.append("mut")
                self._create_node(
                    L7,
                    variable.type,
                    f"{file.path}::{variable.name}",
                    variable.name,
                    Location(file=file.path, line=variable.line),
                    parent=file_node,
                    layer=file.layer,
                    language=file.language,
                    visibility=variable.visibility,
                    data_type=variable.data_type,
                    modifiers=modifiers,
                )

    def _add_class(self, file: FileInfo, file_node: CodeNode, cls) -> None:
        class_path = f"{file.path}::{cls.name}"
        class_node = self._create_node(
            L4,
            cls.type,
            class_path,
            cls.name,
            Location(file=file.path, line=cls.line, end_line=cls.end_line),
            parent=file_node,
            layer=file.layer,
            language=file.language,
            visibility=cls.visibility,
            documentation=cls.documentation,
        )
        class_node.metrics.loc = max(1, cls.end_line - cls.line + 1)

        for attr in cls.attributes:
            modifiers = []
            if attr.is_static:
                modifiers.append("static")
            if attr.is_readonly:
                modifiers.append("readonly")
            self._create_node(
                L7,
                "attribute",
                f"{class_path}::{attr.name}",
                attr.name,
                Location(file=file.path, line=attr.line),
                parent=class_node,
                layer=file.layer,
                language=file.language,
                visibility=attr.visibility,
                data_type=attr.type,
                modifiers=modifiers,
            )

        for method in cls.methods:
            self._add_function(file, class_node, method, f"{class_path}::{method.name}")

    def _add_function(self, file: FileInfo, parent: CodeNode, func: FunctionInfo, full_path: str) -> None:
        modifiers = []
        if func.is_async:
            modifiers.append("async")
        if func.is_static:
            modifiers.append("static")
        if func.is_generator:
            modifiers.append("generator")
        node = self._create_node(
            L5,
            func.type,
            full_path,
            func.name,
            Location(file=file.path, line=func.line, end_line=func.end_line),
            parent=parent,
            layer=file.layer,
            language=file.language,
            visibility=func.visibility,
            signature=build_signature(func),
            documentation=func.documentation,
            modifiers=modifiers,
        )
        node.metrics.complexity = func.complexity
        node.metrics.loc = func.loc

        for param in func.parameters:
            self._create_node(
                L7,
                "parameter",
                f"{full_path}::{param.name}",
                param.name,
                Location(file=file.path, line=func.line),
                parent=node,
                layer=file.layer,
                language=file.language,
                data_type=param.type,
            )

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def add_edge(self, source: str, target: str, edge_type: str, location: Optional[Location] = None) -> bool:
        """Add an edge unless the ``(source, target, type)`` triple exists."""
        key = (source, target, edge_type)
        if location is not None:
            self._call_sites.setdefault(key, []).append(location.line)
        if key in self._edge_keys:
            return False
        self._edge_keys.add(key)
        self._edge_counter += 1
        self.edges.append(CodeEdge(id=f"edge-{self._edge_counter}", source=source, target=target, type=edge_type, location=location))
        self._nodes_by_id[source].metrics.dependencies += 1
        self._nodes_by_id[target].metrics.dependents += 1
        return True

    def _build_relationships(self) -> None:
        known_paths = set(self._file_nodes)

        for file in self.files:
            source = self._file_nodes[file.path]
            for imp in file.imports:
                target_path = resolve_import(file.path, imp.module, file.language, known_paths)
                if target_path and target_path != file.path:
                    self.add_edge(
                        source.id,
                        self._file_nodes[target_path].id,
                        "imports",
                        Location(file=file.path, line=imp.line),
                    )

        callables: Dict[str, List[CodeNode]] = {}
        for node in self.nodes:
            if node.type in CALLABLE_TYPES:
                callables.setdefault(node.name, []).append(node)

        for file in self.files:
            owners = [(func, f"{file.path}::{func.name}") for func in file.functions if not func.parent_class]
            for cls in file.classes:
                owners.extend((method, f"{file.path}::{cls.name}::{method.name}") for method in cls.methods)
            for func, full_path in owners:
                source = self._nodes_by_path.get(full_path)
                if source is None:
                    continue
                for call in func.calls:
                    name = call.target.replace("::", ".").split(".")[-1]
                    for target in callables.get(name, []):
                        self.add_edge(
                            source.id,
                            target.id,
                            "awaits" if call.is_await else "calls",
                            Location(file=file.path, line=call.line),
                        )

        types_by_name: Dict[str, List[CodeNode]] = {}
        for node in self.nodes:
            if node.level == L4:
                types_by_name.setdefault(node.name, []).append(node)
        for file in self.files:
            for cls in file.classes:
                class_node = self._nodes_by_path.get(f"{file.path}::{cls.name}")
                if class_node is None:
                    continue
                if cls.extends:
                    base = cls.extends.split(".")[-1]
                    for parent in types_by_name.get(base, [])[:1]:
                        self.add_edge(class_node.id, parent.id, "extends")
                for name in cls.implements:
                    for iface in types_by_name.get(name.split(".")[-1], [])[:1]:
                        self.add_edge(class_node.id, iface.id, "implements")

        for node in list(self.nodes):
            if node.parent:
                self.add_edge(node.parent, node.id, "contains")

    # ------------------------------------------------------------------
    # Call graph
    # ------------------------------------------------------------------

    def _build_call_graph(self) -> CallGraph:
        graph_nodes: Dict[str, CallGraphNode] = {}
        for node in self.nodes:
            if node.type in CALLABLE_TYPES:
                graph_nodes[node.id] = CallGraphNode(
                    id=node.id,
                    name=node.name,
                    file=node.location.file,
                    line=node.location.line,
                    is_terminal=True,
                )

        graph_edges: List[CallGraphEdge] = []
        adjacency: Dict[str, List[str]] = {}
        called: Set[str] = set()
        for edge in self.edges:
            if edge.type not in ("calls", "awaits"):
                continue
            if edge.source not in graph_nodes or edge.target not in graph_nodes:
                continue
            sites = sorted(set(self._call_sites.get((edge.source, edge.target, edge.type), [])))
            graph_edges.append(
                CallGraphEdge(source=edge.source, target=edge.target, call_sites=sites, is_async=edge.type == "awaits")
            )
            graph_nodes[edge.source].is_terminal = False
            called.add(edge.target)
            adjacency.setdefault(edge.source, []).append(edge.target)

        queue = deque()
        for node in graph_nodes.values():
            if node.id not in called:
                node.is_entry_point = True
                queue.append((node.id, 0))

        visited: Set[str] = set()
        while queue:
            node_id, depth = queue.popleft()
            if node_id in visited:
                continue
            visited.add(node_id)
            graph_nodes[node_id].depth = depth
            for target in adjacency.get(node_id, []):
                if target not in visited:
                    queue.append((target, depth + 1))

        return CallGraph(nodes=list(graph_nodes.values()), edges=graph_edges)

    # ------------------------------------------------------------------
    # Data flow
    # ------------------------------------------------------------------

    def _build_data_flows(self) -> List[VariableFlow]:
        usages_by_name: Dict[str, List[FlowTarget]] = {}
        for file in self.files:
            functions = list(file.functions)
            for cls in file.classes:
                functions.extend(cls.methods)
            for func in functions:
                for usage in func.variable_usages:
                    usages_by_name.setdefault(usage.name, []).append(
                        FlowTarget(
                            file=file.path,
                            line=usage.line,
                            usage="reassignment" if usage.operation == "write" else "parameter",
                            context=func.name,
                        )
                    )

        flows: List[VariableFlow] = []
        for file in self.files:
            for variable in file.variables:
                targets = list(usages_by_name.get(variable.name, []))
                if targets or variable.scope == "global":
                    flows.append(
                        VariableFlow(
                            variable=variable.name,
                            defined=Location(file=file.path, line=variable.line),
                            flows_to=targets,
                        )
                    )
        return flows

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def _add_issue(self, issue_type: str, severity: str, location: Location, message: str, suggestion: str, related: List[str]) -> None:
        self.issues.append(
            CodeIssue(
                id=f"issue-{len(self.issues) + 1}",
                type=issue_type,
                severity=severity,
                location=location,
                message=message,
                suggestion=suggestion,
                related_nodes=related,
            )
        )

    def _detect_issues(self) -> None:
        called = {edge.target for edge in self.edges if edge.type in ("calls", "awaits")}
        functions = [node for node in self.nodes if node.type in ISSUE_FUNCTION_TYPES]

        for node in functions:
            if node.visibility == "private" and node.id not in called:
                self._add_issue(
                    "unused_function", "warning", node.location,
                    f"Function '{node.name}' is never called",
                    "Consider removing this function or making it public if intended for external use",
                    [node.id],
                )

        for node in functions:
            complexity = node.metrics.complexity or 0
            if complexity > COMPLEXITY_WARNING:
                self._add_issue(
                    "high_complexity", "error" if complexity > COMPLEXITY_ERROR else "warning", node.location,
                    f"Function '{node.name}' has high cyclomatic complexity ({complexity})",
                    "Consider breaking this function into smaller, more focused functions",
                    [node.id],
                )

        for node in functions:
            if node.metrics.loc > LONG_METHOD_INFO:
                self._add_issue(
                    "long_method", "warning" if node.metrics.loc > LONG_METHOD_WARNING else "info", node.location,
                    f"Function '{node.name}' is {node.metrics.loc} lines long",
                    "Consider refactoring into smaller functions",
                    [node.id],
                )

        for node in self.nodes:
            if node.type == "class" and len(node.children) > GOD_CLASS_MEMBERS:
                self._add_issue(
                    "god_class", "warning", node.location,
                    f"Class '{node.name}' has {len(node.children)} members",
                    "Consider splitting this class into smaller, more focused classes",
                    [node.id],
                )

        self._detect_circular_dependencies()

    def module_import_graph(self) -> Dict[str, List[str]]:
        """Module-level adjacency (deduplicated, insertion ordered) from file imports."""
        graph: Dict[str, List[str]] = {}
        for edge in self.edges:
            if edge.type != "imports":
                continue
            source = self._nodes_by_id[edge.source]
            target = self._nodes_by_id[edge.target]
            source_module = source.parent or source.id
            target_module = target.parent or target.id
            if source_module == target_module:
                continue
            neighbours = graph.setdefault(source_module, [])
            if target_module not in neighbours:
                neighbours.append(target_module)
        return graph

    def _detect_circular_dependencies(self) -> None:
        for cycle in find_cycles(self.module_import_graph()):
            names = [self._nodes_by_id[node_id].name for node_id in cycle]
            self._add_issue(
                "circular_dependency", "error", Location(file="", line=0),
                f"Circular dependency detected: {' -> '.join(names)}",
                "Consider refactoring to break the circular dependency",
                list(cycle),
            )

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def _calculate_stats(self) -> ProjectStats:
        stats = ProjectStats(
            total_files=len(self.files),
            by_language={language: 0 for language in LANGUAGES},
            by_layer={layer: 0 for layer in LAYERS},
            by_level={name: 0 for name in LEVEL_NAMES.values()},
        )
        for file in self.files:
            stats.by_language[file.language] = stats.by_language.get(file.language, 0) + 1
            stats.by_layer[file.layer] = stats.by_layer.get(file.layer, 0) + 1
            stats.total_lines += file.line_count
            stats.total_classes += len(file.classes)
            stats.total_functions += len(file.functions) + sum(len(cls.methods) for cls in file.classes)
            stats.total_variables += len(file.variables)

        complexities = []
        for node in self.nodes:
            stats.by_level[LEVEL_NAMES[node.level]] += 1
            if node.metrics.complexity:
                complexities.append(node.metrics.complexity)
        if complexities:
            stats.avg_complexity = round(sum(complexities) / len(complexities), 2)
            stats.max_complexity = max(complexities)
        return stats


def find_cycles(graph: Dict[str, List[str]]) -> List[List[str]]:
    """Depth-first cycle search with a recursion stack.

    Each cycle is reported once, whatever node the search entered it from.
    """
    visited: Set[str] = set()
    on_stack: Set[str] = set()
    seen: Set[Tuple[str, ...]] = set()
    cycles: List[List[str]] = []

    def canonical(cycle: List[str]) -> Tuple[str, ...]:
        pivot = cycle.index(min(cycle))
        return tuple(cycle[pivot:] + cycle[:pivot])

    def visit(node: str, path: List[str]) -> None:
        if node in on_stack:
            cycle = path[path.index(node):]
            key = canonical(cycle)
            if key not in seen:
                seen.add(key)
                cycles.append(cycle)
            return
        if node in visited:
            return
        visited.add(node)
        on_stack.add(node)
        path.append(node)
        for neighbour in graph.get(node, []):
            visit(neighbour, path)
        path.pop()
        on_stack.discard(node)

    for start in list(graph):
        visit(start, [])
    return cycles


def resolve_import(current_file: str, module: str, language: str, known_paths: Set[str]) -> Optional[str]:
    """Best-effort mapping of an import string to a scanned file; ``None`` when unresolved."""
    current_dir = posixpath.dirname(current_file)

    if language == "python":
        candidates = _python_candidates(current_dir, module)
    elif language == "rust":
        candidates = _rust_candidates(current_dir, module)
    elif module.startswith("."):
        base = posixpath.normpath(posixpath.join(current_dir, module))
        candidates = [base] + [base + ext for ext in IMPORT_EXTENSIONS]
    else:
        candidates = []

    for candidate in candidates:
        if candidate in known_paths:
            return candidate
    if module.startswith("."):
        return None

    # Package-style import: suffix match, then a file stem equal to the last segment
    for candidate in candidates:
        suffix = "/" + candidate
        for path in sorted(known_paths):
            if path.endswith(suffix):
                return path
    last = module.replace("::", "/").replace(".", "/").rstrip("/").split("/")[-1]
    if not last or last in ("*", "self", "super", "crate"):
        return None
    for path in sorted(known_paths):
        stem = posixpath.splitext(posixpath.basename(path))[0]
        if stem == last:
            return path
    return None


def _python_candidates(current_dir: str, module: str) -> List[str]:
    dots = len(module) - len(module.lstrip("."))
    remainder = module[dots:].replace(".", "/")
    if dots:
        base = current_dir
        for _ in range(dots - 1):
            base = posixpath.dirname(base)
        target = posixpath.join(base, remainder) if remainder else base
    else:
        target = remainder
    target = posixpath.normpath(target) if target else target
    return [target + ".py", posixpath.join(target, "__init__.py")] if target and target != "." else []


def _rust_candidates(current_dir: str, module: str) -> List[str]:
    parts = [p for p in module.split("::") if p not in ("crate", "self", "super", "*", "")]
    if not parts:
        return []
    relative = "/".join(parts)
    candidates = []
    for base in (current_dir, posixpath.join(current_dir, "src") if current_dir else "src"):
        prefix = posixpath.join(base, relative) if base else relative
        candidates.extend([prefix + ".rs", posixpath.join(prefix, "mod.rs")])
    return candidates


class CodebaseAnalyzer:
    """Scan a tree and build its graph in one call."""

    def __init__(
        self,
        root: Path | str,
        include: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.scanner = FileScanner(root, include=include, exclude=exclude, max_depth=max_depth)
        self.scan: Optional[ScanResult] = None

    def analyze(self) -> AnalysisResult:
        self.scan = self.scanner.scan()
        return GraphBuilder(self.scan).build()
