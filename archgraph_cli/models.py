"""Core data models shared by the graph builder, security pipeline and architecture layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

# Granularity levels: system, module, file, type, function, block, variable
L1, L2, L3, L4, L5, L6, L7 = 1, 2, 3, 4, 5, 6, 7
LEVEL_NAMES = {level: f"L{level}" for level in range(1, 8)}

LANGUAGES = ("typescript", "javascript", "rust", "python", "yaml", "json", "html", "css", "toml", "unknown")
LAYERS = ("frontend", "backend", "sidecar", "data", "external")
SEVERITIES = ("critical", "high", "medium", "low", "info")


# ----------------------------------------------------------------------
# Per-file extraction records
# ----------------------------------------------------------------------

@dataclass
class ImportInfo:
    module: str
    line: int
    items: List[str] = field(default_factory=list)
    is_default: bool = False
    is_wildcard: bool = False


@dataclass
class ExportInfo:
    name: str
    type: str  # function, class, variable, type, default, reexport
    line: int


@dataclass
class ParameterInfo:
    name: str
    type: Optional[str] = None
    default_value: Optional[str] = None
    is_optional: bool = False
    is_rest: bool = False


@dataclass
class AttributeInfo:
    name: str
    line: int
    type: Optional[str] = None
    visibility: str = "public"
    is_static: bool = False
    is_readonly: bool = False
    default_value: Optional[str] = None


@dataclass
class CallInfo:
    target: str
    line: int
    is_await: bool = False


@dataclass
class VariableUsage:
    name: str
    line: int
    operation: str  # read or write


@dataclass
class FunctionInfo:
    name: str
    type: str  # function, method, constructor, arrow, closure
    line: int
    end_line: int
    visibility: str = "public"
    is_async: bool = False
    is_static: bool = False
    is_generator: bool = False
    parameters: List[ParameterInfo] = field(default_factory=list)
    return_type: Optional[str] = None
    decorators: List[str] = field(default_factory=list)
    documentation: Optional[str] = None
    calls: List[CallInfo] = field(default_factory=list)
    variable_usages: List[VariableUsage] = field(default_factory=list)
    complexity: int = 1
    parent_class: Optional[str] = None

    @property
    def loc(self) -> int:
        return max(1, self.end_line - self.line + 1)


@dataclass
class ClassInfo:
    name: str
    type: str  # class, struct, interface, trait, enum, type_alias
    line: int
    end_line: int
    visibility: str = "public"
    extends: Optional[str] = None
    implements: List[str] = field(default_factory=list)
    decorators: List[str] = field(default_factory=list)
    attributes: List[AttributeInfo] = field(default_factory=list)
    methods: List[FunctionInfo] = field(default_factory=list)
    documentation: Optional[str] = None


@dataclass
class VariableInfo:
    name: str
    type: str  # variable or constant
    line: int
    data_type: Optional[str] = None
    visibility: str = "public"
    is_const: bool = False
    is_mutable: bool = True
    scope: str = "module"
    initial_value: Optional[str] = None


@dataclass
class FileInfo:
    path: str  # POSIX path relative to the scanned root
    name: str
    extension: str
    language: str
    layer: str
    size: int = 0
    line_count: int = 0
    imports: List[ImportInfo] = field(default_factory=list)
    exports: List[ExportInfo] = field(default_factory=list)
    classes: List[ClassInfo] = field(default_factory=list)
    functions: List[FunctionInfo] = field(default_factory=list)
    variables: List[VariableInfo] = field(default_factory=list)


# ----------------------------------------------------------------------
# Graph
# ----------------------------------------------------------------------

@dataclass
class Location:
    file: str
    line: int
    end_line: Optional[int] = None
    column: Optional[int] = None


@dataclass
class NodeMetrics:
    loc: int = 0
    complexity: Optional[int] = None
    dependencies: int = 0
    dependents: int = 0


@dataclass
class CodeNode:
    id: str
    level: int
    type: str
    name: str
    full_path: str
    location: Location
    layer: str = "data"
    language: str = "unknown"
    visibility: str = "public"
    modifiers: List[str] = field(default_factory=list)
    signature: Optional[str] = None
    data_type: Optional[str] = None
    documentation: Optional[str] = None
    metrics: NodeMetrics = field(default_factory=NodeMetrics)
    children: List[str] = field(default_factory=list)
    parent: Optional[str] = None


@dataclass
class CodeEdge:
    id: str
    source: str
    target: str
    type: str  # imports, calls, awaits, extends, implements, contains, ...
    location: Optional[Location] = None
    label: Optional[str] = None


@dataclass
class CallGraphNode:
    id: str
    name: str
    file: str
    line: int
    is_entry_point: bool = False
    is_terminal: bool = False
    depth: int = 0


@dataclass
class CallGraphEdge:
    source: str
    target: str
    call_sites: List[int] = field(default_factory=list)
    is_async: bool = False


@dataclass
class CallGraph:
    nodes: List[CallGraphNode] = field(default_factory=list)
    edges: List[CallGraphEdge] = field(default_factory=list)


@dataclass
class FlowTarget:
    file: str
    line: int
    usage: str  # parameter, attribute, return, reassignment
    context: Optional[str] = None


@dataclass
class VariableFlow:
    """Where a module-level variable is defined and which functions touch it."""

    variable: str
    defined: Location
    flows_to: List[FlowTarget] = field(default_factory=list)


@dataclass
class CodeIssue:
    id: str
    type: str
    severity: str  # error, warning, info
    location: Location
    message: str
    suggestion: Optional[str] = None
    related_nodes: List[str] = field(default_factory=list)


@dataclass
class LayerInfo:
    id: str
    label: str
    color: str
    description: str


@dataclass
class ProjectStats:
    total_files: int = 0
    total_lines: int = 0
    total_classes: int = 0
    total_functions: int = 0
    total_variables: int = 0
    by_language: Dict[str, int] = field(default_factory=dict)
    by_layer: Dict[str, int] = field(default_factory=dict)
    by_level: Dict[str, int] = field(default_factory=dict)
    avg_complexity: float = 0.0
    max_complexity: int = 0


@dataclass
class AnalysisMeta:
    project_name: str
    analyzed_at: str
    version: str
    root_path: str


@dataclass
class AnalysisResult:
    meta: AnalysisMeta
    stats: ProjectStats
    nodes: List[CodeNode]
    edges: List[CodeEdge]
    files: List[FileInfo]
    layers: List[LayerInfo]
    call_graph: CallGraph
    data_flows: List[VariableFlow]
    issues: List[CodeIssue]
    skipped_files: List[str] = field(default_factory=list)

    def node_by_id(self) -> Dict[str, CodeNode]:
        return {node.id: node for node in self.nodes}

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ----------------------------------------------------------------------
# Security
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class VulnLocation:
    file: str
    line: int
    end_line: Optional[int] = None
    column: Optional[int] = None
    snippet: str = ""


@dataclass(frozen=True)
class SecurityVulnerability:
    """A single finding. Frozen: later stages only drop findings, never edit them."""

    id: str
    category: str
    severity: str
    title: str
    description: str
    location: VulnLocation
    sink_type: Optional[str] = None
    cwe: Optional[str] = None
    owasp: Optional[str] = None
    remediation: str = ""
    confidence: str = "medium"  # high, medium, low

    @property
    def key(self) -> str:
        return f"{self.location.file}:{self.location.line}"


@dataclass
class FilteredVulnerability:
    vuln: SecurityVulnerability
    reason: str
    method: str  # ast or ai
    confidence: float = 0.0


@dataclass
class AIVerdict:
    verdict: str  # TRUE_POSITIVE, FALSE_POSITIVE, NEEDS_REVIEW
    confidence: float
    reasoning: str = ""
    suggested_severity: Optional[str] = None
