"""Static catalog of architectural patterns.

Each pattern lists its layers in priority order (a file belongs to the first
layer it matches), weighted detection indicators and the dependencies each
layer may have on the others. Paths are matched in POSIX form relative to
the project root.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple

INDICATOR_TYPES = ("folder", "file", "naming", "import")
FLOW_DIRECTIONS = ("top-down", "outside-in", "bidirectional")


def dir_patterns(*names: str) -> Tuple[Pattern[str], ...]:
    """Folder-segment matchers: ``name/`` at the start of the path or after a slash."""
    return tuple(re.compile(rf"(?:^|/)(?:{name})/", re.IGNORECASE) for name in names)


def file_patterns(*suffixes: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(suffix, re.IGNORECASE) for suffix in suffixes)


@dataclass(frozen=True)
class ArchitectureLayer:
    name: str
    aliases: Tuple[str, ...]
    patterns: Tuple[Pattern[str], ...]
    color: str
    level: int  # 0 is the outermost layer
    allowed_dependencies: Tuple[str, ...]
    description: str

    def matches_alias(self, path: str) -> bool:
        probe = "/" + path
        return any(f"/{alias.lower()}/" in probe.lower() for alias in self.aliases)

    def matches_pattern(self, path: str) -> bool:
        return any(pattern.search(path) for pattern in self.patterns)

    def matches(self, path: str) -> bool:
        return self.matches_alias(path) or self.matches_pattern(path)

    def allows(self, other: str) -> bool:
        return other == self.name or other in self.allowed_dependencies


@dataclass(frozen=True)
class PatternIndicator:
    type: str  # folder, file, naming, import
    pattern: Pattern[str]
    weight: int
    required: bool = False


@dataclass(frozen=True)
class ArchitecturePattern:
    name: str
    description: str
    layers: Tuple[ArchitectureLayer, ...]
    indicators: Tuple[PatternIndicator, ...]
    flow_direction: str
    strictness: str  # strict: violations are errors, flexible: warnings

    def layer(self, name: str) -> Optional[ArchitectureLayer]:
        for layer in self.layers:
            if layer.name == name:
                return layer
        return None

    def layer_for(self, path: str) -> Optional[ArchitectureLayer]:
        for layer in self.layers:
            if layer.matches(path):
                return layer
        return None

    @property
    def violation_severity(self) -> str:
        return "error" if self.strictness == "strict" else "warning"


@dataclass
class ArchitectureViolation:
    type: str  # dependency, naming, placement
    severity: str  # error, warning, info
    source_file: str
    source_layer: str
    message: str
    target_file: Optional[str] = None
    target_layer: Optional[str] = None


@dataclass
class DetectionResult:
    pattern: ArchitecturePattern
    confidence: int
    matched_indicators: List[PatternIndicator] = field(default_factory=list)
    layer_distribution: dict = field(default_factory=dict)
    violations: List[ArchitectureViolation] = field(default_factory=list)
    ai_reasoning: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "pattern": self.pattern.name,
            "description": self.pattern.description,
            "confidence": self.confidence,
            "matched_indicators": [
                {"type": i.type, "pattern": i.pattern.pattern, "weight": i.weight, "required": i.required}
                for i in self.matched_indicators
            ],
            "layer_distribution": dict(self.layer_distribution),
            "violations": [vars(v) for v in self.violations],
            "ai_reasoning": self.ai_reasoning,
        }


def _indicator(kind: str, source: str, weight: int, required: bool = False) -> PatternIndicator:
    pattern = dir_patterns(source)[0] if kind == "folder" else re.compile(source, re.IGNORECASE)
    return PatternIndicator(kind, pattern, weight, required)


MVC_PATTERN = ArchitecturePattern(
    name="MVC",
    description="Model-View-Controller: data models, views and controllers kept apart",
    flow_direction="bidirectional",
    strictness="flexible",
    layers=(
        ArchitectureLayer(
            name="view",
            aliases=("views", "view", "templates", "pages", "screens", "ui"),
            patterns=dir_patterns("views?", "templates?", "pages?", "screens?")
            + file_patterns(r"\.view\.(ts|js|tsx|jsx)$", r"\.template\.(ts|js|html)$"),
            color="#00ff88",
            level=0,
            allowed_dependencies=("controller", "model", "viewmodel"),
            description="Presentation: user interface",
        ),
        ArchitectureLayer(
            name="controller",
            aliases=("controllers", "controller", "handlers", "actions"),
            patterns=dir_patterns("controllers?", "handlers?", "actions?")
            + file_patterns(r"\.controller\.(ts|js)$", r"\.handler\.(ts|js)$"),
            color="#00ccff",
            level=1,
            allowed_dependencies=("model", "service"),
            description="Control: request coordination",
        ),
        ArchitectureLayer(
            name="model",
            aliases=("models", "model", "entities", "domain"),
            patterns=dir_patterns("models?", "entities", "entity") + file_patterns(r"\.model\.(ts|js)$", r"\.entity\.(ts|js)$"),
            color="#ff6600",
            level=2,
            allowed_dependencies=(),
            description="Data: models and entities",
        ),
        ArchitectureLayer(
            name="service",
            aliases=("services", "service", "providers"),
            patterns=dir_patterns("services?", "providers?") + file_patterns(r"\.service\.(ts|js)$"),
            color="#ff00ff",
            level=1,
            allowed_dependencies=("model", "repository"),
            description="Services: business logic",
        ),
    ),
    indicators=(
        _indicator("folder", "controllers?", 9, required=True),
        _indicator("folder", "models?", 8, required=True),
        _indicator("folder", "views?", 7),
        _indicator("file", r"\.controller\.(ts|js)$", 6),
        _indicator("file", r"\.model\.(ts|js)$", 5),
    ),
)

CLEAN_ARCHITECTURE_PATTERN = ArchitecturePattern(
    name="Clean Architecture",
    description="Concentric layers with the domain at the centre",
    flow_direction="outside-in",
    strictness="strict",
    layers=(
        ArchitectureLayer(
            name="presentation",
            aliases=("presentation", "ui", "web", "api", "controllers"),
            patterns=dir_patterns("presentation", "ui", "web", "api", "controllers?"),
            color="#00ff88",
            level=0,
            allowed_dependencies=("application", "domain"),
            description="Outer layer: UI, API, CLI",
        ),
        ArchitectureLayer(
            name="infrastructure",
            aliases=("infrastructure", "infra", "adapters", "frameworks", "external"),
            patterns=dir_patterns("infrastructure", "infra", "adapters?", "frameworks?", "external"),
            color="#888888",
            level=0,
            allowed_dependencies=("application", "domain"),
            description="Outer layer: technical implementations",
        ),
        ArchitectureLayer(
            name="application",
            aliases=("application", "app", "usecases", "use-cases", "interactors"),
            patterns=dir_patterns("application", "app", "use-?cases?", "interactors?"),
            color="#00ccff",
            level=1,
            allowed_dependencies=("domain",),
            description="Application: use cases",
        ),
        ArchitectureLayer(
            name="domain",
            aliases=("domain", "core", "entities", "business"),
            patterns=dir_patterns("domain", "core", "entities", "entity", "business"),
            color="#ff6600",
            level=2,
            allowed_dependencies=(),
            description="Domain: business rules",
        ),
    ),
    indicators=(
        _indicator("folder", "domain", 10, required=True),
        _indicator("folder", "use-?cases?", 9),
        _indicator("folder", "application", 8),
        _indicator("folder", "infrastructure", 8),
        _indicator("folder", "adapters?", 7),
        _indicator("folder", "entities|entity", 6),
    ),
)

HEXAGONAL_PATTERN = ArchitecturePattern(
    name="Hexagonal",
    description="Ports and adapters around an isolated domain",
    flow_direction="outside-in",
    strictness="strict",
    layers=(
        ArchitectureLayer(
            name="adapters-in",
            aliases=("adapters/in", "adapters/primary", "driving", "inbound"),
            patterns=dir_patterns(r"adapters?/in", r"adapters?/primary", "driving", "inbound") + file_patterns(r"\.adapter\.(ts|js)$"),
            color="#00ff88",
            level=0,
            allowed_dependencies=("ports-in", "application"),
            description="Inbound adapters: API, UI, CLI",
        ),
        ArchitectureLayer(
            name="adapters-out",
            aliases=("adapters/out", "adapters/secondary", "driven", "outbound"),
            patterns=dir_patterns(r"adapters?/out", r"adapters?/secondary", "driven", "outbound"),
            color="#888888",
            level=0,
            allowed_dependencies=("ports-out", "domain"),
            description="Outbound adapters: databases, external APIs",
        ),
        ArchitectureLayer(
            name="ports-in",
            aliases=("ports/in", "ports/primary", "ports/driving"),
            patterns=dir_patterns(r"ports?/in", r"ports?/primary") + file_patterns(r"\.port\.(ts|js)$"),
            color="#00ccff",
            level=1,
            allowed_dependencies=("domain",),
            description="Inbound ports: use case interfaces",
        ),
        ArchitectureLayer(
            name="ports-out",
            aliases=("ports/out", "ports/secondary", "ports/driven"),
            patterns=dir_patterns(r"ports?/out", r"ports?/secondary"),
            color="#ffcc00",
            level=1,
            allowed_dependencies=("domain",),
            description="Outbound ports: repository interfaces",
        ),
        ArchitectureLayer(
            name="application",
            aliases=("application", "app", "usecases", "services"),
            patterns=dir_patterns("application", "use-?cases?"),
            color="#ff00ff",
            level=1,
            allowed_dependencies=("domain", "ports-out"),
            description="Application: use case orchestration",
        ),
        ArchitectureLayer(
            name="domain",
            aliases=("domain", "core", "model"),
            patterns=dir_patterns("domain", "core", "model"),
            color="#ff6600",
            level=2,
            allowed_dependencies=(),
            description="Domain: entities and business rules",
        ),
    ),
    indicators=(
        _indicator("folder", "ports?", 10, required=True),
        _indicator("folder", "adapters?", 10, required=True),
        _indicator("folder", "domain", 8, required=True),
        _indicator("file", r"\.port\.(ts|js)$", 7),
        _indicator("file", r"\.adapter\.(ts|js)$", 7),
    ),
)

LAYERED_PATTERN = ArchitecturePattern(
    name="Layered",
    description="Classic n-tier layering",
    flow_direction="top-down",
    strictness="flexible",
    layers=(
        ArchitectureLayer(
            name="presentation",
            aliases=("presentation", "ui", "web", "api", "views"),
            patterns=dir_patterns("presentation", "ui", "web", "views?"),
            color="#00ff88",
            level=0,
            allowed_dependencies=("business", "service"),
            description="Presentation tier",
        ),
        ArchitectureLayer(
            name="business",
            aliases=("business", "bll", "logic", "services"),
            patterns=dir_patterns("business", "bll", "logic", "services?"),
            color="#00ccff",
            level=1,
            allowed_dependencies=("data", "persistence"),
            description="Business logic tier",
        ),
        ArchitectureLayer(
            name="data",
            aliases=("data", "dal", "persistence", "repositories", "db"),
            patterns=dir_patterns("data", "dal", "persistence", "repositories", "repository", "db"),
            color="#ff6600",
            level=2,
            allowed_dependencies=(),
            description="Data access tier",
        ),
    ),
    indicators=(
        _indicator("folder", "presentation", 8),
        _indicator("folder", "business", 8),
        _indicator("folder", "services?", 6),
        _indicator("folder", "data|dal|persistence", 7),
        _indicator("folder", "repositories|repository", 6),
    ),
)

MVVM_PATTERN = ArchitecturePattern(
    name="MVVM",
    description="Model-View-ViewModel with data binding",
    flow_direction="bidirectional",
    strictness="flexible",
    layers=(
        ArchitectureLayer(
            name="view",
            aliases=("views", "view", "pages", "screens", "components"),
            patterns=dir_patterns("views?", "pages?", "screens?") + file_patterns(r"\.view\.(ts|js|tsx|jsx)$"),
            color="#00ff88",
            level=0,
            allowed_dependencies=("viewmodel",),
            description="View: user interface",
        ),
        ArchitectureLayer(
            name="viewmodel",
            aliases=("viewmodels", "viewmodel", "vm", "stores"),
            patterns=dir_patterns("view-?models?", "vm", "stores?")
            + file_patterns(r"\.viewmodel\.(ts|js)$", r"\.vm\.(ts|js)$", r"\.store\.(ts|js)$"),
            color="#00ccff",
            level=1,
            allowed_dependencies=("model", "service"),
            description="ViewModel: presentation state and logic",
        ),
        ArchitectureLayer(
            name="model",
            aliases=("models", "model", "entities", "domain"),
            patterns=dir_patterns("models?", "entities", "entity", "domain") + file_patterns(r"\.model\.(ts|js)$"),
            color="#ff6600",
            level=2,
            allowed_dependencies=(),
            description="Model: data and business logic",
        ),
        ArchitectureLayer(
            name="service",
            aliases=("services", "service", "api"),
            patterns=dir_patterns("services?", "api") + file_patterns(r"\.service\.(ts|js)$"),
            color="#ff00ff",
            level=1,
            allowed_dependencies=("model",),
            description="Service: data access",
        ),
    ),
    indicators=(
        _indicator("folder", "view-?models?", 10, required=True),
        _indicator("file", r"\.viewmodel\.(ts|js)$", 9),
        _indicator("file", r"\.vm\.(ts|js)$", 8),
        _indicator("folder", "stores?", 6),
        _indicator("folder", "views?", 5),
    ),
)

MICROSERVICES_PATTERN = ArchitecturePattern(
    name="Microservices",
    description="Independently deployable, decoupled services",
    flow_direction="bidirectional",
    strictness="flexible",
    layers=(
        ArchitectureLayer(
            name="gateway",
            aliases=("gateway", "api-gateway", "proxy", "bff"),
            patterns=dir_patterns("gateway", "api-gateway", "proxy", "bff"),
            color="#00ff88",
            level=0,
            allowed_dependencies=("service",),
            description="API gateway: single entry point",
        ),
        ArchitectureLayer(
            name="service",
            aliases=("services", "service", "microservices"),
            patterns=dir_patterns("services?", "microservices?", r"[\w.-]+-service"),
            color="#00ccff",
            level=1,
            allowed_dependencies=("shared", "common"),
            description="Services: business capabilities",
        ),
        ArchitectureLayer(
            name="shared",
            aliases=("shared", "common", "libs", "packages"),
            patterns=dir_patterns("shared", "common", "libs?", "packages?"),
            color="#ff6600",
            level=2,
            allowed_dependencies=(),
            description="Shared code used across services",
        ),
    ),
    indicators=(
        _indicator("folder", r"services?/[^/]+/src", 10),
        _indicator("folder", "microservices?", 9),
        _indicator("folder", "gateway", 8),
        _indicator("folder", "api-gateway", 8),
        _indicator("folder", "shared|common", 6),
        _indicator("file", r"docker-compose\.ya?ml$", 5),
    ),
)

DDD_PATTERN = ArchitecturePattern(
    name="DDD",
    description="Domain-driven design with aggregates and value objects",
    flow_direction="outside-in",
    strictness="strict",
    layers=(
        ArchitectureLayer(
            name="interface",
            aliases=("interface", "interfaces", "api", "presentation", "web"),
            patterns=dir_patterns("interfaces?", "api", "presentation", "web"),
            color="#00ff88",
            level=0,
            allowed_dependencies=("application", "domain"),
            description="Interface: API and UI",
        ),
        ArchitectureLayer(
            name="application",
            aliases=("application", "app", "usecases", "services"),
            patterns=dir_patterns("application", "app", "use-?cases?"),
            color="#00ccff",
            level=1,
            allowed_dependencies=("domain", "infrastructure"),
            description="Application services",
        ),
        ArchitectureLayer(
            name="domain",
            aliases=("domain", "core", "model"),
            patterns=dir_patterns("domain", "core"),
            color="#ff6600",
            level=2,
            allowed_dependencies=(),
            description="Domain: entities, value objects, aggregates",
        ),
        ArchitectureLayer(
            name="infrastructure",
            aliases=("infrastructure", "infra", "persistence", "repositories"),
            patterns=dir_patterns("infrastructure", "infra", "persistence"),
            color="#888888",
            level=1,
            allowed_dependencies=("domain",),
            description="Infrastructure: technical implementations",
        ),
    ),
    indicators=(
        _indicator("folder", "domain", 9, required=True),
        _indicator("folder", "aggregates?", 10),
        _indicator("folder", "entities|entity", 7),
        _indicator("folder", "value-?objects?", 10),
        _indicator("folder", "repositories|repository", 7),
        _indicator("file", r"\.aggregate\.(ts|js)$", 9),
        _indicator("file", r"\.entity\.(ts|js)$", 6),
        _indicator("file", r"\.value-?object\.(ts|js)$", 8),
    ),
)

FEATURE_BASED_PATTERN = ArchitecturePattern(
    name="Feature-Based",
    description="Modules organised by feature",
    flow_direction="bidirectional",
    strictness="flexible",
    layers=(
        ArchitectureLayer(
            name="feature",
            aliases=("features", "feature", "modules", "module"),
            patterns=dir_patterns("features?", "modules?"),
            color="#00ccff",
            level=0,
            allowed_dependencies=("shared", "core"),
            description="Feature modules",
        ),
        ArchitectureLayer(
            name="shared",
            aliases=("shared", "common", "lib"),
            patterns=dir_patterns("shared", "common", "lib"),
            color="#ff6600",
            level=1,
            allowed_dependencies=("core",),
            description="Shared components",
        ),
        ArchitectureLayer(
            name="core",
            aliases=("core", "kernel", "base"),
            patterns=dir_patterns("core", "kernel", "base"),
            color="#ff00ff",
            level=2,
            allowed_dependencies=(),
            description="Application core",
        ),
    ),
    indicators=(
        _indicator("folder", "features?", 10, required=True),
        _indicator("folder", "modules?", 8),
        _indicator("folder", "shared|common", 6),
        _indicator("folder", "core", 5),
    ),
)

ALL_PATTERNS: Tuple[ArchitecturePattern, ...] = (
    CLEAN_ARCHITECTURE_PATTERN,
    HEXAGONAL_PATTERN,
    DDD_PATTERN,
    MVC_PATTERN,
    MVVM_PATTERN,
    LAYERED_PATTERN,
    MICROSERVICES_PATTERN,
    FEATURE_BASED_PATTERN,
)


def get_pattern_by_name(name: str) -> Optional[ArchitecturePattern]:
    for pattern in ALL_PATTERNS:
        if pattern.name.lower() == name.lower():
            return pattern
    return None
