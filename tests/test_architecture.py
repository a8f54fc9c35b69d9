"""Tests for architecture detection, file classification and flow analysis."""

import json
from dataclasses import replace
from pathlib import Path

import pytest

from archgraph_cli.arch_classifier import ArchitectureClassifier, classify_file, detect_role
from archgraph_cli.arch_detector import ArchitectureDetector, create_detection_context, extract_folders
from archgraph_cli.arch_patterns import LAYERED_PATTERN, MVC_PATTERN, get_pattern_by_name
from archgraph_cli.flow_analyzer import (
    FlowAnalyzer,
    LayerConnection,
    count_layer_cycles,
    file_dependencies,
    flows_to_visualization,
)
from archgraph_cli.graph_builder import CodebaseAnalyzer

CONTROLLER = "controllers/UserController.ts"
SERVICE = "services/UserService.ts"
MODEL = "models/User.ts"


@pytest.fixture
def mvc_analysis(mvc_project_path: Path):
    result = CodebaseAnalyzer(mvc_project_path).analyze()
    return result, create_detection_context(result.files, project_root=str(mvc_project_path))


def _analyze(root: Path):
    result = CodebaseAnalyzer(root).analyze()
    return result, create_detection_context(result.files, project_root=str(root))


class TestPatternCatalog:
    """Tests for the static pattern catalog."""

    def test_lookup_is_case_insensitive(self):
        assert get_pattern_by_name("mvc") is MVC_PATTERN
        assert get_pattern_by_name("Layered") is LAYERED_PATTERN
        assert get_pattern_by_name("Onion") is None

    def test_folder_indicator_needs_whole_segment(self):
        layer = MVC_PATTERN.layer("controller")
        assert layer.matches("src/controllers/user.ts")
        assert not layer.matches("src/subcontrollers_old.ts")

    def test_first_matching_layer_wins(self):
        assert MVC_PATTERN.layer_for("views/models/card.ts").name == "view"


class TestArchitectureDetector:
    """Tests for pattern scoring and ranking."""

    def test_extract_folders(self):
        assert extract_folders(["a/b/c.ts", "a/d.ts", "e.ts"]) == ["a", "a/b"]

    def test_imports_resolved_to_project_paths(self, mvc_analysis):
        _, context = mvc_analysis
        imports = {file.path: file.imports for file in context.files}
        assert imports[CONTROLLER] == [SERVICE]
        assert imports[SERVICE] == [MODEL]

    def test_mvc_ranked_first(self, mvc_analysis):
        _, context = mvc_analysis
        results = ArchitectureDetector().detect(context)

        assert results[0].pattern.name == "MVC"
        assert results[0].confidence > 30
        assert results[0].violations == []
        assert results[0].layer_distribution == {"view": 0, "controller": 1, "model": 1, "service": 1}
        confidences = [r.confidence for r in results]
        assert confidences == sorted(confidences, reverse=True)

    def test_mvc_score(self, mvc_analysis):
        _, context = mvc_analysis
        result = ArchitectureDetector().score_pattern(MVC_PATTERN, context)
        # 17 of 35 indicator weight plus three of four layers present
        assert result.confidence == 54
        assert [i.weight for i in result.matched_indicators] == [9, 8]

    def test_weak_pattern_scores_low(self, mvc_analysis):
        _, context = mvc_analysis
        result = ArchitectureDetector().score_pattern(LAYERED_PATTERN, context)
        assert result.confidence == 20

    def test_missing_required_indicator_is_penalised(self, make_project):
        root = make_project({"models/user.ts": "export const user = {};\n"})
        _, context = _analyze(root)
        result = ArchitectureDetector().score_pattern(MVC_PATTERN, context)
        # (8 / 35 * 80 + 1 / 4 * 20) * 0.3
        assert result.confidence == 7

    def test_matching_indicator_never_lowers_confidence(self, mvc_analysis):
        _, context = mvc_analysis
        detector = ArchitectureDetector()
        with_views = replace(context, folders=context.folders + ["views"])

        for pattern in detector.patterns:
            before = detector.score_pattern(pattern, context).confidence
            after = detector.score_pattern(pattern, with_views).confidence
            assert after >= before, pattern.name
        # (24 / 35 * 80 + 3 / 4 * 20)
        assert detector.score_pattern(MVC_PATTERN, with_views).confidence == 70

    def test_required_indicator_lifts_penalty(self, make_project):
        root = make_project({"models/user.ts": "export const user = {};\n"})
        _, context = _analyze(root)
        detector = ArchitectureDetector()
        with_controllers = replace(context, folders=context.folders + ["controllers"])
        # (17 / 35 * 80 + 1 / 4 * 20), no penalty once both required folders exist
        assert detector.score_pattern(MVC_PATTERN, with_controllers).confidence == 44
        assert detector.score_pattern(MVC_PATTERN, context).confidence == 7

    def test_min_confidence_filters(self, mvc_analysis):
        _, context = mvc_analysis
        assert ArchitectureDetector(min_confidence=101).detect(context) == []

    def test_dependency_violation(self, make_project):
        root = make_project({
            "controllers/UserController.ts": "import { User } from '../models/User';\nexport class UserController {}\n",
            "models/User.ts": "import { UserController } from '../controllers/UserController';\nexport interface User { id: string; }\n",
        })
        _, context = _analyze(root)
        mvc = ArchitectureDetector().score_pattern(MVC_PATTERN, context)

        assert len(mvc.violations) == 1
        violation = mvc.violations[0]
        assert violation.source_file == "models/User.ts"
        assert violation.target_file == "controllers/UserController.ts"
        assert violation.source_layer == "model"
        assert violation.target_layer == "controller"
        assert violation.severity == "warning"

    def test_violations_can_be_disabled(self, make_project):
        root = make_project({
            "controllers/a.ts": "export const a = 1;\n",
            "models/b.ts": "import { a } from '../controllers/a';\nexport const b = a;\n",
        })
        _, context = _analyze(root)
        result = ArchitectureDetector(detect_violations=False).score_pattern(MVC_PATTERN, context)
        assert result.violations == []

    def test_ai_adjustment_is_blended(self, mvc_analysis, scripted_llm):
        _, context = mvc_analysis
        answer = json.dumps({
            "primaryPattern": "MVC",
            "confidence": 90,
            "reasoning": "Controllers, services and models are split by folder",
            "adjustments": [{"pattern": "mvc", "newConfidence": 90}],
        })
        llm = scripted_llm([answer])
        results = ArchitectureDetector(llm=llm, timeout=5).detect(context)

        assert results[0].pattern.name == "MVC"
        assert results[0].confidence == round(54 * 0.6 + 90 * 0.4)
        assert results[0].ai_reasoning.startswith("Controllers")
        assert "controllers" in llm.prompts[0]

    def test_unusable_ai_answer_keeps_heuristics(self, mvc_analysis, scripted_llm):
        _, context = mvc_analysis
        results = ArchitectureDetector(llm=scripted_llm(["no json here"]), timeout=5).detect(context)
        assert results[0].confidence == 54
        assert results[0].ai_reasoning is None

    def test_malformed_adjustments_are_ignored(self, mvc_analysis, scripted_llm):
        _, context = mvc_analysis
        answer = json.dumps({
            "primaryPattern": "MVC",
            "adjustments": [
                {"pattern": ["mvc"], "newConfidence": 90},
                {"pattern": "mvc", "newConfidence": "very high"},
                "mvc",
            ],
        })
        results = ArchitectureDetector(llm=scripted_llm([answer]), timeout=5).detect(context)
        assert results[0].pattern.name == "MVC"
        assert results[0].confidence == 54

    def test_adjustments_must_be_a_list(self, mvc_analysis, scripted_llm):
        _, context = mvc_analysis
        answer = json.dumps({"adjustments": 7, "reasoning": "Folder names match MVC"})
        results = ArchitectureDetector(llm=scripted_llm([answer]), timeout=5).detect(context)
        assert results[0].confidence == 54
        assert results[0].ai_reasoning == "Folder names match MVC"

    def test_unavailable_llm_is_not_called(self, mvc_analysis, scripted_llm):
        _, context = mvc_analysis
        llm = scripted_llm(available=False)
        ArchitectureDetector(llm=llm).detect(context)
        assert llm.prompts == []

    def test_to_dict(self, mvc_analysis):
        _, context = mvc_analysis
        data = ArchitectureDetector().detect(context)[0].to_dict()
        assert data["pattern"] == "MVC"
        assert data["confidence"] == 54
        assert data["matched_indicators"][0]["required"]


class TestArchitectureClassifier:
    """Tests for per-file layer and role assignment."""

    @pytest.mark.parametrize(
        "path, role",
        [
            ("src/controllers/user.ts", "controller"),
            ("src/user.service.ts", "service"),
            ("src/UserRepository.ts", "repository"),
            ("src/dto/create-user.ts", "dto"),
            ("src/hooks/data.ts", "hook"),
            ("src/useAuth.ts", "hook"),
            ("src/app/main.ts", "unknown"),
        ],
    )
    def test_detect_role(self, path, role):
        assert detect_role(path) == role

    def test_classify_file_scores(self):
        classified = classify_file("controllers/UserController.ts", MVC_PATTERN)
        assert classified.layer_name == "controller"
        assert classified.confidence == 80

        unmatched = classify_file("lib/thing.ts", MVC_PATTERN)
        assert unmatched.layer is None
        assert unmatched.layer_name == "unknown"
        assert unmatched.confidence == 0

    def test_mvc_fixture(self, mvc_analysis):
        result, _ = mvc_analysis
        classification = ArchitectureClassifier().classify(result.files, MVC_PATTERN)

        assert classification.file(CONTROLLER).layer_name == "controller"
        assert classification.file(CONTROLLER).role == "controller"
        assert classification.file(SERVICE).role == "service"
        assert classification.file(MODEL).layer_name == "model"
        assert classification.file(MODEL).role == "unknown"

        stats = classification.stats
        assert stats.total_files == 3
        assert stats.classified_files == 2
        assert stats.unclassified_files == 1
        assert stats.classification_rate == 67
        assert stats.layer_distribution == {"controller": 1, "service": 1, "model": 1}
        assert [c.path for c in classification.unclassified] == [MODEL]

    def test_ai_refines_uncertain_files(self, mvc_analysis, scripted_llm):
        result, _ = mvc_analysis
        answer = json.dumps({
            "classifications": [
                {
                    "path": MODEL,
                    "layer": "model",
                    "role": "entity",
                    "description": "User record shape",
                    "responsibilities": ["hold user data"],
                    "confidence": 100,
                }
            ]
        })
        llm = scripted_llm([answer])
        classification = ArchitectureClassifier(llm=llm, timeout=5).classify(result.files, MVC_PATTERN)

        model = classification.file(MODEL)
        assert model.role == "entity"
        assert model.confidence == round(80 * 0.4 + 100 * 0.6)
        assert model.ai_classification.responsibilities == ["hold user data"]
        assert len(llm.prompts) == 1
        assert MODEL in llm.prompts[0]
        assert CONTROLLER not in llm.prompts[0]
        assert classification.stats.classified_files == 3

    def test_ai_failure_keeps_heuristic_result(self, mvc_analysis, scripted_llm):
        result, _ = mvc_analysis
        llm = scripted_llm([RuntimeError("model crashed")])
        classification = ArchitectureClassifier(llm=llm, timeout=5).classify(result.files, MVC_PATTERN)
        assert classification.file(MODEL).role == "unknown"
        assert classification.file(MODEL).confidence == 80


    def test_malformed_ai_entries_are_tolerated(self, mvc_analysis, scripted_llm):
        result, _ = mvc_analysis
        answer = json.dumps({
            "classifications": [
                {"path": [MODEL], "layer": "view", "role": "entity", "confidence": 100},
                {"path": MODEL, "layer": ["view"], "role": 42, "responsibilities": "store users", "confidence": 100},
                "models/User.ts",
            ]
        })
        classification = ArchitectureClassifier(llm=scripted_llm([answer]), timeout=5).classify(result.files, MVC_PATTERN)

        model = classification.file(MODEL)
        assert model.layer_name == "model"
        assert model.role == "unknown"
        assert model.ai_classification.responsibilities == []
        assert model.confidence == round(80 * 0.4 + 100 * 0.6)

    def test_non_list_classifications_ignored(self, mvc_analysis, scripted_llm):
        result, _ = mvc_analysis
        llm = scripted_llm([json.dumps({"classifications": 5})])
        classification = ArchitectureClassifier(llm=llm, timeout=5).classify(result.files, MVC_PATTERN)
        assert classification.file(MODEL).confidence == 80
        assert classification.file(MODEL).ai_classification is None


class TestFlowAnalyzer:
    """Tests for flow tracing, layer connections and metrics."""

    def test_mvc_request_flow(self, mvc_analysis):
        result, _ = mvc_analysis
        classification = ArchitectureClassifier().classify(result.files, MVC_PATTERN)
        analysis = FlowAnalyzer().analyze(classification, MVC_PATTERN, file_dependencies(result))

        assert len(analysis.flows) == 1
        flow = analysis.flows[0]
        assert [step.file for step in flow.steps] == [CONTROLLER, SERVICE, MODEL]
        assert [step.order for step in flow.steps] == [0, 1, 2]
        assert flow.steps[0].action == "Receives the request"
        assert flow.type == "request-response"
        assert flow.direction == "internal"
        assert flow.entry_point == CONTROLLER
        assert flow.exit_point == MODEL
        assert flow.name == "controller: UserController"

        metrics = analysis.metrics
        assert metrics.total_flows == 1
        assert metrics.avg_flow_length == 3.0
        assert metrics.max_flow_length == 3
        assert metrics.layer_coverage == 3
        assert metrics.violation_count == 0
        assert metrics.cyclic_dependencies == 0
        assert analysis.violations == []

    def test_layer_connections(self, mvc_analysis):
        result, _ = mvc_analysis
        classification = ArchitectureClassifier().classify(result.files, MVC_PATTERN)
        analysis = FlowAnalyzer().analyze(classification, MVC_PATTERN, file_dependencies(result))

        connections = {(c.source_layer, c.target_layer): c for c in analysis.layer_connections}
        assert set(connections) == {("controller", "service"), ("service", "model")}
        assert connections[("service", "model")].direction == "down"
        assert connections[("controller", "service")].direction == "lateral"
        assert all(c.is_allowed for c in connections.values())

    def test_upward_and_disallowed_dependencies(self, make_project):
        root = make_project({
            "services/orders.ts": "import { save } from '../data/store';\nexport function order() { save(); }\n",
            "data/store.ts": "import { order } from '../services/orders';\nexport function save() { order(); }\n",
        })
        result, _ = _analyze(root)
        classification = ArchitectureClassifier().classify(result.files, LAYERED_PATTERN)
        analysis = FlowAnalyzer().analyze(classification, LAYERED_PATTERN, file_dependencies(result))

        messages = [v.message for v in analysis.violations]
        assert "data should not depend on business (1 occurrences)" in messages
        assert "Upward dependency: data -> business" in messages
        assert len(messages) == 2
        assert analysis.metrics.cyclic_dependencies == 1
        assert analysis.flows == []

    def test_max_depth_limits_steps(self, mvc_analysis):
        result, _ = mvc_analysis
        classification = ArchitectureClassifier().classify(result.files, MVC_PATTERN)
        analysis = FlowAnalyzer(max_flow_depth=1).analyze(classification, MVC_PATTERN, file_dependencies(result))
        assert len(analysis.flows[0].steps) == 2

    def test_ai_explanation(self, mvc_analysis, scripted_llm):
        result, _ = mvc_analysis
        classification = ArchitectureClassifier().classify(result.files, MVC_PATTERN)
        llm = scripted_llm(["Requests enter through the controller."])
        analysis = FlowAnalyzer(llm=llm, timeout=5).analyze(classification, MVC_PATTERN, file_dependencies(result))
        assert analysis.ai_explanation == "Requests enter through the controller."
        assert "MVC" in llm.prompts[0]

    def test_visualization(self, mvc_analysis):
        result, _ = mvc_analysis
        classification = ArchitectureClassifier().classify(result.files, MVC_PATTERN)
        analysis = FlowAnalyzer().analyze(classification, MVC_PATTERN, file_dependencies(result))
        graph = flows_to_visualization(analysis.flows, MVC_PATTERN)

        assert [node["id"] for node in graph["nodes"]] == [CONTROLLER, SERVICE, MODEL]
        assert graph["nodes"][0]["label"] == "UserController.ts"
        assert graph["nodes"][2]["level"] == 2
        assert [edge["id"] for edge in graph["edges"]] == [f"{CONTROLLER}->{SERVICE}", f"{SERVICE}->{MODEL}"]


class TestCountLayerCycles:
    """Tests for count_layer_cycles."""

    def _connections(self, *pairs):
        return [LayerConnection(source_layer=a, target_layer=b) for a, b in pairs]

    def test_acyclic(self):
        assert count_layer_cycles(self._connections(("a", "b"), ("b", "c"))) == 0

    def test_two_layer_cycle(self):
        assert count_layer_cycles(self._connections(("a", "b"), ("b", "a"))) == 1

    def test_independent_cycles(self):
        pairs = (("a", "b"), ("b", "a"), ("c", "d"), ("d", "c"))
        assert count_layer_cycles(self._connections(*pairs)) == 2

    def test_self_loop(self):
        assert count_layer_cycles(self._connections(("a", "a"))) == 1
