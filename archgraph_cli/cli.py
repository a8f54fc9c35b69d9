"""Typer-based CLI for ArchGraph code graph, security and architecture analysis."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn

from . import __version__, config
from .arch_classifier import ArchitectureClassifier
from .arch_detector import ArchitectureDetector, create_detection_context
from .cli_config import config_app
from .cli_report import render_analysis, render_architecture, render_security
from .flow_analyzer import FlowAnalyzer, file_dependencies
from .graph_builder import CodebaseAnalyzer
from .graph_export import export_dot, export_json
from .llm import LocalLLM
from .models import AnalysisResult
from .scanner import InvalidRootPathError, ScanResult
from .security_pipeline import EnhancedSecurityPipeline

console = Console()

app = typer.Typer(
    help="🧭 ArchGraph: multi-level code graphs, security triage and architecture detection.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(config_app, name="config")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"ArchGraph CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
):
    """ArchGraph CLI: heuristic code graphs with staged security and architecture analysis."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _run_analysis(
    path: Path,
    include: Optional[List[str]] = None,
    exclude: Optional[List[str]] = None,
    max_depth: Optional[int] = None,
) -> Tuple[AnalysisResult, ScanResult]:
    settings = config.analysis_settings()
    try:
        analyzer = CodebaseAnalyzer(
            path,
            include=include or settings["include"],
            exclude=exclude or settings["exclude"],
            max_depth=max_depth if max_depth is not None else settings["max_depth"],
        )
    except InvalidRootPathError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(code=1)
    with console.status("[cyan]Scanning and building graph..."):
        result = analyzer.analyze()
    return result, analyzer.scan


def _write_json(payload: dict, output: Path) -> None:
    output.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    console.print(f"[green]✓[/green] Wrote {output}")


@app.command("analyze")
def analyze(
    path: Path = typer.Argument(..., help="Root directory of the project."),
    json_out: Optional[Path] = typer.Option(None, "--json", help="Write the full analysis result as JSON."),
    dot_out: Optional[Path] = typer.Option(None, "--dot", help="Write a Graphviz DOT graph."),
    include: Optional[List[str]] = typer.Option(None, "--include", help="Include glob (repeatable)."),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", help="Exclude glob (repeatable)."),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", help="Maximum directory depth."),
    top: int = typer.Option(10, "--top", help="Rows to show per table."),
):
    """Build the seven-level code graph and report structural issues."""
    result, _ = _run_analysis(path, include, exclude, max_depth)
    render_analysis(result, console, top=top)
    if json_out:
        export_json(result, json_out)
        console.print(f"[green]✓[/green] Wrote {json_out}")
    if dot_out:
        export_dot(result, dot_out)
        console.print(f"[green]✓[/green] Wrote {dot_out}")


@app.command("security")
def security(
    path: Path = typer.Argument(..., help="Root directory of the project."),
    no_ai: bool = typer.Option(False, "--no-ai", help="Skip LLM validation (stage 3)."),
    no_ast: bool = typer.Option(False, "--no-ast", help="Skip the syntactic filter (stage 2)."),
    threshold: Optional[float] = typer.Option(
        None, "--threshold", help="Confidence needed for the syntactic filter to drop a finding."
    ),
    json_out: Optional[Path] = typer.Option(None, "--json", help="Write the security report as JSON."),
    limit: int = typer.Option(50, "--limit", help="Findings to show."),
):
    """Run the three-stage security pipeline."""
    _, scan = _run_analysis(path)

    settings = config.security_settings()
    if no_ai:
        settings["enable_ai_validation"] = False
    if no_ast:
        settings["enable_ast_filtering"] = False
    if threshold is not None:
        settings["ast_confidence_to_filter"] = threshold

    llm = None
    if settings["enable_ai_validation"]:
        llm = LocalLLM(timeout=settings["timeout"])

    with Progress(TextColumn("[progress.description]{task.description}"), BarColumn(), console=console) as progress:
        task = progress.add_task("[cyan]Scanning...", total=None)

        def on_progress(stage: str, current: int, total: int) -> None:
            progress.update(task, description=f"[cyan]{stage.replace('_', ' ')}", completed=current, total=total or None)

        pipeline = EnhancedSecurityPipeline(llm=llm, settings=settings, on_progress=on_progress)
        report = pipeline.analyze(scan.files, scan.contents)

    render_security(report, console, limit=limit)
    if json_out:
        _write_json(report.to_dict(), json_out)


@app.command("architecture")
def architecture(
    path: Path = typer.Argument(..., help="Root directory of the project."),
    ai: bool = typer.Option(False, "--ai", help="Refine detection, classification and flows with the LLM."),
    json_out: Optional[Path] = typer.Option(None, "--json", help="Write the architecture report as JSON."),
):
    """Detect the architecture pattern, classify files and trace flows."""
    result, scan = _run_analysis(path)
    settings = config.architecture_settings()
    llm = LocalLLM(timeout=settings["timeout"]) if ai else None

    context = create_detection_context(result.files, project_root=str(scan.root))
    detector = ArchitectureDetector(
        min_confidence=settings["min_confidence"],
        llm=llm,
        ai_weight=settings["detector_ai_weight"],
        timeout=settings["timeout"],
    )
    detections = detector.detect(context)

    classification = None
    flows = None
    if detections:
        pattern = detections[0].pattern
        classifier = ArchitectureClassifier(
            llm=llm,
            batch_size=settings["ai_batch_size"],
            ai_weight=settings["classifier_ai_weight"],
            timeout=settings["timeout"],
        )
        classification = classifier.classify(result.files, pattern, scan.contents)
        analyzer = FlowAnalyzer(max_flow_depth=settings["max_flow_depth"], llm=llm, timeout=settings["timeout"])
        flows = analyzer.analyze(classification, pattern, file_dependencies(result))

    render_architecture(detections, classification, flows, console)

    if json_out:
        payload = {
            "patterns": [d.to_dict() for d in detections],
            "classification": {
                "files": [f.to_dict() for f in classification.files],
                "stats": asdict(classification.stats),
            }
            if classification
            else None,
            "flows": flows.to_dict() if flows else None,
        }
        _write_json(payload, json_out)


if __name__ == "__main__":
    app()
