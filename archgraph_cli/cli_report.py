"""Rich rendering of analysis, security and architecture results."""

from __future__ import annotations

from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .arch_classifier import ClassificationResult
from .arch_patterns import DetectionResult
from .flow_analyzer import FlowAnalysisResult
from .models import AnalysisResult
from .security_pipeline import EnhancedSecurityReport

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
    "info": "dim",
    "error": "red",
    "warning": "yellow",
}


def _score_color(score: float) -> str:
    if score >= 70:
        return "green"
    elif score >= 40:
        return "yellow"
    return "red"


def render_analysis(result: AnalysisResult, console: Console, top: int = 10) -> None:
    stats = result.stats
    console.print(
        Panel.fit(
            f"[bold]{result.meta.project_name}[/bold]  [dim]{result.meta.root_path}[/dim]\n"
            f"{stats.total_files} files, {stats.total_lines} lines, {len(result.nodes)} nodes, {len(result.edges)} edges",
            title="[bold cyan]Code Graph[/bold cyan]",
            border_style="cyan",
        )
    )

    table = Table(title="Project Stats", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Classes", str(stats.total_classes))
    table.add_row("Functions", str(stats.total_functions))
    table.add_row("Variables", str(stats.total_variables))
    table.add_row("Avg complexity", f"{stats.avg_complexity:.1f}")
    table.add_row("Max complexity", str(stats.max_complexity))
    table.add_row("Languages", ", ".join(f"{k}: {v}" for k, v in sorted(stats.by_language.items())) or "-")
    table.add_row("Layers", ", ".join(f"{k}: {v}" for k, v in sorted(stats.by_layer.items())) or "-")
    table.add_row("Levels", ", ".join(f"{k}: {v}" for k, v in sorted(stats.by_level.items())) or "-")
    if result.skipped_files:
        table.add_row("Skipped files", str(len(result.skipped_files)))
    console.print(table)

    by_severity = {}
    for issue in result.issues:
        by_severity.setdefault(issue.severity, []).append(issue)
    if result.issues:
        console.print("\n[bold]Issues[/bold]")
        for severity in ("error", "warning", "info"):
            issues = by_severity.get(severity, [])
            if not issues:
                continue
            style = SEVERITY_STYLES.get(severity, "white")
            console.print(f"  [{style}]{severity}: {len(issues)}[/{style}]")
            for issue in issues[:top]:
                where = f"{issue.location.file}:{issue.location.line}" if issue.location.file else ""
                console.print(f"    • {issue.message} [dim]{where}[/dim]")
    else:
        console.print("\n[green]No structural issues found.[/green]")

    functions = [n for n in result.nodes if n.metrics.complexity is not None]
    functions.sort(key=lambda n: n.metrics.complexity or 0, reverse=True)
    if functions:
        complex_table = Table(title="\nMost Complex Functions")
        complex_table.add_column("Function", style="cyan")
        complex_table.add_column("Complexity", justify="right")
        complex_table.add_column("LOC", justify="right")
        complex_table.add_column("Location", style="dim")
        for node in functions[:top]:
            complex_table.add_row(
                node.name,
                str(node.metrics.complexity),
                str(node.metrics.loc),
                f"{node.location.file}:{node.location.line}",
            )
        console.print(complex_table)


def render_security(report: EnhancedSecurityReport, console: Console, limit: int = 50) -> None:
    stats = report.pipeline
    console.print(
        Panel.fit(
            f"Base scan:        {stats.original_count}\n"
            f"After syntactic:  {stats.after_ast_filter}\n"
            f"After AI:         {stats.after_ai_validation}"
            + ("" if report.ai_used else " [dim](AI validation skipped)[/dim]")
            + f"\nFalse positives:  {stats.false_positives_removed}\n"
            f"Confirmed:        {stats.true_positives_confirmed}\n"
            f"Needs review:     {stats.needs_manual_review}\n"
            f"Time:             {stats.processing_time_ms:.0f} ms",
            title="[bold]Security Pipeline[/bold]",
            border_style="magenta",
        )
    )

    summary = " | ".join(
        f"[{SEVERITY_STYLES[s]}]{s}: {report.summary.get(s, 0)}[/{SEVERITY_STYLES[s]}]"
        for s in ("critical", "high", "medium", "low", "info")
    )
    console.print(summary)

    if not report.vulnerabilities:
        console.print("\n[green]✓ No vulnerabilities found.[/green]")
        return

    table = Table(title="\nFindings", show_header=True, show_lines=False)
    table.add_column("Severity", width=9)
    table.add_column("Category", style="cyan")
    table.add_column("Title")
    table.add_column("Location", style="dim")
    table.add_column("CWE", style="dim")
    for vuln in report.vulnerabilities[:limit]:
        style = SEVERITY_STYLES.get(vuln.severity, "white")
        verdict = report.ai_validations.get(vuln.key)
        title = vuln.title
        if verdict is not None:
            title += f" [dim]({verdict.verdict.lower()}, {verdict.confidence:.0%})[/dim]"
        table.add_row(
            f"[{style}]{vuln.severity}[/{style}]",
            vuln.category,
            title,
            f"{vuln.location.file}:{vuln.location.line}",
            vuln.cwe or "",
        )
    console.print(table)
    if len(report.vulnerabilities) > limit:
        console.print(f"[dim]... and {len(report.vulnerabilities) - limit} more[/dim]")

    if report.secrets_found:
        console.print(f"\n[bold red]Secrets:[/bold red] {len(report.secrets_found)} potential hard-coded secrets")


def render_architecture(
    detections: List[DetectionResult],
    classification: Optional[ClassificationResult],
    flows: Optional[FlowAnalysisResult],
    console: Console,
) -> None:
    if not detections:
        console.print("[yellow]No architecture pattern detected.[/yellow]")
        return

    ranking = Table(title="Architecture Patterns", show_header=True)
    ranking.add_column("Pattern", style="cyan")
    ranking.add_column("Confidence", justify="right")
    ranking.add_column("Layers")
    ranking.add_column("Violations", justify="right")
    for result in detections:
        color = _score_color(result.confidence)
        layers = ", ".join(f"{name}: {count}" for name, count in result.layer_distribution.items())
        ranking.add_row(
            result.pattern.name,
            f"[{color}]{result.confidence}%[/{color}]",
            layers,
            str(len(result.violations)),
        )
    console.print(ranking)

    top = detections[0]
    if top.ai_reasoning:
        console.print(Panel(top.ai_reasoning, title="[bold]AI review[/bold]", border_style="blue"))

    if classification is not None:
        stats = classification.stats
        roles = Table(title="\nFile Roles", show_header=True)
        roles.add_column("Role", style="cyan")
        roles.add_column("Files", justify="right")
        for role, count in sorted(stats.role_distribution.items(), key=lambda item: -item[1]):
            roles.add_row(role, str(count))
        console.print(roles)
        console.print(
            f"Classified {stats.classified_files}/{stats.total_files} files ({stats.classification_rate}%)"
        )

    if flows is not None:
        metrics = flows.metrics
        console.print(
            f"\n[bold]Flows:[/bold] {metrics.total_flows} "
            f"(avg length {metrics.avg_flow_length}, max {metrics.max_flow_length}, "
            f"{metrics.layer_coverage} layers, {metrics.cyclic_dependencies} layer cycles)"
        )
        for flow in flows.flows[:10]:
            path = " → ".join(step.file for step in flow.steps)
            console.print(f"  • [cyan]{flow.name}[/cyan] [{flow.type}, {flow.direction}] {path}")

        violations = top.violations + flows.violations
        if violations:
            console.print(f"\n[bold red]Violations ({len(violations)})[/bold red]")
            for violation in violations[:20]:
                style = SEVERITY_STYLES.get(violation.severity, "white")
                console.print(f"  [{style}]{violation.severity}[/{style}] {violation.message} [dim]{violation.source_file}[/dim]")
        else:
            console.print("\n[green]No layer violations.[/green]")
        if flows.ai_explanation:
            console.print(Panel(flows.ai_explanation, title="[bold]Flow explanation[/bold]", border_style="blue"))
