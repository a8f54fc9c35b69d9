"""Graph export helpers for DOT and JSON outputs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

from .models import AnalysisResult, CodeEdge, CodeNode

# Containment is implied by the cluster layout, so it is hidden unless asked for
DEFAULT_EDGE_TYPES = ("imports", "calls", "awaits", "extends", "implements")


def export_dot(
    result: AnalysisResult,
    output_file: Path,
    focus: str = "",
    max_level: int = 5,
    edge_types: Optional[List[str]] = None,
) -> None:
    nodes = {node.id: node for node in result.nodes if node.level <= max_level}
    wanted = set(edge_types or DEFAULT_EDGE_TYPES)
    edges = [edge for edge in result.edges if edge.type in wanted]

    selected = _focused_subgraph(nodes, edges, focus)

    lines = [f'digraph "{_esc(result.meta.project_name)}" {{']
    lines.append("  rankdir=LR;")
    lines.append("  node [shape=box, fontsize=10];")

    for node_id in selected["nodes"]:
        node = nodes[node_id]
        label = f"L{node.level} {node.type}\\n{node.name}"
        lines.append(f'  "{node_id}" [label="{_esc(label)}"];')

    for edge in selected["edges"]:
        if edge.source not in nodes or edge.target not in nodes:
            continue
        lines.append(f'  "{edge.source}" -> "{edge.target}" [label="{_esc(edge.type)}"];')

    lines.append("}")
    output_file.write_text("\n".join(lines), encoding="utf-8")


def export_json(result: AnalysisResult, output_file: Path, indent: int = 2) -> None:
    output_file.write_text(json.dumps(result.to_dict(), indent=indent, default=str), encoding="utf-8")


def _focused_subgraph(nodes: Dict[str, CodeNode], edges: List[CodeEdge], focus: str) -> Dict[str, List]:
    if not focus:
        return {"nodes": list(nodes.keys()), "edges": edges}

    focus_ids = {
        node_id
        for node_id, node in nodes.items()
        if focus in node_id or focus in node.name or focus in node.full_path
    }

    if not focus_ids:
        return {"nodes": list(nodes.keys()), "edges": edges}

    edge_subset = [e for e in edges if e.source in focus_ids or e.target in focus_ids]
    node_subset = set(focus_ids)
    for e in edge_subset:
        if e.source in nodes:
            node_subset.add(e.source)
        if e.target in nodes:
            node_subset.add(e.target)
    return {"nodes": sorted(node_subset), "edges": edge_subset}


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
