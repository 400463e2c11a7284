"""
Renderers for dependency graphs: console summary, Graphviz DOT, JSON and
tabular (CSV / Parquet) exports.

All renderers read the graph's public surface only and produce
deterministic output for a given graph.
"""

import json
import logging
from pathlib import Path
from typing import List, Union

import pandas as pd

from ddl_dependency_parser.graph.dependency_graph import DependencyGraph, Edge, ObjectKind


EDGE_COLUMNS = ['source', 'source_kind', 'target', 'kind']

logger = logging.getLogger('ReportGenerator')


def _ci(name: str) -> str:
    return name.upper()


def _sorted_edges(graph: DependencyGraph) -> List[Edge]:
    return sorted(
        graph.edges,
        key=lambda e: (_ci(e.source.name), e.source.kind.value, _ci(e.target), e.kind.value)
    )


def render_summary(graph: DependencyGraph) -> str:
    """Plain-text report: tables, FK edges, all edges and unused tables."""
    lines = [graph.summary(), "", "== TABLES (discovered) =="]
    lines.extend(f"  {t}" for t in sorted(graph.tables, key=_ci))

    lines.extend(["", "== FK Dependencies (TABLE -> TABLE) =="])
    fk_edges = sorted(graph.table_foreign_key_edges(), key=lambda e: (_ci(e[0]), _ci(e[1])))
    lines.extend(f"  {source} -> {target}" for source, target in fk_edges)

    lines.extend(["", "== All object->table edges =="])
    lines.extend(
        f"  {edge.source} --[{edge.kind.value}]--> {edge.target}" for edge in _sorted_edges(graph)
    )

    lines.extend(["", "== UNUSED TABLES =="])
    unused = sorted(graph.unused_tables(), key=_ci)
    if unused:
        lines.extend(f"  {t}" for t in unused)
    else:
        lines.append("  (none)")

    return "\n".join(lines) + "\n"


def _dot_id(text: str) -> str:
    return '"' + text.replace('\\', '\\\\').replace('"', '\\"') + '"'


def render_dot(graph: DependencyGraph) -> str:
    """Graphviz digraph with box table nodes and dashed object nodes."""
    lines = ["digraph deps {", "  rankdir=LR;"]

    for table in sorted(graph.tables, key=_ci):
        lines.append(f"  {_dot_id('TABLE:' + table)} [shape=box];")

    objects = sorted(
        (o for o in graph.objects if o.kind != ObjectKind.TABLE),
        key=lambda o: (o.kind.value, _ci(o.name))
    )
    for obj in objects:
        lines.append(f"  {_dot_id(str(obj))} [shape=ellipse, style=dashed];")

    for edge in _sorted_edges(graph):
        lines.append(
            f"  {_dot_id(str(edge.source))} -> {_dot_id('TABLE:' + edge.target)} "
            f"[label=\"{edge.kind.value}\"];"
        )

    lines.append("}")
    return "\n".join(lines) + "\n"


def render_json(graph: DependencyGraph, indent: int = 2) -> str:
    """JSON document with sorted tables and from/to/kind edge records."""
    document = {
        'tables': sorted(graph.tables, key=_ci),
        'edges': [
            {'from': str(edge.source), 'to': edge.target, 'kind': edge.kind.value}
            for edge in _sorted_edges(graph)
        ],
    }
    return json.dumps(document, indent=indent, ensure_ascii=False)


def edges_dataframe(graph: DependencyGraph) -> pd.DataFrame:
    """One row per edge: source, source_kind, target, kind."""
    rows = [
        {
            'source': edge.source.name,
            'source_kind': edge.source.kind.value,
            'target': edge.target,
            'kind': edge.kind.value,
        }
        for edge in _sorted_edges(graph)
    ]
    return pd.DataFrame(rows, columns=EDGE_COLUMNS)


def write_edges_csv(graph: DependencyGraph, output_path: Union[str, Path]) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    edges_dataframe(graph).to_csv(output_path, index=False)
    logger.info(f"Saved edge table to: {output_path}")
    return output_path


def write_edges_parquet(graph: DependencyGraph, output_path: Union[str, Path]) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    edges_dataframe(graph).to_parquet(output_path, index=False, engine='pyarrow')
    logger.info(f"Saved dependency graph to: {output_path}")
    return output_path
