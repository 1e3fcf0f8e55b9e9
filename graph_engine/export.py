"""
Read-only graph export for external visualizers.

Nothing here writes files; callers decide where the text goes.
"""
from collections import Counter
from typing import Dict

import numpy as np

from .graph import Graph


def _format_value(node) -> str:
    value = node.value
    if value is None:
        return "unset"
    if value.is_scalar:
        return f"{value.item():.6g}"
    return f"shape={value.shape}"


def _escape(text: str) -> str:
    return text.replace('\\', '\\\\').replace('"', '\\"')


def to_dot(graph: Graph, with_values: bool = True) -> str:
    """
    Render the graph in Graphviz DOT syntax.

    Edges point from an input to its consumer. Gradient nodes built by the
    symbolic differentiator are drawn dashed, linked to the node they are the
    gradient of by a dotted edge.
    """
    gradient_edges = graph.gradient_edges()
    gradient_ids = set(gradient_edges.values())

    lines = [f'digraph "{_escape(graph.name or "graph")}" {{', '  rankdir=BT;']
    for node in graph.nodes():
        parts = [node.label]
        if node.op is not None and node.name:
            parts.append(node.op.name)
        if with_values:
            parts.append(_format_value(node))
        label = "\\n".join(_escape(p) for p in parts)

        attrs = [f'label="{label}"']
        if node.is_constant:
            attrs.append('shape=box')
        elif node.is_leaf:
            attrs.append('shape=box, style=bold')
        else:
            attrs.append('shape=ellipse')
        if node.id in gradient_ids:
            attrs.append('style=dashed')
        lines.append(f'  n{node.id} [{", ".join(attrs)}];')

    for node in graph.nodes():
        for position, input_id in enumerate(node.inputs):
            lines.append(f'  n{input_id} -> n{node.id} [label="{position}"];')

    for node_id, grad_id in sorted(gradient_edges.items()):
        lines.append(f'  n{node_id} -> n{grad_id} [style=dotted, arrowhead=none];')

    lines.append('}')
    return "\n".join(lines) + "\n"


def graph_stats(graph: Graph) -> Dict:
    """Node/edge counts, fan-in/fan-out and a per-operation breakdown."""
    records = graph.export_nodes()
    if not records:
        return {
            'nodes': 0,
            'edges': 0,
            'leaves': 0,
            'max_fan_in': 0,
            'avg_fan_in': 0.0,
            'max_fan_out': 0,
            'avg_fan_out': 0.0,
            'operations': {}
        }

    fan_ins = [len(r.inputs) for r in records]
    fan_outs = [0] * len(records)
    for r in records:
        for i in r.inputs:
            fan_outs[i] += 1

    op_counter = Counter(r.op for r in records if r.op is not None)

    return {
        'nodes': len(records),
        'edges': sum(fan_ins),
        'leaves': sum(1 for r in records if r.op is None),
        'max_fan_in': max(fan_ins),
        'avg_fan_in': float(np.mean(fan_ins)),
        'max_fan_out': max(fan_outs),
        'avg_fan_out': float(np.mean(fan_outs)),
        'operations': dict(op_counter)
    }
