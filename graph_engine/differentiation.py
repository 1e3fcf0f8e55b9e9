"""
Symbolic reverse-mode differentiation.

``differentiate`` extends a graph in place with nodes computing the gradient
of an output with respect to requested inputs. It only builds structure; the
new nodes are evaluated by either machine like any other node.
"""
from typing import Dict, List, Sequence

from utils.logging_config import get_logger
from utils.exceptions import GradientUndefined, NotAPredecessor
from .graph import Graph
from .node import Node
from .operations import ADD, ONES_LIKE, Operation

logger = get_logger(__name__)


def sum_contributions(emit, contributions: Sequence):
    """Left fold of ``add`` over gradient contributions; a single one is reused as is."""
    total = contributions[0]
    for contribution in contributions[1:]:
        total = emit(ADD, total, contribution)
    return total


def differentiate(graph: Graph, output: Node, inputs: Sequence[Node]) -> List[Node]:
    """
    Build gradient nodes of ``output`` with respect to each of ``inputs``.

    Args:
        graph: Graph owning all nodes; it gains the new gradient nodes.
        output: Node being differentiated, seeded with ``ones_like(output)``.
        inputs: Nodes to differentiate against.

    Returns:
        One gradient node per input, in the same order.

    Raises:
        ForeignNodeReference: a node belongs to another graph.
        NotAPredecessor: an input has no path to the output.
        GradientUndefined: an operation on a path has no derivative rule.
    """
    inputs = list(inputs)
    with graph.lock:
        graph._check_owned(output, role="output")
        for inp in inputs:
            graph._check_owned(inp, role="input")

        upstream = graph.ancestors([output])
        for inp in inputs:
            if inp.id not in upstream:
                raise NotAPredecessor(
                    f"{inp.label} is not a predecessor of {output.label}",
                    details={'input': inp.id, 'output': output.id}
                )

        # Nodes on some path from a requested input to the output, in the
        # graph's global order so both machines visit them identically.
        relevant = upstream & graph.descendants(inputs)
        order = [n for n in graph.topological_order() if n.id in relevant]

        # Every node in ``order`` receives a gradient, so an operation without
        # a rule is known to fail before any node is added.
        for node in order:
            if node.is_operation and not node.op.differentiable:
                raise GradientUndefined(
                    f"Operation '{node.op.name}' of {node.label} has no derivative rule",
                    details={'node_id': node.id, 'operation': node.op.name}
                )

        def emit(op: Operation, *args: Node) -> Node:
            return graph.add_operation(op, *args)

        contributions: Dict[int, List[Node]] = {output.id: [emit(ONES_LIKE, output)]}
        gradients: Dict[int, Node] = {}

        for node in reversed(order):
            pending = contributions.pop(node.id, None)
            if not pending:
                continue
            grad = sum_contributions(emit, pending)
            gradients[node.id] = grad
            graph.record_gradient(node, grad)

            if not node.is_operation:
                continue
            needed = tuple(input_id in relevant for input_id in node.inputs)
            partials = node.op.local_gradient(emit, node.input_nodes, node, grad, needed)
            for input_id, partial in zip(node.inputs, partials):
                if partial is not None:
                    contributions.setdefault(input_id, []).append(partial)

        logger.debug(
            f"Differentiated {output.label} w.r.t. {[n.label for n in inputs]}: "
            f"{len(relevant)} nodes on path, graph now has {len(graph)} nodes"
        )
        return [gradients[inp.id] for inp in inputs]


def grad(output: Node, *inputs: Node) -> List[Node]:
    """``differentiate`` on the output's own graph."""
    return differentiate(output.graph, output, inputs)
