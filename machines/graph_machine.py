"""
Graph-walking machine: interpret the graph directly with a forward sweep
followed by an automatic reverse-mode sweep.
"""
from typing import Dict, Iterable, List, Optional

from config.config_manager import Config
from graph_engine.differentiation import sum_contributions
from graph_engine.graph import Graph
from graph_engine.node import Node
from graph_engine.operations import ONES_LIKE, Operation
from graph_engine.value import Value
from utils.logging_config import LogContext
from utils.error_handlers import ErrorContext
from utils.exceptions import DomainError, GradientUndefined
from .base import Machine, MachineState, at_node


def _evaluate_rule(op: Operation, *values: Value) -> Value:
    return op.forward(*values)


class GraphWalkingMachine(Machine):
    """
    Evaluates every node, then back-propagates from the outputs.

    Outputs are the nodes passed as ``outputs``, or every node without
    dependents. Each output is seeded with a unit gradient. Gradients are kept
    in an accumulator keyed by node id that is rebuilt on every run, so
    ``gradient_of`` returns None for nodes no output depends on. A successful
    run also publishes the accumulator on the graph, so ``node.grad()`` reads
    it when the node has no evaluated symbolic gradient.

    Args:
        graph: Graph to evaluate.
        outputs: Nodes to seed; defaults to the graph's sinks at run time.
        forward_only: Skip the reverse sweep.
        config: Config with an ``engine`` section; defaults to the global one.
    """

    def __init__(
        self,
        graph: Graph,
        outputs: Optional[Iterable[Node]] = None,
        forward_only: bool = False,
        config: Optional[Config] = None
    ):
        super().__init__(graph, outputs, config)
        self.forward_only = forward_only
        self._gradients: Dict[int, Value] = {}

    def run(self) -> 'GraphWalkingMachine':
        """
        Forward sweep over the whole graph, then the reverse sweep.

        Raises:
            UncomputedInput: a leaf has no value.
            DomainError: an operation received invalid inputs.
            GradientUndefined: an operation reached by the reverse sweep has
                no derivative rule.
            EngineClosed: the machine was closed.
        """
        self._ensure_open()
        self._gradients = {}
        self.graph.record_accumulated({})

        with self.graph.lock, \
                ErrorContext(f"{self.__class__.__name__}.run", cleanup_func=self._gradients.clear), \
                LogContext(self.logger, machine=self.__class__.__name__, graph=self.graph.name, run=self.runs):
            order = self.graph.topological_order()
            self._require_values(order)
            for node in order:
                if node.is_operation:
                    self._evaluate(node, node.op, node.inputs)
            if not self.forward_only:
                self._backward(order)
            self.graph.record_accumulated(self._gradients)

        self.runs += 1
        self.state = MachineState.RAN
        self.logger.info(
            f"Ran {len(order)} nodes, {len(self._gradients)} gradients (run {self.runs})"
        )
        return self

    def _backward(self, order: List[Node]):
        seeds = self.outputs if self.outputs is not None else self.graph.sinks()
        contributions: Dict[int, List[Value]] = {}
        for node in seeds:
            contributions.setdefault(node.id, []).append(ONES_LIKE.forward(node.value))

        for node in reversed(order):
            pending = contributions.pop(node.id, None)
            if not pending:
                continue
            try:
                grad = sum_contributions(_evaluate_rule, pending)
            except DomainError as e:
                raise at_node(node, e) from e
            # Rules may hand one seed to several inputs; each node keeps its own copy.
            self._gradients[node.id] = grad.copy()

            if not node.is_operation:
                continue
            inputs = [self.graph.node(i).value for i in node.inputs]
            try:
                partials = node.op.local_gradient(_evaluate_rule, inputs, node.value, grad)
            except (DomainError, GradientUndefined) as e:
                raise at_node(node, e) from e
            for input_id, partial in zip(node.inputs, partials):
                contributions.setdefault(input_id, []).append(partial)

    def gradient_of(self, node: Node) -> Optional[Value]:
        """Accumulated gradient of ``node`` from the last run; None if not reached."""
        self._ensure_open()
        self.graph._check_owned(node)
        return self._gradients.get(node.id)

    def gradients(self) -> Dict[int, Value]:
        """Copy of the accumulator of the last run, keyed by node id."""
        self._ensure_open()
        return dict(self._gradients)

    def _release(self):
        self._gradients = {}
