"""
Tape machine: compile a graph into a linear instruction sequence, then run it.
"""
from dataclasses import dataclass
from typing import Iterable, Iterator, List, NamedTuple, Optional, Tuple

from config.config_manager import Config
from graph_engine.graph import Graph
from graph_engine.node import Node
from graph_engine.operations import Operation
from graph_engine.value import Value
from utils.logging_config import get_logger, LogContext
from utils.error_handlers import ErrorContext
from utils.exceptions import ForeignNodeReference
from .base import Machine, MachineState

logger = get_logger(__name__)


class Instruction(NamedTuple):
    """Evaluate ``op`` on the Values of ``input_ids`` and store it on ``node_id``."""
    node_id: int
    op: Operation
    input_ids: Tuple[int, ...]

    def __str__(self) -> str:
        args = ", ".join(f"n{i}" for i in self.input_ids)
        return f"n{self.node_id} = {self.op.name}({args})"


@dataclass(frozen=True)
class Tape:
    """
    Immutable instruction sequence compiled from one snapshot of a graph.

    A tape does not follow later changes to the graph. ``is_stale()`` reports
    whether the graph changed structurally since compilation; a stale tape
    must be recompiled to include the new nodes.
    """
    graph: Graph
    instructions: Tuple[Instruction, ...]
    leaf_ids: Tuple[int, ...]
    version: int

    def is_stale(self) -> bool:
        return self.graph.version != self.version

    def __len__(self) -> int:
        return len(self.instructions)

    def __iter__(self) -> Iterator[Instruction]:
        return iter(self.instructions)

    def describe(self) -> List[str]:
        return [str(instr) for instr in self.instructions]


def compile_graph(graph: Graph, outputs: Optional[Iterable[Node]] = None) -> Tape:
    """
    Linearize ``graph`` (or the ancestors of ``outputs``) into a Tape.

    The order is the graph's topological order with ties broken by ascending
    id, so compiling the same graph twice yields identical tapes.
    """
    with graph.lock:
        order = graph.topological_order(outputs)
        instructions = tuple(
            Instruction(node.id, node.op, node.inputs)
            for node in order
            if node.is_operation
        )
        leaf_ids = tuple(node.id for node in order if node.is_leaf)
        tape = Tape(graph=graph, instructions=instructions, leaf_ids=leaf_ids, version=graph.version)
    logger.debug(f"Compiled {len(instructions)} instructions over {len(leaf_ids)} leaves")
    return tape


class TapeMachine(Machine):
    """
    Runs a compiled Tape.

    Usage::

        with TapeMachine(g) as machine:
            machine.run()
            z.value

    ``run`` compiles on first use. Running again recomputes every
    instruction from the current leaf values. Gradients are available only
    for nodes differentiated symbolically before the tape was compiled.
    """

    def __init__(self, graph: Graph, outputs: Optional[Iterable[Node]] = None, config: Optional[Config] = None):
        super().__init__(graph, outputs, config)
        self._tape: Optional[Tape] = None

    @property
    def tape(self) -> Optional[Tape]:
        return self._tape

    def compile(self) -> Tape:
        """Compile (or recompile) the graph into this machine's tape."""
        self._ensure_open()
        self._tape = compile_graph(self.graph, self.outputs)
        self.state = MachineState.COMPILED
        return self._tape

    def run(self, tape: Optional[Tape] = None) -> 'TapeMachine':
        """
        Execute every instruction in order.

        Args:
            tape: Tape to run instead of this machine's own; must come from the same graph.

        Raises:
            UncomputedInput: a leaf read by the tape has no value.
            DomainError: an operation received invalid inputs, or NaN/Inf
                watching is enabled and one was produced.
            EngineClosed: the machine was closed.
        """
        self._ensure_open()
        if tape is None:
            tape = self._tape if self._tape is not None else self.compile()
        elif tape.graph is not self.graph:
            raise ForeignNodeReference("Tape was compiled from a different graph")

        if tape.is_stale():
            self.logger.warning(
                f"Running a stale tape (compiled at graph version {tape.version}, "
                f"graph is at {self.graph.version}); recompile to include new nodes"
            )

        with self.graph.lock, \
                ErrorContext(f"{self.__class__.__name__}.run"), \
                LogContext(self.logger, machine=self.__class__.__name__, graph=self.graph.name, run=self.runs):
            self._require_values(self.graph.node(i) for i in tape.leaf_ids)
            for instr in tape:
                self._evaluate(self.graph.node(instr.node_id), instr.op, instr.input_ids)

        self.runs += 1
        self.state = MachineState.RAN
        self.logger.info(f"Ran {len(tape)} instructions (run {self.runs})")
        return self

    def reset(self):
        """Forget the values computed by the tape. Leaf values are kept."""
        self._ensure_open()
        if self._tape is None:
            return
        for instr in self._tape:
            self.graph.record_value(self.graph.node(instr.node_id), None)

    def gradient_of(self, node: Node) -> Optional[Value]:
        """Value of the symbolic gradient node of ``node``; None if not computed."""
        self._ensure_open()
        return self.graph.gradient_of(node)

    def _release(self):
        self._tape = None
