"""
Shared machine lifecycle, settings and node evaluation.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config.config_manager import Config, get_config_manager
from graph_engine.graph import Graph
from graph_engine.node import Node
from graph_engine.operations import Operation
from graph_engine.value import Value
from utils.logging_config import get_logger
from utils.exceptions import DomainError, EngineClosed, EvaluationError, UncomputedInput
from validation.validators import TypeValidator


class MachineState(Enum):
    UNINITIALIZED = 'uninitialized'
    COMPILED = 'compiled'
    RAN = 'ran'
    CLOSED = 'closed'


@dataclass
class EngineSettings:
    """Evaluation switches read from the ``engine`` config section."""
    watch_nan: bool = False
    watch_inf: bool = False
    trace: bool = False

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> 'EngineSettings':
        """Build settings from ``config``, falling back to the global config manager."""
        if config is None:
            config = get_config_manager().get_config()
        return cls(
            watch_nan=bool(config.get('engine.watch_nan', False)),
            watch_inf=bool(config.get('engine.watch_inf', False)),
            trace=bool(config.get('engine.trace', False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def at_node(node: Node, error: EvaluationError) -> EvaluationError:
    """Re-create an evaluation error with the node that triggered it."""
    details = dict(error.details)
    details.update({'node_id': node.id, 'node': node.label})
    return type(error)(f"{node.label}: {error.message}", error_code=error.error_code, details=details)


class Machine:
    """
    Base class for machines evaluating a Graph.

    A machine borrows its graph: it holds ``graph.lock`` while compiling or
    running and must not outlive the graph. After ``close()`` every call
    raises EngineClosed.
    """

    def __init__(self, graph: Graph, outputs: Optional[Iterable[Node]] = None, config: Optional[Config] = None):
        self.graph = TypeValidator(Graph, name='graph').validate(graph)
        self.outputs: Optional[List[Node]] = None
        if outputs is not None:
            self.outputs = [graph._check_owned(n, role='output') for n in outputs]
        self.settings = EngineSettings.from_config(config)
        self.state = MachineState.UNINITIALIZED
        self.runs = 0
        self.logger = get_logger(self.__class__.__name__)

    @property
    def closed(self) -> bool:
        return self.state is MachineState.CLOSED

    def _ensure_open(self):
        if self.state is MachineState.CLOSED:
            raise EngineClosed(
                f"{self.__class__.__name__} is closed",
                details={'graph': self.graph.name}
            )

    def _require_values(self, nodes: Iterable[Node]):
        for node in nodes:
            if node.is_leaf and node.value is None:
                raise UncomputedInput(
                    f"Leaf {node.label} has no value bound",
                    details={'node_id': node.id}
                )

    def _evaluate(self, node: Node, op: Operation, input_ids: Tuple[int, ...]) -> Value:
        """Run ``op.forward`` on the Values of ``input_ids`` and store the result on ``node``."""
        values = []
        for input_id in input_ids:
            value = self.graph.node(input_id).value
            if value is None:
                raise UncomputedInput(
                    f"Input {input_id} of {node.label} has no value",
                    details={'node_id': node.id, 'input_id': input_id}
                )
            values.append(value)

        try:
            out = op.forward(*values)
        except DomainError as e:
            raise at_node(node, e) from e

        if self.settings.watch_nan and out.has_nan():
            raise DomainError(f"{node.label}: NaN produced by {op.name}", details={'node_id': node.id})
        if self.settings.watch_inf and out.has_inf():
            raise DomainError(f"{node.label}: Inf produced by {op.name}", details={'node_id': node.id})
        if self.settings.trace:
            self.logger.debug(f"{node.label} = {op.name}{tuple(input_ids)} -> {out!r}")

        self.graph.record_value(node, out)
        return out

    def value_of(self, node: Node) -> Optional[Value]:
        self._ensure_open()
        return self.graph.value_of(node)

    def gradient_of(self, node: Node) -> Optional[Value]:
        raise NotImplementedError

    def run(self):
        raise NotImplementedError

    def _release(self):
        """Drop engine-held buffers."""

    def close(self):
        """Release engine-held buffers. Idempotent."""
        if self.state is MachineState.CLOSED:
            return
        self._release()
        self.state = MachineState.CLOSED
        self.logger.debug(f"Closed after {self.runs} run(s)")

    def __enter__(self):
        self._ensure_open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(graph={self.graph.name!r}, state={self.state.value})"
