# graph_engine/node.py

from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Tuple

import numpy as np

from .value import Value

if TYPE_CHECKING:
    from .graph import Graph
    from .operations import Operation


class NodeKind(Enum):
    LEAF = 'leaf'
    CONSTANT = 'constant'
    OPERATION = 'operation'


class Node:
    """
    A node of a Graph. The node object is also the handle callers hold.

    Structure (kind, operation, inputs) is fixed at creation. Inputs are
    stored as ids into the owning graph's arena. The only mutable state is the
    Value, written by ``Graph.set_value`` for leaves and by machines for
    operation nodes.

    Python operators build new operation nodes in the same graph, so
    ``z = x * y`` is shorthand for ``graph.add_operation('mul', x, y)``.
    Python scalars are turned into constant nodes.
    """

    def __init__(
        self,
        graph: 'Graph',
        node_id: int,
        kind: NodeKind,
        name: Optional[str] = None,
        op: Optional['Operation'] = None,
        inputs: Tuple[int, ...] = (),
        dtype: Any = np.float64,
        shape: Optional[Tuple[int, ...]] = None,
    ):
        self._graph = graph
        self.id = node_id
        self.kind = kind
        self.name = name
        self.op = op
        self.inputs = tuple(inputs)
        self.dtype = np.dtype(dtype)
        self.shape = tuple(shape) if shape is not None else None
        self._value: Optional[Value] = None

    @property
    def graph(self) -> 'Graph':
        return self._graph

    @property
    def is_leaf(self) -> bool:
        return self.kind is not NodeKind.OPERATION

    @property
    def is_constant(self) -> bool:
        return self.kind is NodeKind.CONSTANT

    @property
    def is_operation(self) -> bool:
        return self.kind is NodeKind.OPERATION

    @property
    def value(self) -> Optional[Value]:
        """The node's current Value, or None until set or evaluated."""
        return self._value

    @property
    def input_nodes(self) -> Tuple['Node', ...]:
        return tuple(self._graph.node(i) for i in self.inputs)

    def grad(self) -> Optional[Value]:
        """
        This node's gradient: the value of its symbolic gradient node if one
        was built and evaluated, else the gradient from the last
        graph-walking run, else None.
        """
        value = self._graph.gradient_of(self)
        if value is None:
            value = self._graph.accumulated_gradient(self)
        return value

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        if self.op is not None:
            return f"{self.op.name}#{self.id}"
        return f"{self.kind.value}#{self.id}"

    def _apply(self, op: Any, *args: Any, name: Optional[str] = None) -> 'Node':
        return self._graph.apply(op, *args, name=name)

    def __add__(self, other: Any) -> 'Node':
        return self._apply('add', self, other)

    def __radd__(self, other: Any) -> 'Node':
        return self._apply('add', other, self)

    def __sub__(self, other: Any) -> 'Node':
        return self._apply('sub', self, other)

    def __rsub__(self, other: Any) -> 'Node':
        return self._apply('sub', other, self)

    def __mul__(self, other: Any) -> 'Node':
        return self._apply('mul', self, other)

    def __rmul__(self, other: Any) -> 'Node':
        return self._apply('mul', other, self)

    def __truediv__(self, other: Any) -> 'Node':
        return self._apply('div', self, other)

    def __rtruediv__(self, other: Any) -> 'Node':
        return self._apply('div', other, self)

    def __matmul__(self, other: Any) -> 'Node':
        return self._apply('matmul', self, other)

    def __neg__(self) -> 'Node':
        return self._apply('neg', self)

    def __repr__(self) -> str:
        if self.op is not None:
            return f"Node(id={self.id}, op='{self.op.name}', inputs={list(self.inputs)})"
        return f"Node(id={self.id}, {self.kind.value}, name={self.name!r})"
