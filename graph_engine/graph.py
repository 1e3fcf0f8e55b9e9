"""
Expression graph: an arena of nodes connected by data-dependency edges.
"""
import heapq
import threading
from typing import Any, Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Set, Tuple

import numpy as np

from utils.logging_config import get_logger
from utils.exceptions import (
    ArityMismatch,
    CycleDetected,
    ForeignNodeReference,
    NotALeaf,
    ShapeMismatch,
    TypeMismatch,
)
from validation.validators import DTypeValidator, ShapeValidator, TypeValidator
from .node import Node, NodeKind
from .operations import Operation, registry
from .value import Value, as_dtype

logger = get_logger(__name__)


class NodeRecord(NamedTuple):
    """Read-only description of a node for external visualizers."""
    id: int
    name: Optional[str]
    kind: str
    op: Optional[str]
    inputs: Tuple[int, ...]


class Graph:
    """
    Owns its nodes. Node ids are arena indices and only grow.

    A node may only reference nodes created before it, so ascending id order
    is always a valid evaluation order and no edge can close a cycle.
    Structural mutations bump ``version`` so compiled tapes can tell they are
    stale. ``lock`` is held by every mutation and by machines while they
    compile or run; callers sharing a graph across threads go through it too.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name
        self._nodes: List[Node] = []
        self._by_name: Dict[str, List[int]] = {}
        self._dependents: List[List[int]] = []
        self._gradient_nodes: Dict[int, int] = {}
        self._accumulated: Dict[int, Value] = {}
        self._version = 0
        self.lock = threading.RLock()
        self.logger = get_logger(self.__class__.__name__)

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes))

    def __contains__(self, node: Any) -> bool:
        return self._owns(node)

    def __repr__(self) -> str:
        return f"Graph(name={self.name!r}, nodes={len(self._nodes)})"

    # --- ownership ---

    def _owns(self, node: Any) -> bool:
        return (
            isinstance(node, Node)
            and node.graph is self
            and node.id < len(self._nodes)
            and self._nodes[node.id] is node
        )

    def _check_owned(self, node: Any, role: str = "node") -> Node:
        TypeValidator(Node, name=role, error=ForeignNodeReference).validate(node)
        if not self._owns(node):
            raise ForeignNodeReference(
                f"{role} {node!r} does not belong to {self!r}",
                details={'node_id': node.id, 'graph': self.name}
            )
        return node

    def node(self, node_id: int) -> Node:
        if not 0 <= node_id < len(self._nodes):
            raise ForeignNodeReference(
                f"No node with id {node_id} in {self!r}",
                details={'node_id': node_id}
            )
        return self._nodes[node_id]

    def nodes(self) -> List[Node]:
        return list(self._nodes)

    def leaves(self) -> List[Node]:
        return [n for n in self._nodes if n.kind is NodeKind.LEAF]

    def dependents(self, node: Node) -> List[Node]:
        """Operation nodes consuming ``node``, once per consuming edge."""
        self._check_owned(node)
        return [self._nodes[i] for i in self._dependents[node.id]]

    def sinks(self) -> List[Node]:
        """Nodes without dependents."""
        return [n for n in self._nodes if not self._dependents[n.id]]

    # --- construction ---

    def _append(self, node: Node) -> Node:
        self._nodes.append(node)
        self._dependents.append([])
        if node.name is not None:
            self._by_name.setdefault(node.name, []).append(node.id)
        for i in node.inputs:
            self._dependents[i].append(node.id)
        self._version += 1
        return node

    def add_leaf(self, name: Optional[str] = None, dtype: Any = np.float64, shape: Optional[Iterable[int]] = None) -> Node:
        """Add an input node. ``shape=None`` leaves the shape open until the first value is set."""
        dt = as_dtype(dtype)
        if shape is not None:
            shape = tuple(int(d) for d in shape)
            if any(d <= 0 for d in shape):
                raise ShapeMismatch(
                    f"Shape dimensions must be positive, got {shape}",
                    details={'shape': shape}
                )
        with self.lock:
            node = Node(self, len(self._nodes), NodeKind.LEAF, name=name, dtype=dt, shape=shape)
            self._append(node)
        self.logger.debug(f"Added leaf {node.label} (dtype={dt}, shape={shape})")
        return node

    def add_scalar(self, name: Optional[str] = None, dtype: Any = np.float64) -> Node:
        return self.add_leaf(name, dtype=dtype, shape=())

    def add_tensor(self, name: Optional[str], shape: Iterable[int], dtype: Any = np.float64) -> Node:
        return self.add_leaf(name, dtype=dtype, shape=shape)

    def add_constant(self, value: Any, name: Optional[str] = None, dtype: Any = None) -> Node:
        """Add a leaf whose Value is fixed at creation."""
        if dtype is None:
            dtype = value.dtype if isinstance(value, (Value, np.ndarray)) else np.float64
        dt = as_dtype(dtype)
        val = self._coerce(value, dt, None, name or "constant")
        with self.lock:
            return self._append_constant(val, name)

    def _append_constant(self, val: Value, name: Optional[str] = None) -> Node:
        node = Node(self, len(self._nodes), NodeKind.CONSTANT, name=name, dtype=val.dtype, shape=val.shape)
        node._value = val
        return self._append(node)

    @staticmethod
    def _check_arity(operation: Operation, count: int):
        if count != operation.arity:
            raise ArityMismatch(
                f"{operation.name} expects {operation.arity} inputs, got {count}",
                details={'operation': operation.name, 'expected': operation.arity, 'actual': count}
            )

    def _check_inputs(self, operation: Operation, inputs: Sequence[Node]):
        for i, inp in enumerate(inputs):
            self._check_owned(inp, role=f"input {i} of {operation.name}")
        new_id = len(self._nodes)
        if any(inp.id >= new_id for inp in inputs):
            raise CycleDetected(
                f"{operation.name} would depend on a node not created before it",
                details={'inputs': [inp.id for inp in inputs]}
            )
        dtypes = {inp.dtype for inp in inputs}
        if len(dtypes) > 1:
            raise TypeMismatch(
                f"{operation.name} inputs have mixed dtypes {sorted(str(d) for d in dtypes)}",
                details={'operation': operation.name}
            )

    def add_operation(self, op: Any, *inputs: Node, name: Optional[str] = None) -> Node:
        """
        Add an operation node over existing nodes of this graph.

        Validation happens before any mutation, so a failed call leaves the
        graph unchanged.
        """
        operation: Operation = registry.resolve(op)
        self._check_arity(operation, len(inputs))
        with self.lock:
            self._check_inputs(operation, inputs)
            node = Node(
                self, len(self._nodes), NodeKind.OPERATION, name=name, op=operation,
                inputs=tuple(inp.id for inp in inputs), dtype=inputs[0].dtype
            )
            self._append(node)
        return node

    def apply(self, op: Any, *args: Any, name: Optional[str] = None) -> Node:
        """
        ``add_operation`` where arguments that are not nodes become constants
        of the node arguments' dtype.

        Every argument is checked and converted before the first node is
        added, so a failed call leaves the graph unchanged.
        """
        operation: Operation = registry.resolve(op)
        self._check_arity(operation, len(args))
        nodes = [a for a in args if isinstance(a, Node)]
        if not nodes:
            raise ForeignNodeReference(
                f"{operation.name} needs at least one node of {self!r} among its arguments"
            )
        with self.lock:
            self._check_inputs(operation, nodes)
            dtype = nodes[0].dtype
            values = {
                i: self._coerce(a, dtype, None, f"constant input {i} of {operation.name}")
                for i, a in enumerate(args)
                if not isinstance(a, Node)
            }
            inputs = [self._append_constant(values[i]) if i in values else a for i, a in enumerate(args)]
            return self.add_operation(operation, *inputs, name=name)

    # --- values ---

    @staticmethod
    def _coerce(value: Any, dtype: np.dtype, shape: Optional[Tuple[int, ...]], label: str) -> Value:
        if isinstance(value, Value):
            arr = value.data
        elif isinstance(value, (np.ndarray, np.generic)):
            arr = np.asarray(value)
        elif isinstance(value, (bool, complex)) or value is None:
            raise TypeMismatch(
                f"{label} cannot hold a value of type {type(value).__name__}",
                details={'expected': str(dtype), 'actual': type(value).__name__}
            )
        elif isinstance(value, (int, float, list, tuple)):
            try:
                arr = np.asarray(value)
            except ValueError as e:
                raise ShapeMismatch(f"{label}: ragged value {value!r}") from e
            if arr.dtype.kind not in 'iuf':
                raise TypeMismatch(
                    f"{label} expects numeric data, got {arr.dtype}",
                    details={'expected': str(dtype), 'actual': str(arr.dtype)}
                )
            arr = arr.astype(dtype)
        else:
            raise TypeMismatch(
                f"{label} cannot hold a value of type {type(value).__name__}",
                details={'expected': str(dtype), 'actual': type(value).__name__}
            )

        DTypeValidator(dtype, name=label, error=TypeMismatch).validate(arr)
        ShapeValidator(shape, name=label, error=ShapeMismatch).validate(arr)
        return Value(arr, dtype=dtype)

    def set_value(self, node: Node, value: Any) -> Value:
        """Bind a Value to a leaf. The leaf keeps the shape of its first value."""
        with self.lock:
            self._check_owned(node)
            if node.kind is not NodeKind.LEAF:
                raise NotALeaf(
                    f"Cannot set the value of {node.kind.value} node {node.label}",
                    details={'node_id': node.id}
                )
            expected = node.shape
            if expected is None and node.value is not None:
                expected = node.value.shape
            val = self._coerce(value, node.dtype, expected, node.label)
            if node.shape is None:
                node.shape = val.shape
            node._value = val
        return val

    def value_of(self, node: Node) -> Optional[Value]:
        self._check_owned(node)
        return node.value

    def unset_value(self, node: Node):
        """Drop a leaf's value. Its shape stays fixed."""
        with self.lock:
            self._check_owned(node)
            if node.kind is not NodeKind.LEAF:
                raise NotALeaf(f"Cannot unset {node.kind.value} node {node.label}")
            node._value = None

    def record_value(self, node: Node, value: Optional[Value]):
        """Store a computed Value on an operation node. Used by machines."""
        node._value = value

    # --- lookup and traversal ---

    def lookup_by_name(self, name: str) -> List[Node]:
        return [self._nodes[i] for i in self._by_name.get(name, [])]

    def ancestors(self, nodes: Iterable[Node]) -> Set[int]:
        """Ids of ``nodes`` and everything they depend on."""
        stack = [self._check_owned(n).id for n in nodes]
        seen: Set[int] = set()
        while stack:
            i = stack.pop()
            if i in seen:
                continue
            seen.add(i)
            stack.extend(self._nodes[i].inputs)
        return seen

    def descendants(self, nodes: Iterable[Node]) -> Set[int]:
        """Ids of ``nodes`` and everything depending on them."""
        stack = [self._check_owned(n).id for n in nodes]
        seen: Set[int] = set()
        while stack:
            i = stack.pop()
            if i in seen:
                continue
            seen.add(i)
            stack.extend(self._dependents[i])
        return seen

    def topological_order(self, outputs: Optional[Iterable[Node]] = None) -> List[Node]:
        """
        Kahn's algorithm with ties broken by ascending id.

        With ``outputs`` the order is restricted to their ancestors.
        """
        with self.lock:
            if outputs is None:
                selected = set(range(len(self._nodes)))
            else:
                selected = self.ancestors(outputs)

            indegree = {i: sum(1 for j in self._nodes[i].inputs if j in selected) for i in selected}
            ready = [i for i, d in indegree.items() if d == 0]
            heapq.heapify(ready)

            order: List[int] = []
            while ready:
                i = heapq.heappop(ready)
                order.append(i)
                for d in self._dependents[i]:
                    if d in selected:
                        indegree[d] -= 1
                        if indegree[d] == 0:
                            heapq.heappush(ready, d)

            if len(order) != len(selected):
                raise CycleDetected(
                    "Dependency edges do not form a DAG",
                    details={'unordered': sorted(set(selected) - set(order))}
                )
            return [self._nodes[i] for i in order]

    # --- symbolic gradients ---

    def record_gradient(self, node: Node, gradient_node: Node):
        """Remember ``gradient_node`` as the symbolic gradient of ``node``."""
        self._check_owned(node)
        self._check_owned(gradient_node)
        self._gradient_nodes[node.id] = gradient_node.id

    def gradient_node(self, node: Node) -> Optional[Node]:
        self._check_owned(node)
        gid = self._gradient_nodes.get(node.id)
        return self._nodes[gid] if gid is not None else None

    def gradient_of(self, node: Node) -> Optional[Value]:
        """Value of the symbolic gradient of ``node``; None when not computed."""
        grad_node = self.gradient_node(node)
        return grad_node.value if grad_node is not None else None

    def record_accumulated(self, gradients: Dict[int, Value]):
        """Replace the gradients published by the last graph-walking run."""
        with self.lock:
            self._accumulated = dict(gradients)

    def accumulated_gradient(self, node: Node) -> Optional[Value]:
        """Gradient of ``node`` from the last graph-walking run, if it reached the node."""
        self._check_owned(node)
        return self._accumulated.get(node.id)

    # --- export ---

    def export_nodes(self) -> List[NodeRecord]:
        return [
            NodeRecord(
                id=n.id,
                name=n.name,
                kind=n.kind.value,
                op=n.op.name if n.op is not None else None,
                inputs=n.inputs,
            )
            for n in self._nodes
        ]

    def gradient_edges(self) -> Dict[int, int]:
        """Map from node id to the id of its symbolic gradient node."""
        return dict(self._gradient_nodes)
