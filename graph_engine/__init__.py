from .value import Value
from .node import Node, NodeKind
from .graph import Graph, NodeRecord
from .operations import Operation, OperationRegistry, registry, register_operation, get_operation
from .differentiation import differentiate, grad
from .export import to_dot, graph_stats
from . import functional

__all__ = [
    'Value',
    'Node', 'NodeKind',
    'Graph', 'NodeRecord',
    'Operation', 'OperationRegistry', 'registry', 'register_operation', 'get_operation',
    'differentiate', 'grad',
    'to_dot', 'graph_stats',
    'functional',
]
