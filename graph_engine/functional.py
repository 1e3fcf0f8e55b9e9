# graph_engine/functional.py
"""Function-style graph builders. Each adds a node to the graph of its first Node argument."""

from typing import Any, Optional

from utils.exceptions import ForeignNodeReference
from .node import Node


def apply(op: Any, *args: Any, name: Optional[str] = None) -> Node:
    """Add ``op`` over ``args``; Python scalars become constants of the graph."""
    anchor = next((a for a in args if isinstance(a, Node)), None)
    if anchor is None:
        raise ForeignNodeReference("At least one argument must be a graph node")
    return anchor._apply(op, *args, name=name)


def add(a, b, name=None):
    return apply('add', a, b, name=name)


def sub(a, b, name=None):
    return apply('sub', a, b, name=name)


def mul(a, b, name=None):
    return apply('mul', a, b, name=name)


def div(a, b, name=None):
    return apply('div', a, b, name=name)


def neg(a, name=None):
    return apply('neg', a, name=name)


def exp(a, name=None):
    return apply('exp', a, name=name)


def log(a, name=None):
    return apply('log', a, name=name)


def square(a, name=None):
    return apply('square', a, name=name)


def sqrt(a, name=None):
    return apply('sqrt', a, name=name)


def tanh(a, name=None):
    return apply('tanh', a, name=name)


def sigmoid(a, name=None):
    return apply('sigmoid', a, name=name)


def relu(a, name=None):
    return apply('relu', a, name=name)


def reduce_sum(a, name=None):
    return apply('sum', a, name=name)


def matmul(a, b, name=None):
    return apply('matmul', a, b, name=name)


def transpose(a, name=None):
    return apply('transpose', a, name=name)


def greater(a, b, name=None):
    return apply('greater', a, b, name=name)
