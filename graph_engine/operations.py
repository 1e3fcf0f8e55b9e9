"""
Operation registry: forward evaluation and local derivative rules.

Every operation pairs a pure ``forward`` over numpy arrays with an optional
gradient rule. A gradient rule is written once against an ``emit(op, *args)``
callback and never touches numbers directly::

    def _mul_gradient(emit, inputs, output, seed, needed):
        a, b = inputs
        return (
            emit(MUL, seed, b) if needed[0] else None,
            emit(MUL, seed, a) if needed[1] else None,
        )

The graph-walking machine calls the rule with Values and an emitter that
evaluates ``op.forward``; the symbolic differentiator calls it with nodes and
an emitter that appends operation nodes to the graph. Both modes therefore
apply exactly the same chain-rule arithmetic. ``needed`` lets the symbolic
differentiator skip contributions to inputs that are off the requested path.
"""
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from utils.logging_config import get_logger
from utils.exceptions import DomainError, GradientUndefined, OperationNotFound
from .value import Value

logger = get_logger(__name__)

Emit = Callable[..., Any]
GradientRule = Callable[[Emit, Sequence[Any], Any, Any, Tuple[bool, ...]], Tuple[Any, ...]]


class Operation:
    """A registered operation with fixed arity."""

    def __init__(
        self,
        name: str,
        arity: int,
        forward: Callable[..., np.ndarray],
        gradient: Optional[GradientRule] = None,
        elementwise: bool = False,
    ):
        self.name = name
        self.arity = arity
        self._forward = forward
        self._gradient = gradient
        self.elementwise = elementwise

    @property
    def differentiable(self) -> bool:
        return self._gradient is not None

    def forward(self, *values: Value) -> Value:
        """Evaluate on input Values. Raises DomainError for invalid inputs."""
        if len(values) != self.arity:
            raise DomainError(
                f"{self.name} expects {self.arity} inputs, got {len(values)}",
                details={'operation': self.name}
            )
        dtypes = {v.dtype for v in values}
        if len(dtypes) > 1:
            raise DomainError(
                f"{self.name} received mixed dtypes {sorted(str(d) for d in dtypes)}",
                details={'operation': self.name}
            )
        if self.elementwise and len({v.shape for v in values}) > 1:
            raise DomainError(
                f"Shape mismatch for {self.name}: {' vs '.join(str(v.shape) for v in values)}",
                details={'operation': self.name, 'shapes': [v.shape for v in values]}
            )

        with np.errstate(all='ignore'):
            out = self._forward(*(v.data for v in values))
        return Value(out, dtype=values[0].dtype)

    def local_gradient(
        self,
        emit: Emit,
        inputs: Sequence[Any],
        output: Any,
        seed: Any,
        needed: Optional[Sequence[bool]] = None,
    ) -> Tuple[Any, ...]:
        """
        Per-input gradient contributions ``seed * d(output)/d(input_i)``.

        ``inputs``, ``output`` and ``seed`` are Values or nodes, matching
        whatever ``emit`` consumes and produces. Slots where ``needed`` is
        False come back as None and nothing is emitted for them.
        """
        if self._gradient is None:
            raise GradientUndefined(
                f"Operation '{self.name}' has no derivative rule",
                details={'operation': self.name}
            )
        needed = (True,) * self.arity if needed is None else tuple(bool(n) for n in needed)
        if not any(needed):
            return (None,) * self.arity

        contributions = tuple(self._gradient(emit, inputs, output, seed, needed))
        if len(contributions) != self.arity or any(
            (c is None) == n for c, n in zip(contributions, needed)
        ):
            raise GradientUndefined(
                f"Derivative rule of '{self.name}' returned {len(contributions)} "
                f"contributions not matching the {self.arity} requested inputs",
                details={'operation': self.name, 'needed': list(needed)}
            )
        return contributions

    def __repr__(self) -> str:
        return f"Operation({self.name!r}, arity={self.arity})"


class OperationRegistry:
    """Name -> Operation lookup shared by both machines."""

    def __init__(self):
        self._registry: Dict[str, Operation] = {}

    def register(self, op: Operation) -> Operation:
        self._registry[op.name] = op
        logger.debug(f"Registered operation {op.name}")
        return op

    def get(self, name: str) -> Operation:
        if name not in self._registry:
            raise OperationNotFound(
                f"Unknown operation: {name}",
                details={'available_operations': self.list_available()}
            )
        return self._registry[name]

    def resolve(self, op: Any) -> Operation:
        """Accept an Operation or a registered name."""
        if isinstance(op, Operation):
            return op
        return self.get(op)

    def list_available(self) -> List[str]:
        return sorted(self._registry)

    def __contains__(self, name: str) -> bool:
        return name in self._registry


registry = OperationRegistry()


def register_operation(name: str, arity: int, gradient: Optional[GradientRule] = None, elementwise: bool = False):
    """Decorator registering a forward function as an operation."""
    def decorator(forward: Callable[..., np.ndarray]) -> Operation:
        return registry.register(Operation(name, arity, forward, gradient, elementwise))
    return decorator


def get_operation(name: str) -> Operation:
    return registry.get(name)


def _require_positive(x: np.ndarray, op: str):
    if np.any(x <= 0):
        raise DomainError(f"{op} requires strictly positive inputs", details={'operation': op})


# --- derivative rules ---
#
# ``needed[i]`` is False when the caller has no use for the contribution of
# input i; binary rules then return None in that slot and emit nothing for it.

def _add_gradient(emit, inputs, output, seed, needed):
    return (seed if needed[0] else None, seed if needed[1] else None)


def _sub_gradient(emit, inputs, output, seed, needed):
    return (seed if needed[0] else None, emit(NEG, seed) if needed[1] else None)


def _mul_gradient(emit, inputs, output, seed, needed):
    a, b = inputs
    return (
        emit(MUL, seed, b) if needed[0] else None,
        emit(MUL, seed, a) if needed[1] else None,
    )


def _div_gradient(emit, inputs, output, seed, needed):
    # d(a/b)/db = -(a/b)/b
    _, b = inputs
    return (
        emit(DIV, seed, b) if needed[0] else None,
        emit(NEG, emit(DIV, emit(MUL, seed, output), b)) if needed[1] else None,
    )


def _neg_gradient(emit, inputs, output, seed, needed):
    return (emit(NEG, seed),)


def _exp_gradient(emit, inputs, output, seed, needed):
    return (emit(MUL, seed, output),)


def _log_gradient(emit, inputs, output, seed, needed):
    return (emit(DIV, seed, inputs[0]),)


def _square_gradient(emit, inputs, output, seed, needed):
    x = inputs[0]
    return (emit(MUL, seed, emit(ADD, x, x)),)


def _sqrt_gradient(emit, inputs, output, seed, needed):
    return (emit(DIV, seed, emit(ADD, output, output)),)


def _tanh_gradient(emit, inputs, output, seed, needed):
    return (emit(MUL, seed, emit(SUB, emit(ONES_LIKE, output), emit(SQUARE, output))),)


def _sigmoid_gradient(emit, inputs, output, seed, needed):
    return (emit(MUL, seed, emit(MUL, output, emit(SUB, emit(ONES_LIKE, output), output))),)


def _relu_gradient(emit, inputs, output, seed, needed):
    return (emit(MUL, seed, emit(HEAVISIDE, inputs[0])),)


def _zero_gradient(emit, inputs, output, seed, needed):
    return tuple(emit(ZEROS_LIKE, x) if n else None for x, n in zip(inputs, needed))


def _sum_gradient(emit, inputs, output, seed, needed):
    return (emit(FILL_LIKE, inputs[0], seed),)


def _fill_like_gradient(emit, inputs, output, seed, needed):
    like, _ = inputs
    return (
        emit(ZEROS_LIKE, like) if needed[0] else None,
        emit(SUM, seed) if needed[1] else None,
    )


def _matmul_gradient(emit, inputs, output, seed, needed):
    a, b = inputs
    return (
        emit(MATMUL, seed, emit(TRANSPOSE, b)) if needed[0] else None,
        emit(MATMUL, emit(TRANSPOSE, a), seed) if needed[1] else None,
    )


def _transpose_gradient(emit, inputs, output, seed, needed):
    return (emit(TRANSPOSE, seed),)


# --- operations ---

@register_operation('add', 2, _add_gradient, elementwise=True)
def ADD(a, b):
    return a + b


@register_operation('sub', 2, _sub_gradient, elementwise=True)
def SUB(a, b):
    return a - b


@register_operation('mul', 2, _mul_gradient, elementwise=True)
def MUL(a, b):
    return a * b


@register_operation('div', 2, _div_gradient, elementwise=True)
def DIV(a, b):
    if np.any(b == 0):
        raise DomainError("Division by zero", details={'operation': 'div'})
    return a / b


@register_operation('neg', 1, _neg_gradient)
def NEG(a):
    return -a


@register_operation('exp', 1, _exp_gradient)
def EXP(a):
    return np.exp(a)


@register_operation('log', 1, _log_gradient)
def LOG(a):
    _require_positive(a, 'log')
    return np.log(a)


@register_operation('square', 1, _square_gradient)
def SQUARE(a):
    return a * a


@register_operation('sqrt', 1, _sqrt_gradient)
def SQRT(a):
    if np.any(a < 0):
        raise DomainError("sqrt requires non-negative inputs", details={'operation': 'sqrt'})
    return np.sqrt(a)


@register_operation('tanh', 1, _tanh_gradient)
def TANH(a):
    return np.tanh(a)


@register_operation('sigmoid', 1, _sigmoid_gradient)
def SIGMOID(a):
    return 1.0 / (1.0 + np.exp(-a))


@register_operation('relu', 1, _relu_gradient)
def RELU(a):
    return np.maximum(a, 0)


@register_operation('heaviside', 1, _zero_gradient)
def HEAVISIDE(a):
    return (a > 0).astype(a.dtype)


@register_operation('sum', 1, _sum_gradient)
def SUM(a):
    return np.sum(a)


@register_operation('fill_like', 2, _fill_like_gradient)
def FILL_LIKE(like, scalar):
    if scalar.ndim != 0:
        raise DomainError(
            f"fill_like requires a scalar fill value, got shape {scalar.shape}",
            details={'operation': 'fill_like'}
        )
    return np.full_like(like, scalar)


@register_operation('matmul', 2, _matmul_gradient)
def MATMUL(a, b):
    if a.ndim != 2 or b.ndim != 2 or a.shape[1] != b.shape[0]:
        raise DomainError(
            f"matmul requires (m, k) @ (k, n) matrices, got {a.shape} @ {b.shape}",
            details={'operation': 'matmul', 'shapes': [a.shape, b.shape]}
        )
    return a @ b


@register_operation('transpose', 1, _transpose_gradient)
def TRANSPOSE(a):
    return a.T


@register_operation('ones_like', 1, _zero_gradient)
def ONES_LIKE(a):
    return np.ones_like(a)


@register_operation('zeros_like', 1, _zero_gradient)
def ZEROS_LIKE(a):
    return np.zeros_like(a)


# Comparisons have no derivative rule.
@register_operation('greater', 2, elementwise=True)
def GREATER(a, b):
    return (a > b).astype(a.dtype)
