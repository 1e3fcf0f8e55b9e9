"""Tests for the graph-walking machine."""
import pytest
import numpy as np
from graph_engine import Graph, differentiate
from machines import GraphWalkingMachine, MachineState
from utils.exceptions import (
    DomainError,
    EngineClosed,
    ForeignNodeReference,
    GradientUndefined,
    UncomputedInput,
)


def product_graph():
    g = Graph("product")
    x = g.add_scalar("x")
    y = g.add_scalar("y")
    z = g.add_operation("mul", x, y, name="z")
    g.set_value(x, 2.0)
    g.set_value(y, 2.5)
    return g, x, y, z


class TestGraphWalkingMachine:
    """Tests for forward and reverse sweeps."""

    def test_forward_and_gradients(self):
        """Test z = x * y with automatic gradients."""
        g, x, y, z = product_graph()
        with GraphWalkingMachine(g) as machine:
            machine.run()
            assert z.value.item() == 5.0
            assert machine.gradient_of(x).item() == 2.5
            assert machine.gradient_of(y).item() == 2.0
            assert machine.gradient_of(z).item() == 1.0
            assert machine.state is MachineState.RAN

    def test_graph_not_extended(self):
        """Test that automatic differentiation adds no nodes."""
        g, x, y, z = product_graph()
        size = len(g)
        with GraphWalkingMachine(g) as machine:
            machine.run()
        assert len(g) == size

    def test_gradient_before_run(self):
        """Test that nothing is available before the first run."""
        g, x, y, z = product_graph()
        with GraphWalkingMachine(g) as machine:
            assert machine.gradient_of(x) is None

    def test_unreachable_gradient_is_none(self):
        """Test that nodes the outputs do not depend on have no gradient."""
        g, x, y, z = product_graph()
        w = g.add_scalar("w")
        u = g.add_operation("add", w, w)
        g.set_value(w, 1.0)
        with GraphWalkingMachine(g, outputs=[z]) as machine:
            machine.run()
            assert machine.gradient_of(w) is None
            assert machine.gradient_of(u) is None
            assert u.value.item() == 2.0

    def test_sinks_seeded_by_default(self):
        """Test that every sink is an output when none are given."""
        g, x, y, z = product_graph()
        u = g.add_operation("add", x, x)
        with GraphWalkingMachine(g) as machine:
            machine.run()
            # dz/dx + du/dx
            assert machine.gradient_of(x).item() == pytest.approx(4.5)
            assert machine.gradient_of(u).item() == 1.0

    def test_repeated_input_accumulates(self):
        """Test that d(x*x)/dx sums both contributions."""
        g = Graph()
        x = g.add_scalar("x")
        g.add_operation("mul", x, x)
        g.set_value(x, 3.0)
        with GraphWalkingMachine(g) as machine:
            machine.run()
            assert machine.gradient_of(x).item() == 6.0

    def test_gradients_rebuilt_each_run(self):
        """Test that a second run replaces, not adds to, the gradients."""
        g, x, y, z = product_graph()
        with GraphWalkingMachine(g) as machine:
            machine.run()
            machine.run()
            assert machine.gradient_of(x).item() == 2.5
            g.set_value(y, 4.0)
            machine.run()
            assert machine.gradient_of(x).item() == 4.0
            assert z.value.item() == 8.0

    def test_gradients_not_shared(self):
        """Test that nodes receiving the same contribution get separate Values."""
        g = Graph()
        x = g.add_scalar("x")
        y = g.add_scalar("y")
        z = g.add_operation("add", x, y)
        g.set_value(x, 1.0)
        g.set_value(y, 2.0)
        with GraphWalkingMachine(g) as machine:
            machine.run()
            dx, dy, dz = machine.gradient_of(x), machine.gradient_of(y), machine.gradient_of(z)
            assert dx is not dy and dx is not dz
            dx.data[...] = 42.0
            assert machine.gradient_of(y).item() == 1.0
            assert machine.gradient_of(z).item() == 1.0

    def test_node_grad_after_run(self):
        """Test that nodes expose the gradients of the last run."""
        g, x, y, z = product_graph()
        assert x.grad() is None
        with GraphWalkingMachine(g) as machine:
            machine.run()
        assert x.grad().item() == 2.5
        assert y.grad().item() == 2.0

        with GraphWalkingMachine(g, forward_only=True) as machine:
            machine.run()
        assert x.grad() is None

    def test_symbolic_gradient_takes_precedence(self):
        """Test that an evaluated gradient node wins over the walker's accumulator."""
        g, x, y, z = product_graph()
        (dx,) = differentiate(g, z, [x])
        with GraphWalkingMachine(g, outputs=[z]) as machine:
            machine.run()
        assert x.grad() is not None
        assert x.grad() is dx.value

    def test_forward_only(self):
        """Test skipping the reverse sweep."""
        g, x, y, z = product_graph()
        with GraphWalkingMachine(g, forward_only=True) as machine:
            machine.run()
            assert z.value.item() == 5.0
            assert machine.gradient_of(x) is None
            assert machine.gradients() == {}

    def test_tensor_gradients(self):
        """Test gradients of sum(tanh(W @ v)) against the closed form."""
        g = Graph()
        W = g.add_tensor("W", (2, 3))
        v = g.add_tensor("v", (3, 1))
        out = g.add_operation("sum", g.add_operation("tanh", g.add_operation("matmul", W, v)))
        w_val = np.array([[0.1, -0.2, 0.3], [0.4, 0.5, -0.6]])
        v_val = np.array([[1.0], [2.0], [-1.0]])
        g.set_value(W, w_val)
        g.set_value(v, v_val)

        with GraphWalkingMachine(g, outputs=[out]) as machine:
            machine.run()
            d = 1.0 - np.tanh(w_val @ v_val) ** 2
            assert np.allclose(machine.gradient_of(W).data, d @ v_val.T)
            assert np.allclose(machine.gradient_of(v).data, w_val.T @ d)
            assert machine.gradient_of(W).shape == (2, 3)

    def test_evaluates_symbolic_gradient_nodes(self):
        """Test that gradient nodes built symbolically are evaluated like any other."""
        g, x, y, z = product_graph()
        dx, dy = differentiate(g, z, [x, y])
        with GraphWalkingMachine(g, forward_only=True) as machine:
            machine.run()
        assert dx.value.item() == 2.5
        assert dy.value.item() == 2.0


class TestGraphWalkingErrors:
    """Tests for failing runs."""

    def test_no_derivative_rule(self):
        """Test that the reverse sweep rejects comparisons."""
        g = Graph()
        x = g.add_scalar("x")
        y = g.add_scalar("y")
        c = g.add_operation("greater", x, y)
        g.set_value(x, 2.0)
        g.set_value(y, 1.0)
        with GraphWalkingMachine(g) as machine:
            with pytest.raises(GradientUndefined) as exc_info:
                machine.run()
            assert exc_info.value.details['node_id'] == c.id
            assert machine.gradients() == {}

    def test_comparison_forward_only(self):
        """Test that comparisons still evaluate without the reverse sweep."""
        g = Graph()
        x = g.add_scalar("x")
        y = g.add_scalar("y")
        c = g.add_operation("greater", x, y)
        g.set_value(x, 2.0)
        g.set_value(y, 1.0)
        with GraphWalkingMachine(g, forward_only=True) as machine:
            machine.run()
        assert c.value.item() == 1.0

    def test_unset_leaf(self):
        """Test that every leaf needs a value."""
        g = Graph()
        x = g.add_scalar("x")
        g.add_operation("exp", x)
        with GraphWalkingMachine(g) as machine:
            with pytest.raises(UncomputedInput):
                machine.run()

    def test_domain_error(self):
        """Test that a forward domain error aborts the run."""
        g = Graph()
        x = g.add_scalar("x")
        g.add_operation("log", x)
        g.set_value(x, -1.0)
        with GraphWalkingMachine(g) as machine:
            with pytest.raises(DomainError):
                machine.run()

    def test_foreign_output(self):
        """Test outputs from another graph."""
        g, *_ = product_graph()
        other = Graph()
        u = other.add_scalar("u")
        with pytest.raises(ForeignNodeReference):
            GraphWalkingMachine(g, outputs=[u])

    def test_closed(self):
        """Test that a closed machine rejects calls and drops gradients."""
        g, x, y, z = product_graph()
        machine = GraphWalkingMachine(g)
        machine.run()
        machine.close()
        with pytest.raises(EngineClosed):
            machine.gradient_of(x)
        with pytest.raises(EngineClosed):
            machine.run()
        assert machine._gradients == {}
