"""Tests for DOT export and graph statistics."""
from graph_engine import Graph, differentiate, graph_stats, to_dot
from machines import TapeMachine


def product_graph():
    g = Graph("product")
    x = g.add_scalar("x")
    y = g.add_scalar("y")
    z = g.add_operation("mul", x, y, name="z")
    g.set_value(x, 2.0)
    g.set_value(y, 2.5)
    return g, x, y, z


class TestToDot:
    """Tests for Graphviz export."""

    def test_structure(self):
        """Test nodes and edges in the output."""
        g, x, y, z = product_graph()
        dot = to_dot(g)
        assert dot.startswith('digraph "product" {')
        assert dot.rstrip().endswith("}")
        assert "n0 -> n2" in dot
        assert "n1 -> n2" in dot
        assert 'z\\nmul' in dot

    def test_values(self):
        """Test that values are shown once evaluated."""
        g, x, y, z = product_graph()
        assert "unset" in to_dot(g)
        with TapeMachine(g) as machine:
            machine.run()
        dot = to_dot(g)
        assert "\\n5" in dot
        assert "unset" not in dot
        assert "unset" not in to_dot(g, with_values=False)

    def test_gradient_nodes(self):
        """Test that symbolic gradients are drawn and linked."""
        g, x, y, z = product_graph()
        dx, dy = differentiate(g, z, [x, y])
        dot = to_dot(g)
        assert "style=dashed" in dot
        assert f"n{x.id} -> n{dx.id} [style=dotted" in dot


class TestGraphStats:
    """Tests for graph statistics."""

    def test_empty(self):
        """Test statistics of an empty graph."""
        stats = graph_stats(Graph())
        assert stats['nodes'] == 0
        assert stats['operations'] == {}

    def test_counts(self):
        """Test counts for a small graph."""
        g, x, y, z = product_graph()
        g.add_operation("add", z, x)
        stats = graph_stats(g)
        assert stats['nodes'] == 4
        assert stats['edges'] == 4
        assert stats['leaves'] == 2
        assert stats['max_fan_in'] == 2
        assert stats['max_fan_out'] == 2
        assert stats['operations'] == {'mul': 1, 'add': 1}
