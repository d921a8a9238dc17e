from __future__ import annotations

import unittest

from workflow_studio.graph import Edge, Node, detect_cycles, validate_connection, would_create_cycle
from workflow_studio.graph.connection import check_connection_rules


def _node(node_id: str, kind: str) -> Node:
    return Node(id=node_id, kind=kind)


def _edge(source: str, target: str) -> Edge:
    return Edge(id=f"edge_{source}_{target}", source=source, target=target)


class ConnectionValidatorTests(unittest.TestCase):
    def test_accepts_simple_forward_connection(self) -> None:
        result = validate_connection(_node("s", "start"), _node("t", "transform"), [])
        self.assertTrue(result.valid)
        self.assertIsNone(result.reason)

    def test_rejects_self_connection(self) -> None:
        transform = _node("t", "transform")
        result = validate_connection(transform, transform, [])
        self.assertFalse(result.valid)
        self.assertEqual(result.reason, "Cannot connect a node to itself")

    def test_rejects_duplicate_connection(self) -> None:
        result = validate_connection(_node("s", "start"), _node("t", "transform"), [_edge("s", "t")])
        self.assertEqual(result.reason, "Connection already exists")

    def test_rejects_outgoing_from_end(self) -> None:
        result = validate_connection(_node("e", "end"), _node("t", "transform"), [])
        self.assertEqual(result.reason, "End nodes cannot have outgoing connections")

    def test_rejects_incoming_to_start(self) -> None:
        result = validate_connection(_node("t", "transform"), _node("s", "start"), [])
        self.assertEqual(result.reason, "Start nodes cannot have incoming connections")

    def test_rejects_connection_that_closes_a_loop(self) -> None:
        edges = [_edge("a", "b"), _edge("b", "c")]
        result = validate_connection(_node("c", "transform"), _node("a", "transform"), edges)
        self.assertFalse(result.valid)
        self.assertEqual(result.reason, "This connection would create an infinite loop")

    def test_rule_order_reports_self_loop_before_kind_rules(self) -> None:
        end = _node("e", "end")
        self.assertEqual(check_connection_rules(end, end, []).reason, "Cannot connect a node to itself")

    def test_would_create_cycle_only_follows_existing_direction(self) -> None:
        edges = [_edge("a", "b"), _edge("b", "c")]
        self.assertTrue(would_create_cycle("c", "a", edges))
        self.assertFalse(would_create_cycle("a", "c", edges))
        self.assertFalse(would_create_cycle("x", "y", []))


class CycleDetectorTests(unittest.TestCase):
    def test_acyclic_graph_has_no_cycle(self) -> None:
        nodes = [_node("a", "start"), _node("b", "transform"), _node("c", "end")]
        result = detect_cycles(nodes, [_edge("a", "b"), _edge("b", "c")])
        self.assertFalse(result.has_cycle)
        self.assertEqual(result.cycle_path, [])

    def test_reports_closed_cycle_path(self) -> None:
        nodes = [_node("a", "transform"), _node("b", "transform"), _node("c", "transform")]
        edges = [_edge("a", "b"), _edge("b", "c"), _edge("c", "a")]
        result = detect_cycles(nodes, edges)
        self.assertTrue(result.has_cycle)
        self.assertEqual(result.cycle_path, ["a", "b", "c", "a"])

    def test_cycle_reached_from_an_acyclic_prefix(self) -> None:
        nodes = [_node("r", "start"), _node("a", "transform"), _node("b", "transform")]
        edges = [_edge("r", "a"), _edge("a", "b"), _edge("b", "a")]
        result = detect_cycles(nodes, edges)
        self.assertEqual(result.cycle_path, ["a", "b", "a"])

    def test_self_loop_is_a_cycle(self) -> None:
        result = detect_cycles([_node("a", "transform")], [_edge("a", "a")])
        self.assertTrue(result.has_cycle)
        self.assertEqual(result.cycle_path, ["a", "a"])

    def test_diamond_is_not_a_cycle(self) -> None:
        nodes = [_node(name, "transform") for name in "abcd"]
        edges = [_edge("a", "b"), _edge("a", "c"), _edge("b", "d"), _edge("c", "d")]
        self.assertFalse(detect_cycles(nodes, edges).has_cycle)

    def test_long_chain_does_not_hit_recursion_limit(self) -> None:
        nodes = [_node(f"n{i}", "transform") for i in range(3000)]
        edges = [_edge(f"n{i}", f"n{i + 1}") for i in range(2999)]
        self.assertFalse(detect_cycles(nodes, edges).has_cycle)


if __name__ == "__main__":
    unittest.main()
