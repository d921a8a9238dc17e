from __future__ import annotations

import unittest

from workflow_studio.graph import Edge, Node, StartConfig, validate_imported_workflow, validate_json, validate_workflow


def _node(node_id: str, kind: str, label: str = "") -> Node:
    return Node(id=node_id, kind=kind, label=label)


def _edge(source: str, target: str) -> Edge:
    return Edge(id=f"edge_{source}_{target}", source=source, target=target)


def _document_node(node_id: str, kind: str, **overrides: object) -> dict[str, object]:
    node: dict[str, object] = {
        "id": node_id,
        "type": kind,
        "position": {"x": 0, "y": 0},
        "data": {"label": kind.title(), "config": {}, "nodeType": kind},
    }
    node.update(overrides)
    return node


class WorkflowValidatorTests(unittest.TestCase):
    def test_empty_workflow_is_invalid(self) -> None:
        result = validate_workflow([], [])
        self.assertFalse(result.valid)
        self.assertEqual(result.errors, ["Workflow is empty. Add at least a Start and End node."])
        self.assertEqual(result.warnings, [])

    def test_linear_workflow_is_clean(self) -> None:
        nodes = [_node("s", "start"), _node("t", "transform"), _node("e", "end")]
        result = validate_workflow(nodes, [_edge("s", "t"), _edge("t", "e")])
        self.assertTrue(result.valid)
        self.assertEqual(result.errors, [])
        self.assertEqual(result.warnings, [])

    def test_missing_start_is_an_error(self) -> None:
        result = validate_workflow([_node("e", "end")], [])
        self.assertFalse(result.valid)
        self.assertIn("Workflow must have at least one Start node", result.errors)

    def test_missing_end_is_only_a_warning(self) -> None:
        result = validate_workflow([_node("s", "start", "Begin")], [])
        self.assertTrue(result.valid)
        self.assertIn(
            "Workflow has no End node. Execution will stop after the last connected node.",
            result.warnings,
        )
        self.assertIn('Start node "Begin" has no outgoing connections', result.warnings)

    def test_cycle_is_rendered_with_labels(self) -> None:
        nodes = [
            _node("s", "start", "S"),
            _node("a", "transform", "A"),
            _node("b", "transform", "B"),
            _node("e", "end", "E"),
        ]
        edges = [_edge("s", "a"), _edge("a", "b"), _edge("b", "a"), _edge("b", "e")]
        result = validate_workflow(nodes, edges)
        self.assertFalse(result.valid)
        self.assertIn("Infinite loop detected: A → B → A", result.errors)

    def test_connectivity_warnings_for_middle_nodes(self) -> None:
        nodes = [
            _node("s", "start", "S"),
            _node("lonely", "transform", "Lonely"),
            _node("dead", "transform", "Dead"),
            _node("orphan", "condition", "Orphan"),
            _node("e", "end", "E"),
        ]
        edges = [_edge("s", "dead"), _edge("orphan", "e")]
        warnings = validate_workflow(nodes, edges).warnings
        self.assertIn('Node "Lonely" is not connected to the workflow', warnings)
        self.assertIn('Node "Dead" has no outgoing connections', warnings)
        self.assertIn('Node "Orphan" has no incoming connections', warnings)

    def test_non_mapping_start_payload_warns(self) -> None:
        start = Node(id="s", kind="start", label="S", config=StartConfig(payload=["not", "a", "dict"]))  # type: ignore[arg-type]
        result = validate_workflow([start, _node("e", "end", "E")], [_edge("s", "e")])
        self.assertTrue(result.valid)
        self.assertIn('Start node "S" has invalid payload configuration', result.warnings)

    def test_end_without_incoming_warns(self) -> None:
        result = validate_workflow([_node("s", "start"), _node("e", "end", "Finish")], [])
        self.assertIn('End node "Finish" has no incoming connections', result.warnings)


class ImportValidatorTests(unittest.TestCase):
    def test_rejects_non_object(self) -> None:
        result = validate_imported_workflow(["nodes"])
        self.assertFalse(result.valid)
        self.assertEqual(result.errors, ["Invalid workflow data: expected an object"])

    def test_requires_node_and_edge_arrays(self) -> None:
        result = validate_imported_workflow({"nodes": {}, "edges": None})
        self.assertIn('Invalid workflow: "nodes" must be an array', result.errors)
        self.assertIn('Invalid workflow: "edges" must be an array', result.errors)

    def test_accepts_well_formed_document(self) -> None:
        document = {
            "nodes": [_document_node("s", "start"), _document_node("e", "end")],
            "edges": [{"id": "edge_s_e", "source": "s", "target": "e"}],
            "viewport": {"x": 0, "y": 0, "zoom": 1},
        }
        result = validate_imported_workflow(document)
        self.assertTrue(result.valid, result.errors)

    def test_collects_every_node_problem(self) -> None:
        document = {
            "nodes": [
                {"type": "start", "position": {"x": 0, "y": 0}, "data": {"nodeType": "start"}},
                _document_node("bad", "loop", data={"nodeType": "loop"}),
                _document_node("p", "end", position={"x": "0", "y": 0}),
                _document_node("d", "end", data={"label": "no type"}),
            ],
            "edges": [],
        }
        errors = validate_imported_workflow(document).errors
        self.assertIn('Node at index 0 is missing "id" field', errors)
        self.assertIn('Node "bad" has invalid type "loop"', errors)
        self.assertIn('Node "p" has invalid position', errors)
        self.assertIn('Node "d" has invalid data structure', errors)

    def test_flags_dangling_edge_references(self) -> None:
        document = {
            "nodes": [_document_node("s", "start")],
            "edges": [
                {"id": "e1", "source": "s", "target": "ghost"},
                {"id": "e2", "source": "nobody", "target": "s"},
                {"source": "s"},
            ],
        }
        errors = validate_imported_workflow(document).errors
        self.assertIn('Edge "e1" references non-existent target node "ghost"', errors)
        self.assertIn('Edge "e2" references non-existent source node "nobody"', errors)
        self.assertIn('Edge at index 2 is missing "id" field', errors)
        self.assertIn('Edge at index 2 is missing "target" field', errors)

    def test_flags_duplicate_ids_and_bad_configs(self) -> None:
        document = {
            "nodes": [
                _document_node("t", "transform"),
                _document_node(
                    "t",
                    "transform",
                    data={"nodeType": "transform", "config": {"operation": "explode"}},
                ),
            ],
            "edges": [],
        }
        errors = validate_imported_workflow(document).errors
        self.assertIn('Duplicate node id "t"', errors)
        self.assertTrue(any("Unsupported transform operation 'explode'" in error for error in errors))

    def test_validate_json_reports_parse_errors(self) -> None:
        self.assertTrue(validate_json('{"nodes": []}').valid)
        result = validate_json("{nope")
        self.assertFalse(result.valid)
        self.assertTrue(result.error.startswith("Invalid JSON"))


if __name__ == "__main__":
    unittest.main()
