import unittest

from slr_parser import GrammarConflict, GrammarProcessor, build_slr_artifacts
from slr_visualization import (
    DOTGenerator,
    ErrorMessageFormatter,
    ParseTraceFormatter,
    TextReportFormatter,
    VisualizationConfig,
    VisualizationGenerator,
)
from tests.grammars import AMBIGUOUS_TEXT, expression_grammar


class VisualizationTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.artifacts = build_slr_artifacts(expression_grammar())

    def setUp(self) -> None:
        self.viz = VisualizationGenerator()
        self.engine = self.artifacts.engine()

    def test_table_html_has_one_row_per_state(self) -> None:
        html = self.viz.generate_parsing_tables_html(self.artifacts)
        self.assertEqual(html.count('scope="row"'), 12)
        self.assertIn('<span class="grammar-action-accept">acc</span>', html)
        self.assertIn('<span class="grammar-action-shift">s5</span>', html)
        self.assertIn('<th class="grammar-table-header" scope="col">$</th>', html)
        self.assertNotIn("E&#x27;", html)

    def test_automaton_dot(self) -> None:
        dot = self.viz.generate_automaton_dot(self.artifacts)
        self.assertTrue(dot.startswith('digraph "LR(0) Automaton" {'))
        self.assertIn("state0 [label=\"I0\\n", dot)
        self.assertIn("style=bold", dot)
        self.assertIn('state0 -> state5 [label="id"];', dot)
        edges = [line for line in dot.splitlines() if " -> state" in line]
        self.assertEqual(len(edges), len(self.artifacts.automaton.transitions))

    def test_compact_automaton_labels(self) -> None:
        dot = DOTGenerator(VisualizationConfig(compact_mode=True)).generate_automaton_dot(self.artifacts.automaton)
        self.assertIn('state3 [label="3"];', dot)

    def test_parse_tree_dot(self) -> None:
        tree = self.engine.parse(["id"]).parse_tree
        dot = self.viz.generate_parse_tree_dot(tree, "Tree")
        self.assertTrue(dot.startswith('digraph "Tree" {'))
        self.assertIn('node0 [label="E", shape=ellipse', dot)
        self.assertIn("node0 -> node1;", dot)
        self.assertIn('label="id", shape=box', dot)

    def test_empty_parse_tree_dot(self) -> None:
        dot = self.viz.generate_parse_tree_dot(None)
        self.assertIn("Parse tree is empty", dot)

    def test_trace_html(self) -> None:
        result = self.engine.parse(["id", "+"])
        html = self.viz.generate_trace_html(result.trace)
        self.assertIn('<tr class="shift-step">', html)
        self.assertIn('<tr class="reduce-step">', html)
        self.assertIn('<tr class="error-step">', html)
        self.assertIn("Reduce F -&gt; id", html)

    def test_trace_rows(self) -> None:
        rows = ParseTraceFormatter().trace_rows(self.engine.parse(["id"]).trace)
        self.assertEqual(rows[0], {
            "step": 1,
            "stack": "0",
            "stack_symbols": [],
            "input": ["id", "$"],
            "action": "Shift 5",
        })
        self.assertEqual(rows[-1]["action"], "Accept")
        self.assertEqual(rows[-1]["stack_symbols"], ["E"])

    def test_trace_lines(self) -> None:
        lines = ParseTraceFormatter().trace_lines(self.engine.parse("id + id * id".split()).trace)
        self.assertEqual(len(lines), 14)
        self.assertEqual(lines[0], "   1  stack: []  input: [id + id * id $]  action: Shift 5")
        self.assertTrue(lines[-1].endswith("action: Accept"))

    def test_parse_error_panel(self) -> None:
        result = self.engine.parse(["id", "+"])
        html = ErrorMessageFormatter().format_parse_error(result.error_message, result.error_position, ["id", "+"])
        self.assertIn('<span class="error-position">$</span>', html)
        self.assertIn("Error at token 2", html)

    def test_conflict_report(self) -> None:
        with self.assertRaises(GrammarConflict) as ctx:
            build_slr_artifacts(GrammarProcessor().parse_grammar(AMBIGUOUS_TEXT))
        html = ErrorMessageFormatter().format_conflict_report(ctx.exception.conflicts)
        self.assertIn("Grammar is not SLR(1): 4 conflict(s)", html)
        self.assertEqual(html.count('<div class="conflict-item">'), 4)
        lines = TextReportFormatter().format_conflicts(ctx.exception.conflicts)
        self.assertEqual(lines[0], "grammar is not SLR(1): 4 conflict(s)")
        self.assertEqual(len(lines), 5)

    def test_no_conflicts(self) -> None:
        self.assertIn("No conflicts", ErrorMessageFormatter().format_conflict_report([]))

    def test_first_follow_dict(self) -> None:
        first, follow = self.viz.first_follow_dict(self.artifacts)
        self.assertEqual(sorted(first), ["E", "F", "T"])
        self.assertEqual(first["E"], ["(", "id"])
        self.assertEqual(follow["E"], [")", "+", "$"])
        self.assertEqual(follow["F"], [")", "*", "+", "$"])

    def test_text_report(self) -> None:
        report = TextReportFormatter().format_report(self.artifacts)
        lines = report.splitlines()
        self.assertEqual(lines[0], "grammar:")
        self.assertIn("    (0) E' -> E", lines)
        self.assertIn("  FOLLOW(E) = { ), +, $ }", lines)
        self.assertIn("  I11", lines)
        self.assertIn("action:", lines)
        self.assertIn("goto:", lines)
        action_row = lines[lines.index("action:") + 2]
        self.assertTrue(action_row.startswith("0"))
        self.assertIn("s4", action_row)
        self.assertIn("s5", action_row)


if __name__ == "__main__":
    unittest.main()
