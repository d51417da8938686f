import json
import os
import tempfile
import unittest
from pathlib import Path

from slr_parser import (
    AugmentationCollision,
    END_MARKER,
    EPSILON,
    Grammar,
    GrammarError,
    GrammarProcessor,
    InvalidGrammar,
    Symbol,
    build_slr_artifacts,
    load_grammar_document,
    load_grammar_file,
    load_grammars,
)
from tests.grammars import EXPRESSION_DOCUMENT, RIGHT_RECURSIVE_TEXT, expression_grammar

EXAMPLE_YAML = Path(__file__).parent / "data" / "grammar_example.yml"


class GrammarLoadTests(unittest.TestCase):
    def test_productions_are_numbered_from_one(self) -> None:
        grammar = expression_grammar()
        self.assertEqual([p.prod_id for p in grammar.productions], [1, 2, 3, 4, 5, 6])
        self.assertEqual(str(grammar.production(1)), "E -> E + T")
        self.assertFalse(grammar.is_augmented)

    def test_symbols_keep_declaration_order(self) -> None:
        grammar = expression_grammar()
        self.assertEqual([t.name for t in grammar.terminals], ["+", "*", "(", ")", "id"])
        self.assertEqual([nt.name for nt in grammar.non_terminals], ["E", "T", "F"])
        self.assertEqual(grammar.start_symbol, Symbol.nonterminal("E"))

    def test_empty_right_side_becomes_epsilon(self) -> None:
        grammar = Grammar.load("S", ["S"], ["a"], [("S", ["a", "S"]), ("S", [])])
        epsilon_production = grammar.production(2)
        self.assertTrue(epsilon_production.is_epsilon)
        self.assertEqual(epsilon_production.rhs, (EPSILON,))
        self.assertEqual(epsilon_production.body, ())
        self.assertEqual(epsilon_production.arity, 0)

    def test_undeclared_symbol_is_rejected(self) -> None:
        with self.assertRaises(InvalidGrammar) as ctx:
            Grammar.load("S", ["S"], ["a"], [("S", ["a", "B"])])
        self.assertIn("B", str(ctx.exception))

    def test_undeclared_left_side_is_rejected(self) -> None:
        with self.assertRaises(InvalidGrammar):
            Grammar.load("S", ["S"], ["a"], [("X", ["a"])])

    def test_start_must_be_a_nonterminal(self) -> None:
        with self.assertRaises(InvalidGrammar):
            Grammar.load("Q", ["S"], ["a"], [("S", ["a"])])

    def test_reserved_names_cannot_be_declared(self) -> None:
        with self.assertRaises(InvalidGrammar):
            Grammar.load("S", ["S"], ["$"], [("S", ["$"])])
        with self.assertRaises(InvalidGrammar):
            Grammar.load("S", ["S", "ε"], ["a"], [("S", ["a"])])

    def test_name_in_both_sets_is_rejected(self) -> None:
        with self.assertRaises(InvalidGrammar):
            Grammar.load("S", ["S", "a"], ["a"], [("S", ["a"])])

    def test_epsilon_must_stand_alone(self) -> None:
        with self.assertRaises(InvalidGrammar):
            Grammar.load("S", ["S"], ["a"], [("S", ["a", "ε"])])

    def test_invalid_grammar_is_a_grammar_error(self) -> None:
        self.assertTrue(issubclass(InvalidGrammar, GrammarError))
        self.assertTrue(issubclass(AugmentationCollision, GrammarError))

    def test_symbol_lookup(self) -> None:
        grammar = expression_grammar()
        self.assertEqual(grammar.symbol("id"), Symbol.terminal("id"))
        self.assertEqual(grammar.symbol("$"), END_MARKER)
        self.assertEqual(grammar.symbol("ε"), EPSILON)
        with self.assertRaises(KeyError):
            grammar.symbol("missing")


class AugmentationTests(unittest.TestCase):
    def test_augment_adds_production_zero(self) -> None:
        augmented = expression_grammar().augment()
        self.assertTrue(augmented.is_augmented)
        start_production = augmented.production(0)
        self.assertEqual(start_production.lhs.name, "E'")
        self.assertEqual(start_production.rhs, (Symbol.nonterminal("E"),))
        self.assertEqual(augmented.start_symbol.name, "E")
        self.assertEqual(len(augmented.productions), 7)

    def test_fresh_name_avoids_declared_names(self) -> None:
        grammar = GrammarProcessor().parse_grammar(RIGHT_RECURSIVE_TEXT)
        augmented = grammar.augment()
        self.assertEqual(augmented.augmented_start.name, "E''")

    def test_augment_is_idempotent(self) -> None:
        augmented = expression_grammar().augment()
        self.assertIs(augmented.augment(), augmented)

    def test_original_grammar_is_unchanged(self) -> None:
        grammar = expression_grammar()
        grammar.augment()
        self.assertEqual(len(grammar.productions), 6)
        self.assertIsNone(grammar.augmented_start)


class DocumentLoaderTests(unittest.TestCase):
    def test_document_round_trip(self) -> None:
        grammar = load_grammar_document(EXPRESSION_DOCUMENT)
        self.assertEqual(grammar, expression_grammar())

    def test_missing_fields(self) -> None:
        with self.assertRaises(InvalidGrammar) as ctx:
            load_grammar_document({"s": "E", "v": ["E"]})
        self.assertIn("t", str(ctx.exception))

    def test_malformed_production(self) -> None:
        document = dict(EXPRESSION_DOCUMENT, p=[{"left": "E"}])
        with self.assertRaises(InvalidGrammar):
            load_grammar_document(document)

    def test_not_a_mapping(self) -> None:
        with self.assertRaises(InvalidGrammar):
            load_grammar_document(["E"])

    def test_epsilon_listed_among_terminals(self) -> None:
        document = dict(EXPRESSION_DOCUMENT, t=["ε"] + EXPRESSION_DOCUMENT["t"])
        grammar = load_grammar_document(document)
        self.assertEqual([t.name for t in grammar.terminals], ["+", "*", "(", ")", "id"])

    def test_defined_start_missing_from_nonterminals(self) -> None:
        document = {"s": "s", "v": ["A"], "t": ["a"],
                    "p": [{"left": "s", "right": ["A"]}, {"left": "A", "right": ["a"]}]}
        grammar = load_grammar_document(document)
        self.assertEqual([nt.name for nt in grammar.non_terminals], ["s", "A"])
        self.assertEqual(grammar.start_symbol, Symbol.nonterminal("s"))

    def test_undefined_start_is_still_rejected(self) -> None:
        with self.assertRaises(InvalidGrammar):
            load_grammar_document(dict(EXPRESSION_DOCUMENT, s="Q"))

    def test_end_marker_listed_among_terminals(self) -> None:
        document = dict(EXPRESSION_DOCUMENT, t=EXPRESSION_DOCUMENT["t"] + ["$"])
        with self.assertRaises(InvalidGrammar):
            load_grammar_document(document)


class TextNotationTests(unittest.TestCase):
    def test_alternatives_and_epsilon(self) -> None:
        grammar = GrammarProcessor().parse_grammar(RIGHT_RECURSIVE_TEXT)
        self.assertEqual(grammar.start_symbol.name, "E")
        self.assertEqual([nt.name for nt in grammar.non_terminals], ["E", "E'", "T", "T'", "F"])
        self.assertEqual([t.name for t in grammar.terminals], ["+", "*", "(", ")", "id"])
        self.assertEqual(len(grammar.productions), 8)
        self.assertTrue(grammar.production(3).is_epsilon)
        self.assertEqual(str(grammar.production(2)), "E' -> + T E'")

    def test_comments_quotes_and_separators(self) -> None:
        text = """
        // statements
        S : 'if' C 'then' S | other ;
        C = cond /* condition */
          | /* empty */
        """
        grammar = GrammarProcessor().parse_grammar(text)
        self.assertEqual([str(p) for p in grammar.productions], [
            "S -> if C then S",
            "S -> other",
            "C -> cond",
            "C -> ε",
        ])
        self.assertEqual([t.name for t in grammar.terminals], ["if", "then", "other", "cond"])

    def test_start_symbol_override(self) -> None:
        grammar = GrammarProcessor().parse_grammar(RIGHT_RECURSIVE_TEXT, "T")
        self.assertEqual(grammar.start_symbol.name, "T")

    def test_empty_text_is_rejected(self) -> None:
        with self.assertRaises(InvalidGrammar):
            GrammarProcessor().parse_grammar("// nothing here\n")

    def test_stray_line_is_rejected(self) -> None:
        with self.assertRaises(InvalidGrammar):
            GrammarProcessor().parse_grammar("a b c\nS -> a")

    def test_quoted_semicolon_is_a_terminal(self) -> None:
        grammar = GrammarProcessor().parse_grammar("S -> id ';' S | id ';'")
        self.assertEqual([str(p) for p in grammar.productions], ["S -> id ; S", "S -> id ;"])
        self.assertEqual([t.name for t in grammar.terminals], ["id", ";"])
        engine = build_slr_artifacts(grammar).engine()
        self.assertTrue(engine.parse(["id", ";", "id", ";"]).success)
        self.assertFalse(engine.parse(["id", "id"]).success)

    def test_quoted_bar_is_a_terminal(self) -> None:
        grammar = GrammarProcessor().parse_grammar("E -> E '|' id | id ; F -> \";\"")
        self.assertEqual([str(p) for p in grammar.productions], ["E -> E | id", "E -> id", "F -> ;"])


class GrammarFileTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def _write(self, name: str, content: str) -> str:
        path = os.path.join(self.tmp.name, name)
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(content)
        return path

    def test_json_file(self) -> None:
        path = self._write("expr.json", json.dumps(EXPRESSION_DOCUMENT))
        self.assertEqual(load_grammar_file(path), expression_grammar())

    def test_json_file_with_start_override(self) -> None:
        path = self._write("expr.json", json.dumps(EXPRESSION_DOCUMENT))
        self.assertEqual(load_grammar_file(path, "T").start_symbol.name, "T")

    def test_text_file(self) -> None:
        path = self._write("expr.cfg", RIGHT_RECURSIVE_TEXT)
        self.assertEqual(len(load_grammar_file(path).productions), 8)

    def test_broken_json(self) -> None:
        path = self._write("broken.json", "{ not json")
        with self.assertRaises(InvalidGrammar):
            load_grammar_file(path)

    def test_missing_file(self) -> None:
        with self.assertRaises(OSError):
            load_grammar_file(os.path.join(self.tmp.name, "absent.json"))

    def test_yaml_file_holds_two_grammars(self) -> None:
        first, second = load_grammars(str(EXAMPLE_YAML))
        self.assertEqual(first.start_symbol.name, "s")
        self.assertEqual([str(p) for p in first.productions], ["s -> A", "A -> a"])
        self.assertEqual(second.start_symbol.name, "E")
        self.assertEqual([t.name for t in second.terminals], ["+", "*", "(", ")", "id"])
        self.assertEqual(second, GrammarProcessor().parse_grammar(RIGHT_RECURSIVE_TEXT))

    def test_yaml_document_index(self) -> None:
        self.assertEqual(load_grammar_file(str(EXAMPLE_YAML)).start_symbol.name, "s")
        self.assertEqual(load_grammar_file(str(EXAMPLE_YAML), index=1).start_symbol.name, "E")
        with self.assertRaises(InvalidGrammar):
            load_grammar_file(str(EXAMPLE_YAML), index=2)

    def test_yaml_start_override_only_touches_chosen_grammar(self) -> None:
        grammar = load_grammar_file(str(EXAMPLE_YAML), "T", index=1)
        self.assertEqual(grammar.start_symbol.name, "T")

    def test_yaml_grammar_parses(self) -> None:
        grammar = load_grammar_file(str(EXAMPLE_YAML), index=1)
        self.assertTrue(build_slr_artifacts(grammar).engine().parse("id + id * id".split()).success)

    def test_broken_yaml(self) -> None:
        path = self._write("broken.yaml", "s: [unclosed\n")
        with self.assertRaises(InvalidGrammar):
            load_grammar_file(path)

    def test_empty_yaml(self) -> None:
        path = self._write("empty.yml", "# nothing\n")
        with self.assertRaises(InvalidGrammar):
            load_grammars(path)

    def test_json_list_of_documents(self) -> None:
        chain = {"s": "s", "v": ["s", "A"], "t": ["a"],
                 "p": [{"left": "s", "right": ["A"]}, {"left": "A", "right": ["a"]}]}
        path = self._write("both.json", json.dumps([chain, EXPRESSION_DOCUMENT]))
        self.assertEqual(len(load_grammars(path)), 2)
        self.assertEqual(load_grammar_file(path, index=1), expression_grammar())

    def test_text_file_holds_one_grammar(self) -> None:
        path = self._write("expr.cfg", RIGHT_RECURSIVE_TEXT)
        with self.assertRaises(InvalidGrammar):
            load_grammar_file(path, index=1)


if __name__ == "__main__":
    unittest.main()
