"""Grammars shared by the test modules."""

from slr_parser import Grammar

# Dragon-book expression grammar; its LR(0) collection has 12 states.
EXPRESSION_DOCUMENT = {
    "s": "E",
    "v": ["E", "T", "F"],
    "t": ["+", "*", "(", ")", "id"],
    "p": [
        {"left": "E", "right": ["E", "+", "T"]},
        {"left": "E", "right": ["T"]},
        {"left": "T", "right": ["T", "*", "F"]},
        {"left": "T", "right": ["F"]},
        {"left": "F", "right": ["(", "E", ")"]},
        {"left": "F", "right": ["id"]},
    ],
}

# Same language without left recursion; exercises ε productions.
RIGHT_RECURSIVE_TEXT = """
E -> T E'
E' -> + T E' | ε
T -> F T'
T' -> * F T' | ε
F -> ( E ) | id
"""

# Shift/reduce on `b` after reading `a`.
SHIFT_REDUCE_TEXT = """
S -> A b
A -> a | a b
"""

# Two reductions on `$` after reading `a`.
REDUCE_REDUCE_TEXT = """
S -> A | B
A -> a
B -> a
"""

# Ambiguous: two states, each contested on `+` and `*`.
AMBIGUOUS_TEXT = "E -> E + E | E * E | id"

BALANCED_TEXT = "S -> a S b | ε"


def expression_grammar() -> Grammar:
    return Grammar.load(
        EXPRESSION_DOCUMENT["s"],
        EXPRESSION_DOCUMENT["v"],
        EXPRESSION_DOCUMENT["t"],
        [(p["left"], p["right"]) for p in EXPRESSION_DOCUMENT["p"]],
    )
