"""
SLR(1) Parser Implementation - Grammar Model, Table Construction and Parsing Engine

This module implements the grammar-analysis pipeline for SLR(1) parsing:
grammar modelling and augmentation, FIRST/FOLLOW computation, canonical LR(0)
automaton construction, ACTION/GOTO table generation with conflict detection,
and the table-driven shift-reduce parsing engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple
import json
import logging
import re

import yaml


logger = logging.getLogger(__name__)
trace_logger = logging.getLogger(__name__ + ".trace")

EPSILON_NAME = "ε"
END_MARKER_NAME = "$"
RESERVED_NAMES = (EPSILON_NAME, END_MARKER_NAME)


# --- Error taxonomy ---

class SLRError(Exception):
    """Base class for every error raised by the SLR pipeline."""


class GrammarError(SLRError):
    """Grammar or table construction failed; no usable table exists."""


class InvalidGrammar(GrammarError):
    """The grammar references undeclared symbols or is otherwise malformed."""


class AugmentationCollision(GrammarError):
    """No fresh start symbol could be synthesized for the augmented grammar."""


class GrammarConflict(GrammarError):
    """Two incompatible actions were assigned to one ACTION cell."""

    def __init__(self, conflict: 'Conflict', conflicts: Optional[List['Conflict']] = None):
        self.conflict = conflict
        self.conflicts = list(conflicts) if conflicts else [conflict]
        super().__init__(str(conflict))

    @property
    def state_id(self) -> int:
        return self.conflict.state_id

    @property
    def symbol(self) -> 'Symbol':
        return self.conflict.symbol


class ShiftReduceConflict(GrammarConflict):
    pass


class ReduceReduceConflict(GrammarConflict):
    pass


class ParseSyntaxError(SLRError):
    """No ACTION entry exists for the current state and lookahead."""

    def __init__(self, token: 'Symbol', position: int, state_id: int,
                 stack: Tuple[Tuple[int, Optional['Symbol']], ...] = (),
                 remaining: Tuple['Symbol', ...] = ()):
        self.token = token
        self.position = position
        self.state_id = state_id
        self.stack = stack
        self.remaining = remaining
        super().__init__(
            f"unexpected {token} at position {position} (state {state_id})"
        )


class InternalInconsistency(SLRError):
    """The parser reached a configuration a correctly built table never produces."""


# --- Symbols and productions ---

class SymbolKind(Enum):
    """The closed set of symbol variants."""
    TERMINAL = "terminal"
    NONTERMINAL = "nonterminal"
    EPSILON = "epsilon"
    END = "end"


_KIND_ORDER = {
    SymbolKind.NONTERMINAL: 0,
    SymbolKind.TERMINAL: 1,
    SymbolKind.END: 2,
    SymbolKind.EPSILON: 3,
}


@dataclass(frozen=True)
class Symbol:
    """A grammar symbol; identity is the name within its kind."""
    kind: SymbolKind
    name: str

    @classmethod
    def terminal(cls, name: str) -> 'Symbol':
        return cls(SymbolKind.TERMINAL, name)

    @classmethod
    def nonterminal(cls, name: str) -> 'Symbol':
        return cls(SymbolKind.NONTERMINAL, name)

    @property
    def is_terminal(self) -> bool:
        return self.kind is SymbolKind.TERMINAL

    @property
    def is_nonterminal(self) -> bool:
        return self.kind is SymbolKind.NONTERMINAL

    @property
    def is_epsilon(self) -> bool:
        return self.kind is SymbolKind.EPSILON

    @property
    def is_end(self) -> bool:
        return self.kind is SymbolKind.END

    def __str__(self) -> str:
        return self.name


EPSILON = Symbol(SymbolKind.EPSILON, EPSILON_NAME)
END_MARKER = Symbol(SymbolKind.END, END_MARKER_NAME)


def symbol_sort_key(symbol: Symbol) -> Tuple[int, str]:
    """Stable ordering: nonterminals, terminals, then `$` and `ε`."""
    return (_KIND_ORDER[symbol.kind], symbol.name)


def sorted_symbols(symbols: Iterable[Symbol]) -> List[Symbol]:
    return sorted(symbols, key=symbol_sort_key)


@dataclass(frozen=True)
class Production:
    """A production rule `lhs -> rhs` with its declaration-order id."""
    prod_id: int
    lhs: Symbol
    rhs: Tuple[Symbol, ...]

    @property
    def is_epsilon(self) -> bool:
        return self.rhs == (EPSILON,)

    @property
    def body(self) -> Tuple[Symbol, ...]:
        """The symbols actually recognized; empty for an ε production."""
        if self.is_epsilon:
            return ()
        return self.rhs

    @property
    def arity(self) -> int:
        """Number of stack entries a reduction by this production pops."""
        return len(self.body)

    def rhs_text(self) -> str:
        return " ".join(symbol.name for symbol in self.rhs)

    def __str__(self) -> str:
        return f"{self.lhs} -> {self.rhs_text()}"


# --- Grammar model ---

@dataclass(frozen=True)
class Grammar:
    """
    A validated context-free grammar.

    `non_terminals` and `terminals` keep declaration order. After augmentation
    `augmented_start` names the synthetic start symbol and production 0 is
    `S' -> S`; `start_symbol` always stays the original start symbol.
    """
    start_symbol: Symbol
    non_terminals: Tuple[Symbol, ...]
    terminals: Tuple[Symbol, ...]
    productions: Tuple[Production, ...]
    augmented_start: Optional[Symbol] = None

    @classmethod
    def load(cls,
             start: str,
             non_terminals: Iterable[str],
             terminals: Iterable[str],
             productions: Iterable[Tuple[str, Sequence[str]]]) -> 'Grammar':
        """
        Build a Grammar from symbol names, validating every reference.

        Args:
            start: Name of the start symbol
            non_terminals: Declared nonterminal names (V)
            terminals: Declared terminal names (T)
            productions: (left, right) pairs in declaration order; an empty
                right side or `[ε]` denotes the empty production

        Returns:
            The validated Grammar, productions numbered from 1

        Raises:
            InvalidGrammar: on undeclared or reserved symbols, or start not in V
        """
        v_names = _dedupe(non_terminals, "nonterminal")
        t_names = _dedupe(terminals, "terminal")

        for name in v_names + t_names:
            if name in RESERVED_NAMES:
                raise InvalidGrammar(f"'{name}' is reserved and cannot be declared as a grammar symbol")
        overlap = sorted(set(v_names) & set(t_names))
        if overlap:
            raise InvalidGrammar(f"Symbols declared as both terminal and nonterminal: {overlap}")
        if start not in v_names:
            raise InvalidGrammar(f"Start symbol '{start}' is not a declared nonterminal")

        by_name: Dict[str, Symbol] = {EPSILON_NAME: EPSILON}
        by_name.update((name, Symbol.nonterminal(name)) for name in v_names)
        by_name.update((name, Symbol.terminal(name)) for name in t_names)

        built: List[Production] = []
        for index, (left, right) in enumerate(productions, start=1):
            if left not in v_names:
                raise InvalidGrammar(f"Production {index}: left side '{left}' is not a declared nonterminal")
            right = list(right)
            if not right:
                right = [EPSILON_NAME]
            undeclared = [name for name in right if name not in by_name]
            if undeclared:
                raise InvalidGrammar(
                    f"Production {index} ({left} -> {' '.join(right)}) references undeclared symbols: {undeclared}"
                )
            if EPSILON_NAME in right and len(right) > 1:
                raise InvalidGrammar(
                    f"Production {index} ({left} -> {' '.join(right)}): '{EPSILON_NAME}' must stand alone"
                )
            built.append(Production(index, by_name[left], tuple(by_name[name] for name in right)))

        grammar = cls(
            start_symbol=by_name[start],
            non_terminals=tuple(by_name[name] for name in v_names),
            terminals=tuple(by_name[name] for name in t_names),
            productions=tuple(built),
        )
        logger.debug("Grammar loaded: %d nonterminals, %d terminals, %d productions",
                     len(v_names), len(t_names), len(built))
        return grammar

    @property
    def is_augmented(self) -> bool:
        return self.augmented_start is not None

    def augment(self) -> 'Grammar':
        """
        Return a new Grammar with production 0 `S' -> S` added.

        The fresh name is the start symbol followed by as many primes as needed
        to avoid every declared name. An already augmented grammar is returned
        unchanged.
        """
        if self.is_augmented:
            return self

        taken = {symbol.name for symbol in self.non_terminals + self.terminals}
        taken.update(RESERVED_NAMES)
        fresh_name = None
        candidate = self.start_symbol.name
        for _ in range(len(taken) + 1):
            candidate += "'"
            if candidate not in taken:
                fresh_name = candidate
                break
        if fresh_name is None:
            raise AugmentationCollision(
                f"Could not synthesize a fresh start symbol from '{self.start_symbol}'"
            )

        augmented_start = Symbol.nonterminal(fresh_name)
        start_production = Production(0, augmented_start, (self.start_symbol,))
        return Grammar(
            start_symbol=self.start_symbol,
            non_terminals=(augmented_start,) + self.non_terminals,
            terminals=self.terminals,
            productions=(start_production,) + self.productions,
            augmented_start=augmented_start,
        )

    def production(self, prod_id: int) -> Production:
        for production in self.productions:
            if production.prod_id == prod_id:
                return production
        raise KeyError(f"No production with id {prod_id}")

    def productions_for(self, non_terminal: Symbol) -> List[Production]:
        return [p for p in self.productions if p.lhs == non_terminal]

    def symbol(self, name: str) -> Symbol:
        """Resolve a declared symbol name (or `ε` / `$`) to its Symbol."""
        if name == EPSILON_NAME:
            return EPSILON
        if name == END_MARKER_NAME:
            return END_MARKER
        for symbol in self.non_terminals + self.terminals:
            if symbol.name == name:
                return symbol
        raise KeyError(f"Unknown grammar symbol '{name}'")

    def __str__(self) -> str:
        lines = [f"Start Symbol: {self.start_symbol}"]
        lines.append(f"Terminals: {[t.name for t in self.terminals]}")
        lines.append(f"Non-terminals: {[nt.name for nt in self.non_terminals]}")
        lines.append("Productions:")
        for prod in self.productions:
            lines.append(f"  ({prod.prod_id}) {prod}")
        return "\n".join(lines)


def _dedupe(names: Iterable[str], kind: str) -> List[str]:
    seen: List[str] = []
    for name in names:
        if not isinstance(name, str) or not name:
            raise InvalidGrammar(f"Invalid {kind} name: {name!r}")
        if name not in seen:
            seen.append(name)
    return seen


# --- Grammar loading ---

def load_grammar_document(document: Mapping[str, Any]) -> Grammar:
    """
    Build a Grammar from the structured grammar document.

    The document has four fields: `s` (start symbol), `v` (nonterminals),
    `t` (terminals) and `p` (productions, each with `left` and `right`).
    Documents may list `ε` among the terminals to mark empty right sides;
    that entry is dropped, every other reserved name is rejected. A start
    symbol missing from `v` is declared when some production defines it.
    """
    if not isinstance(document, Mapping):
        raise InvalidGrammar("Grammar document must be a mapping with fields s, v, t, p")
    missing = [key for key in ("s", "v", "t", "p") if key not in document]
    if missing:
        raise InvalidGrammar(f"Grammar document is missing fields: {missing}")

    start = document["s"]
    if not isinstance(start, str):
        raise InvalidGrammar("Field 's' must be a symbol name")
    for key in ("v", "t", "p"):
        if not isinstance(document[key], list):
            raise InvalidGrammar(f"Field '{key}' must be a list")

    productions = []
    for index, entry in enumerate(document["p"], start=1):
        if not isinstance(entry, Mapping) or "left" not in entry or "right" not in entry:
            raise InvalidGrammar(f"Production {index} must have 'left' and 'right' fields")
        right = entry["right"]
        if not isinstance(right, list) or not all(isinstance(name, str) for name in right):
            raise InvalidGrammar(f"Production {index}: 'right' must be a list of symbol names")
        productions.append((entry["left"], right))

    terminals = [name for name in document["t"] if name != EPSILON_NAME]
    if len(terminals) != len(document["t"]):
        logger.debug("Dropped '%s' from the declared terminals", EPSILON_NAME)
    nonterminals = list(document["v"])
    if start not in nonterminals and any(left == start for left, _ in productions):
        logger.debug("Declared start symbol '%s' as a nonterminal", start)
        nonterminals.insert(0, start)
    return Grammar.load(start, nonterminals, terminals, productions)


# A quote only opens a quoted terminal at the start of a word, so primes as in E' stay part of the name.
_GRAMMAR_TEXT_PIECE = re.compile(r"'[^'\n]+'|\"[^\"\n]+\"|\s+|[^\s'\"|;][^\s|;]*|.", re.DOTALL)


def _split_outside_quotes(text: str, separator: str) -> List[str]:
    """Split on a one-character separator, ignoring it inside quoted terminals."""
    parts = []
    current: List[str] = []
    for match in _GRAMMAR_TEXT_PIECE.finditer(text):
        piece = match.group(0)
        if piece == separator:
            parts.append(''.join(current))
            current = []
        else:
            current.append(piece)
    parts.append(''.join(current))
    return parts


class GrammarProcessor:
    """Parses the textual `A -> alpha | beta` grammar notation."""

    EPSILON_SPELLINGS = (EPSILON_NAME, "epsilon", "/* empty */")
    _RULE_START = re.compile(r'^[^\s|]+\s*(?:->|:|=)')
    _RULE = re.compile(r'^\s*([^\s|]+?)\s*(?:->|:|=)\s*(.*)', re.DOTALL)

    def __init__(self):
        self.productions: List[Tuple[str, List[str]]] = []
        self.non_terminals: List[str] = []
        self.terminals: List[str] = []

    def parse_grammar(self, cfg_text: str, start_symbol: Optional[str] = None) -> Grammar:
        """
        Parse grammar text into a validated Grammar.

        Supports formats:
        - A -> alpha | beta
        - A : alpha | beta
        - A = alpha | beta

        Left-hand sides are the nonterminals, every other name on a right
        side is a terminal. The start symbol defaults to the first left side.
        """
        self._reset()
        cfg_text = self._clean_input(cfg_text)
        raw_productions = self._extract_raw_productions(cfg_text)
        self.productions = self._normalize_productions(raw_productions)
        if not self.productions:
            raise InvalidGrammar("No productions found in grammar text")

        self.non_terminals, self.terminals = self._extract_symbols()
        start = start_symbol or self.productions[0][0]
        return Grammar.load(start, self.non_terminals, self.terminals, self.productions)

    def _reset(self):
        self.productions = []
        self.non_terminals = []
        self.terminals = []

    def _clean_input(self, cfg_text: str) -> str:
        """Remove comments and blank lines."""
        cfg_text = re.sub(r'//.*$', '', cfg_text, flags=re.MULTILINE)
        cfg_text = re.sub(r'/\*(?! empty \*/).*?\*/', '', cfg_text, flags=re.DOTALL)
        lines = [line.strip() for line in cfg_text.split('\n')]
        return '\n'.join(line for line in lines if line)

    def _extract_raw_productions(self, cfg_text: str) -> List[str]:
        """Group lines into one string per rule, joining `|` continuations."""
        productions = []
        blocks = _split_outside_quotes(cfg_text, ';')

        for block in blocks:
            current = ""
            for line in block.strip().split('\n'):
                line = line.strip()
                if not line:
                    continue
                if self._RULE_START.match(line):
                    if current:
                        productions.append(current)
                    current = line
                elif current:
                    current += ' ' + line
                else:
                    raise InvalidGrammar(f"Cannot parse grammar line: '{line}'")
            if current:
                productions.append(current)

        return productions

    def _normalize_productions(self, raw_productions: List[str]) -> List[Tuple[str, List[str]]]:
        productions = []
        for raw_prod in raw_productions:
            match = self._RULE.match(raw_prod)
            if not match:
                raise InvalidGrammar(f"Cannot parse production: '{raw_prod}'")
            lhs = match.group(1).strip()
            for alt in _split_outside_quotes(match.group(2), '|'):
                alt = alt.strip()
                if not alt or alt in self.EPSILON_SPELLINGS:
                    productions.append((lhs, [EPSILON_NAME]))
                else:
                    productions.append((lhs, self._parse_symbols(alt)))
        return productions

    def _parse_symbols(self, rhs_text: str) -> List[str]:
        """Split a right side on whitespace, unquoting 'x' and "x" terminals."""
        symbols = []
        for match in re.finditer(r"'([^']+)'|\"([^\"]+)\"|(\S+)", rhs_text):
            symbols.append(next(group for group in match.groups() if group is not None))
        return [EPSILON_NAME if s == "epsilon" else s for s in symbols]

    def _extract_symbols(self) -> Tuple[List[str], List[str]]:
        """Left sides are nonterminals; remaining right-side names are terminals."""
        non_terminals: List[str] = []
        for lhs, _ in self.productions:
            if lhs not in non_terminals:
                non_terminals.append(lhs)

        terminals: List[str] = []
        for _, rhs in self.productions:
            for symbol in rhs:
                if symbol != EPSILON_NAME and symbol not in non_terminals and symbol not in terminals:
                    terminals.append(symbol)
        return non_terminals, terminals


YAML_SUFFIXES = (".yml", ".yaml")


def _read_grammar_file(path: str) -> Tuple[str, Optional[List[Any]]]:
    """
    Read a grammar file. Returns the text and, for `.json` and YAML files, the
    decoded documents; `None` marks grammar text.
    """
    with open(path, encoding="utf-8") as handle:
        content = handle.read()

    suffix = str(path).lower()
    if suffix.endswith(YAML_SUFFIXES):
        try:
            documents = [doc for doc in yaml.safe_load_all(content) if doc is not None]
        except yaml.YAMLError as e:
            raise InvalidGrammar(f"Grammar file {path} is not valid YAML: {e}") from e
    elif suffix.endswith(".json"):
        try:
            decoded = json.loads(content)
        except json.JSONDecodeError as e:
            raise InvalidGrammar(f"Grammar file {path} is not valid JSON: {e}") from e
        documents = decoded if isinstance(decoded, list) else [decoded]
    else:
        return content, None

    if not documents:
        raise InvalidGrammar(f"Grammar file {path} contains no grammar document")
    return content, documents


def _with_start(document: Any, start_symbol: Optional[str]) -> Any:
    if start_symbol and isinstance(document, Mapping):
        return dict(document, s=start_symbol)
    return document


def load_grammars(path: str, start_symbol: Optional[str] = None) -> List[Grammar]:
    """
    Load every grammar in a file.

    `.json` files hold one document or a list of them, `.yml` / `.yaml` files
    one document per `---` section; any other file is grammar text and yields
    a single grammar. `start_symbol` overrides each grammar's start symbol.
    """
    content, documents = _read_grammar_file(path)
    if documents is None:
        return [GrammarProcessor().parse_grammar(content, start_symbol)]
    return [load_grammar_document(_with_start(doc, start_symbol)) for doc in documents]


def load_grammar_file(path: str, start_symbol: Optional[str] = None, index: int = 0) -> Grammar:
    """
    Load one grammar from a file: document `index` (0-based) of a `.json` or
    YAML file, or the grammar text of any other file. `start_symbol`
    overrides the file's start symbol.
    """
    content, documents = _read_grammar_file(path)
    if documents is None:
        if index != 0:
            raise InvalidGrammar(f"Grammar text file {path} holds a single grammar, no index {index}")
        grammar = GrammarProcessor().parse_grammar(content, start_symbol)
    else:
        if not 0 <= index < len(documents):
            raise InvalidGrammar(f"Grammar file {path} holds {len(documents)} grammar(s), no index {index}")
        grammar = load_grammar_document(_with_start(documents[index], start_symbol))

    logger.info("Loaded grammar from %s (start symbol %s)", path, grammar.start_symbol)
    return grammar


# --- FIRST / FOLLOW ---

class FirstFollowComputer:
    """
    Computes FIRST sets for all symbols and FOLLOW sets for all nonterminals.

    Both are computed eagerly as fixed points over working dictionaries owned
    by the constructor call, then frozen for the lifetime of the computer.
    """

    def __init__(self, grammar: Grammar):
        self.grammar = grammar
        self._first = self._compute_first_sets()
        self._follow = self._compute_follow_sets()

    @property
    def first_sets(self) -> Mapping[Symbol, FrozenSet[Symbol]]:
        return MappingProxyType(self._first)

    @property
    def follow_sets(self) -> Mapping[Symbol, FrozenSet[Symbol]]:
        return MappingProxyType(self._follow)

    def first(self, symbol: Symbol) -> FrozenSet[Symbol]:
        """FIRST(symbol): terminals and possibly ε."""
        return self._first[symbol]

    def follow(self, non_terminal: Symbol) -> FrozenSet[Symbol]:
        """FOLLOW(non_terminal): terminals and possibly `$`."""
        return self._follow[non_terminal]

    def first_of_sequence(self, symbols: Sequence[Symbol]) -> FrozenSet[Symbol]:
        return frozenset(_first_of_sequence(symbols, self._first))

    def _compute_first_sets(self) -> Dict[Symbol, FrozenSet[Symbol]]:
        """
        FIRST(t) = {t}; FIRST(A) grows by FIRST(Y1 ... Yk) for every
        production A -> Y1 ... Yk until no set changes.
        """
        first: Dict[Symbol, set] = {EPSILON: {EPSILON}, END_MARKER: {END_MARKER}}
        for terminal in self.grammar.terminals:
            first[terminal] = {terminal}
        for nt in self.grammar.non_terminals:
            first[nt] = set()

        changed = True
        while changed:
            changed = False
            for production in self.grammar.productions:
                target = first[production.lhs]
                before = len(target)
                target.update(_first_of_sequence(production.rhs, first))
                if len(target) > before:
                    changed = True

        return {symbol: frozenset(values) for symbol, values in first.items()}

    def _compute_follow_sets(self) -> Dict[Symbol, FrozenSet[Symbol]]:
        """
        FOLLOW(S) contains `$`; for B -> α A β, FOLLOW(A) grows by
        FIRST(β) - {ε}, and by FOLLOW(B) when β is empty or nullable.
        """
        follow: Dict[Symbol, set] = {nt: set() for nt in self.grammar.non_terminals}
        follow[self.grammar.start_symbol].add(END_MARKER)
        if self.grammar.augmented_start is not None:
            follow[self.grammar.augmented_start].add(END_MARKER)

        changed = True
        while changed:
            changed = False
            for production in self.grammar.productions:
                body = production.body
                for i, symbol in enumerate(body):
                    if not symbol.is_nonterminal:
                        continue
                    first_beta = _first_of_sequence(body[i + 1:], self._first)
                    target = follow[symbol]
                    before = len(target)
                    target.update(first_beta - {EPSILON})
                    if EPSILON in first_beta:
                        target.update(follow[production.lhs])
                    if len(target) > before:
                        changed = True

        return {symbol: frozenset(values) for symbol, values in follow.items()}


def _first_of_sequence(symbols: Sequence[Symbol], first: Mapping[Symbol, Iterable[Symbol]]) -> set:
    """FIRST(X1 X2 ... Xn); contains ε only if every Xi is nullable."""
    result = set()
    for symbol in symbols:
        symbol_first = first[symbol]
        result.update(s for s in symbol_first if s != EPSILON)
        if EPSILON not in symbol_first:
            return result
    result.add(EPSILON)
    return result


# --- LR(0) automaton ---

@dataclass(frozen=True)
class LR0Item:
    """A production with a dot marking how much of it has been recognized."""
    production: Production
    dot_position: int

    @property
    def prod_id(self) -> int:
        return self.production.prod_id

    def is_complete(self) -> bool:
        return self.dot_position >= len(self.production.body)

    def next_symbol(self) -> Optional[Symbol]:
        if self.is_complete():
            return None
        return self.production.body[self.dot_position]

    def advance(self) -> 'LR0Item':
        return LR0Item(self.production, self.dot_position + 1)

    def sort_key(self) -> Tuple[int, int]:
        return (self.production.prod_id, self.dot_position)

    def __str__(self) -> str:
        body = [symbol.name for symbol in self.production.body]
        body.insert(self.dot_position, "•")
        return f"{self.production.lhs} -> {' '.join(body)}"


ItemSet = FrozenSet[LR0Item]


def sorted_items(items: Iterable[LR0Item]) -> List[LR0Item]:
    return sorted(items, key=LR0Item.sort_key)


@dataclass(frozen=True)
class LR0State:
    """An item set together with the state id it was discovered under."""
    state_id: int
    items: ItemSet

    def __str__(self) -> str:
        items_str = "\n  ".join(str(item) for item in sorted_items(self.items))
        return f"State {self.state_id}:\n  {items_str}"


@dataclass(frozen=True)
class LR0Automaton:
    """The canonical LR(0) collection: states indexed by id plus the goto relation."""
    states: Tuple[LR0State, ...]
    transitions: Mapping[Tuple[int, Symbol], int]
    start_state_id: int = 0

    def target(self, state_id: int, symbol: Symbol) -> Optional[int]:
        return self.transitions.get((state_id, symbol))

    def __str__(self) -> str:
        lines = [f"LR(0) Automaton with {len(self.states)} states"]
        for state in self.states:
            lines.append(str(state))
        lines.append("Transitions:")
        for (state_id, symbol), target_id in _sorted_cells(self.transitions):
            lines.append(f"  GOTO({state_id}, {symbol}) = {target_id}")
        return "\n".join(lines)


class LR0ItemSetBuilder:
    """Builds LR(0) item sets and the canonical collection for an augmented grammar."""

    def __init__(self, grammar: Grammar):
        self.grammar = grammar.augment()
        self._productions_by_lhs: Dict[Symbol, List[Production]] = {}
        for production in self.grammar.productions:
            self._productions_by_lhs.setdefault(production.lhs, []).append(production)

    def closure(self, items: Iterable[LR0Item]) -> ItemSet:
        """
        Close an item set: for every item with the dot before a nonterminal B,
        add B -> •γ for every production of B, until nothing new appears.
        """
        closure_items = set(items)
        worklist = list(closure_items)

        while worklist:
            item = worklist.pop()
            next_symbol = item.next_symbol()
            if next_symbol is None or not next_symbol.is_nonterminal:
                continue
            for production in self._productions_by_lhs.get(next_symbol, []):
                new_item = LR0Item(production, 0)
                if new_item not in closure_items:
                    closure_items.add(new_item)
                    worklist.append(new_item)

        return frozenset(closure_items)

    def goto(self, items: Iterable[LR0Item], symbol: Symbol) -> ItemSet:
        """
        GOTO(I, X): advance the dot over X in every item of I that has X after
        the dot, then close the result. Empty when no item has X after the dot.
        """
        moved = {item.advance() for item in items if item.next_symbol() == symbol}
        if not moved:
            return frozenset()
        return self.closure(moved)

    def build_automaton(self) -> LR0Automaton:
        """
        Build the canonical collection starting from closure({S' -> •S}).

        Symbols are explored in the order they first appear after a dot in the
        sorted items of each state, so state numbering is deterministic.
        """
        start_production = self.grammar.production(0)
        initial = self.closure([LR0Item(start_production, 0)])

        states: List[LR0State] = [LR0State(0, initial)]
        state_map: Dict[ItemSet, int] = {initial: 0}
        transitions: Dict[Tuple[int, Symbol], int] = {}
        worklist = [0]

        while worklist:
            current_state_id = worklist.pop(0)
            current = states[current_state_id]

            for symbol in self._symbols_after_dot(current.items):
                goto_items = self.goto(current.items, symbol)
                if not goto_items:
                    continue
                target_id = state_map.get(goto_items)
                if target_id is None:
                    target_id = len(states)
                    states.append(LR0State(target_id, goto_items))
                    state_map[goto_items] = target_id
                    worklist.append(target_id)
                transitions[(current_state_id, symbol)] = target_id

        logger.debug("LR(0) automaton built: %d states, %d transitions",
                     len(states), len(transitions))
        return LR0Automaton(
            states=tuple(states),
            transitions=MappingProxyType(transitions),
            start_state_id=0,
        )

    def _symbols_after_dot(self, items: ItemSet) -> List[Symbol]:
        symbols: List[Symbol] = []
        for item in sorted_items(items):
            next_symbol = item.next_symbol()
            if next_symbol is not None and next_symbol not in symbols:
                symbols.append(next_symbol)
        return symbols


# --- ACTION / GOTO tables ---

class ActionType(Enum):
    """Enumeration of SLR parsing actions."""
    SHIFT = "shift"
    REDUCE = "reduce"
    ACCEPT = "accept"


@dataclass(frozen=True)
class ParseAction:
    """A single ACTION table entry: shift to a state, reduce by a production, or accept."""
    action_type: ActionType
    value: Optional[int] = None  # State ID for shift, production ID for reduce

    @classmethod
    def shift(cls, state_id: int) -> 'ParseAction':
        return cls(ActionType.SHIFT, state_id)

    @classmethod
    def reduce(cls, prod_id: int) -> 'ParseAction':
        return cls(ActionType.REDUCE, prod_id)

    @classmethod
    def accept(cls) -> 'ParseAction':
        return cls(ActionType.ACCEPT)

    def short(self) -> str:
        """Compact table notation: s5, r3, acc."""
        if self.action_type == ActionType.SHIFT:
            return f"s{self.value}"
        if self.action_type == ActionType.REDUCE:
            return f"r{self.value}"
        return "acc"

    def describe(self, grammar: Grammar) -> str:
        """Trace notation: `Shift 5`, `Reduce E -> T E'`, `Accept`."""
        if self.action_type == ActionType.SHIFT:
            return f"Shift {self.value}"
        if self.action_type == ActionType.REDUCE:
            return f"Reduce {grammar.production(self.value)}"
        return "Accept"

    def __str__(self) -> str:
        if self.action_type == ActionType.ACCEPT:
            return "accept"
        return f"{self.action_type.value} {self.value}"


@dataclass(frozen=True)
class Conflict:
    """Two incompatible actions competing for one ACTION cell."""
    state_id: int
    symbol: Symbol
    conflict_type: str  # "shift/reduce" or "reduce/reduce"
    existing: ParseAction
    incoming: ParseAction
    description: str

    @property
    def actions(self) -> List[ParseAction]:
        return [self.existing, self.incoming]

    def __str__(self) -> str:
        return (f"{self.conflict_type} conflict in state {self.state_id} "
                f"on symbol '{self.symbol}': {self.description}")


@dataclass(frozen=True)
class ParsingTables:
    """The SLR(1) ACTION and GOTO tables. Both mappings are read-only."""
    action_table: Mapping[Tuple[int, Symbol], ParseAction]
    goto_table: Mapping[Tuple[int, Symbol], int]
    state_count: int

    def action(self, state_id: int, terminal: Symbol) -> Optional[ParseAction]:
        return self.action_table.get((state_id, terminal))

    def goto(self, state_id: int, non_terminal: Symbol) -> Optional[int]:
        return self.goto_table.get((state_id, non_terminal))

    def expected_symbols(self, state_id: int) -> List[Symbol]:
        """Terminals (and `$`) that have an ACTION entry in the given state."""
        return sorted_symbols(symbol for (state, symbol) in self.action_table if state == state_id)

    def __str__(self) -> str:
        lines = ["Parsing Tables:", "", "Action Table:"]
        for (state, terminal), action in _sorted_cells(self.action_table):
            lines.append(f"  ACTION[{state}, {terminal}] = {action.short()}")
        lines.extend(["", "Goto Table:"])
        for (state, non_terminal), target in _sorted_cells(self.goto_table):
            lines.append(f"  GOTO[{state}, {non_terminal}] = {target}")
        return "\n".join(lines)


def _sorted_cells(table: Mapping[Tuple[int, Symbol], Any]) -> List[Tuple[Tuple[int, Symbol], Any]]:
    return sorted(table.items(), key=lambda entry: (entry[0][0], symbol_sort_key(entry[0][1])))


class SLRTableGenerator:
    """Generates SLR(1) ACTION/GOTO tables from an LR(0) automaton and FOLLOW sets."""

    def __init__(self, grammar: Grammar, automaton: LR0Automaton, first_follow: FirstFollowComputer):
        self.grammar = grammar.augment()
        self.automaton = automaton
        self.first_follow = first_follow
        self.conflicts: List[Conflict] = []

    def generate_parsing_tables(self) -> ParsingTables:
        """
        Generate both tables, or fail as a whole if any cell is contested.

        Raises:
            ShiftReduceConflict: a shift competes with a reduce (or another shift)
            ReduceReduceConflict: two reductions (or reduce and accept) compete
        """
        action_table: Dict[Tuple[int, Symbol], ParseAction] = {}
        goto_table: Dict[Tuple[int, Symbol], int] = {}
        self.conflicts = []

        for state in self.automaton.states:
            state_id = state.state_id
            for item in sorted_items(state.items):
                production = item.production
                next_symbol = item.next_symbol()

                if next_symbol is not None:
                    if next_symbol.is_terminal:
                        target = self.automaton.target(state_id, next_symbol)
                        self._add_action(action_table, state_id, next_symbol, ParseAction.shift(target))
                    continue

                if production.lhs == self.grammar.augmented_start:
                    self._add_action(action_table, state_id, END_MARKER, ParseAction.accept())
                    continue

                for terminal in sorted_symbols(self.first_follow.follow(production.lhs)):
                    self._add_action(action_table, state_id, terminal, ParseAction.reduce(production.prod_id))

        for (state_id, symbol), target in self.automaton.transitions.items():
            if symbol.is_nonterminal:
                goto_table[(state_id, symbol)] = target

        if self.conflicts:
            for conflict in self.conflicts:
                logger.warning("%s", conflict)
            first = self.conflicts[0]
            if first.conflict_type == "shift/reduce":
                raise ShiftReduceConflict(first, self.conflicts)
            raise ReduceReduceConflict(first, self.conflicts)

        logger.debug("SLR tables built: %d action entries, %d goto entries",
                     len(action_table), len(goto_table))
        return ParsingTables(
            action_table=MappingProxyType(action_table),
            goto_table=MappingProxyType(goto_table),
            state_count=len(self.automaton.states),
        )

    def _add_action(self, table: Dict[Tuple[int, Symbol], ParseAction],
                    state_id: int, symbol: Symbol, action: ParseAction):
        """Record an action, or a Conflict if the cell already holds a different one."""
        key = (state_id, symbol)
        existing = table.get(key)
        if existing is None:
            table[key] = action
            return
        if existing == action:
            return

        kinds = {existing.action_type, action.action_type}
        if ActionType.SHIFT in kinds:
            conflict_type = "shift/reduce"
        else:
            conflict_type = "reduce/reduce"
        description = (f"{existing.describe(self.grammar)} conflicts with "
                       f"{action.describe(self.grammar)}")
        self.conflicts.append(Conflict(
            state_id=state_id,
            symbol=symbol,
            conflict_type=conflict_type,
            existing=existing,
            incoming=action,
            description=description,
        ))


# --- Parsing engine ---

@dataclass
class ParseTreeNode:
    """Represents a node in the parse tree."""
    label: str
    children: List['ParseTreeNode'] = field(default_factory=list)
    is_terminal: bool = False
    position: int = -1  # Input position for terminal leaves

    def __str__(self) -> str:
        if self.is_terminal:
            return f"'{self.label}'"
        return f"{self.label}({', '.join(str(child) for child in self.children)})"


StackEntry = Tuple[int, Optional[Symbol]]


@dataclass(frozen=True)
class ParseStep:
    """One immutable trace entry of a parse run."""
    step_number: int
    stack: Tuple[StackEntry, ...]  # Stack before the action
    remaining_input: Tuple[Symbol, ...]  # Lookahead first, ending with $
    action: Optional[ParseAction]  # None for the error entry
    result_stack: Tuple[StackEntry, ...]
    description: str
    production_used: Optional[Production] = None

    @property
    def stack_symbols(self) -> List[Symbol]:
        return [symbol for _, symbol in self.stack if symbol is not None]

    @property
    def stack_states(self) -> List[int]:
        return [state for state, _ in self.stack]

    def stack_text(self) -> str:
        """Concatenated stack notation like `0 id 5 + 6`."""
        parts = []
        for state, symbol in self.stack:
            if symbol is not None:
                parts.append(symbol.name)
            parts.append(str(state))
        return " ".join(parts)

    def input_text(self) -> str:
        return " ".join(symbol.name for symbol in self.remaining_input)

    def __str__(self) -> str:
        symbols = " ".join(symbol.name for symbol in self.stack_symbols)
        return f"Step {self.step_number}: Stack=[{symbols}] Input=[{self.input_text()}] Action={self.description}"


class ParseOutcome(Enum):
    ACCEPTED = "accepted"
    SYNTAX_ERROR = "syntax_error"


@dataclass
class ParseResult:
    """The result of one parse run, including its full trace."""
    outcome: ParseOutcome
    trace: List[ParseStep] = field(default_factory=list)
    parse_tree: Optional[ParseTreeNode] = None
    error: Optional[ParseSyntaxError] = None

    @property
    def success(self) -> bool:
        return self.outcome == ParseOutcome.ACCEPTED

    @property
    def error_message(self) -> str:
        return str(self.error) if self.error else ""

    @property
    def error_position(self) -> int:
        return self.error.position if self.error else -1

    def raise_for_error(self):
        if self.error is not None:
            raise self.error

    def __str__(self) -> str:
        if self.success:
            return f"Parse successful. Tree: {self.parse_tree}"
        return f"Parse failed: {self.error_message}"


class SLRParsingEngine:
    """
    Table-driven shift-reduce parser.

    The engine only reads its tables; every call to `parse` owns its own stack,
    cursor and trace, so one engine can serve any number of token streams.
    """

    def __init__(self, grammar: Grammar, parsing_tables: ParsingTables):
        self.grammar = grammar.augment()
        self.parsing_tables = parsing_tables

    def parse(self, tokens: Sequence[str]) -> ParseResult:
        """
        Parse a sequence of terminal names. The end marker `$` is appended
        unless the sequence already ends with it.

        Returns:
            ParseResult; a syntax error is reported in the result, not raised

        Raises:
            InternalInconsistency: stack underflow or missing GOTO on reduce
        """
        names = list(tokens)
        if names and names[-1] == END_MARKER_NAME:
            names.pop()
        input_buffer = [Symbol.terminal(name) for name in names] + [END_MARKER]

        stack: List[StackEntry] = [(0, None)]
        nodes: List[ParseTreeNode] = []
        trace: List[ParseStep] = []
        cursor = 0

        while True:
            current_state = stack[-1][0]
            lookahead = input_buffer[cursor]
            action = self.parsing_tables.action(current_state, lookahead)
            before = tuple(stack)
            remaining = tuple(input_buffer[cursor:])

            if action is None:
                error = ParseSyntaxError(lookahead, cursor, current_state, before, remaining)
                trace.append(self._record(trace, before, remaining, None, before,
                                          f"Error: unexpected {lookahead} at state {current_state}"))
                logger.debug("Syntax error: %s", error)
                return ParseResult(ParseOutcome.SYNTAX_ERROR, trace=trace, error=error)

            if action.action_type == ActionType.SHIFT:
                stack.append((action.value, lookahead))
                nodes.append(ParseTreeNode(label=lookahead.name, is_terminal=True, position=cursor))
                cursor += 1
                trace.append(self._record(trace, before, remaining, action, tuple(stack),
                                          action.describe(self.grammar)))

            elif action.action_type == ActionType.REDUCE:
                production = self.grammar.production(action.value)
                arity = production.arity
                if len(stack) - 1 < arity:
                    raise InternalInconsistency(
                        f"Stack underflow reducing by {production}: "
                        f"{len(stack) - 1} symbols on stack, {arity} required"
                    )

                children = nodes[len(nodes) - arity:] if arity else []
                del stack[len(stack) - arity:]
                del nodes[len(nodes) - arity:]
                if production.is_epsilon:
                    children = [ParseTreeNode(label=EPSILON_NAME, is_terminal=True)]

                exposed_state = stack[-1][0]
                next_state = self.parsing_tables.goto(exposed_state, production.lhs)
                if next_state is None:
                    raise InternalInconsistency(
                        f"No GOTO entry for state {exposed_state} on {production.lhs}"
                    )
                stack.append((next_state, production.lhs))
                nodes.append(ParseTreeNode(label=production.lhs.name, children=children))
                trace.append(self._record(trace, before, remaining, action, tuple(stack),
                                          action.describe(self.grammar), production))

            else:
                trace.append(self._record(trace, before, remaining, action, before,
                                          action.describe(self.grammar)))
                if len(nodes) != 1:
                    raise InternalInconsistency(
                        f"Parse stack should hold exactly 1 node at accept, holds {len(nodes)}"
                    )
                return ParseResult(ParseOutcome.ACCEPTED, trace=trace, parse_tree=nodes[0])

    def _record(self, trace: List[ParseStep], stack: Tuple[StackEntry, ...],
                remaining: Tuple[Symbol, ...], action: Optional[ParseAction],
                result_stack: Tuple[StackEntry, ...], description: str,
                production: Optional[Production] = None) -> ParseStep:
        step = ParseStep(
            step_number=len(trace) + 1,
            stack=stack,
            remaining_input=remaining,
            action=action,
            result_stack=result_stack,
            description=description,
            production_used=production,
        )
        trace_logger.info("%s", step)
        return step


# --- Pipeline ---

@dataclass(frozen=True)
class SLRArtifacts:
    """Everything built once per grammar; immutable and shareable."""
    grammar: Grammar
    first_follow: FirstFollowComputer
    automaton: LR0Automaton
    tables: ParsingTables

    def engine(self) -> SLRParsingEngine:
        return SLRParsingEngine(self.grammar, self.tables)


def build_slr_artifacts(grammar: Grammar) -> SLRArtifacts:
    """Augment the grammar and run every construction phase."""
    augmented = grammar.augment()
    first_follow = FirstFollowComputer(augmented)
    automaton = LR0ItemSetBuilder(augmented).build_automaton()
    tables = SLRTableGenerator(augmented, automaton, first_follow).generate_parsing_tables()
    logger.info("SLR(1) tables ready: %d states, %d action entries, %d goto entries",
                tables.state_count, len(tables.action_table), len(tables.goto_table))
    return SLRArtifacts(augmented, first_follow, automaton, tables)


def split_tokens(input_text: str) -> List[str]:
    """Split whitespace-separated terminal names."""
    return input_text.split()


class GrammarWorkflowManager:
    """
    Manages the step-by-step grammar workflow used by the server:
    load grammar, choose start symbol, build tables, parse inputs.
    """

    def __init__(self, cfg_text: Optional[str] = None, document: Optional[Mapping[str, Any]] = None):
        """
        Args:
            cfg_text: Grammar in the textual notation
            document: Grammar as the structured s/v/t/p document
        """
        if cfg_text is None and document is None:
            raise ValueError("Either grammar text or a grammar document is required")
        self.cfg_text = cfg_text
        self.document = document
        self.grammar: Optional[Grammar] = None
        self.artifacts: Optional[SLRArtifacts] = None
        self.parsing_engine: Optional[SLRParsingEngine] = None
        self.workflow_state = "initial"

    def parse_productions(self, start_symbol: Optional[str] = None) -> Grammar:
        """Load and validate the grammar, optionally overriding the start symbol."""
        if self.document is not None:
            document = self.document
            if start_symbol and isinstance(document, Mapping):
                document = dict(document, s=start_symbol)
            self.grammar = load_grammar_document(document)
        else:
            self.grammar = GrammarProcessor().parse_grammar(self.cfg_text, start_symbol)
        self.workflow_state = "productions_parsed"
        return self.grammar

    def build_tables(self, start_symbol: Optional[str] = None) -> SLRArtifacts:
        """Build FIRST/FOLLOW, automaton and tables for the chosen start symbol."""
        if self.grammar is None or (start_symbol and start_symbol != self.grammar.start_symbol.name):
            self.parse_productions(start_symbol)
        self.artifacts = build_slr_artifacts(self.grammar)
        self.parsing_engine = self.artifacts.engine()
        self.workflow_state = "parse_table_built"
        return self.artifacts

    def parse_input(self, tokens: Sequence[str]) -> ParseResult:
        if self.workflow_state != "parse_table_built" or self.parsing_engine is None:
            raise RuntimeError("Parse table must be built before parsing input")
        return self.parsing_engine.parse(tokens)

    def get_workflow_state(self) -> Dict[str, Any]:
        state_info: Dict[str, Any] = {'current_state': self.workflow_state}
        if self.workflow_state == "initial":
            state_info['available_actions'] = ['parse_productions']
        elif self.workflow_state == "productions_parsed":
            state_info['available_actions'] = ['build_tables']
            state_info['start_symbol'] = self.grammar.start_symbol.name
        else:
            state_info['available_actions'] = ['parse_input']
            state_info['start_symbol'] = self.grammar.start_symbol.name
            state_info['states_count'] = self.artifacts.tables.state_count
        return state_info
