"""
Visualization and Output Formatting Module

This module renders the artifacts of the SLR(1) pipeline: HTML tables for
ACTION/GOTO and parse traces, DOT graphs for the LR(0) automaton and parse
trees, HTML conflict and error reports, and plain-text listings used by the
command-line tool and its log sink.
"""

from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass
import html

from slr_parser import (
    ActionType,
    Conflict,
    FirstFollowComputer,
    Grammar,
    LR0Automaton,
    LR0State,
    ParseAction,
    ParseStep,
    ParseTreeNode,
    ParsingTables,
    SLRArtifacts,
    END_MARKER,
    sorted_items,
    sorted_symbols,
)


@dataclass
class VisualizationConfig:
    """Configuration options for visualization output."""
    table_css_classes: str = "parse-table"
    trace_css_classes: str = "parsing-trace"
    error_css_classes: str = "error-message"
    compact_mode: bool = False
    max_state_label_items: int = 3
    max_stack_chars: int = 60
    max_input_tokens: int = 10


class HTMLTableGenerator:
    """Generates HTML tables for SLR parsing tables."""

    def __init__(self, config: Optional[VisualizationConfig] = None):
        self.config = config or VisualizationConfig()

    def generate_action_goto_tables_html(self, grammar: Grammar, tables: ParsingTables) -> str:
        """
        Generate combined HTML table for ACTION and GOTO tables.

        Args:
            grammar: The augmented grammar the tables were built from
            tables: ParsingTables to render

        Returns:
            HTML string containing the combined parsing table
        """
        if tables.state_count == 0:
            return self._generate_empty_table_html("No parsing states found")

        terminals = list(grammar.terminals) + [END_MARKER]
        non_terminals = [nt for nt in grammar.non_terminals if nt != grammar.augmented_start]

        html_lines = []
        html_lines.append(f'<table class="grammar-table {self.config.table_css_classes}" role="table" aria-label="SLR(1) Parsing Table with ACTION and GOTO sections">')
        html_lines.append(self._generate_table_header(
            [t.name for t in terminals], [nt.name for nt in non_terminals]
        ))
        html_lines.append('<tbody>')
        for state in range(tables.state_count):
            html_lines.append(self._generate_table_row(state, terminals, non_terminals, tables))
        html_lines.append('</tbody>')
        html_lines.append('</table>')

        return '\n'.join(html_lines)

    def _generate_table_header(self, terminal_names: List[str], non_terminal_names: List[str]) -> str:
        """Generate the table header with ACTION and GOTO sections."""
        lines = []
        lines.append('<thead>')

        lines.append('<tr>')
        lines.append('<th class="grammar-table-header grammar-table-header-primary" scope="col" rowspan="2">State</th>')
        lines.append(f'<th class="grammar-table-header" scope="colgroup" colspan="{len(terminal_names)}">ACTION</th>')
        if non_terminal_names:
            lines.append(f'<th class="grammar-table-header" scope="colgroup" colspan="{len(non_terminal_names)}">GOTO</th>')
        lines.append('</tr>')

        lines.append('<tr>')
        for name in terminal_names + non_terminal_names:
            lines.append(f'<th class="grammar-table-header" scope="col">{html.escape(name)}</th>')
        lines.append('</tr>')

        lines.append('</thead>')
        return '\n'.join(lines)

    def _generate_table_row(self, state: int, terminals, non_terminals, tables: ParsingTables) -> str:
        """Generate a single table row for the given state."""
        lines = []
        lines.append('<tr>')
        lines.append(f'<th class="grammar-table-cell grammar-table-cell-primary" scope="row">{state}</th>')

        for terminal in terminals:
            formatted_action = self._format_action(tables.action(state, terminal))
            lines.append(f'<td class="grammar-table-cell">{formatted_action}</td>')

        for non_terminal in non_terminals:
            target_state = tables.goto(state, non_terminal)
            lines.append(f'<td class="grammar-table-cell">{"" if target_state is None else target_state}</td>')

        lines.append('</tr>')
        return '\n'.join(lines)

    def _format_action(self, action: Optional[ParseAction]) -> str:
        """Format an action for HTML display."""
        if action is None:
            return ''
        text = html.escape(action.short())
        if action.action_type == ActionType.SHIFT:
            return f'<span class="grammar-action-shift">{text}</span>'
        if action.action_type == ActionType.REDUCE:
            return f'<span class="grammar-action-reduce">{text}</span>'
        return f'<span class="grammar-action-accept">{text}</span>'

    def _generate_empty_table_html(self, message: str) -> str:
        return (f'<div class="{self.config.error_css_classes}">\n'
                f'<p>{html.escape(message)}</p>\n'
                f'</div>')


class DOTGenerator:
    """Generates DOT format output for automata and parse trees."""

    def __init__(self, config: Optional[VisualizationConfig] = None):
        self.config = config or VisualizationConfig()
        self.node_counter = 0

    def generate_parse_tree_dot(self, parse_tree: Optional[ParseTreeNode], title: str = "Parse Tree") -> str:
        """
        Generate DOT format representation of a parse tree.

        Args:
            parse_tree: Root node of the tree
            title: Title for the graph

        Returns:
            DOT format string
        """
        if parse_tree is None:
            return self._generate_empty_tree_dot(title, "Parse tree is empty")

        self.node_counter = 0
        lines = []
        lines.append(f'digraph "{self._escape_dot_string(title)}" {{')
        lines.append('  rankdir=TB;')
        lines.append('  node [fontname="Arial", fontsize=12];')
        lines.append('  edge [fontsize=9, color="#333333"];')
        lines.append('  bgcolor=white;')
        lines.append('  splines=false;')
        lines.append(self._generate_node_dot(parse_tree))
        lines.append('}')

        return '\n'.join(lines)

    def generate_automaton_dot(self, automaton: LR0Automaton, title: str = "LR(0) Automaton") -> str:
        """
        Generate DOT format representation of the LR(0) automaton.

        Args:
            automaton: LR0Automaton object
            title: Title for the graph

        Returns:
            DOT format string
        """
        lines = []
        lines.append(f'digraph "{self._escape_dot_string(title)}" {{')
        lines.append('  rankdir=LR;')
        lines.append('  node [shape=box, fontname="Arial", fontsize=8];')
        lines.append('  edge [fontname="Arial", fontsize=8];')

        for state in automaton.states:
            state_label = self._format_state_label(state)
            if state.state_id == automaton.start_state_id:
                lines.append(f'  state{state.state_id} [label="{state_label}", style=bold];')
            else:
                lines.append(f'  state{state.state_id} [label="{state_label}"];')

        for (from_state, symbol), to_state in sorted(automaton.transitions.items(),
                                                     key=lambda entry: (entry[0][0], entry[1])):
            escaped_symbol = self._escape_dot_string(symbol.name)
            lines.append(f'  state{from_state} -> state{to_state} [label="{escaped_symbol}"];')

        lines.append('}')
        return '\n'.join(lines)

    def _generate_node_dot(self, node: ParseTreeNode) -> str:
        """Generate DOT lines for a node and, recursively, its children."""
        lines = []
        current_id = self.node_counter
        self.node_counter += 1

        escaped_label = self._escape_dot_string(node.label)
        if node.is_terminal:
            lines.append(f'  node{current_id} [label="{escaped_label}", shape=box, style=filled, fillcolor="#e3f2fd", color="#1976d2", fontname="Courier New"];')
        else:
            lines.append(f'  node{current_id} [label="{escaped_label}", shape=ellipse, style=filled, fillcolor="#e8f5e8", color="#388e3c"];')

        for child in node.children:
            child_id = self.node_counter
            lines.append(self._generate_node_dot(child))
            lines.append(f'  node{current_id} -> node{child_id};')

        return '\n'.join(lines)

    def _format_state_label(self, state: LR0State) -> str:
        """Format an LR(0) state for DOT display."""
        if self.config.compact_mode:
            return str(state.state_id)

        items_text = []
        for i, item in enumerate(sorted_items(state.items)):
            if i >= self.config.max_state_label_items:
                items_text.append("...")
                break
            items_text.append(self._escape_dot_string(str(item)))

        return f"I{state.state_id}\\n" + "\\n".join(items_text)

    def _generate_empty_tree_dot(self, title: str, message: str) -> str:
        lines = []
        lines.append(f'digraph "{self._escape_dot_string(title)}" {{')
        lines.append(f'  empty [label="{self._escape_dot_string(message)}", shape=box, color=red];')
        lines.append('}')
        return '\n'.join(lines)

    def _escape_dot_string(self, text: str) -> str:
        """Escape a string for use in DOT format."""
        if not text:
            return ""
        text = str(text)
        text = text.replace('\\', '\\\\')
        text = text.replace('"', '\\"')
        text = text.replace('\n', '\\n')
        return text


class ParseTraceFormatter:
    """Formats parsing traces as HTML, structured rows, or one line per step."""

    def __init__(self, config: Optional[VisualizationConfig] = None):
        self.config = config or VisualizationConfig()

    def generate_trace_html(self, trace_steps: List[ParseStep], title: str = "Parsing Trace") -> str:
        """
        Generate HTML representation of parsing trace.

        Args:
            trace_steps: List of ParseStep objects
            title: Title for the trace

        Returns:
            HTML string showing step-by-step parsing
        """
        if not trace_steps:
            return self._generate_empty_trace_html("No parsing steps recorded")

        html_lines = []
        html_lines.append(f'<div class="{self.config.trace_css_classes}">')
        html_lines.append(f'<h3>{html.escape(title)}</h3>')
        html_lines.append('<table class="grammar-table trace-table" role="table" aria-label="Step-by-step parsing trace">')
        html_lines.append('<thead>')
        html_lines.append('<tr>')
        for heading in ("Step", "Stack", "Input", "Action"):
            html_lines.append(f'<th class="grammar-table-header" scope="col">{heading}</th>')
        html_lines.append('</tr>')
        html_lines.append('</thead>')
        html_lines.append('<tbody>')

        for step in trace_steps:
            html_lines.append(self._format_trace_step(step))

        html_lines.append('</tbody>')
        html_lines.append('</table>')
        html_lines.append('</div>')

        return '\n'.join(html_lines)

    def trace_rows(self, trace_steps: List[ParseStep]) -> List[Dict[str, object]]:
        """Structured rows for JSON consumers: stack symbols, input, action."""
        return [
            {
                'step': step.step_number,
                'stack': step.stack_text(),
                'stack_symbols': [symbol.name for symbol in step.stack_symbols],
                'input': [symbol.name for symbol in step.remaining_input],
                'action': step.description,
            }
            for step in trace_steps
        ]

    def trace_lines(self, trace_steps: List[ParseStep]) -> List[str]:
        """One plain-text line per trace entry."""
        return [self.format_trace_line(step) for step in trace_steps]

    def format_trace_line(self, step: ParseStep) -> str:
        symbols = " ".join(symbol.name for symbol in step.stack_symbols)
        return f"{step.step_number:>4}  stack: [{symbols}]  input: [{step.input_text()}]  action: {step.description}"

    def _format_trace_step(self, step: ParseStep) -> str:
        """Format a single parsing step as HTML table row."""
        kind = self._get_action_kind(step.action)
        lines = []
        lines.append(f'<tr class="{kind}-step">')
        lines.append(f'<td class="grammar-table-cell grammar-table-cell-primary step-number">{step.step_number}</td>')

        stack_display = step.stack_text()
        if len(stack_display) > self.config.max_stack_chars:
            stack_display = "..." + stack_display[-(self.config.max_stack_chars - 3):]
        lines.append(f'<td class="grammar-table-cell stack">{html.escape(stack_display)}</td>')

        input_tokens = [symbol.name for symbol in step.remaining_input[:self.config.max_input_tokens]]
        if len(step.remaining_input) > self.config.max_input_tokens:
            input_tokens.append("...")
        lines.append(f'<td class="grammar-table-cell input">{html.escape(" ".join(input_tokens))}</td>')

        lines.append(f'<td class="grammar-table-cell action"><span class="grammar-action-{kind}">'
                     f'{html.escape(step.description)}</span></td>')
        lines.append('</tr>')
        return '\n'.join(lines)

    def _get_action_kind(self, action: Optional[ParseAction]) -> str:
        if action is None:
            return 'error'
        return action.action_type.value

    def _generate_empty_trace_html(self, message: str) -> str:
        return (f'<div class="{self.config.error_css_classes}">\n'
                f'<p>{html.escape(message)}</p>\n'
                f'</div>')


class ErrorMessageFormatter:
    """Formats error messages and conflict reports."""

    def __init__(self, config: Optional[VisualizationConfig] = None):
        self.config = config or VisualizationConfig()

    def format_parse_error(self, error_message: str, error_position: int = -1,
                           tokens: Optional[List[str]] = None, context_tokens: int = 5) -> str:
        """
        Format a parsing error message with the surrounding tokens.

        Args:
            error_message: The error message
            error_position: Token index where the error occurred
            tokens: The token sequence being parsed
            context_tokens: Number of tokens to show on each side

        Returns:
            Formatted HTML error message
        """
        html_lines = []
        html_lines.append(f'<div class="{self.config.error_css_classes}">')
        html_lines.append('<h4>Parse Error</h4>')
        html_lines.append(f'<p class="error-text">{html.escape(error_message)}</p>')

        if error_position >= 0 and tokens is not None:
            html_lines.append(self._generate_error_context(tokens, error_position, context_tokens))

        html_lines.append('</div>')
        return '\n'.join(html_lines)

    def format_conflict_report(self, conflicts: List[Conflict]) -> str:
        """
        Format a conflict report as HTML.

        Args:
            conflicts: List of Conflict objects

        Returns:
            Formatted HTML conflict report
        """
        if not conflicts:
            return '<div class="no-conflicts">No conflicts detected in the grammar.</div>'

        html_lines = []
        html_lines.append('<div class="conflict-report">')
        html_lines.append(f'<h4>Grammar is not SLR(1): {len(conflicts)} conflict(s)</h4>')

        for i, conflict in enumerate(conflicts, 1):
            html_lines.append('<div class="conflict-item">')
            html_lines.append(f'<h5>Conflict {i}: {html.escape(conflict.conflict_type)}</h5>')
            html_lines.append(f'<p><strong>State:</strong> {conflict.state_id}</p>')
            html_lines.append(f'<p><strong>Symbol:</strong> {html.escape(conflict.symbol.name)}</p>')
            html_lines.append(f'<p><strong>Description:</strong> {html.escape(conflict.description)}</p>')
            html_lines.append('<ul>')
            for action in conflict.actions:
                html_lines.append(f'<li>{html.escape(action.short())}</li>')
            html_lines.append('</ul>')
            html_lines.append('</div>')

        html_lines.append('</div>')
        return '\n'.join(html_lines)

    def _generate_error_context(self, tokens: List[str], error_position: int, context_tokens: int) -> str:
        """Show the tokens around the failure, marking the offending one."""
        stream = list(tokens) + ['$']
        start = max(0, error_position - context_tokens)
        end = min(len(stream), error_position + context_tokens + 1)

        parts = []
        if start > 0:
            parts.append('...')
        for index in range(start, end):
            token = html.escape(stream[index])
            if index == error_position:
                parts.append(f'<span class="error-position">{token}</span>')
            else:
                parts.append(token)
        if end < len(stream):
            parts.append('...')

        return ('<div class="error-context">\n'
                f'<pre class="context-display">{" ".join(parts)}</pre>\n'
                f'<p class="position-info">Error at token {error_position}</p>\n'
                '</div>')


class TextReportFormatter:
    """Plain-text listings of grammar, sets, states and tables."""

    def format_grammar(self, grammar: Grammar) -> List[str]:
        lines = ["grammar:"]
        lines.append(f"  s: {grammar.start_symbol}")
        lines.append(f"  v: {[nt.name for nt in grammar.non_terminals]}")
        lines.append(f"  t: {[t.name for t in grammar.terminals]}")
        lines.append("  p:")
        for production in grammar.productions:
            lines.append(f"    ({production.prod_id}) {production}")
        return lines

    def format_first_follow(self, grammar: Grammar, first_follow: FirstFollowComputer) -> List[str]:
        lines = ["first:"]
        for symbol in grammar.non_terminals:
            values = ", ".join(s.name for s in sorted_symbols(first_follow.first(symbol)))
            lines.append(f"  FIRST({symbol}) = {{ {values} }}")
        lines.append("follow:")
        for symbol in grammar.non_terminals:
            values = ", ".join(s.name for s in sorted_symbols(first_follow.follow(symbol)))
            lines.append(f"  FOLLOW({symbol}) = {{ {values} }}")
        return lines

    def format_states(self, automaton: LR0Automaton) -> List[str]:
        lines = ["states:"]
        for state in automaton.states:
            lines.append(f"  I{state.state_id}")
            for item in sorted_items(state.items):
                lines.append(f"    {item}")
        return lines

    def format_tables(self, grammar: Grammar, tables: ParsingTables, width: int = 6) -> List[str]:
        """ACTION and GOTO as fixed-width grids, one row per state."""
        terminals = list(grammar.terminals) + [END_MARKER]
        non_terminals = [nt for nt in grammar.non_terminals if nt != grammar.augmented_start]
        goto_width = max([width] + [len(nt.name) + 2 for nt in non_terminals])

        lines = ["action:"]
        lines.append("".join(f"{cell:<{width}}" for cell in [""] + [t.name for t in terminals]).rstrip())
        for state in range(tables.state_count):
            cells = [str(state)]
            for terminal in terminals:
                action = tables.action(state, terminal)
                cells.append(action.short() if action else "")
            lines.append("".join(f"{cell:<{width}}" for cell in cells).rstrip())

        lines.append("goto:")
        lines.append("".join(f"{cell:<{goto_width}}" for cell in [""] + [nt.name for nt in non_terminals]).rstrip())
        for state in range(tables.state_count):
            cells = [str(state)]
            for non_terminal in non_terminals:
                target = tables.goto(state, non_terminal)
                cells.append("" if target is None else str(target))
            lines.append("".join(f"{cell:<{goto_width}}" for cell in cells).rstrip())
        return lines

    def format_conflicts(self, conflicts: List[Conflict]) -> List[str]:
        lines = [f"grammar is not SLR(1): {len(conflicts)} conflict(s)"]
        for conflict in conflicts:
            lines.append(f"  state {conflict.state_id}, symbol {conflict.symbol}: "
                         f"{conflict.existing.short()} <-> {conflict.incoming.short()} ({conflict.description})")
        return lines

    def format_report(self, artifacts: SLRArtifacts) -> str:
        lines: List[str] = []
        lines.extend(self.format_grammar(artifacts.grammar))
        lines.extend(self.format_first_follow(artifacts.grammar, artifacts.first_follow))
        lines.extend(self.format_states(artifacts.automaton))
        lines.extend(self.format_tables(artifacts.grammar, artifacts.tables))
        return "\n".join(lines) + "\n"


class VisualizationGenerator:
    """Main visualization generator that combines all formatting capabilities."""

    def __init__(self, config: Optional[VisualizationConfig] = None):
        self.config = config or VisualizationConfig()
        self.table_generator = HTMLTableGenerator(self.config)
        self.dot_generator = DOTGenerator(self.config)
        self.trace_formatter = ParseTraceFormatter(self.config)
        self.error_formatter = ErrorMessageFormatter(self.config)
        self.text_formatter = TextReportFormatter()

    def generate_parsing_tables_html(self, artifacts: SLRArtifacts) -> str:
        return self.table_generator.generate_action_goto_tables_html(artifacts.grammar, artifacts.tables)

    def generate_automaton_dot(self, artifacts: SLRArtifacts) -> str:
        return self.dot_generator.generate_automaton_dot(artifacts.automaton)

    def generate_parse_tree_dot(self, parse_tree: Optional[ParseTreeNode], title: str = "Parse Tree") -> str:
        return self.dot_generator.generate_parse_tree_dot(parse_tree, title)

    def generate_trace_html(self, trace_steps: List[ParseStep], title: str = "Parsing Trace") -> str:
        return self.trace_formatter.generate_trace_html(trace_steps, title)

    def first_follow_dict(self, artifacts: SLRArtifacts) -> Tuple[Dict[str, List[str]], Dict[str, List[str]]]:
        """FIRST and FOLLOW sets of the original nonterminals as JSON-ready dicts."""
        grammar = artifacts.grammar
        first: Dict[str, List[str]] = {}
        follow: Dict[str, List[str]] = {}
        for symbol in grammar.non_terminals:
            if symbol == grammar.augmented_start:
                continue
            first[symbol.name] = [s.name for s in sorted_symbols(artifacts.first_follow.first(symbol))]
            follow[symbol.name] = [s.name for s in sorted_symbols(artifacts.first_follow.follow(symbol))]
        return first, follow

    def format_error_message(self, error_message: str, error_position: int = -1,
                             tokens: Optional[List[str]] = None) -> str:
        return self.error_formatter.format_parse_error(error_message, error_position, tokens)
