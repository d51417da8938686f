import argparse
import html
import logging
import os
import sys
import traceback

from flask import Flask, request, jsonify

from slr_parser import (
    GrammarConflict,
    GrammarError,
    GrammarWorkflowManager,
    InternalInconsistency,
    split_tokens,
)
from slr_visualization import VisualizationGenerator

app = Flask(__name__)
logger = logging.getLogger(__name__)

DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT = '5000'


# --- HTML Escape Helper ---
def escapeHtml(unsafe):
    if unsafe is None:
        return ''
    return html.escape(str(unsafe), quote=True)


# --- Request helpers ---
def _workflow_from_request(data):
    """Build a workflow manager from `cfg` (grammar text) or `grammar` (document)."""
    if not isinstance(data, dict):
        return None
    cfg_input = data.get('cfg')
    document = data.get('grammar')
    if document is not None:
        return GrammarWorkflowManager(document=document)
    if cfg_input:
        return GrammarWorkflowManager(cfg_text=cfg_input)
    return None


def _tokens_from_request(data):
    string_input = data.get('input')
    if isinstance(string_input, list):
        return [str(token) for token in string_input]
    if isinstance(string_input, str):
        return split_tokens(string_input)
    return None


def _grammar_error_response(e):
    if isinstance(e, GrammarConflict):
        viz = VisualizationGenerator()
        return jsonify({
            "success": False,
            "error": f"Grammar is not SLR(1): {e}",
            "error_type": "conflict",
            "conflicts": [
                {
                    "state": conflict.state_id,
                    "symbol": conflict.symbol.name,
                    "type": conflict.conflict_type,
                    "actions": [action.short() for action in conflict.actions],
                    "description": conflict.description,
                }
                for conflict in e.conflicts
            ],
            "conflictsHtml": viz.error_formatter.format_conflict_report(e.conflicts),
        }), 400
    return jsonify({
        "success": False,
        "error": str(e),
        "error_type": "grammar_error",
    }), 400


def _system_error_response(e):
    logger.error("--- UNEXPECTED Python Error: %s ---", e)
    traceback.print_exc(file=sys.stderr)
    return jsonify({
        "error": f"Unexpected server error: {escapeHtml(str(e))}",
        "error_type": "system_error",
    }), 500


def _table_payload(artifacts, viz):
    first, follow = viz.first_follow_dict(artifacts)
    return {
        "parseTableHtml": viz.generate_parsing_tables_html(artifacts),
        "automatonDot": viz.generate_automaton_dot(artifacts),
        "startSymbol": artifacts.grammar.start_symbol.name,
        "first": first,
        "follow": follow,
        "tableInfo": {
            "states_count": artifacts.tables.state_count,
            "action_entries": len(artifacts.tables.action_table),
            "goto_entries": len(artifacts.tables.goto_table),
        },
    }


# --- Flask Endpoints ---

@app.route('/parse-cfg-productions', methods=['POST'])
def parse_cfg_productions():
    """
    Parse a grammar and return its productions and candidate start symbols.

    This endpoint lets a client inspect the grammar before choosing a start
    symbol and building tables.
    """
    data = request.get_json(silent=True) or {}
    workflow_manager = _workflow_from_request(data)
    if workflow_manager is None:
        return jsonify({"error": "No CFG provided"}), 400

    try:
        logger.info("--- Parsing CFG Productions ---")
        grammar = workflow_manager.parse_productions(data.get('start_symbol'))
        logger.info("Found %d productions", len(grammar.productions))

        return jsonify({
            "success": True,
            "productions": [str(p) for p in grammar.productions],
            "start_symbols": sorted(nt.name for nt in grammar.non_terminals),
            "grammar_info": {
                "start_symbol": grammar.start_symbol.name,
                "terminals": [t.name for t in grammar.terminals],
                "non_terminals": [nt.name for nt in grammar.non_terminals],
                "production_count": len(grammar.productions),
            },
        })

    except GrammarError as e:
        logger.info("--- Production Parsing FAILED --- %s", e)
        return _grammar_error_response(e)

    except Exception as e:
        return _system_error_response(e)


@app.route('/build-parse-table', methods=['POST'])
def build_parse_table():
    """
    Build the SLR(1) tables for a grammar and an optional start symbol.

    Returns the ACTION/GOTO table as HTML plus FIRST/FOLLOW sets and the
    automaton in DOT format. A grammar with conflicts is rejected with the
    full conflict list.
    """
    data = request.get_json(silent=True) or {}
    workflow_manager = _workflow_from_request(data)
    if workflow_manager is None:
        return jsonify({"error": "No CFG provided"}), 400

    try:
        logger.info("--- Building Parse Table ---")
        artifacts = workflow_manager.build_tables(data.get('start_symbol'))
        logger.info("--- Parse Table Building SUCCEEDED --- %d states", artifacts.tables.state_count)

        payload = _table_payload(artifacts, VisualizationGenerator())
        payload["success"] = True
        return jsonify(payload)

    except GrammarError as e:
        logger.info("--- Parse Table Building FAILED --- %s", e)
        return _grammar_error_response(e)

    except Exception as e:
        return _system_error_response(e)


@app.route('/visualize-parser', methods=['POST'])
def visualize_parser():
    """
    Build tables for a grammar and run the parser over a token sequence.

    `input` is either a whitespace-separated string of terminal names or a
    JSON list of them. The response carries the step-by-step trace, and the
    parse tree on success.
    """
    data = request.get_json(silent=True) or {}
    workflow_manager = _workflow_from_request(data)
    if workflow_manager is None:
        return jsonify({"error": "No CFG provided"}), 400
    tokens = _tokens_from_request(data)
    if tokens is None:
        return jsonify({"error": "No input string provided"}), 400

    try:
        artifacts = workflow_manager.build_tables(data.get('start_symbol'))
    except GrammarError as e:
        logger.info("--- Parse Table Building FAILED --- %s", e)
        return _grammar_error_response(e)
    except Exception as e:
        return _system_error_response(e)

    viz = VisualizationGenerator()
    try:
        logger.info("--- Parsing Input: '%s' ---", ' '.join(tokens))
        result = workflow_manager.parse_input(tokens)
    except InternalInconsistency as e:
        logger.error("--- Parser reached an inconsistent state: %s ---", e)
        return jsonify({"error": str(e), "error_type": "internal_error"}), 500
    except Exception as e:
        return _system_error_response(e)

    payload = _table_payload(artifacts, viz)
    payload.update({
        "parseTraceHtml": viz.generate_trace_html(result.trace),
        "trace": viz.trace_formatter.trace_rows(result.trace),
        "traceSteps": len(result.trace),
    })

    if result.success:
        logger.info("--- Parsing SUCCEEDED ---")
        payload.update({
            "success": True,
            "parseTreeDot": viz.generate_parse_tree_dot(
                result.parse_tree, f"Parse Tree for '{' '.join(tokens)}'"
            ),
        })
        return jsonify(payload)

    logger.info("--- Parsing FAILED --- %s", result.error_message)
    payload.update({
        "success": False,
        "error": result.error_message,
        "error_type": "syntax_error",
        "error_position": result.error_position,
        "error_token": result.error.token.name,
        "errorHtml": viz.format_error_message(result.error_message, result.error_position, tokens),
    })
    return jsonify(payload), 400


def build_arg_parser():
    parser = argparse.ArgumentParser(
        prog="slr-server",
        description="Serve the SLR(1) grammar analysis API over HTTP.",
    )
    # argparse converts the string default only when --port is absent
    parser.add_argument("--host", default=os.environ.get('SLR_SERVER_HOST', DEFAULT_HOST),
                        help="Interface to bind (env SLR_SERVER_HOST)")
    parser.add_argument("--port", type=int, default=os.environ.get('SLR_SERVER_PORT', DEFAULT_PORT),
                        help="Port to bind (env SLR_SERVER_PORT)")
    parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    return parser


def main(argv=None):
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("slr_parser.trace").setLevel(logging.WARNING)

    print("--- SLR(1) Grammar Analysis Server ---")
    print(f"Running on http://{args.host}:{args.port}")
    print("-" * 38)
    app.run(host=args.host, port=args.port, debug=args.debug)
    return 0


# --- Main Execution ---
if __name__ == '__main__':
    sys.exit(main())
