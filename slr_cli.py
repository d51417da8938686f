"""
Command-line driver: load a grammar, build SLR(1) tables, parse a token file
and write the parse trace to a log sink.

Exit status distinguishes the outcomes: 0 accepted, 1 unreadable input file,
3 grammar construction failure, 4 syntax error, 5 internal inconsistency.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from slr_parser import (
    GrammarConflict,
    GrammarError,
    InternalInconsistency,
    build_slr_artifacts,
    load_grammar_file,
    split_tokens,
)
from slr_visualization import ParseTraceFormatter, TextReportFormatter

EXIT_ACCEPTED = 0
EXIT_IO_ERROR = 1
EXIT_GRAMMAR_ERROR = 3
EXIT_SYNTAX_ERROR = 4
EXIT_INTERNAL_ERROR = 5

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

logger = logging.getLogger("slr_cli")


def read_token_file(path: Path) -> List[str]:
    """Read whitespace-separated terminal names."""
    return split_tokens(path.read_text(encoding="utf-8"))


def configure_logging(verbose: bool, log_file: Optional[Path]) -> List[logging.Handler]:
    """
    Attach a stderr handler and, optionally, a file handler to the root logger.

    The file handler receives every record, including one line per trace
    entry; the terminal only shows the trace when `verbose` is set.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    # run() writes the trace itself, one line per entry
    logging.getLogger("slr_parser.trace").setLevel(logging.WARNING)
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: List[logging.Handler] = []

    terminal = logging.StreamHandler(sys.stderr)
    terminal.setLevel(logging.DEBUG if verbose else logging.WARNING)
    terminal.setFormatter(formatter)
    handlers.append(terminal)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    for handler in handlers:
        root.addHandler(handler)
    return handlers


def release_logging(handlers: List[logging.Handler]) -> None:
    root = logging.getLogger()
    for handler in handlers:
        root.removeHandler(handler)
        handler.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slr-parse",
        description="Build an SLR(1) table from a grammar and parse a token file.",
    )
    parser.add_argument("grammar", help="Grammar file (.json or .yml documents, or `A -> b | c` text)")
    parser.add_argument("tokens", help="File of whitespace-separated terminal names")
    parser.add_argument("--start", help="Override the grammar's start symbol")
    parser.add_argument("--document", type=int, default=0,
                        help="Which grammar of a multi-document file to use (0-based)")
    parser.add_argument("--log", help="Write the full log, including the parse trace, to this file")
    parser.add_argument("--report", action="store_true",
                        help="Print grammar, FIRST/FOLLOW, LR(0) states and ACTION/GOTO tables")
    parser.add_argument("-v", "--verbose", action="store_true", help="Echo debug log and trace to stderr")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    handlers = configure_logging(args.verbose, Path(args.log) if args.log else None)
    try:
        return run(args)
    finally:
        release_logging(handlers)


def run(args: argparse.Namespace) -> int:
    grammar_path = Path(args.grammar)
    token_path = Path(args.tokens)
    text_report = TextReportFormatter()

    try:
        grammar = load_grammar_file(str(grammar_path), args.start, args.document)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Could not read grammar file `{grammar_path}`: {exc}", file=sys.stderr)
        return EXIT_IO_ERROR
    except GrammarError as exc:
        print(f"[grammar] {grammar_path}: {exc}", file=sys.stderr)
        return EXIT_GRAMMAR_ERROR

    try:
        artifacts = build_slr_artifacts(grammar)
    except GrammarConflict as exc:
        for line in text_report.format_conflicts(exc.conflicts):
            print(f"[grammar] {line}", file=sys.stderr)
        return EXIT_GRAMMAR_ERROR
    except GrammarError as exc:
        print(f"[grammar] {grammar_path}: {exc}", file=sys.stderr)
        return EXIT_GRAMMAR_ERROR

    for line in text_report.format_report(artifacts).splitlines():
        logger.info("%s", line)
    if args.report:
        print(text_report.format_report(artifacts), end="")

    try:
        tokens = read_token_file(token_path)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Could not read token file `{token_path}`: {exc}", file=sys.stderr)
        return EXIT_IO_ERROR

    try:
        result = artifacts.engine().parse(tokens)
    except InternalInconsistency as exc:
        logger.critical("internal inconsistency: %s", exc)
        print(f"[internal] {exc}", file=sys.stderr)
        return EXIT_INTERNAL_ERROR

    trace_formatter = ParseTraceFormatter()
    for line in trace_formatter.trace_lines(result.trace):
        logger.debug("%s", line)

    if result.success:
        logger.info("slr1 success: true")
        print(f"[ok] accepted {len(tokens)} token(s) in {len(result.trace)} step(s)")
        return EXIT_ACCEPTED

    error = result.error
    logger.info("slr1 success: false")
    stack = " ".join(str(state) for state, _ in error.stack)
    print(f"[syntax] {token_path}: {error}", file=sys.stderr)
    print(f"  state stack: [{stack}]", file=sys.stderr)
    print(f"  remaining input: {' '.join(symbol.name for symbol in error.remaining)}", file=sys.stderr)
    return EXIT_SYNTAX_ERROR


if __name__ == "__main__":
    sys.exit(main())
