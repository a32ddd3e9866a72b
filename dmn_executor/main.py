"""
dmn-executor command line.

Every command prints exactly one JSON document on stdout (``help`` prints usage text).
Logs go to stderr. Exit code 0 on success, 1 on any failure.
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from dmn_executor.errors import ArgumentError
from dmn_executor.services.formatter import EXIT_FAILURE, EXIT_OK, format_errors, render
from dmn_executor.services.pipeline import ExecutorOptions, run_execute, run_info, run_service
from dmn_executor.utils.logging import configure_logging

logger = logging.getLogger(__name__)

USAGE = """\
DMN Executor - evaluate DMN decision models from the command line

Supports DMN 1.1-1.5 documents, FEEL expressions, imports, decision services and boxed expressions.

Usage:
  dmn-executor execute <dmn-file> [input-json] [decision] [options]
  dmn-executor service <dmn-file> [input-json] --service <name> [options]
  dmn-executor info <dmn-file> [options]
  dmn-executor help

Commands:
  execute    Evaluate a DMN model (all decisions, one decision, or a decision service)
  service    Evaluate a decision service (requires --service)
  info       Show models with their inputs, decisions, services, types and BKMs
  help       Show this help message

Arguments:
  dmn-file      Path to the main DMN file
  input-json    JSON object with input values (use "-" to read stdin)

Options:
  -s, --service <name>   Evaluate a decision service by name
  -d, --decision <name>  Evaluate only one decision (and what it depends on)
  -m, --model <name>     Select the model by name (when several are loaded)
  -i, --import <path>    Add a DMN file or directory to load (repeatable)
  --no-auto-import       Do not load the other .dmn files next to <dmn-file>
  --no-typecheck         Do not check values against declared types
  --log-level <level>    DEBUG, INFO, WARNING or ERROR (default: DMN_EXECUTOR_LOG_LEVEL)

Examples:
  dmn-executor execute model.dmn '{"x": 10}'
  dmn-executor execute model.dmn '{"x": 10}' --service "Pricing Service"
  dmn-executor service model.dmn '{"x": 10}' --service "Pricing Service"
  dmn-executor info model.dmn
  echo '{"age": 25}' | dmn-executor execute model.dmn -
"""


class _ArgumentParser(argparse.ArgumentParser):
    """Reports usage errors as ArgumentError so they become a JSON failure document."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise ArgumentError(message)


def _read_input(value: Optional[str]) -> str:
    if value is None:
        return "{}"
    if value == "-":
        return sys.stdin.read()
    return value


def _options(args: argparse.Namespace) -> ExecutorOptions:
    decision = args.decision
    extra_decision = getattr(args, "decision_positional", None)
    if not decision and not args.service and extra_decision:
        decision = extra_decision
    return ExecutorOptions(
        model_path=args.model_path,
        input_json=_read_input(getattr(args, "input", None)),
        decision_name=decision,
        service_name=args.service,
        model_name=args.model,
        import_paths=args.imports or [],
        auto_import=not args.no_auto_import,
        typecheck=not args.no_typecheck,
    )


def cmd_execute(args: argparse.Namespace):
    return run_execute(_options(args))


def cmd_service(args: argparse.Namespace):
    return run_service(_options(args))


def cmd_info(args: argparse.Namespace):
    return run_info(_options(args))


def build_parser() -> argparse.ArgumentParser:
    common = _ArgumentParser(add_help=False)
    common.add_argument("-s", "--service", help="Decision service name")
    common.add_argument("-d", "--decision", help="Decision name")
    common.add_argument("-m", "--model", help="Model name")
    common.add_argument("-i", "--import", dest="imports", action="append", help="DMN file or directory to load")
    common.add_argument("--no-auto-import", action="store_true", help="Do not load sibling .dmn files")
    common.add_argument("--no-typecheck", action="store_true", help="Disable type checking")
    common.add_argument("--log-level", help="Logging level")

    p = _ArgumentParser(prog="dmn-executor", add_help=False)
    sub = p.add_subparsers(dest="command")

    s = sub.add_parser("execute", parents=[common], help="Evaluate a DMN model")
    s.add_argument("model_path", help="Path to the main DMN file")
    s.add_argument("input", nargs="?", help='Input JSON object, or "-" for stdin')
    s.add_argument("decision_positional", nargs="?", metavar="decision", help="Decision name")
    s.set_defaults(func=cmd_execute)

    s = sub.add_parser("service", parents=[common], help="Evaluate a decision service")
    s.add_argument("model_path", help="Path to the main DMN file")
    s.add_argument("input", nargs="?", help='Input JSON object, or "-" for stdin')
    s.set_defaults(func=cmd_service)

    s = sub.add_parser("info", parents=[common], help="Describe the loaded models")
    s.add_argument("model_path", help="Path to the main DMN file")
    s.set_defaults(func=cmd_info)

    s = sub.add_parser("help", help="Show usage")
    s.set_defaults(func=None)
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except ArgumentError as e:
        print(render(format_errors(e.errors())))
        return EXIT_FAILURE

    if args.command is None:
        print(render(format_errors(["No command given. Run 'dmn-executor help' for usage."])))
        return EXIT_FAILURE
    if args.command == "help":
        print(USAGE)
        return EXIT_OK

    configure_logging(level=args.log_level)
    try:
        payload, code = args.func(args)
    except Exception as e:
        logger.exception("Unexpected error while running %s", args.command)
        payload, code = format_errors([f"Unexpected error: {e}"]), EXIT_FAILURE
    try:
        document = render(payload)
    except (TypeError, ValueError, ArithmeticError) as e:
        logger.exception("Could not render the %s result", args.command)
        document, code = render(format_errors([f"Could not render result: {e}"])), EXIT_FAILURE
    print(document)
    return code


def run() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    run()
