"""Command line entry point.

Usage:
    guardrails serve
    guardrails list
    guardrails run review_static_analysis --input '{"workspace": "server", "targetDirectories": ["/repo/server/src"]}'
"""

import argparse
import asyncio
import json
import sys

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from guardrails import __version__
from guardrails.config import GuardrailsSettings
from guardrails.context import GuardrailsContext
from guardrails.errors import InputValidationError
from guardrails.log import configure_logging
from guardrails.operations import build_registry

console = Console()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="guardrails", description="Architecture policy engine")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Serve every operation as an MCP tool over stdio")
    subparsers.add_parser("list", help="List the available operations")

    run = subparsers.add_parser("run", help="Run one operation and print its report")
    run.add_argument("operation", help="Operation id, e.g. review_static_analysis")
    run.add_argument("--input", default="{}", help="Operation arguments as a JSON object")
    run.add_argument("--raw", action="store_true", help="Print the markdown source instead of rendering it")

    return parser


def _list_operations() -> int:
    table = Table(title="Operations")
    table.add_column("Id", style="cyan", no_wrap=True, min_width=30)
    table.add_column("Description")
    table.add_column("Arguments", style="dim")

    for operation in build_registry():
        fields = operation.input_model.model_fields
        arguments = ", ".join(field.alias or name for name, field in fields.items())
        table.add_row(operation.id, operation.description, arguments or "-")

    console.print(table)
    return 0


def _run_operation(context: GuardrailsContext, operation_id: str, raw_input: str, raw: bool) -> int:
    try:
        arguments = json.loads(raw_input)
    except json.JSONDecodeError as e:
        console.print(f"[bold red]Invalid --input JSON:[/bold red] {e}")
        return 2

    registry = build_registry()
    try:
        report = asyncio.run(registry.execute(context, operation_id, arguments))
    except InputValidationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 2

    if raw:
        print(report)
    else:
        console.print(Markdown(report))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    settings = GuardrailsSettings()
    configure_logging(settings.log_level, settings.log_json)

    match args.command:
        case "serve":
            from guardrails.server import create_server

            create_server(GuardrailsContext.create(settings)).run()
            return 0
        case "list":
            return _list_operations()
        case "run":
            return _run_operation(GuardrailsContext.create(settings), args.operation, args.input, args.raw)
        case _:
            return 2


if __name__ == "__main__":
    sys.exit(main())
