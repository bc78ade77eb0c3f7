"""
ticketforge - command-line interface

Generate tickets for design components, inspect template resolution and
compile reasoning prompts locally.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from ticketforge.container import ServiceContainer
from ticketforge.core.config import settings
from ticketforge.core.logging import bind_context, clear_context, get_logger, setup_logging
from ticketforge.domain.generation import GenerationRequest

console = Console()
logger = get_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="ticketforge",
        description="Generate platform tickets from design component data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ticket for a named component, template only
  ticketforge generate --name LoginButton --platform jira --stack React --no-ai

  # Ticket from an exported design node
  ticketforge generate --component-file node.json --platform github -o ticket.md

  # Which template wins for a combination
  ticketforge resolve --platform confluence --type wiki

  # Compile a reasoning prompt against a context file
  ticketforge prompt comprehensive-visual-analysis --context-file context.json
        """,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="Increase verbosity (use -vv for debug)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate a ticket")
    source = generate.add_mutually_exclusive_group(required=True)
    source.add_argument("--name", "-n", type=str, help="Component name")
    source.add_argument("--component-file", "-c", type=Path, help="JSON design node file")
    generate.add_argument("--platform", "-p", type=str, default=settings.generation.default_platform)
    generate.add_argument(
        "--type", "-t", dest="document_type", type=str,
        default=settings.generation.default_document_type,
    )
    generate.add_argument("--stack", "-s", type=str, default="", help="Comma-separated technologies")
    generate.add_argument("--no-ai", action="store_true", help="Render the template directly")
    generate.add_argument("--no-cache", action="store_true", help="Bypass the result cache")
    generate.add_argument(
        "--format", type=str, choices=["markdown", "json"], default="markdown",
        help="Output format (default: markdown)",
    )
    generate.add_argument("--output", "-o", type=Path, help="Output file path (default: stdout)")

    subparsers.add_parser("templates", help="List template documents on disk")

    resolve = subparsers.add_parser("resolve", help="Show which template resolves")
    resolve.add_argument("--platform", "-p", type=str, default=settings.generation.default_platform)
    resolve.add_argument(
        "--type", "-t", dest="document_type", type=str,
        default=settings.generation.default_document_type,
    )
    resolve.add_argument("--stack", "-s", type=str, default="")

    prompt = subparsers.add_parser("prompt", help="Compile a reasoning prompt")
    prompt.add_argument("prompt_id", nargs="?", help="Prompt id (omit to list prompts)")
    prompt.add_argument("--context-file", type=Path, help="JSON file of namespaced values")

    return parser.parse_args(argv)


def _load_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        console.print(f"[red]Error:[/red] File not found: {path}")
        sys.exit(1)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] Invalid JSON in {path}: {e}")
        sys.exit(1)


def build_request(args: argparse.Namespace) -> GenerationRequest:
    """Build a generation request from CLI arguments."""
    if args.component_file:
        component = _load_json(args.component_file)
        if not isinstance(component, dict):
            console.print("[red]Error:[/red] Component file must contain a JSON object")
            sys.exit(1)
    else:
        component = {"name": args.name, "type": "COMPONENT"}

    return GenerationRequest(
        document_type=args.document_type,
        platform=args.platform,
        tech_stack=args.stack,
        component_context=component,
        strategy_hint="template" if args.no_ai else "auto",
        bypass_cache=args.no_cache,
    )


async def run_generate(args: argparse.Namespace, container: ServiceContainer) -> int:
    request = build_request(args)
    bind_context(command="generate", component=request.component_name)

    result = await container.generation_service.generate(request)
    meta = result.metadata

    if args.format == "json":
        content = result.model_dump_json(indent=2)
    else:
        content = result.content

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(content)
        console.print(f"[green]✓[/green] Output written to {args.output}")
    elif args.format == "json":
        print(content)
    else:
        console.print(Markdown(content))

    border = "yellow" if meta.fallback_used else "green"
    console.print(Panel(
        f"[bold]Strategy:[/bold] {meta.strategy}\n"
        f"[bold]Template:[/bold] {meta.resolved_id or '-'} ({meta.resolution_scope or '-'})\n"
        f"[bold]Confidence:[/bold] {meta.confidence:.0%}\n"
        f"[bold]Cached:[/bold] {meta.cached}"
        + (f"\n[bold]Note:[/bold] {meta.error}" if meta.error else ""),
        title="Generation",
        border_style=border,
    ))
    return 0


async def run_templates(container: ServiceContainer) -> int:
    available = await container.resolver.list_available()
    table = Table(title=f"Templates in {container.resolver.templates_dir}")
    table.add_column("Scope")
    table.add_column("Template")
    for scope, names in available.items():
        for name in names:
            table.add_row(scope, name)
    console.print(table)
    return 0


async def run_resolve(args: argparse.Namespace, container: ServiceContainer) -> int:
    stack = [item for item in args.stack.split(",") if item.strip()]
    resolved = await container.resolver.resolve(args.platform, args.document_type, stack)
    console.print(Panel(
        f"[bold]Template:[/bold] {resolved.template_id} v{resolved.document.version}\n"
        f"[bold]Scope:[/bold] {resolved.scope.value}\n"
        f"[bold]Source:[/bold] {resolved.source}\n"
        f"[bold]Mode:[/bold] {'direct' if resolved.document.is_direct else 'sectioned'}",
        title=resolved.cache_key,
        border_style="blue",
    ))
    return 0


async def run_prompt(args: argparse.Namespace, container: ServiceContainer) -> int:
    if not args.prompt_id:
        table = Table(title="Reasoning prompts")
        table.add_column("Id")
        table.add_column("Purpose")
        for prompt_id, purpose in (await container.compiler.available_prompts()).items():
            table.add_row(prompt_id, purpose)
        console.print(table)
        return 0

    context = _load_json(args.context_file) if args.context_file else {}
    compiled = await container.compiler.compile(args.prompt_id, context)
    print(compiled.text)
    return 0


async def run_command(args: argparse.Namespace, container: Optional[ServiceContainer] = None) -> int:
    """Dispatch a parsed command."""
    container = container or ServiceContainer.get_instance()
    try:
        if args.command == "generate":
            return await run_generate(args, container)
        if args.command == "templates":
            return await run_templates(container)
        if args.command == "resolve":
            return await run_resolve(args, container)
        if args.command == "prompt":
            return await run_prompt(args, container)
        console.print(f"[red]Error:[/red] Unknown command {args.command}")
        return 2

    except Exception as e:
        logger.exception("Command failed", command=args.command)
        console.print(f"[red]Error:[/red] {e}")
        return 1

    finally:
        clear_context()
        await container.shutdown()


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.verbose >= 2:
        setup_logging("DEBUG")
    elif args.verbose >= 1:
        setup_logging("INFO")
    else:
        setup_logging("WARNING")

    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
