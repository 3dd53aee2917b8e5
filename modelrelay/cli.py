"""
modelrelay command line.

Subcommands:
    list      Show every configured provider with its live availability
    generate  Send one prompt to a provider and print the answer

Examples:
    >>> main(["list", "--config", ".modelrelay.json"])  # doctest: +SKIP
    >>> main(["generate", "Explain asyncio.gather", "--provider", "claude"])  # doctest: +SKIP
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import load_registry
from .errors import ProviderError
from .registry import ProviderRegistry
from .types import GenerateOptions


def _load(args: argparse.Namespace) -> ProviderRegistry:
    return load_registry(args.config)


async def _list_providers(registry: ProviderRegistry, as_json: bool) -> None:
    try:
        infos = await registry.list()
    finally:
        await registry.close()

    if as_json:
        print(json.dumps([info.to_dict() for info in infos], indent=2))
        return

    default_id = registry.default_id
    for info in infos:
        symbol = "✓" if info.available else "✗"
        marker = " (default)" if info.id == default_id else ""
        descriptor = info.descriptor
        print(
            f"{symbol} {info.id}{marker}: {descriptor.name} "
            f"[{descriptor.locality.value}] model={descriptor.model or '-'}"
        )


def cmd_list(args: argparse.Namespace) -> int:
    """Handle the 'list' subcommand."""
    try:
        registry = _load(args)
        asyncio.run(_list_providers(registry, args.json))
    except ProviderError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


async def _generate(registry: ProviderRegistry, args: argparse.Namespace) -> None:
    options = GenerateOptions(
        temperature=args.temperature,
        max_tokens=args.max_tokens,
        system_prompt=args.system,
    )
    try:
        provider = registry.get_required(args.provider) if args.provider else registry.get_default()
        if args.stream:
            async for fragment in provider.generate_stream(args.prompt, options, timeout=args.timeout):
                sys.stdout.write(fragment)
                sys.stdout.flush()
            sys.stdout.write("\n")
        else:
            response = await provider.generate(args.prompt, options, timeout=args.timeout)
            print(response.content)
            if response.usage:
                print(f"[{response.usage.total_tokens} tokens]", file=sys.stderr)
    finally:
        await registry.close()


def cmd_generate(args: argparse.Namespace) -> int:
    """Handle the 'generate' subcommand."""
    try:
        registry = _load(args)
        asyncio.run(_generate(registry, args))
    except ProviderError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modelrelay",
        description="Route prompts across local and hosted language models.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List configured providers")
    list_parser.add_argument("--config", help="Path to the config file (default: ./.modelrelay.json)")
    list_parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    list_parser.set_defaults(func=cmd_list)

    gen_parser = subparsers.add_parser("generate", help="Generate a completion")
    gen_parser.add_argument("prompt", help="Prompt text")
    gen_parser.add_argument("--config", help="Path to the config file (default: ./.modelrelay.json)")
    gen_parser.add_argument("--provider", help="Provider id (default: the configured default)")
    gen_parser.add_argument("--stream", action="store_true", help="Print fragments as they arrive")
    gen_parser.add_argument("--temperature", type=float, default=0.7, help="Sampling temperature")
    gen_parser.add_argument("--max-tokens", type=int, default=None, help="Maximum output tokens")
    gen_parser.add_argument("--system", default=None, help="System prompt")
    gen_parser.add_argument("--timeout", type=float, default=None, help="Deadline in seconds")
    gen_parser.set_defaults(func=cmd_generate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entrypoint.

    Args:
        argv: Command-line arguments (None uses sys.argv[1:])

    Returns:
        Process exit code: 0 on success, 1 on provider errors
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
