"""Command line access to the mapper.

Usage:
  md-mapper parse README.md
  md-mapper parse README.md --json
  md-mapper format README.md --callouts-style emoji --write
  md-mapper check README.md

Pass ``-`` as the file to read standard input.
"""

import argparse
import json
import sys
from pathlib import Path

from loguru import logger

from mdmapper.config import Settings, SettingsManager
from mdmapper.exceptions import MarkdownMapperError
from mdmapper.logging_config import configure_logging
from mdmapper.markdown.serializer import serialize_blocks
from mdmapper.markdown.transformer import parse_markdown
from mdmapper.models import Block, dump_blocks
from mdmapper.tree import walk
from mdmapper.validation import find_problems

_SUMMARY_WIDTH = 60


def read_source(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def describe(block: Block) -> str:
    """Short one-line description of a block for the outline view."""
    content = block.content
    for field in ("text", "summary", "href", "src"):
        value = getattr(content, field, None)
        if value:
            first_line = value.split("\n", 1)[0]
            return first_line if len(first_line) <= _SUMMARY_WIDTH else first_line[: _SUMMARY_WIDTH - 1] + "…"
    if block.type == "code":
        return getattr(content, "language", "") or "(no language)"
    if block.type == "table":
        return f"{len(getattr(content, 'headers', []))} columns"
    return ""


def outline(blocks: list[Block]) -> str:
    lines = []
    for visit in walk(blocks):
        block = visit.block
        range_ = block.source_range
        lines.append(f"{'  ' * visit.depth}{block.type} {block.id} [{range_.start}-{range_.end}] {describe(block)}".rstrip())
    return "\n".join(lines)


def settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {
        "callouts_style": args.callouts_style,
        "toggles_syntax": args.toggles_syntax,
        "wrap_width": args.wrap_width,
        "preserve_formatting": False if args.no_preserve_formatting else None,
    }
    return SettingsManager(**{key: value for key, value in overrides.items() if value is not None}).get()


def run_parse(args: argparse.Namespace) -> int:
    blocks = parse_markdown(read_source(args.file))
    if args.json:
        print(json.dumps(dump_blocks(blocks), indent=2, ensure_ascii=False))
    else:
        print(outline(blocks))
    return 0


def run_format(args: argparse.Namespace) -> int:
    settings = settings_from_args(args)
    source = read_source(args.file)
    output = serialize_blocks(parse_markdown(source, settings), settings)
    if args.write:
        if args.file == "-":
            print("Error: --write needs a file path", file=sys.stderr)
            return 2
        if output + "\n" != source:
            Path(args.file).write_text(output + "\n", encoding="utf-8")
            logger.info(f"Reformatted {args.file}")
        return 0
    print(output)
    return 0


def run_check(args: argparse.Namespace) -> int:
    source = read_source(args.file)
    blocks = parse_markdown(source)
    problems = find_problems(blocks)

    first = serialize_blocks(blocks)
    second = serialize_blocks(parse_markdown(first))
    if first != second:
        problems.append("serialization is not idempotent")

    for problem in problems:
        print(f"{args.file}: {problem}")
    if not problems:
        print(f"{args.file}: OK ({len(blocks)} top-level blocks)")
    return 1 if problems else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="md-mapper", description="Map Markdown to addressable blocks and back")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"],
        help="Minimum level for log messages on stderr",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    parse_cmd = commands.add_parser("parse", help="Show the block tree of a document")
    parse_cmd.add_argument("file", help="Markdown file, or - for stdin")
    parse_cmd.add_argument("--json", action="store_true", help="Output blocks as camelCase JSON")
    parse_cmd.set_defaults(handler=run_parse)

    format_cmd = commands.add_parser("format", help="Print the document in canonical form")
    format_cmd.add_argument("file", help="Markdown file, or - for stdin")
    format_cmd.add_argument("--write", action="store_true", help="Rewrite the file in place")
    format_cmd.add_argument("--callouts-style", choices=["admonition", "emoji"])
    format_cmd.add_argument("--toggles-syntax", choices=["details", "list"])
    format_cmd.add_argument("--wrap-width", type=int, help="Reflow paragraphs (needs --no-preserve-formatting)")
    format_cmd.add_argument("--no-preserve-formatting", action="store_true", help="Re-render tables and list markers")
    format_cmd.set_defaults(handler=run_format)

    check_cmd = commands.add_parser("check", help="Verify structural invariants and idempotence")
    check_cmd.add_argument("file", help="Markdown file, or - for stdin")
    check_cmd.set_defaults(handler=run_check)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return args.handler(args)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except MarkdownMapperError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
