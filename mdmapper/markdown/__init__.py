"""Markdown tokenizing, block transformation and serialization."""

from mdmapper.markdown.parser import create_parser, get_parser, tokenize
from mdmapper.markdown.serializer import BlockSerializer, escape_markdown_text, needs_escaping, serialize_blocks
from mdmapper.markdown.transformer import BlockTransformer, parse_markdown

__all__ = [
    # Parser
    "create_parser",
    "get_parser",
    "tokenize",
    # Transformer
    "BlockTransformer",
    "parse_markdown",
    # Serializer
    "BlockSerializer",
    "serialize_blocks",
    "escape_markdown_text",
    "needs_escaping",
]
