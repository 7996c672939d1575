"""Extraction of a method's full source text on its first call.

The end of a method is found with an indentation heuristic rather than a
parser: the block runs from the first line of the definition (decorators
included) until the first code line, after the header, whose indentation is
not deeper than the first line's. Comment-only and blank lines never end a
block. Multi-line string literals whose continuation lines are dedented to
the definition's level or less end the block early.
"""

from __future__ import annotations

import re

from chronotrace.errors import EnrichmentError
from chronotrace.tracing.classifier import CodeClassifier
from chronotrace.tracing.source_cache import SourceLineCache
from chronotrace.tracing.types import MethodDefinition, SourceLocation

_ONE_LINER_RE = re.compile(r"^\s*(?:async\s+)?def\s+\w+\s*\(.*\)\s*(?:->[^:]*)?:\s*[^\s#]")


def indent_width(line: str) -> int:
    return len(line) - len(line.lstrip())


def strip_comment(line: str) -> str:
    """*line* without its trailing comment. A ``#`` inside quotes is kept."""
    quote: str | None = None
    escaped = False
    for index, char in enumerate(line):
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif quote is not None:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char == "#":
            return line[:index]
    return line


def extract_block(lines: list[str], start_line: int) -> list[str]:
    """Lines of the definition starting at *start_line* (1-based)."""
    first = lines[start_line - 1]
    indent = indent_width(first)
    block: list[str] = []
    in_body = False

    for raw in lines[start_line - 1 :]:
        stripped = raw.strip()
        if in_body:
            if stripped and not stripped.startswith("#") and indent_width(raw) <= indent:
                break
            block.append(raw.rstrip())
            continue

        block.append(raw.rstrip())
        if stripped.startswith("@"):
            continue
        if _ONE_LINER_RE.match(raw):
            break
        if strip_comment(raw).rstrip().endswith(":"):
            in_body = True

    while len(block) > 1 and (not block[-1].strip() or block[-1].strip().startswith("#")):
        block.pop()
    return block


class MethodDefinitionExtractor:
    """Locate and extract method source for application code only."""

    def __init__(self, classifier: CodeClassifier, source_cache: SourceLineCache) -> None:
        self._classifier = classifier
        self._source_cache = source_cache

    def extract(self, location: SourceLocation | None) -> MethodDefinition | None:
        """Return the definition, or ``None`` when it has no usable source.

        Raises:
            EnrichmentError: the defining file exists but cannot be read.
        """
        if location is None or not location.path:
            return None
        # Lambdas, comprehensions and module bodies have no def block.
        if location.qualname.rpartition(".")[2].startswith("<"):
            return None
        if not self._classifier.is_application_code(location.path):
            return None

        lines = self._source_cache.lines(location.path)
        if location.start_line < 1 or location.start_line > len(lines):
            raise EnrichmentError(
                f"line {location.start_line} out of range for {location.path}",
                field_name="method_definition",
            )

        block = extract_block(lines, location.start_line)
        return MethodDefinition(
            source="\n".join(block),
            file=location.path,
            start_line=location.start_line,
            end_line=location.start_line + len(block) - 1,
            signature=f"{location.qualname}({', '.join(location.parameters)})",
        )
