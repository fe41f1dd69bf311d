"""
Expansion of ``{{ name(...) }}`` and ``{% name(...) %} ... {% end %}`` shortcodes
embedded in markup text.
"""

from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional, Tuple

import markdown

from .errors import CourseDocError, DocSyntaxError, StructuralError
from .formats import OutputFormat
from .markdown_ext import MathExtension
from .shortcodes import QUOTES, ShortcodeCall, parse_shortcode
from .templates import TemplateRegistry

INLINE_OPEN, INLINE_CLOSE = "{{", "}}"
BLOCK_OPEN, BLOCK_CLOSE = "{%", "%}"
END_KEYWORD = "end"

# Fenced blocks run to the end of the text when never closed, like Markdown.
# A code span never crosses a blank line.
LITERAL_RE = re.compile(r"```.*?(?:```|\Z)|`[^`\n]*(?:\n(?!\n)[^`\n]*)*`", re.DOTALL)

HTML_BODY_EXTENSIONS = ["fenced_code", "tables"]

Span = Tuple[int, int]


def literal_spans(text: str) -> List[Span]:
    """Ranges of `text` inside code spans or fenced code, where shortcodes stay literal."""
    return [match.span() for match in LITERAL_RE.finditer(text)]


def markdown_to_html(text: str) -> str:
    return markdown.markdown(text, extensions=[*HTML_BODY_EXTENSIONS, MathExtension()])


def _find_delimiter(text: str, start: int, delimiter: str) -> int:
    """Index of `delimiter` at or after `start`, ignoring quoted parameter values."""
    closing: Optional[str] = None
    index = start
    while index < len(text):
        char = text[index]
        if closing is not None:
            if char == closing:
                closing = None
        elif char in QUOTES:
            closing = QUOTES[char]
        elif text.startswith(delimiter, index):
            return index
        index += 1
    return -1


class ShortcodeExpander:
    """
    Expand shortcodes for one output format.

    The expander holds no state between calls: the same text, registry and
    context always produce the same output.

    Parameters
    ----------
    registry:
        Shortcode templates, looked up by name and template format.
    output_format:
        Target format; selects the template variant and how block bodies are
        rendered before being bound as ``body``.
    context:
        Read-only variables available to every template (``project``,
        ``page``...). Call parameters take precedence over them.
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        output_format: OutputFormat,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.registry = registry
        self.output_format = output_format
        self.context: Mapping[str, Any] = dict(context or {})

    def expand(self, text: str) -> str:
        spans = literal_spans(text)
        pieces: List[str] = []
        pos = 0
        while True:
            found = self._next_opening(text, pos, spans)
            if found is None:
                pieces.append(text[pos:])
                break
            start, opening = found
            pieces.append(text[pos:start])
            if opening == BLOCK_OPEN:
                rendered, pos = self._expand_block(text, start, spans)
            else:
                rendered, pos = self._expand_inline(text, start)
            pieces.append(rendered)
        return "".join(pieces)

    def _next_opening(self, text: str, pos: int, spans: List[Span]) -> Optional[Tuple[int, str]]:
        while True:
            candidates = []
            for opening in (BLOCK_OPEN, INLINE_OPEN):
                index = text.find(opening, pos)
                if index != -1:
                    candidates.append((index, opening))
            if not candidates:
                return None
            index, opening = min(candidates)
            span = next((s for s in spans if s[0] <= index < s[1]), None)
            if span is None:
                return index, opening
            pos = span[1]

    def _parse_call(self, text: str, start: int, stop: int) -> ShortcodeCall:
        try:
            return parse_shortcode(text[start:stop])
        except CourseDocError as exc:
            raise exc.shift(start)

    def _expand_inline(self, text: str, start: int) -> Tuple[str, int]:
        close = _find_delimiter(text, start + len(INLINE_OPEN), INLINE_CLOSE)
        if close == -1:
            raise DocSyntaxError("Unterminated inline shortcode, missing '}}'", offset=start)
        call = self._parse_call(text, start + len(INLINE_OPEN), close)
        rendered = self._render(call, start)
        return rendered, close + len(INLINE_CLOSE)

    def _expand_block(self, text: str, start: int, spans: List[Span]) -> Tuple[str, int]:
        header_end = _find_delimiter(text, start + len(BLOCK_OPEN), BLOCK_CLOSE)
        if header_end == -1:
            raise DocSyntaxError("Unterminated block shortcode tag, missing '%}'", offset=start)
        header = text[start + len(BLOCK_OPEN) : header_end]
        if header.strip() == END_KEYWORD:
            raise StructuralError("'{% end %}' without an open block shortcode", offset=start)
        call = self._parse_call(text, start + len(BLOCK_OPEN), header_end)

        body_start = header_end + len(BLOCK_CLOSE)
        end_start, end_stop = self._find_end(text, body_start, spans, call.name, start)
        raw_body = text[body_start:end_start]
        body = raw_body.strip()
        body_offset = body_start + len(raw_body) - len(raw_body.lstrip())
        try:
            inner = self.expand(body)
        except CourseDocError as exc:
            raise exc.shift(body_offset)
        if self.output_format is OutputFormat.HTML:
            inner = markdown_to_html(inner)
        rendered = self._render(call, start, body=inner)
        return rendered, end_stop

    def _find_end(
        self,
        text: str,
        pos: int,
        spans: List[Span],
        name: str,
        start: int,
    ) -> Span:
        depth = 1
        while True:
            found = self._next_opening(text, pos, spans)
            while found is not None and found[1] != BLOCK_OPEN:
                found = self._next_opening(text, found[0] + len(INLINE_OPEN), spans)
            if found is None:
                raise StructuralError(
                    f"Block shortcode {name!r} is never closed with '{{% end %}}'",
                    offset=start,
                    context=name,
                )
            tag_start = found[0]
            tag_end = _find_delimiter(text, tag_start + len(BLOCK_OPEN), BLOCK_CLOSE)
            if tag_end == -1:
                raise DocSyntaxError(
                    "Unterminated block shortcode tag, missing '%}'",
                    offset=tag_start,
                    context=name,
                )
            pos = tag_end + len(BLOCK_CLOSE)
            if text[tag_start + len(BLOCK_OPEN) : tag_end].strip() == END_KEYWORD:
                depth -= 1
                if depth == 0:
                    return tag_start, pos
            else:
                depth += 1

    def _render(self, call: ShortcodeCall, start: int, body: Optional[str] = None) -> str:
        bindings = dict(self.context)
        bindings.update(call.parameters)
        if body is not None:
            bindings["body"] = body
        try:
            return self.registry.render(call.name, self.output_format.template_format, bindings)
        except CourseDocError as exc:
            if exc.context is None:
                exc.context = call.name
            raise exc.shift(start)


def expand_shortcodes(
    text: str,
    registry: TemplateRegistry,
    output_format: OutputFormat,
    context: Optional[Mapping[str, Any]] = None,
) -> str:
    """Expand every shortcode in `text`; see :class:`ShortcodeExpander`."""
    return ShortcodeExpander(registry, output_format, context).expand(text)


__all__ = ["ShortcodeExpander", "expand_shortcodes", "literal_spans", "markdown_to_html"]
