"""
Split annotated source files into markup, source code and exercise blocks.

A source file carries markup in comment lines flagged with a marker character
(``#| Some *markdown*``); regular comments (``# note``) stay part of the code.
Markup lines may also open and close tagged regions::

    #| <<TASK{title=Sum}
    #| Write a function.
    #| <<CODE
    # TODO
    >> SOLUTION <<
    return a + b
    >>END_CODE
    >>END_TASK

Tags are recognised both as markup lines and as bare lines.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type, Union

from .errors import ConfigError, DocSyntaxError, StructuralError

BLOCK_KEYWORDS = ("TASK", "TEST")
CODE_KEYWORD = "CODE"

BLOCK_OPEN_RE = re.compile(r"^<<(?P<keyword>[A-Z]+)(?P<rest>\s*\{.*|\s*)$")
BLOCK_CLOSE_RE = re.compile(r"^>>\s*END_(?P<keyword>[A-Z]+)\s*$")
CODE_OPEN_RE = re.compile(r"^<<" + CODE_KEYWORD + r"\s*$")
SOLUTION_RE = re.compile(r"^>>\s*SOLUTION\s*<<$")

# Markdown code fences: three or more backticks or tildes, indented at most three spaces.
FENCE_OPEN_RE = re.compile(r"^[ \t]{0,3}(?P<fence>`{3,}|~{3,})")

ATTRIBUTE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
ATTRIBUTE_VALUE_RE = re.compile(r"^[A-Za-z ]+$")


@dataclass(frozen=True)
class SplitterConfig:
    """
    Comment convention of the files being split.

    ``leaders`` lists every character accepted as a comment leader; ``marker``
    is the character that turns a comment into a markup line.
    """

    leaders: str = "#"
    marker: str = "|"

    def __post_init__(self) -> None:
        if not self.leaders:
            raise ConfigError("At least one comment leader is required")
        for char in self.leaders:
            if char.isalnum() or char.isspace():
                raise ConfigError(f"Comment leader {char!r} must be a symbol character")
        if len(self.marker) != 1 or self.marker.isalnum() or self.marker.isspace():
            raise ConfigError(f"Markup marker {self.marker!r} must be a single symbol character")
        if self.marker in self.leaders:
            raise ConfigError(f"Markup marker {self.marker!r} cannot also be a comment leader")

    @property
    def markup_re(self) -> re.Pattern[str]:
        return re.compile(r"^[ \t]*[" + re.escape(self.leaders) + "]" + re.escape(self.marker) + " ?")

    @property
    def comment_re(self) -> re.Pattern[str]:
        return re.compile(r"^[ \t]*[" + re.escape(self.leaders) + "]")


@dataclass(frozen=True)
class SourceRun:
    """Consecutive source lines, regular comments included, kept verbatim."""

    text: str
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class MarkupRun:
    """Consecutive markup lines with the comment leader and marker removed."""

    text: str
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class Block:
    """A ``TASK`` or ``TEST`` region."""

    keyword: str
    attributes: Dict[str, str]
    content: Tuple["Segment", ...]
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class CodeBlock:
    """A code exercise: what the learner starts from and the instructor's answer."""

    placeholder: Tuple[Union[MarkupRun, SourceRun], ...]
    solution: Tuple[Union[MarkupRun, SourceRun], ...]
    line: int = field(default=0, compare=False)


Segment = Union[SourceRun, MarkupRun, Block, CodeBlock]
Run = Union[SourceRun, MarkupRun]


class _Content:
    """Node list under construction; merges consecutive lines of one kind."""

    def __init__(self) -> None:
        self.nodes: List[Segment] = []
        self._kind: Optional[Type[Run]] = None
        self._lines: List[str] = []
        self._start = 0

    def add_line(self, kind: Type[Run], text: str, lineno: int) -> None:
        if kind is not self._kind:
            self.flush()
            self._kind = kind
            self._start = lineno
        self._lines.append(text)

    def add_node(self, node: Segment) -> None:
        self.flush()
        self.nodes.append(node)

    def flush(self) -> None:
        if self._kind is not None:
            self.nodes.append(self._kind(text="".join(self._lines), line=self._start))
        self._kind = None
        self._lines = []

    def freeze(self) -> Tuple[Segment, ...]:
        self.flush()
        return tuple(self.nodes)


@dataclass
class _BlockFrame:
    keyword: Optional[str]
    attributes: Dict[str, str]
    line: int
    content: _Content = field(default_factory=_Content)


@dataclass
class _CodeFrame:
    line: int
    placeholder: _Content = field(default_factory=_Content)
    solution: _Content = field(default_factory=_Content)
    in_solution: bool = False

    @property
    def current(self) -> _Content:
        return self.solution if self.in_solution else self.placeholder


def parse_attributes(text: str, *, line: int, keyword: str) -> Dict[str, str]:
    """
    Parse a ``{name=value, ...}`` attribute list.

    Names are identifiers; values hold letters and spaces only.
    """
    text = text.strip()
    if not text:
        return {}
    if not (text.startswith("{") and text.endswith("}")):
        raise DocSyntaxError(
            f"Malformed attribute list {text!r}, expected '{{name=value, ...}}'",
            line=line,
            context=keyword,
        )
    inner = text[1:-1].strip()
    attributes: Dict[str, str] = {}
    if not inner:
        return attributes
    for item in inner.split(","):
        name, sep, value = item.partition("=")
        name, value = name.strip(), value.strip()
        if not sep:
            raise DocSyntaxError(f"Missing '=' in attribute {item.strip()!r}", line=line, context=keyword)
        if not ATTRIBUTE_NAME_RE.match(name):
            raise DocSyntaxError(f"Invalid attribute name {name!r}", line=line, context=keyword)
        if not ATTRIBUTE_VALUE_RE.match(value):
            raise DocSyntaxError(
                f"Invalid value {value!r} for attribute {name!r} (letters and spaces only)",
                line=line,
                context=keyword,
            )
        if name in attributes:
            raise StructuralError(f"Duplicate attribute {name!r}", line=line, context=keyword)
        attributes[name] = value
    return attributes


class BlockSplitter:
    """
    Line-oriented parser producing the segment tree of one source file.

    Open regions are tracked on an explicit stack; a close tag must name the
    keyword on top of it.
    """

    def __init__(self, config: Optional[SplitterConfig] = None) -> None:
        self.config = config or SplitterConfig()
        self._markup_re = self.config.markup_re
        self._comment_re = self.config.comment_re

    def tag(self, line: str) -> Tuple[Optional[re.Match[str]], str]:
        """Markup match of `line` and the text a tag would be read from."""
        markup = self._markup_re.match(line)
        return markup, (line[markup.end():].strip() if markup else line.strip())

    def split(self, text: str, first_line: int = 1) -> Tuple[Segment, ...]:
        root = _BlockFrame(keyword=None, attributes={}, line=0)
        stack: List[Union[_BlockFrame, _CodeFrame]] = [root]

        for lineno, line in enumerate(text.splitlines(keepends=True), start=first_line):
            markup, tag = self.tag(line)
            top = stack[-1]
            if isinstance(top, _CodeFrame):
                self._code_line(stack, top, line, tag, markup, lineno)
                continue

            if CODE_OPEN_RE.match(tag):
                stack.append(_CodeFrame(line=lineno))
                continue
            opened = BLOCK_OPEN_RE.match(tag)
            if opened and opened.group("keyword") in BLOCK_KEYWORDS:
                keyword = opened.group("keyword")
                attributes = parse_attributes(opened.group("rest"), line=lineno, keyword=keyword)
                stack.append(_BlockFrame(keyword=keyword, attributes=attributes, line=lineno))
                continue
            closed = BLOCK_CLOSE_RE.match(tag)
            if closed:
                self._close_block(stack, closed.group("keyword"), lineno)
                continue
            if SOLUTION_RE.match(tag):
                raise StructuralError(
                    "'>> SOLUTION <<' outside of a CODE block",
                    line=lineno,
                    context=top.keyword,
                )

            if markup:
                top.content.add_line(MarkupRun, line[markup.end():], lineno)
            else:
                top.content.add_line(SourceRun, line, lineno)

        top = stack[-1]
        if isinstance(top, _CodeFrame):
            raise StructuralError(
                f"Unterminated {CODE_KEYWORD} block (depth {len(stack) - 1})",
                line=top.line,
                context=CODE_KEYWORD,
            )
        if top is not root:
            raise StructuralError(
                f"Unterminated {top.keyword} block (depth {len(stack) - 1})",
                line=top.line,
                context=top.keyword,
            )
        return root.content.freeze()

    def _close_block(self, stack: List[Any], keyword: str, lineno: int) -> None:
        top = stack[-1]
        if keyword == CODE_KEYWORD:
            raise StructuralError("'>>END_CODE' without an open CODE block", line=lineno, context=top.keyword)
        if top.keyword is None:
            raise StructuralError(f"'>>END_{keyword}' without an open block", line=lineno)
        if keyword != top.keyword:
            raise StructuralError(
                f"'>>END_{keyword}' cannot close the {top.keyword} block opened at line {top.line}",
                line=lineno,
                context=top.keyword,
            )
        stack.pop()
        node = Block(
            keyword=top.keyword,
            attributes=top.attributes,
            content=top.content.freeze(),
            line=top.line,
        )
        stack[-1].content.add_node(node)

    def _code_line(
        self,
        stack: List[Any],
        frame: _CodeFrame,
        line: str,
        tag: str,
        markup: Optional[re.Match[str]],
        lineno: int,
    ) -> None:
        if SOLUTION_RE.match(tag):
            if frame.in_solution:
                raise StructuralError("Duplicate '>> SOLUTION <<' separator", line=lineno, context=CODE_KEYWORD)
            frame.placeholder.flush()
            frame.in_solution = True
            return
        closed = BLOCK_CLOSE_RE.match(tag)
        if closed and closed.group("keyword") == CODE_KEYWORD:
            if not frame.in_solution:
                raise StructuralError(
                    "CODE block closed before its '>> SOLUTION <<' separator",
                    line=lineno,
                    context=CODE_KEYWORD,
                )
            stack.pop()
            node = CodeBlock(
                placeholder=frame.placeholder.freeze(),
                solution=frame.solution.freeze(),
                line=frame.line,
            )
            stack[-1].content.add_node(node)
            return
        opened = BLOCK_OPEN_RE.match(tag)
        if closed or CODE_OPEN_RE.match(tag) or (opened and opened.group("keyword") in BLOCK_KEYWORDS):
            raise StructuralError(f"Tag {tag!r} is not allowed inside a CODE block", line=lineno, context=CODE_KEYWORD)

        if markup:
            frame.current.add_line(MarkupRun, line[markup.end():], lineno)
        elif frame.in_solution or not line.strip() or self._comment_re.match(line):
            frame.current.add_line(SourceRun, line, lineno)
        else:
            raise StructuralError(
                "Source code is not allowed in a placeholder, only markup and comments",
                line=lineno,
                context=CODE_KEYWORD,
            )


def split_source(
    text: str,
    config: Optional[SplitterConfig] = None,
    first_line: int = 1,
) -> Tuple[Segment, ...]:
    """Split `text` and return the root content sequence."""
    return BlockSplitter(config).split(text, first_line)


def _closes_fence(line: str, fence: str) -> bool:
    stripped = line.strip()
    return len(stripped) >= len(fence) and stripped == fence[0] * len(stripped)


def split_markup(
    text: str,
    config: Optional[SplitterConfig] = None,
    first_line: int = 1,
) -> Tuple[Segment, ...]:
    """
    Split a Markdown text, lifting code exercises out of its fenced code blocks.

    A fence whose body holds a ``<<CODE`` tag is replaced by the segments of
    its body, so the solution follows the reveal policy of each output format
    and reaches the answer key. Every other line, fences included, stays
    markup. A fence that is never closed runs to the end of the text.
    """
    splitter = BlockSplitter(config)
    content = _Content()
    lines = text.splitlines(keepends=True)
    index = 0
    while index < len(lines):
        lineno = first_line + index
        opened = FENCE_OPEN_RE.match(lines[index])
        if not opened:
            content.add_line(MarkupRun, lines[index], lineno)
            index += 1
            continue
        fence = opened.group("fence")
        end = index + 1
        while end < len(lines) and not _closes_fence(lines[end], fence):
            end += 1
        body = lines[index + 1 : end]
        if any(CODE_OPEN_RE.match(splitter.tag(line)[1]) for line in body):
            for node in splitter.split("".join(body), first_line=lineno + 1):
                content.add_node(node)
        else:
            for offset, line in enumerate(lines[index : end + 1]):
                content.add_line(MarkupRun, line, lineno + offset)
        index = end + 1
    return content.freeze()


def iter_segments(content: Tuple[Segment, ...]) -> Iterator[Segment]:
    """Depth-first walk over `content`, in document order."""
    for node in content:
        yield node
        if isinstance(node, Block):
            yield from iter_segments(node.content)
        elif isinstance(node, CodeBlock):
            yield from node.placeholder
            yield from node.solution


def segment_to_dict(node: Segment) -> Dict[str, Any]:
    """JSON-friendly view of a segment, used for debugging output."""
    if isinstance(node, SourceRun):
        return {"kind": "source", "line": node.line, "text": node.text}
    if isinstance(node, MarkupRun):
        return {"kind": "markup", "line": node.line, "text": node.text}
    if isinstance(node, Block):
        return {
            "kind": "block",
            "line": node.line,
            "keyword": node.keyword,
            "attributes": dict(node.attributes),
            "content": [segment_to_dict(child) for child in node.content],
        }
    return {
        "kind": "code",
        "line": node.line,
        "placeholder": [segment_to_dict(child) for child in node.placeholder],
        "solution": [segment_to_dict(child) for child in node.solution],
    }


__all__ = [
    "Block",
    "BlockSplitter",
    "CodeBlock",
    "MarkupRun",
    "Segment",
    "SourceRun",
    "SplitterConfig",
    "iter_segments",
    "parse_attributes",
    "segment_to_dict",
    "split_markup",
    "split_source",
]
