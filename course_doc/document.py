"""
Per-document pipeline: load, split, read front matter, find the title and render.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .assemble import render_tree
from .errors import DocSyntaxError
from .expander import literal_spans
from .formats import OutputFormat
from .notebook import notebook_front_matter, read_notebook, split_cells
from .split import Block, CodeBlock, MarkupRun, Segment, SourceRun, SplitterConfig, split_markup, split_source
from .templates import TemplateRegistry

logger = logging.getLogger(__name__)

FRONT_MATTER_DELIMITER = "---"
HEADING_RE = re.compile(r"^#[ \t]+(?P<title>.+?)[ \t#]*$", re.MULTILINE)

MARKUP_SUFFIXES = {".md", ".markdown"}
NOTEBOOK_SUFFIXES = {".ipynb"}


class FrontMatter(BaseModel):
    """YAML header of a document; unknown keys are kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: Optional[str] = None
    doc_type: str = Field("text", alias="type")


@dataclass(frozen=True)
class Document:
    """A parsed document, ready to render in any format."""

    content: Tuple[Segment, ...]
    front_matter: FrontMatter = field(default_factory=FrontMatter)
    title: str = ""
    path: Optional[Path] = None

    def page_context(self) -> Dict[str, Any]:
        """Values exposed to shortcode templates as ``page``."""
        page = self.front_matter.model_dump()
        page["title"] = self.title
        page["type"] = page.pop("doc_type")
        if self.path is not None:
            page["path"] = self.path.as_posix()
        return page


def load_front_matter(text: str, first_line: int = 1, context: Optional[str] = None) -> FrontMatter:
    """Validate YAML front matter whose first line is `first_line` of the document."""
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = first_line + mark.line if mark is not None else first_line
        raise DocSyntaxError(f"Invalid front matter: {exc}", line=line, context=context) from exc
    if not isinstance(data, dict):
        raise DocSyntaxError("Front matter must be a mapping", line=first_line, context=context)
    try:
        front_matter = FrontMatter.model_validate(data)
    except ValidationError as exc:
        raise DocSyntaxError(
            f"Invalid front matter: {exc.errors()[0]['msg']}",
            line=first_line,
            context=context,
        ) from exc
    if front_matter.model_extra:
        logger.warning("Unknown front matter key(s) kept as-is: %s", ", ".join(sorted(front_matter.model_extra)))
    return front_matter


def extract_front_matter(content: Tuple[Segment, ...]) -> Tuple[FrontMatter, Tuple[Segment, ...]]:
    """
    Take a ``---`` delimited YAML header off the first markup run, if present.
    """
    if not content or not isinstance(content[0], MarkupRun):
        return FrontMatter(), content
    first = content[0]
    lines = first.text.splitlines(keepends=True)
    if not lines or lines[0].strip() != FRONT_MATTER_DELIMITER:
        return FrontMatter(), content
    closing = next(
        (index for index in range(1, len(lines)) if lines[index].strip() == FRONT_MATTER_DELIMITER),
        None,
    )
    start_line = first.line or 1
    if closing is None:
        raise DocSyntaxError("Front matter is never closed with '---'", line=start_line)

    front_matter = load_front_matter("".join(lines[1:closing]), first_line=start_line + 1)
    rest = "".join(lines[closing + 1 :])
    remaining = content[1:]
    if rest.strip():
        remaining = (MarkupRun(text=rest, line=start_line + closing + 1),) + remaining
    return front_matter, remaining


def find_title(content: Tuple[Segment, ...]) -> Optional[str]:
    """Text of the first level-1 heading in the markup, in document order."""
    for node in content:
        if isinstance(node, MarkupRun):
            spans = literal_spans(node.text)
            for match in HEADING_RE.finditer(node.text):
                if not any(start <= match.start() < end for start, end in spans):
                    return match.group("title").strip()
        elif isinstance(node, Block):
            title = find_title(node.content)
            if title:
                return title
    return None


def split_text(text: str, path: Optional[Path], config: Optional[SplitterConfig]) -> Tuple[Segment, ...]:
    suffix = path.suffix.lower() if path is not None else ""
    if suffix in MARKUP_SUFFIXES:
        return split_markup(text, config)
    return split_source(text, config)


def parse_document(
    text: str,
    path: Optional[Path] = None,
    config: Optional[SplitterConfig] = None,
) -> Document:
    """
    Split `text` and collect its front matter and title.

    The file suffix of `path` picks the reader: Markdown files are pure
    markup (code exercises in their fences aside), notebooks are read cell by
    cell with their front matter cell, anything else is an annotated source
    file.
    """
    suffix = path.suffix.lower() if path is not None else ""
    if suffix in NOTEBOOK_SUFFIXES:
        notebook = read_notebook(text)
        content = split_cells(notebook, config)
        header = notebook_front_matter(notebook)
        if header is not None:
            front_matter = load_front_matter(header, context="notebook cell 1")
        else:
            front_matter, content = extract_front_matter(content)
    else:
        front_matter, content = extract_front_matter(split_text(text, path, config))
    title = front_matter.title or find_title(content) or (path.stem if path is not None else "")
    return Document(content=content, front_matter=front_matter, title=title, path=path)


def render_document(
    document: Document,
    output_format: OutputFormat,
    registry: TemplateRegistry,
    project: Optional[Mapping[str, Any]] = None,
    *,
    reveal_solutions: bool = False,
    language: str = "python",
) -> str:
    context = {"project": dict(project or {}), "page": document.page_context()}
    return render_tree(
        document.content,
        output_format,
        registry,
        context,
        reveal_solutions=reveal_solutions,
        language=language,
    )


def exercise_summary(content: Tuple[Segment, ...]) -> List[Dict[str, Any]]:
    """
    List the exercise blocks and code exercises of a tree in document order.

    Each entry records its nesting path, e.g. ``["TASK:1", "TEST:1"]`` for the
    first TEST inside the first TASK.
    """
    entries: List[Dict[str, Any]] = []

    def walk(nodes: Tuple[Segment, ...], path: List[str]) -> None:
        counters: Dict[str, int] = {}
        for node in nodes:
            if isinstance(node, Block):
                counters[node.keyword] = counters.get(node.keyword, 0) + 1
                node_path = path + [f"{node.keyword}:{counters[node.keyword]}"]
                entries.append(
                    {
                        "kind": "block",
                        "keyword": node.keyword,
                        "attributes": dict(node.attributes),
                        "path": node_path,
                        "line": node.line,
                        "code_exercises": sum(isinstance(child, CodeBlock) for child in node.content),
                    }
                )
                walk(node.content, node_path)
            elif isinstance(node, CodeBlock):
                counters["CODE"] = counters.get("CODE", 0) + 1
                entries.append(
                    {
                        "kind": "code",
                        "path": path + [f"CODE:{counters['CODE']}"],
                        "line": node.line,
                    }
                )

    walk(content, [])
    return entries


def solution_source(content: Tuple[Segment, ...]) -> str:
    """Source side of every code exercise, concatenated in document order."""
    pieces: List[str] = []

    def walk(nodes: Tuple[Segment, ...]) -> None:
        for node in nodes:
            if isinstance(node, Block):
                walk(node.content)
            elif isinstance(node, CodeBlock):
                pieces.extend(run.text for run in node.solution if isinstance(run, SourceRun))

    walk(content)
    return "".join(pieces)


__all__ = [
    "Document",
    "FrontMatter",
    "exercise_summary",
    "extract_front_matter",
    "find_title",
    "load_front_matter",
    "parse_document",
    "render_document",
    "solution_source",
]
