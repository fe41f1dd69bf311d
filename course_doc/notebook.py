"""
Notebook helpers built on nbformat: building output notebooks and reading
``.ipynb`` documents as segment trees.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

import nbformat
from nbformat import NotebookNode

from .errors import CourseDocError, DocSyntaxError
from .split import Segment, SplitterConfig, split_markup, split_source

KERNELSPECS: Dict[str, Dict[str, str]] = {
    "python": {"name": "python3", "display_name": "Python 3", "language": "python"},
}

CELL_ID_PREFIX = "cell"
FRONT_MATTER_DELIMITER = "---"
YAML_LANGUAGE_ID = "yaml"


def kernel_metadata(language: str) -> Dict[str, Any]:
    kernelspec = KERNELSPECS.get(
        language,
        {"name": language, "display_name": language.capitalize(), "language": language},
    )
    return {"kernelspec": dict(kernelspec), "language_info": {"name": language}}


def build_notebook(cells: Sequence[Tuple[str, str, Sequence[str]]], language: str) -> NotebookNode:
    """
    Create a v4 notebook from ``(cell_type, source, tags)`` triples.

    Cell ids are numbered in order so that rendering the same document twice
    produces identical files.
    """
    nb_cells: List[NotebookNode] = []
    for index, (cell_type, source, tags) in enumerate(cells, start=1):
        metadata: Dict[str, Any] = {"tags": list(tags)} if tags else {}
        cell_id = f"{CELL_ID_PREFIX}-{index}"
        if cell_type == "code":
            nb_cells.append(nbformat.v4.new_code_cell(source, id=cell_id, metadata=metadata))
        else:
            nb_cells.append(nbformat.v4.new_markdown_cell(source, id=cell_id, metadata=metadata))
    return nbformat.v4.new_notebook(cells=nb_cells, metadata=kernel_metadata(language))


def notebook_to_text(notebook: NotebookNode) -> str:
    return nbformat.writes(notebook) + "\n"


def read_notebook(text: str) -> NotebookNode:
    captured: Dict[str, Any] = {}
    try:
        notebook = nbformat.reads(text, as_version=4, capture_validation_error=captured)
    except (ValueError, nbformat.ValidationError, AttributeError, TypeError, KeyError) as exc:
        raise DocSyntaxError(f"Invalid notebook: {exc}") from exc
    invalid = captured.get("ValidationError")
    if invalid is not None:
        raise DocSyntaxError(f"Invalid notebook: {invalid.message}") from invalid
    return notebook


def _is_front_matter_cell(cell: NotebookNode) -> bool:
    if cell.cell_type == "raw":
        return True
    language = cell.get("metadata", {}).get("vscode", {}).get("languageId")
    return cell.cell_type == "code" and language == YAML_LANGUAGE_ID


def notebook_front_matter(notebook: NotebookNode) -> Optional[str]:
    """
    YAML text of the notebook's front matter cell, if it has one.

    The front matter is the first cell when it is a raw cell, or a code cell
    that VS Code marks as YAML. Surrounding ``---`` lines are removed.
    """
    if not notebook.cells or not _is_front_matter_cell(notebook.cells[0]):
        return None
    lines = notebook.cells[0].source.splitlines(keepends=True)
    if lines and lines[0].strip() == FRONT_MATTER_DELIMITER:
        lines = lines[1:]
    if lines and lines[-1].strip() == FRONT_MATTER_DELIMITER:
        lines = lines[:-1]
    return "".join(lines)


def split_cells(notebook: NotebookNode, config: Optional[SplitterConfig] = None) -> Tuple[Segment, ...]:
    """
    Read the cells of a notebook as a segment tree.

    Markdown cells go through the Markdown splitter and code cells through the
    block splitter, so exercise tags work as in plain files. The front matter
    cell and other raw cells are dropped. Line numbers count from the top of
    each cell.
    """
    content: List[Segment] = []
    skip = 1 if notebook_front_matter(notebook) is not None else 0
    for index, cell in enumerate(notebook.cells, start=1):
        source = cell.get("source", "")
        if index <= skip or not source.strip():
            continue
        try:
            if cell.cell_type == "markdown":
                content.extend(split_markup(_with_newline(source), config))
            elif cell.cell_type == "code":
                content.extend(split_source(_with_newline(source), config))
        except CourseDocError as exc:
            raise exc.with_context(f"notebook cell {index}")
    return tuple(content)


def split_notebook(
    text: str,
    config: Optional[SplitterConfig] = None,
) -> Tuple[Segment, ...]:
    return split_cells(read_notebook(text), config)


def _with_newline(text: str) -> str:
    return text if not text or text.endswith("\n") else text + "\n"


__all__ = [
    "build_notebook",
    "kernel_metadata",
    "notebook_front_matter",
    "notebook_to_text",
    "read_notebook",
    "split_cells",
    "split_notebook",
]
