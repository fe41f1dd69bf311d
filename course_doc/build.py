"""
Build every document of a project, collecting failures instead of stopping at
the first one.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import CONFIG_FILENAME, ProjectConfig, load_config
from .document import Document, exercise_summary, parse_document, render_document, solution_source
from .errors import CourseDocError
from .formats import OutputFormat
from .templates import TemplateRegistry
from .utils import ensure_directory, read_text, write_text

logger = logging.getLogger(__name__)

DOCUMENT_SUFFIXES = (".py", ".md", ".ipynb")
SHORTCODES_DIRNAME = "shortcodes"
LANGUAGE_EXTENSIONS: Dict[str, str] = {"python": "py"}


@dataclass(frozen=True)
class DocumentResult:
    """A document that rendered in every requested format."""

    path: Path
    title: str
    outputs: List[Path]


@dataclass(frozen=True)
class DocumentFailure:
    """A document whose pipeline stopped on an error; nothing was written for it."""

    path: Path
    error: CourseDocError


@dataclass
class BuildReport:
    """Outcome of a project build."""

    project_dir: Path
    build_dir: Path
    results: List[DocumentResult] = field(default_factory=list)
    failures: List[DocumentFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def documents(self) -> int:
        return len(self.results) + len(self.failures)


def discover_documents(content_dir: Path) -> List[Path]:
    """Documents under `content_dir`, in sorted path order."""
    if not content_dir.is_dir():
        return []
    return sorted(
        path
        for path in content_dir.rglob("*")
        if path.is_file() and path.suffix.lower() in DOCUMENT_SUFFIXES
    )


def output_collisions(paths: Sequence[Path], content_dir: Path) -> Dict[Path, List[Path]]:
    """
    Map each document whose outputs would share a name with another document's
    (``a.py`` and ``a.md`` both write ``a.md``) to every member of its group.
    """
    groups: Dict[Path, List[Path]] = {}
    for path in paths:
        relative = path.relative_to(content_dir)
        groups.setdefault(relative.with_suffix(""), []).append(relative)
    return {relative: group for group in groups.values() if len(group) > 1 for relative in group}


def render_outputs(
    document: Document,
    config: ProjectConfig,
    registry: TemplateRegistry,
    formats: Sequence[OutputFormat],
    reveal_solutions: bool,
) -> Dict[str, str]:
    """
    Render `document` in every format, keyed by the suffix appended to the
    document stem to name the output file.

    Everything is rendered in memory first so that a failing format leaves no
    partial output behind.
    """
    rendered: Dict[str, str] = {}
    for output_format in formats:
        rendered[f".{output_format.extension}"] = render_document(
            document,
            output_format,
            registry,
            config.template_context(),
            reveal_solutions=reveal_solutions,
            language=config.language,
        )
    summary = exercise_summary(document.content)
    if summary:
        rendered[".meta.json"] = json.dumps(
            {"title": document.title, "exercises": summary},
            ensure_ascii=False,
            indent=2,
        ) + "\n"
    solution = solution_source(document.content)
    if solution:
        extension = LANGUAGE_EXTENSIONS.get(config.language, "txt")
        rendered[f"_solution.{extension}"] = solution
    return rendered


def build_document(
    path: Path,
    config: ProjectConfig,
    registry: TemplateRegistry,
    content_dir: Path,
    build_dir: Path,
    formats: Sequence[OutputFormat],
    reveal_solutions: bool,
) -> DocumentResult:
    relative = path.relative_to(content_dir)
    document = parse_document(read_text(path), path=relative, config=config.splitter())
    rendered = render_outputs(document, config, registry, formats, reveal_solutions)

    target_dir = build_dir / relative.parent
    outputs: List[Path] = []
    for suffix, text in rendered.items():
        out_path = target_dir / f"{relative.stem}{suffix}"
        write_text(out_path, text)
        outputs.append(out_path)
    return DocumentResult(path=relative, title=document.title, outputs=outputs)


def build_project(
    project_dir: Path,
    *,
    formats: Optional[Sequence[OutputFormat]] = None,
    reveal: Optional[bool] = None,
) -> BuildReport:
    """
    Build every document of the project in `project_dir`.

    Documents are independent: an error in one is recorded in the report and
    the build moves on to the next. Documents that would write the same output
    files are all recorded as failures and none of them is built.

    Raises
    ------
    ConfigError
        If ``config.yml`` is missing or invalid; nothing can be built then.
    """
    config = load_config(project_dir / CONFIG_FILENAME)
    formats = list(formats or config.formats)
    reveal = config.reveal_solutions if reveal is None else reveal
    registry = TemplateRegistry.from_directory(project_dir / config.templates_dir / SHORTCODES_DIRNAME)
    content_dir = project_dir / config.content_dir
    build_dir = ensure_directory(project_dir / config.build_dir)

    report = BuildReport(project_dir=project_dir, build_dir=build_dir)
    documents = discover_documents(content_dir)
    collisions = output_collisions(documents, content_dir)
    for path in documents:
        relative = path.relative_to(content_dir)
        if relative in collisions:
            others = ", ".join(other.as_posix() for other in collisions[relative] if other != relative)
            error = CourseDocError(f"Output names of {relative.as_posix()} collide with those of {others}")
            logger.debug("Skipped %s: %s", path, error)
            report.failures.append(DocumentFailure(path=relative, error=error))
            continue
        logger.debug("Building %s", path)
        try:
            result = build_document(path, config, registry, content_dir, build_dir, formats, reveal)
        except CourseDocError as exc:
            logger.debug("Failed %s: %s", path, exc)
            report.failures.append(DocumentFailure(path=relative, error=exc))
            continue
        report.results.append(result)
    logger.debug(
        "Built %d document(s), %d failure(s)",
        len(report.results),
        len(report.failures),
    )
    return report


__all__ = [
    "BuildReport",
    "DocumentFailure",
    "DocumentResult",
    "build_document",
    "build_project",
    "discover_documents",
    "output_collisions",
    "render_outputs",
]
