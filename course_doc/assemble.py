"""
Render a segment tree to each output format.

Markup runs go through shortcode expansion; source runs are emitted as code.
Exercise blocks are decorated per format, and code exercises show their
solution only when the format reveals solutions.

Notebook cell policy: every non-blank source run is its own code cell;
consecutive markdown pieces (markup runs, block headings, solution labels)
are merged into one markdown cell. Code and markup never share a cell.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from nbformat import NotebookNode

from .errors import CourseDocError
from .expander import ShortcodeExpander, markdown_to_html
from .formats import OutputFormat
from .notebook import build_notebook, notebook_to_text
from .split import Block, CodeBlock, MarkupRun, Segment, SourceRun
from .templates import TemplateRegistry

BLOCK_LABELS: Dict[str, str] = {
    "TASK": "Task",
    "TEST": "Test",
}
SOLUTION_LABEL = "Solution"


@dataclass(frozen=True)
class RenderOptions:
    """Everything besides the tree, registry and context that shapes the output."""

    output_format: OutputFormat
    reveal_solutions: bool = False
    language: str = "python"

    @property
    def reveal(self) -> bool:
        return self.output_format.reveals(self.reveal_solutions)


def block_title(block: Block) -> str:
    label = BLOCK_LABELS.get(block.keyword, block.keyword.title())
    title = block.attributes.get("title")
    return f"{label}: {title}" if title else label


class Assembler:
    """
    Walk a segment tree and render it; subclasses implement one node kind each.

    Rendering reads the tree, registry and context only, so the same inputs
    always give the same output.
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        options: RenderOptions,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.options = options
        self.expander = ShortcodeExpander(registry, options.output_format, context)

    def expand(self, run: MarkupRun) -> str:
        try:
            return self.expander.expand(run.text)
        except CourseDocError as exc:
            raise exc.relocate(run.line or 1, run.text)

    def node(self, node: Segment) -> None:
        if isinstance(node, MarkupRun):
            self.markup(node)
        elif isinstance(node, SourceRun):
            if node.text.strip():
                self.source(node)
        elif isinstance(node, Block):
            self.block(node)
        elif isinstance(node, CodeBlock):
            self.code_block(node)
        else:
            raise TypeError(f"Unexpected segment {node!r}")

    def nodes(self, content: Sequence[Segment]) -> None:
        for child in content:
            self.node(child)

    def render(self, content: Sequence[Segment]) -> str:
        raise NotImplementedError

    def markup(self, run: MarkupRun) -> None:
        raise NotImplementedError

    def source(self, run: SourceRun) -> None:
        raise NotImplementedError

    def block(self, block: Block) -> None:
        raise NotImplementedError

    def code_block(self, code: CodeBlock) -> None:
        raise NotImplementedError


class MarkdownAssembler(Assembler):
    """Markdown output, also used for the answer key."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.parts: List[str] = []

    def render(self, content: Sequence[Segment]) -> str:
        self.parts = []
        self.nodes(content)
        return "\n\n".join(part for part in self.parts if part) + "\n"

    def markup(self, run: MarkupRun) -> None:
        self.parts.append(self.expand(run).strip("\n"))

    def source(self, run: SourceRun) -> None:
        self.parts.append(f"```{self.options.language}\n{run.text.rstrip()}\n```")

    def block(self, block: Block) -> None:
        self.parts.append(f"**{block_title(block)}**")
        self.nodes(block.content)

    def code_block(self, code: CodeBlock) -> None:
        self.nodes(code.placeholder)
        if self.options.reveal:
            self.parts.append(f"*{SOLUTION_LABEL}*")
            self.nodes(code.solution)


class HtmlAssembler(Assembler):
    """HTML fragment output; markup is converted with Python-Markdown."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.parts: List[str] = []

    def render(self, content: Sequence[Segment]) -> str:
        self.parts = []
        self.nodes(content)
        return "\n".join(part for part in self.parts if part) + "\n"

    def markup(self, run: MarkupRun) -> None:
        self.parts.append(markdown_to_html(self.expand(run)))

    def source(self, run: SourceRun) -> None:
        language = html.escape(self.options.language, quote=True)
        code = html.escape(run.text.rstrip())
        self.parts.append(f'<pre><code class="language-{language}">{code}</code></pre>')

    def block(self, block: Block) -> None:
        keyword = block.keyword.lower()
        data = "".join(
            f' data-{html.escape(name, quote=True)}="{html.escape(value, quote=True)}"'
            for name, value in sorted(block.attributes.items())
        )
        self.parts.append(f'<section class="exercise exercise-{keyword}"{data}>')
        self.parts.append(f'<h3 class="exercise-title">{html.escape(block_title(block))}</h3>')
        self.nodes(block.content)
        self.parts.append("</section>")

    def code_block(self, code: CodeBlock) -> None:
        self.parts.append('<div class="code-exercise">')
        self.parts.append('<div class="placeholder">')
        self.nodes(code.placeholder)
        self.parts.append("</div>")
        if self.options.reveal:
            self.parts.append(f'<details class="solution"><summary>{SOLUTION_LABEL}</summary>')
            self.nodes(code.solution)
            self.parts.append("</details>")
        self.parts.append("</div>")


class NotebookAssembler(Assembler):
    """Notebook output: markdown cells for markup, code cells for source."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.cells: List[Tuple[str, str, Tuple[str, ...]]] = []
        self._tags: Tuple[str, ...] = ()

    def notebook(self, content: Sequence[Segment]) -> NotebookNode:
        self.cells = []
        self.nodes(content)
        return build_notebook(self.cells, self.options.language)

    def render(self, content: Sequence[Segment]) -> str:
        return notebook_to_text(self.notebook(content))

    def _markdown(self, text: str) -> None:
        text = text.strip("\n")
        if not text:
            return
        if self.cells and self.cells[-1][0] == "markdown":
            _, previous, tags = self.cells[-1]
            self.cells[-1] = ("markdown", f"{previous}\n\n{text}", tags)
        else:
            self.cells.append(("markdown", text, ()))

    def markup(self, run: MarkupRun) -> None:
        self._markdown(self.expand(run))

    def source(self, run: SourceRun) -> None:
        self.cells.append(("code", run.text.rstrip(), self._tags))

    def block(self, block: Block) -> None:
        self._markdown(f"**{block_title(block)}**")
        self.nodes(block.content)

    def code_block(self, code: CodeBlock) -> None:
        self._tags = ("placeholder",)
        self.nodes(code.placeholder)
        if self.options.reveal:
            self._markdown(f"*{SOLUTION_LABEL}*")
            self._tags = ("solution",)
            self.nodes(code.solution)
        self._tags = ()


ASSEMBLERS: Dict[OutputFormat, Type[Assembler]] = {
    OutputFormat.HTML: HtmlAssembler,
    OutputFormat.MARKDOWN: MarkdownAssembler,
    OutputFormat.ANSWER_KEY: MarkdownAssembler,
    OutputFormat.NOTEBOOK: NotebookAssembler,
}


def render_tree(
    content: Sequence[Segment],
    output_format: OutputFormat,
    registry: TemplateRegistry,
    context: Optional[Mapping[str, Any]] = None,
    *,
    reveal_solutions: bool = False,
    language: str = "python",
) -> str:
    """
    Render `content` to `output_format` and return the output text.

    Notebooks are returned as nbformat JSON.
    """
    options = RenderOptions(
        output_format=output_format,
        reveal_solutions=reveal_solutions,
        language=language,
    )
    assembler = ASSEMBLERS[output_format](registry, options, context)
    return assembler.render(content)


__all__ = [
    "ASSEMBLERS",
    "Assembler",
    "HtmlAssembler",
    "MarkdownAssembler",
    "NotebookAssembler",
    "RenderOptions",
    "block_title",
    "render_tree",
]
