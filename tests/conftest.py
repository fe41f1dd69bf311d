from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import nbformat
import pytest

from course_doc.templates import TemplateRegistry

SUM_EXERCISE = dedent(
    """\
    #| <<TASK{title=Sum}
    #| Write a function.
    #| <<CODE
    # TODO
    >> SOLUTION <<
    return a+b
    >>END_CODE
    >>END_TASK
    """
)


@pytest.fixture
def registry() -> TemplateRegistry:
    return TemplateRegistry(
        {
            "note": {
                "markdown": "**Note:** {{text}}",
                "html": '<p class="note">{{ text }}</p>',
            },
            "image": {
                "markdown": "![image]({{ url }}) ({{ width }}px)",
                "html": '<img src="{{ url }}" width="{{ width }}">',
            },
            "box": {
                "markdown": "> {{ body }}",
                "html": '<div class="box">{{ body }}</div>',
            },
        }
    )


def make_notebook(*cells) -> str:
    """Notebook JSON text from `(cell_type, source)` pairs."""
    notebook = nbformat.v4.new_notebook()
    for cell_type, source in cells:
        if cell_type == "markdown":
            notebook.cells.append(nbformat.v4.new_markdown_cell(source))
        elif cell_type == "raw":
            notebook.cells.append(nbformat.v4.new_raw_cell(source))
        else:
            notebook.cells.append(nbformat.v4.new_code_cell(source))
    return nbformat.writes(notebook)


def write_project(root: Path, files: dict) -> Path:
    for name, text in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dedent(text), encoding="utf-8")
    return root


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small project with one good, one broken and one Markdown document."""
    return write_project(
        tmp_path,
        {
            "config.yml": """\
                title: Demo Course
                author: Ada
                formats: [markdown, html]
            """,
            "templates/shortcodes/markdown/note.md": "**Note:** {{ text }}\n",
            "templates/shortcodes/html/note.html": '<p class="note">{{ text }}</p>\n',
            "templates/shortcodes/markdown/course.md": "{{ project.title }}\n",
            "templates/shortcodes/html/course.html": "<em>{{ project.title }}</em>\n",
            "content/good.py": "#| # Adding numbers\n#| {{ note(text=\"hi\") }}\n" + SUM_EXERCISE,
            "content/bad.py": "#| Intro\n#| {{ bogus() }}\n",
            "content/chapter/intro.md": """\
                ---
                title: Introduction
                ---
                Welcome to {{ course() }}.
            """,
        },
    )
