import json
from pathlib import Path

import nbformat
import pytest

from conftest import write_project
from course_doc.build import build_project, discover_documents, output_collisions
from course_doc.config import ProjectConfig, load_config
from course_doc.errors import ConfigError, RenderError, ResolutionError
from course_doc.formats import OutputFormat


def test_discover_documents_sorted(project):
    content = project / "content"
    (content / "notes.txt").write_text("ignored", encoding="utf-8")
    assert discover_documents(content) == [
        content / "bad.py",
        content / "chapter" / "intro.md",
        content / "good.py",
    ]


def test_failure_in_one_document_does_not_stop_the_build(project):
    report = build_project(project)

    assert not report.ok
    assert report.documents == 3
    (failure,) = report.failures
    assert failure.path == Path("bad.py")
    assert isinstance(failure.error, ResolutionError)
    assert failure.error.name == "bogus"
    assert failure.error.line == 2

    build = project / "build"
    assert not list(build.glob("bad*"))
    assert sorted(result.path.as_posix() for result in report.results) == ["chapter/intro.md", "good.py"]


def test_outputs_per_format(project):
    build_project(project)
    build = project / "build"

    markdown = (build / "good.md").read_text(encoding="utf-8")
    assert markdown.startswith("# Adding numbers\n**Note:** hi\n")
    assert "# TODO" in markdown
    assert "return a+b" not in markdown

    html = (build / "good.html").read_text(encoding="utf-8")
    assert '<p class="note">hi</p>' in html

    intro = (build / "chapter" / "intro.md").read_text(encoding="utf-8")
    assert intro == "Welcome to Demo Course.\n"
    assert (build / "chapter" / "intro.html").read_text(encoding="utf-8").startswith(
        "<p>Welcome to <em>Demo Course</em>"
    )


def test_exercise_metadata_and_solution_files(project):
    build_project(project)
    build = project / "build"

    meta = json.loads((build / "good.meta.json").read_text(encoding="utf-8"))
    assert meta["title"] == "Adding numbers"
    assert [entry["path"] for entry in meta["exercises"]] == [["TASK:1"], ["TASK:1", "CODE:1"]]
    assert (build / "good_solution.py").read_text(encoding="utf-8") == "return a+b\n"
    assert not (build / "chapter" / "intro.meta.json").exists()


def test_format_and_reveal_overrides(project):
    (project / "content" / "bad.py").unlink()
    report = build_project(project, formats=[OutputFormat.NOTEBOOK, OutputFormat.ANSWER_KEY], reveal=True)
    assert report.ok

    build = project / "build"
    notebook = nbformat.reads((build / "good.ipynb").read_text(encoding="utf-8"), as_version=4)
    assert any("solution" in cell.metadata.get("tags", []) for cell in notebook.cells)
    assert "return a+b" in (build / "good.key.md").read_text(encoding="utf-8")
    assert not (build / "good.html").exists()


def test_rebuild_is_identical(project):
    build_project(project)
    first = (project / "build" / "good.html").read_text(encoding="utf-8")
    build_project(project)
    assert (project / "build" / "good.html").read_text(encoding="utf-8") == first


def test_missing_config(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        build_project(tmp_path)


def test_config_defaults(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("title: Course\n", encoding="utf-8")
    config = load_config(path)
    assert config.formats == [OutputFormat.HTML, OutputFormat.NOTEBOOK]
    assert config.content_dir == Path("content")
    assert config.splitter().leaders == "#"
    assert config.template_context()["title"] == "Course"


@pytest.mark.parametrize(
    "text, message",
    [
        ("author: nobody\n", "title"),
        ("title: A\nunknown: 1\n", "unknown"),
        ("title: A\nformats: [pdf]\n", "formats"),
        ("title: A\nmarkup_marker: '#'\n", "marker"),
        ("- just\n- a list\n", "mapping"),
        ("title: [unclosed\n", "Invalid YAML"),
    ],
)
def test_invalid_config(tmp_path, text, message):
    path = tmp_path / "config.yml"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError, match=message):
        load_config(path)


def test_project_config_validates_comment_convention():
    with pytest.raises(ValueError):
        ProjectConfig(title="A", comment_leaders="a")


def test_template_runtime_error_does_not_stop_the_build(tmp_path):
    project = write_project(
        tmp_path,
        {
            "config.yml": "title: T\nformats: [markdown]\n",
            "templates/shortcodes/markdown/img.md": "{{ width + 1 }}\n",
            "content/a_bad.py": "#| Picture\n#| {{ img(width=abc) }}\n",
            "content/b_good.py": "#| Fine\n",
        },
    )
    report = build_project(project)

    (failure,) = report.failures
    assert failure.path == Path("a_bad.py")
    assert isinstance(failure.error, RenderError)
    assert failure.error.context == "img"
    assert failure.error.line == 2
    assert [result.path for result in report.results] == [Path("b_good.py")]
    assert (project / "build" / "b_good.md").read_text(encoding="utf-8") == "Fine\n"


def test_invalid_notebook_does_not_stop_the_build(tmp_path):
    project = write_project(
        tmp_path,
        {
            "config.yml": "title: T\nformats: [markdown]\n",
            "content/a.ipynb": "[1, 2]",
            "content/b.py": "#| Fine\n",
        },
    )
    report = build_project(project)
    assert [failure.path for failure in report.failures] == [Path("a.ipynb")]
    assert [result.path for result in report.results] == [Path("b.py")]


def test_colliding_output_names_fail_every_document_involved(tmp_path):
    project = write_project(
        tmp_path,
        {
            "config.yml": "title: T\nformats: [markdown]\n",
            "content/a.md": "Page\n",
            "content/a.py": "x = 1\n",
            "content/b.py": "y = 2\n",
        },
    )
    report = build_project(project)

    assert not report.ok
    assert sorted(failure.path.as_posix() for failure in report.failures) == ["a.md", "a.py"]
    assert all("collide" in str(failure.error) for failure in report.failures)
    assert not (project / "build" / "a.md").exists()
    assert (project / "build" / "b.md").exists()


def test_output_collisions_ignore_other_directories(tmp_path):
    paths = [tmp_path / "a.py", tmp_path / "sub" / "a.md", tmp_path / "sub" / "a.ipynb"]
    collisions = output_collisions(paths, tmp_path)
    assert set(collisions) == {Path("sub/a.md"), Path("sub/a.ipynb")}
