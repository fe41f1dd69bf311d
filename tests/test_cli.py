import json

from typer.testing import CliRunner

from conftest import SUM_EXERCISE
from course_doc.cli import app

runner = CliRunner()


def test_build_reports_failures_and_exits_non_zero(project):
    result = runner.invoke(app, ["build", str(project)])
    assert result.exit_code == 1
    assert "bogus" in result.output
    assert (project / "build" / "good.md").exists()


def test_build_succeeds_without_broken_documents(project):
    (project / "content" / "bad.py").unlink()
    result = runner.invoke(app, ["build", str(project), "-f", "notebook", "--reveal", "--verbose"])
    assert result.exit_code == 0, result.output
    assert (project / "build" / "good.ipynb").exists()
    assert not (project / "build" / "good.md").exists()


def test_build_rejects_unknown_format(project):
    result = runner.invoke(app, ["build", str(project), "-f", "pdf"])
    assert result.exit_code != 0
    assert "pdf" in result.output


def test_build_without_config(tmp_path):
    result = runner.invoke(app, ["build", str(tmp_path)])
    assert result.exit_code == 2
    assert "Configuration error" in result.output


def test_render_to_stdout(tmp_path):
    source = tmp_path / "sum.py"
    source.write_text(SUM_EXERCISE, encoding="utf-8")
    result = runner.invoke(app, ["render", str(source)])
    assert result.exit_code == 0, result.output
    assert "# TODO" in result.stdout
    assert "return a+b" not in result.stdout


def test_render_with_project_config_and_output_file(tmp_path, project):
    output = tmp_path / "out" / "good.html"
    result = runner.invoke(
        app,
        [
            "render",
            str(project / "content" / "good.py"),
            "-f",
            "html",
            "--reveal",
            "--config",
            str(project / "config.yml"),
            "-o",
            str(output),
        ],
    )
    assert result.exit_code == 0, result.output
    html = output.read_text(encoding="utf-8")
    assert '<p class="note">hi</p>' in html
    assert "return a+b" in html


def test_render_error_exits_with_code_1(project):
    result = runner.invoke(app, ["render", str(project / "content" / "bad.py"), "--config", str(project / "config.yml")])
    assert result.exit_code == 1
    assert "ResolutionError" in result.output


def test_split_prints_segment_tree(tmp_path):
    source = tmp_path / "sum.py"
    source.write_text(SUM_EXERCISE, encoding="utf-8")
    result = runner.invoke(app, ["split", str(source)])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    (block,) = payload["content"]
    assert block["keyword"] == "TASK"
    assert block["attributes"] == {"title": "Sum"}
    assert payload["title"] == "sum"


def test_split_with_custom_convention(tmp_path):
    source = tmp_path / "proof.tex"
    source.write_text("%! Markup\n% comment\n", encoding="utf-8")
    result = runner.invoke(app, ["split", str(source), "--leaders", "%", "--marker", "!"])
    assert result.exit_code == 0, result.output
    kinds = [node["kind"] for node in json.loads(result.stdout)["content"]]
    assert kinds == ["markup", "source"]


def test_split_rejects_bad_marker(tmp_path):
    source = tmp_path / "a.py"
    source.write_text("x = 1\n", encoding="utf-8")
    result = runner.invoke(app, ["split", str(source), "--marker", "ab"])
    assert result.exit_code == 2
