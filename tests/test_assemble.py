import nbformat
import pytest

from conftest import SUM_EXERCISE
from course_doc.assemble import block_title, render_tree
from course_doc.errors import ResolutionError
from course_doc.formats import OutputFormat
from course_doc.split import Block, split_source


def render(text, registry, output_format=OutputFormat.MARKDOWN, **kwargs):
    return render_tree(split_source(text), output_format, registry, **kwargs)


def test_note_shortcode_in_markup(registry):
    assert render('#| {{ note(text="hi") }}\n', registry) == "**Note:** hi\n"


def test_hidden_solution_markdown(registry):
    output = render(SUM_EXERCISE, registry)
    assert output == "**Task: Sum**\n\nWrite a function.\n\n```python\n# TODO\n```\n"
    assert "return a+b" not in output


def test_revealed_solution_markdown(registry):
    output = render(SUM_EXERCISE, registry, reveal_solutions=True)
    assert output.endswith("```python\n# TODO\n```\n\n*Solution*\n\n```python\nreturn a+b\n```\n")


def test_answer_key_always_reveals(registry):
    output = render(SUM_EXERCISE, registry, OutputFormat.ANSWER_KEY)
    assert "return a+b" in output


@pytest.mark.parametrize("output_format", list(OutputFormat))
def test_hidden_render_never_contains_solution(registry, output_format):
    if output_format.always_reveals:
        pytest.skip("instructor format")
    output = render(SUM_EXERCISE, registry, output_format)
    assert "return a+b" not in output
    assert "# TODO" in output


def test_html_rendering(registry):
    output = render(SUM_EXERCISE, registry, OutputFormat.HTML, reveal_solutions=True)
    assert '<section class="exercise exercise-task" data-title="Sum">' in output
    assert '<h3 class="exercise-title">Task: Sum</h3>' in output
    assert "<p>Write a function.</p>" in output
    assert '<div class="placeholder">\n<pre><code class="language-python"># TODO</code></pre>\n</div>' in output
    assert '<details class="solution"><summary>Solution</summary>' in output
    assert output.rstrip().endswith("</section>")


def test_html_escapes_source(registry):
    output = render("if a < b and c > d:\n    pass\n", registry, OutputFormat.HTML)
    assert "if a &lt; b and c &gt; d:" in output


def test_html_uses_html_shortcode_variant(registry):
    output = render('#| {{ note(text="hi") }}\n', registry, OutputFormat.HTML)
    assert '<p class="note">hi</p>' in output


def test_markup_inside_block_is_expanded(registry):
    text = '#| <<TEST\n#| {{ note(text="inside") }}\n>>END_TEST\n'
    assert render(text, registry) == "**Test**\n\n**Note:** inside\n"


def test_error_reports_absolute_line(registry):
    text = "x = 1\n#| Intro\n#| More {{ bogus() }}\n"
    with pytest.raises(ResolutionError) as info:
        render(text, registry)
    assert info.value.name == "bogus"
    assert info.value.line == 3
    assert info.value.column == 6
    assert "line 3" in str(info.value)


def test_whitespace_only_source_is_skipped(registry):
    assert render("#| Text\n\n\n#| More\n", registry) == "Text\n\nMore\n"


def test_context_reaches_templates(registry):
    registry.add("course", "markdown", "{{ project.title }}")
    output = render("#| {{ course() }}\n", registry, context={"project": {"title": "Algo"}})
    assert output == "Algo\n"


def test_rendering_is_deterministic(registry):
    for output_format in OutputFormat:
        first = render(SUM_EXERCISE, registry, output_format, reveal_solutions=True)
        second = render(SUM_EXERCISE, registry, output_format, reveal_solutions=True)
        assert first == second


def test_notebook_cells(registry):
    output = render(SUM_EXERCISE, registry, OutputFormat.NOTEBOOK, reveal_solutions=True)
    notebook = nbformat.reads(output, as_version=4)
    cells = [(cell["cell_type"], cell["source"], cell["metadata"].get("tags", [])) for cell in notebook["cells"]]
    assert cells == [
        ("markdown", "**Task: Sum**\n\nWrite a function.", []),
        ("code", "# TODO", ["placeholder"]),
        ("markdown", "*Solution*", []),
        ("code", "return a+b", ["solution"]),
    ]
    assert [cell["id"] for cell in notebook["cells"]] == ["cell-1", "cell-2", "cell-3", "cell-4"]
    assert notebook["metadata"]["kernelspec"]["name"] == "python3"


def test_block_title():
    assert block_title(Block("TASK", {"title": "Sum"}, ())) == "Task: Sum"
    assert block_title(Block("TEST", {}, ())) == "Test"
