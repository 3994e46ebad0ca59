import textwrap

import pytest
from click.testing import CliRunner
from rich.console import Console

import deferral.cli as cli_module
from deferral.cli import cli


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.setattr(cli_module, "console", Console(width=200))
    return CliRunner()


class TestRunCommand:
    """Tests for `deferral run`."""

    def test_runs_script_and_deferred_actions(self, runner, tmp_path):
        script = tmp_path / "script.py"
        script.write_text(
            textwrap.dedent(
                """
                import sys
                from deferral.runtime import defer

                print('body', *sys.argv[1:])
                defer(lambda: print('deferred'))
                print('end')
                """
            )
        )

        result = runner.invoke(cli, ["run", str(script), "x", "y"])

        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == ["body x y", "end", "deferred"]

    def test_failing_script(self, runner, tmp_path):
        script = tmp_path / "broken.py"
        script.write_text("raise ValueError('boom')\n")

        result = runner.invoke(cli, ["run", str(script)])

        assert result.exit_code == 1
        assert "Error running" in result.output
        assert "boom" in result.output

    def test_exit_code_is_forwarded(self, runner, tmp_path):
        script = tmp_path / "exits.py"
        script.write_text("import sys\nsys.exit(3)\n")

        result = runner.invoke(cli, ["run", str(script)])

        assert result.exit_code == 3

    def test_missing_script(self, runner, tmp_path):
        result = runner.invoke(cli, ["run", str(tmp_path / "missing.py")])
        assert result.exit_code == 2


class TestRenderCommand:
    """Tests for `deferral render`."""

    def test_renders_document(self, runner, tmp_path):
        document = tmp_path / "doc.md"
        document.write_text("# Doc\n\n```python\nprint('hello from chunk')\n```\n")

        result = runner.invoke(cli, ["render", str(document)])

        assert result.exit_code == 0, result.output
        assert "hello from chunk" in result.output
        assert "Rendered 1 chunk(s)" in result.output

    def test_failing_chunk(self, runner, tmp_path):
        document = tmp_path / "doc.md"
        document.write_text("```python\n1 / 0\n```\n")

        result = runner.invoke(cli, ["render", str(document)])

        assert result.exit_code == 1
        assert "chunk 1 (line 2) failed" in result.output

    def test_failing_deferred_action_after_failing_chunk(self, runner, tmp_path):
        """Test that a cleanup error at render end is reported with the chunk failure."""
        document = tmp_path / "doc.md"
        document.write_text(
            "```python\n"
            "from deferral.runtime import defer\n"
            "defer(lambda: 1 / 0)\n"
            "raise ValueError('chunk failed')\n"
            "```\n"
        )

        result = runner.invoke(cli, ["render", str(document)])

        assert result.exit_code == 1
        assert "ZeroDivisionError" in result.output
        assert "chunk 1 (line 2) failed" in result.output


class TestSettingsCommand:
    """Tests for `deferral settings`."""

    def test_lists_settings(self, runner):
        result = runner.invoke(cli, ["settings"])
        assert result.exit_code == 0, result.output
        assert "DEFERRAL_HOOK_SOURCE" in result.output
        assert "DEFERRAL_HOOK_RENDER" in result.output

    def test_unknown_key(self, runner):
        result = runner.invoke(cli, ["settings", "--key", "NOPE"])
        assert result.exit_code == 1
        assert "Unknown setting: NOPE" in result.output
