from __future__ import annotations

import textwrap

from typer.testing import CliRunner

from revbot.cli import app
from revbot.markers.codec import (
    CHECK_RESULT,
    COMMAND_REPLY,
    CheckResult,
    CheckStatus,
    CommandReply,
)

runner = CliRunner()

CONFIG = textwrap.dedent(
    """
    storage:
      path: data
    bots:
      review:
        external:
          test: runs the test suite
        repositories:
          demo:
            census: main
            labels:
              docs: ["^doc/"]
        census:
          main:
            repository: census
    """
).lstrip()


def _write_config(tmp_path):
    path = tmp_path / "revbot.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


def test_check_config_summarises_bots(tmp_path) -> None:
    path = _write_config(tmp_path)

    result = runner.invoke(app, ["check-config", "--config", str(path)])

    assert result.exit_code == 0, result.output
    assert "Bot review" in result.output
    assert "- demo: census main, labels docs" in result.output


def test_check_config_reports_invalid_configuration(tmp_path) -> None:
    path = tmp_path / "revbot.yaml"
    path.write_text("storage: {}\n", encoding="utf-8")

    result = runner.invoke(app, ["check-config", "-c", str(path)])

    assert result.exit_code == 1


def test_help_text_matches_command_reply(tmp_path) -> None:
    path = _write_config(tmp_path)

    result = runner.invoke(app, ["help-text", "-c", str(path), "--bot", "review"])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0] == "Available commands:"
    assert " * test - runs the test suite" in lines
    assert lines[1] == " * contributor - adds or removes additional contributors for a change request"


def test_markers_lists_decoded_markers(tmp_path) -> None:
    body = tmp_path / "comment.md"
    body.write_text(
        "\n".join(
            [
                COMMAND_REPLY.encode(CommandReply(comment_id="17")),
                "@alice hello",
                CHECK_RESULT.encode(
                    CheckResult(name="jcheck", status=CheckStatus.SUCCESS, hash="abc", metadata="x")
                ),
            ]
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["--log-level", "ERROR", "markers", str(body)])

    assert result.exit_code == 0, result.output
    assert "command reply: comment_id=17" in result.output
    assert "check result: name=jcheck, status=SUCCESS, hash=abc, metadata=x" in result.output


def test_markers_reports_when_nothing_found(tmp_path) -> None:
    body = tmp_path / "comment.md"
    body.write_text("No markers here.\n", encoding="utf-8")

    result = runner.invoke(app, ["markers", str(body)])

    assert result.exit_code == 0
    assert "No markers found." in result.output
