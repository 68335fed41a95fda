from __future__ import annotations

import textwrap

import pytest

from revbot.config import load_config, parse_config
from revbot.errors import ConfigurationError
from revbot.scheduler import BotRunner

CONFIG = textwrap.dedent(
    """
    storage:
      path: data
    scheduler:
      workers: 2
    bots:
      review:
        external:
          test: runs the test suite
        blockers:
          do-not-merge: Marked as not ready
        ready:
          labels: [rfr]
          comments:
            - user: ci-bot
              pattern: "^All tests passed"
        repositories:
          demo:
            census: main
            labels:
              build: ["^make/", "\\\\.gmk$"]
        census:
          main:
            repository: census
            ref: master
    """
).lstrip()


def test_load_config_resolves_storage_relative_to_file(tmp_path) -> None:
    path = tmp_path / "revbot.yaml"
    path.write_text(CONFIG, encoding="utf-8")

    config = load_config(path)

    assert config.storage.path == (tmp_path / "data").resolve()
    assert config.storage_folder("review") == (tmp_path / "data" / "review").resolve()
    assert config.scheduler.workers == 2
    assert config.scheduler.max_attempts == 3
    bot = config.bots["review"]
    assert bot.ready.comments[0].compiled().search("All tests passed on linux")
    patterns = bot.repositories["demo"].label_patterns()["build"]
    assert any(pattern.search("make/Main.gmk") for pattern in patterns)
    assert any(pattern.search("src/x.gmk") for pattern in patterns)


def test_runner_is_built_from_config(tmp_path) -> None:
    config = parse_config({"storage": {"path": str(tmp_path)}, "scheduler": {"workers": 1}})

    runner = BotRunner.from_config(config)
    try:
        assert runner.idle()
    finally:
        runner.shutdown()


def test_unknown_census_reference_is_rejected() -> None:
    data = {
        "storage": {"path": "/tmp/revbot"},
        "bots": {"review": {"repositories": {"demo": {"census": "missing"}}}},
    }

    with pytest.raises(ConfigurationError, match="unknown census"):
        parse_config(data)


def test_invalid_pattern_is_rejected() -> None:
    data = {
        "storage": {"path": "/tmp/revbot"},
        "bots": {"review": {"ready": {"comments": [{"user": "ci", "pattern": "("}]}}},
    }

    with pytest.raises(ConfigurationError, match="invalid pattern"):
        parse_config(data)


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ConfigurationError):
        parse_config({"storage": {"path": "/tmp/revbot"}, "unexpected": True})


def test_missing_file_and_bad_yaml(tmp_path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(tmp_path / "absent.yaml")

    broken = tmp_path / "broken.yaml"
    broken.write_text("storage: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="Failed to parse"):
        load_config(broken)

    scalar = tmp_path / "scalar.yaml"
    scalar.write_text("just a string\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="mapping"):
        load_config(scalar)
