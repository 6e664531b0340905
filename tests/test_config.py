"""Tests for configuration loading."""

import os

import pytest

from mail_search import config as config_module
from mail_search.config import SearchConfig, load_env, parse_env
from mail_search.errors import ConfigurationError


def test_defaults_from_empty_environment() -> None:
    config = SearchConfig.from_env({})

    assert config == SearchConfig()
    assert config.chunk_size == 1000
    assert config.chunk_overlap == 100
    assert config.embed_batch_size == 99
    assert config.rerank_top_k == 30
    assert config.result_limit == 10
    assert config.embedding_model == "text-embedding-3-small"


def test_overrides() -> None:
    config = SearchConfig.from_env(
        {
            "MAIL_SEARCH_DATA_PATH": "/tmp/mail.json",
            "MAIL_SEARCH_CHUNK_SIZE": "500",
            "MAIL_SEARCH_CHUNK_OVERLAP": "0",
            "MAIL_SEARCH_RERANK_TOP_K": "5",
        }
    )

    assert config.data_path == "/tmp/mail.json"
    assert config.chunk_size == 500
    assert config.chunk_overlap == 0
    assert config.rerank_top_k == 5


@pytest.mark.parametrize("value", ["abc", "-1", "0"])
def test_rejects_bad_integers(value: str) -> None:
    with pytest.raises(ConfigurationError):
        SearchConfig.from_env({"MAIL_SEARCH_EMBED_BATCH_SIZE": value})


def test_load_env_does_not_override(tmp_path, monkeypatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comment\nMAIL_SEARCH_TEST_A='from file'\nexport MAIL_SEARCH_TEST_B=2\nMAIL_SEARCH_TEST_C=file\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(config_module, "_ENV_LOADED", False)
    monkeypatch.setenv("MAIL_SEARCH_TEST_C", "process")
    monkeypatch.delenv("MAIL_SEARCH_TEST_A", raising=False)
    monkeypatch.delenv("MAIL_SEARCH_TEST_B", raising=False)

    try:
        applied = load_env(env_file)

        assert applied == {"MAIL_SEARCH_TEST_A": "from file", "MAIL_SEARCH_TEST_B": "2"}
        assert os.environ["MAIL_SEARCH_TEST_A"] == "from file"
        assert os.environ["MAIL_SEARCH_TEST_B"] == "2"
        assert os.environ["MAIL_SEARCH_TEST_C"] == "process"
    finally:
        os.environ.pop("MAIL_SEARCH_TEST_A", None)
        os.environ.pop("MAIL_SEARCH_TEST_B", None)


def test_load_env_missing_file_is_ignored(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(config_module, "_ENV_LOADED", False)

    load_env(tmp_path / "absent.env")

    assert config_module._ENV_LOADED is True


def test_parse_env_handles_quotes_and_comments() -> None:
    text = "\n".join(
        [
            "# leading comment",
            "",
            "PLAIN=value # trailing note",
            'QUOTED="keep # this"',
            "  export SPACED = padded  ",
            "not an assignment",
            "1BAD=skipped",
            "PLAIN=second",
            "EMPTY=",
        ]
    )

    assert parse_env(text) == {
        "PLAIN": "second",
        "QUOTED": "keep # this",
        "SPACED": "padded",
        "EMPTY": "",
    }


def test_load_env_runs_once(tmp_path, monkeypatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("MAIL_SEARCH_TEST_ONCE=1\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "_ENV_LOADED", True)
    monkeypatch.delenv("MAIL_SEARCH_TEST_ONCE", raising=False)

    assert load_env(env_file) == {}
    assert "MAIL_SEARCH_TEST_ONCE" not in os.environ
