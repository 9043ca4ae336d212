import logging
import os

import pytest

from smart_categorizer.core import settings
from smart_categorizer.core.settings import EngineSettings


def test_read_config_file(tmp_path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "# categorizer settings\n"
        "LOG_LEVEL: debug  # noisy\n"
        'OPENAI_MODEL: "gpt-4o # not a comment"\n'
        "OPENAI_BASE_URL: 'http://localhost:11434/v1'\n"
        "DATA_DIR:\n"
        "not a setting\n",
        encoding="utf-8",
    )

    assert settings.read_config_file(str(config)) == {
        "LOG_LEVEL": "debug",
        "OPENAI_MODEL": "gpt-4o # not a comment",
        "OPENAI_BASE_URL": "http://localhost:11434/v1",
    }


def test_read_missing_config_file(tmp_path) -> None:
    assert settings.read_config_file(str(tmp_path / "missing.yaml")) == {}
    assert settings.read_config_file(None) == {}


def test_get_env_int(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.setenv("CATEGORIZER_BATCH_SIZE", "25")
    assert settings.get_env_int("CATEGORIZER_BATCH_SIZE", 10, min_value=1) == 25

    monkeypatch.setenv("CATEGORIZER_BATCH_SIZE", "0")
    assert settings.get_env_int("CATEGORIZER_BATCH_SIZE", 10, min_value=1) == 10

    monkeypatch.setenv("CATEGORIZER_BATCH_SIZE", "lots")
    with caplog.at_level(logging.WARNING):
        assert settings.get_env_int("CATEGORIZER_BATCH_SIZE", 10) == 10
    assert "Invalid CATEGORIZER_BATCH_SIZE" in caplog.text


def test_get_env_float(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CATEGORIZER_AGREEMENT_BOOST", raising=False)
    assert settings.get_env_float("CATEGORIZER_AGREEMENT_BOOST", 0.1) == 0.1

    monkeypatch.setenv("CATEGORIZER_AGREEMENT_BOOST", "0.25")
    assert settings.get_env_float("CATEGORIZER_AGREEMENT_BOOST", 0.1) == 0.25

    monkeypatch.setenv("CATEGORIZER_AGREEMENT_BOOST", "-1")
    assert settings.get_env_float("CATEGORIZER_AGREEMENT_BOOST", 0.1, min_value=0.0) == 0.1


@pytest.mark.parametrize(
    ("name", "value", "expected"),
    [
        ("OPENAI_API_KEY", "sk-abcdef123456", "sk...56"),
        ("OPENAI_MODEL", "gpt-4o-mini", "gpt-4o-mini"),
        ("SOME_VALUE", "sk-leaked-secret", "sk...et"),
        ("AUTH_TOKEN", "abc", "****"),
        ("LOG_DIR", "logs\nINJECTED", "logs\\nINJECTED"),
    ],
)
def test_mask_env_value(name: str, value: str, expected: str) -> None:
    assert settings.mask_env_value(name, value) == expected


def test_engine_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CATEGORIZER_BATCH_SIZE", "5")
    monkeypatch.setenv("CATEGORIZER_CONFIDENCE_CEILING", "99")
    monkeypatch.setenv("CATEGORIZER_HIGH_CONFIDENCE", "nope")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4.1")

    config = EngineSettings.from_env()

    assert config.batch_size == 5
    assert config.confidence_ceiling == 99
    assert config.high_confidence_threshold == 80
    assert config.llm_model == "gpt-4.1"
    assert config.top_n == 3


def test_ensure_dir(tmp_path) -> None:
    target = tmp_path / "a" / "b"
    settings.ensure_dir(str(target))
    assert target.is_dir()


def test_log_environment_masks_secrets(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-abcdef123456")
    monkeypatch.delenv("OPENAI_BASE_URL", raising=False)

    with caplog.at_level(logging.INFO, logger="smart_categorizer.core.settings"):
        settings.log_environment()

    assert "[ENV] OPENAI_API_KEY=sk...56" in caplog.text
    assert "[ENV] OPENAI_BASE_URL=<unset>" in caplog.text
    assert "abcdef" not in caplog.text


def test_load_environment_fills_unset_keys(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    (tmp_path / "config.yaml").write_text(
        "OPENAI_MODEL: gpt-4o\nLOG_LEVEL: DEBUG\nUNRELATED_KEY: 1\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("CONFIG_DIR", str(tmp_path))
    # set then delete so monkeypatch restores the original state afterwards
    monkeypatch.setenv("OPENAI_MODEL", "placeholder")
    monkeypatch.delenv("OPENAI_MODEL")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("UNRELATED_KEY", "placeholder")
    monkeypatch.delenv("UNRELATED_KEY")

    settings.load_environment()

    assert os.environ["OPENAI_MODEL"] == "gpt-4o"
    assert os.environ["LOG_LEVEL"] == "WARNING"
    assert "UNRELATED_KEY" not in os.environ
