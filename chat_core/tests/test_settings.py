import pytest
from pydantic import ValidationError

from chat_core.config.settings import DEFAULT_FALLBACK_ANSWER, Settings


def test_settings_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CHAT_CONFIG_FILE", raising=False)
    s = Settings()
    assert s.dispatch_mode == "backend"
    assert s.fallback_answer == DEFAULT_FALLBACK_ANSWER
    assert s.available_models[0] == "tinyllama:latest"


def test_yaml_config_and_env_priority(monkeypatch, tmp_path):
    cfg = tmp_path / "chat.yaml"
    cfg.write_text("dispatch_mode: simulated\nstream_chunk_delay: 0.2\nhttp_timeout: 5\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CHAT_CONFIG_FILE", str(cfg))
    monkeypatch.setenv("HTTP_TIMEOUT", "12")
    s = Settings()
    assert s.dispatch_mode == "simulated"
    assert s.stream_chunk_delay == 0.2
    assert s.http_timeout == 12.0


def test_invalid_dispatch_mode(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValidationError):
        Settings(dispatch_mode="carrier-pigeon")


def test_use_context_off_by_default(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CHAT_CONFIG_FILE", raising=False)
    monkeypatch.delenv("USE_CONTEXT", raising=False)
    assert Settings().use_context is False
