"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from blockscribe.services.settings import SecretVault, Settings, SettingsStore, redact_secret


def _store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "settings.key"))


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    assert _store(tmp_path).load() == Settings()


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    original = Settings(
        base_url="https://example.com/v1",
        api_key="super-secret",
        model="gpt-4.1-mini",
        organization="acme",
        transport="http",
        chat_endpoint="https://docs.example.com/api/ai/doc-chat",
        default_headers={"X-Test": "1"},
        fuzzy_threshold=0.7,
        auto_continue_max_results=2,
    )

    _store(tmp_path).save(original)

    assert _store(tmp_path).load() == original


def test_api_key_is_encrypted_on_disk(tmp_path: Path) -> None:
    path = _store(tmp_path).save(Settings(api_key="super-secret"))

    payload = json.loads(path.read_text(encoding="utf-8"))

    assert "api_key" not in payload
    assert payload["api_key_ciphertext"].startswith("fernet:")
    assert "super-secret" not in path.read_text(encoding="utf-8")
    assert payload["secret_backend"] == "fernet"


def test_legacy_plaintext_api_key_is_migrated(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(json.dumps({"api_key": "plain-key", "model": "gpt-3.5"}), encoding="utf-8")

    loaded = _store(tmp_path).load()

    assert loaded.api_key == "plain-key"
    assert loaded.model == "gpt-3.5"
    migrated = json.loads(target.read_text(encoding="utf-8"))
    assert "api_key" not in migrated
    assert migrated["version"] == 1


def test_undecryptable_key_is_dropped(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(json.dumps({"api_key_ciphertext": "fernet:garbage", "version": 1}), encoding="utf-8")

    assert _store(tmp_path).load().api_key == ""


def test_invalid_json_falls_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text("{not json", encoding="utf-8")

    assert _store(tmp_path).load() == Settings()


def test_env_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(Settings(base_url="https://local", api_key="abc"))
    monkeypatch.setenv("BLOCKSCRIBE_BASE_URL", "https://env-base")
    monkeypatch.setenv("BLOCKSCRIBE_API_KEY", "env-key")
    monkeypatch.setenv("BLOCKSCRIBE_AUTO_CONTINUE", "no")
    monkeypatch.setenv("BLOCKSCRIBE_FUZZY_THRESHOLD", "0.75")
    monkeypatch.setenv("BLOCKSCRIBE_AUTO_CONTINUE_MAX_RESULTS", "5")

    overridden = store.load(overrides={"base_url": "https://cli"})

    assert overridden.base_url == "https://env-base"
    assert overridden.api_key == "env-key"
    assert overridden.auto_continue is False
    assert overridden.fuzzy_threshold == 0.75
    assert overridden.auto_continue_max_results == 5


def test_bad_numeric_env_override_is_ignored(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BLOCKSCRIBE_REQUEST_TIMEOUT", "soon")

    assert _store(tmp_path).load().request_timeout == Settings().request_timeout


def test_cli_overrides_apply_and_unknown_keys_are_ignored(tmp_path: Path) -> None:
    settings = _store(tmp_path).load(overrides={"model": "gpt-cli", "colour": "blue", "organization": None})

    assert settings.model == "gpt-cli"
    assert settings.organization is None


def test_out_of_range_values_are_corrected(tmp_path: Path) -> None:
    settings = _store(tmp_path).load(
        overrides={
            "transport": "carrier-pigeon",
            "fuzzy_threshold": 3.0,
            "auto_continue_max_results": 0,
            "permission_settle_delay": -1.0,
        }
    )

    assert settings.transport == "openai"
    assert settings.fuzzy_threshold == 0.6
    assert settings.auto_continue_max_results == 1
    assert settings.permission_settle_delay == 0.0


def test_vault_rejects_tampered_tokens(tmp_path: Path) -> None:
    vault = SecretVault(key_path=tmp_path / "k")
    token = vault.encrypt("secret")

    assert vault.decrypt(token) == "secret"
    assert vault.encrypt("") == ""
    with pytest.raises(ValueError):
        vault.decrypt(token[:-4] + "AAAA")


def test_redact_secret() -> None:
    assert redact_secret("") == ""
    assert redact_secret("abc") == "***"
    assert redact_secret("sk-123456") == "sk*****56"
