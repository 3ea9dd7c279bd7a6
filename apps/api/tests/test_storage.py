from __future__ import annotations

from kidhub.config import AppConfig, load_config
from kidhub.storage import FileStorage, MemoryStorage, read_json, write_json


def test_file_storage_round_trip(tmp_path) -> None:
    storage = FileStorage(tmp_path / "state")

    assert storage.get_item("auth-storage") is None
    write_json(storage, "auth-storage", {"isAuthenticated": True, "userType": "guardian"})

    reopened = FileStorage(tmp_path / "state")
    assert read_json(reopened, "auth-storage") == {"isAuthenticated": True, "userType": "guardian"}
    assert not list((tmp_path / "state").glob("*.tmp"))

    reopened.remove_item("auth-storage")
    reopened.remove_item("auth-storage")
    assert storage.get_item("auth-storage") is None


def test_file_storage_sanitizes_keys(tmp_path) -> None:
    storage = FileStorage(tmp_path)
    storage.set_item("sb-auth/../token", "{}")

    assert [path.name for path in tmp_path.iterdir()] == ["sb-auth_.._token.json"]


def test_read_json_ignores_corrupt_or_non_object_values() -> None:
    storage = MemoryStorage({"broken": "{oops", "list": "[1, 2]", "empty": ""})

    assert read_json(storage, "broken") is None
    assert read_json(storage, "list") is None
    assert read_json(storage, "empty") is None
    assert read_json(storage, "missing") is None


def test_placeholder_detection() -> None:
    assert AppConfig().is_placeholder is True
    assert AppConfig(supabase_url="https://placeholder-url.supabase.co/").is_placeholder is True
    assert AppConfig(supabase_url="https://abc.supabase.co").is_placeholder is False


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.setenv("VITE_SUPABASE_URL", "https://abc.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon")
    monkeypatch.setenv("KIDHUB_LOG_LEVEL", "DEBUG")

    config = load_config()

    assert config.supabase_url == "https://abc.supabase.co"
    assert config.supabase_anon_key == "anon"
    assert config.log_level == "DEBUG"
    assert config.is_placeholder is False
