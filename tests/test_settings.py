import os
import sys
import unittest

import keyring
import pytest
import yaml
from keyring.backend import KeyringBackend

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from app_context import AppContext
from config import YamlConfig, remote_credentials
from db import SettingsRepository
from models import SetRecord
from remote_store import MemoryRemoteStore
from settings_schema import validate_settings


class DummyKeyring(KeyringBackend):
    priority = 1

    def __init__(self):
        self.store = {}

    def get_password(self, service, username):
        return self.store.get((service, username))

    def set_password(self, service, username, password):
        self.store[(service, username)] = password

    def delete_password(self, service, username):
        self.store.pop((service, username), None)


class SettingsEncryptionTest(unittest.TestCase):
    def setUp(self) -> None:
        keyring.set_keyring(DummyKeyring())
        os.environ["ENCRYPT_SETTINGS"] = "1"
        self.path = "enc_settings.yaml"
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
        os.environ.pop("ENCRYPT_SETTINGS", None)

    def test_remote_key_kept_in_keyring(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({"remote_key": "secret", "weight_unit": "lb"})
        with open(self.path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        self.assertIs(raw["remote_key"], True)
        data = cfg.load()
        self.assertEqual(data["remote_key"], "secret")
        self.assertEqual(data["weight_unit"], "lb")


def test_validate_settings():
    validate_settings({"weight_unit": "kg", "debounce_ms": 250})
    with pytest.raises(ValueError):
        validate_settings({"weight_unit": "stone"})


def test_missing_yaml_loads_empty(tmp_path):
    assert YamlConfig(str(tmp_path / "none.yaml")).load() == {}


def test_remote_credentials_env_first(monkeypatch):
    settings = {"remote_url": "https://file", "remote_key": "file-key"}
    monkeypatch.delenv("LEDGER_REMOTE_URL", raising=False)
    monkeypatch.delenv("LEDGER_REMOTE_KEY", raising=False)
    assert remote_credentials(settings) == ("https://file", "file-key")
    monkeypatch.setenv("LEDGER_REMOTE_URL", "https://env")
    assert remote_credentials(settings) == ("https://env", "file-key")


def test_settings_repository_syncs_yaml(tmp_path):
    db = str(tmp_path / "ledger.db")
    yaml_path = str(tmp_path / "settings.yaml")
    repo = SettingsRepository(db, yaml_path)
    assert repo.get_int("debounce_ms", 0) == 400
    assert repo.get_bool("rest_notifications", False) is True
    repo.set_text("weight_unit", "lb")
    with open(yaml_path, encoding="utf-8") as f:
        assert yaml.safe_load(f)["weight_unit"] == "lb"
    with pytest.raises(ValueError):
        repo.set_text("weight_unit", "stone")

    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.safe_dump({"default_bodyweight": 70.0, "rest_notifications": False}, f)
    reopened = SettingsRepository(db, yaml_path)
    assert reopened.get_float("default_bodyweight", 0.0) == 70.0
    assert reopened.get_bool("rest_notifications", True) is False


def test_app_context_lifecycle(tmp_path):
    db = str(tmp_path / "ledger.db")
    yaml_path = str(tmp_path / "settings.yaml")
    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.safe_dump({"default_bodyweight": 70.0, "rest_notifications": False, "debounce_ms": 100}, f)
    remote = MemoryRemoteStore()
    with AppContext(db, yaml_path, remote=remote) as ctx:
        assert ctx.service.snapshot.bodyweight == 70.0
        assert ctx.debouncer.interval == pytest.approx(0.1)
        assert ctx.service.rest_timer_request("dips").notify is False
        ctx.debouncer.interval = 30.0
        ctx.service.stage_sets("2024-01-01", "dips", [SetRecord(reps=10, weight=0.0)])
    assert "select_logs" in remote.calls
    assert (ctx.client_id, "2024-01-01", "dips") in remote.logs
    again = AppContext(db, yaml_path, remote=remote)
    assert again.client_id == ctx.client_id
    again.close()
