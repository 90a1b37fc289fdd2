import os
import sys
import unittest

import keyring
import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import StoreConfig, YamlConfig


class DummyKeyring(keyring.backend.KeyringBackend):
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

    def test_encrypt_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({"sync_api_token": "secret", "sync_mode": "http"})
        with open(self.path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
        self.assertIs(raw["sync_api_token"], True)
        data = cfg.load()
        self.assertEqual(data["sync_api_token"], "secret")
        self.assertEqual(data["sync_mode"], "http")

    def test_store_config_reads_token_from_keyring(self) -> None:
        YamlConfig(self.path).save(
            {"sync_api_token": "tok", "sync_mode": "http", "sync_url": "http://sync"}
        )
        config = StoreConfig(self.path)
        self.assertEqual(config.sync_api_token, "tok")
        self.assertEqual(config.sync_url, "http://sync")


class StoreConfigTest(unittest.TestCase):
    def setUp(self) -> None:
        self.path = "cfg_settings.yaml"
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"db_path": "file.db", "sync_timeout": 3}, f)

    def tearDown(self) -> None:
        os.remove(self.path)
        for key in StoreConfig.ENV_OVERRIDES:
            os.environ.pop(key, None)

    def test_defaults_without_file(self) -> None:
        config = StoreConfig("does_not_exist.yaml")
        self.assertEqual(config.db_path, "coachlog.db")
        self.assertEqual(config.sync_mode, "local")

    def test_file_values_and_env_override(self) -> None:
        config = StoreConfig(self.path)
        self.assertEqual(config.db_path, "file.db")
        self.assertEqual(config.sync_timeout, 3.0)
        os.environ["COACHLOG_DB"] = "env.db"
        self.assertEqual(StoreConfig(self.path).db_path, "env.db")

    def test_invalid_sync_mode(self) -> None:
        os.environ["COACHLOG_SYNC_MODE"] = "carrier-pigeon"
        with self.assertRaises(ValueError):
            StoreConfig(self.path)


if __name__ == "__main__":
    unittest.main()
