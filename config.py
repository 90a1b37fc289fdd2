import logging
import os
import yaml
import keyring

from settings_schema import SettingsSchema, validate_settings

APP_VERSION = "1.0.0"


class YamlConfig:
    """Load and save settings to a YAML file with optional encryption."""

    SENSITIVE_KEYS = {
        "sync_api_token",
    }

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.service = "coachlog"

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if self.encrypt:
            for key in list(data.keys()):
                if key in self.SENSITIVE_KEYS:
                    secret = keyring.get_password(self.service, key)
                    if secret is not None:
                        data[key] = secret
                    else:
                        data.pop(key, None)
        return data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            for key in self.SENSITIVE_KEYS:
                if key in out:
                    keyring.set_password(self.service, key, str(out[key]))
                    out[key] = True
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)


class StoreConfig:
    """Validated runtime settings for the data layer.

    Values come from the YAML file; ``COACHLOG_DB``, ``COACHLOG_SYNC_MODE``
    and ``COACHLOG_SYNC_URL`` override the file when set.
    """

    ENV_OVERRIDES = {
        "COACHLOG_DB": "db_path",
        "COACHLOG_SYNC_MODE": "sync_mode",
        "COACHLOG_SYNC_URL": "sync_url",
    }

    def __init__(self, yaml_path: str = "settings.yaml") -> None:
        self.yaml = YamlConfig(yaml_path)
        data = self.yaml.load()
        for env_key, key in self.ENV_OVERRIDES.items():
            value = os.environ.get(env_key)
            if value:
                data[key] = value
        self.settings: SettingsSchema = validate_settings(data)

    @property
    def db_path(self) -> str:
        return self.settings.db_path

    @property
    def sync_mode(self) -> str:
        return self.settings.sync_mode

    @property
    def sync_url(self) -> str:
        return self.settings.sync_url

    @property
    def sync_api_token(self) -> str:
        return self.settings.sync_api_token

    @property
    def sync_timeout(self) -> float:
        return self.settings.sync_timeout

    def configure_logging(self) -> None:
        logging.basicConfig(
            level=self.settings.log_level.upper(),
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )
