from typing import Literal

from pydantic import BaseModel, ValidationError


class SettingsSchema(BaseModel):
    db_path: str = "coachlog.db"
    sync_mode: Literal["local", "http"] = "local"
    sync_url: str = ""
    sync_api_token: str = ""
    sync_timeout: float = 10.0
    log_level: str = "INFO"


def validate_settings(data: dict) -> SettingsSchema:
    try:
        return SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
