from typing import Literal, Optional

from pydantic import BaseModel, ValidationError


class SettingsSchema(BaseModel):
    store_backend: Literal["memory", "sqlite", "rest"] = "sqlite"
    store_path: str = "fittrack.db"
    store_url: str = ""
    store_auth_token: Optional[str] = None
    catalog_url: str = "https://exercisedb-api.vercel.app/api/v1"
    catalog_page_size: int = 10
    identity_api_key: Optional[str] = None
    log_level: str = "INFO"
    units: Literal["metric", "imperial"] = "metric"


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
