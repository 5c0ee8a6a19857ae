from typing import Literal, Optional

from pydantic import BaseModel, ValidationError


class SettingsSchema(BaseModel):
    weight_unit: Literal["kg", "lb"] = "kg"
    rest_notifications: bool = True
    debounce_ms: int = 400
    default_bodyweight: float = 80.0
    remote_url: Optional[str] = None
    remote_key: Optional[str | bool] = None


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
