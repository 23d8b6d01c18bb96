"""
Runtime settings, read from the environment (and a ``.env`` file when present).
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from gw2dash.exceptions import MissingApiKey

API_KEY_ENV_VAR = "GW2_API_KEY"
ENV_PREFIX = "GW2DASH_"
DEFAULT_BASE_URL = "https://api.guildwars2.com/v2"


class Settings(BaseModel):
    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    lang: str | None = None
    batch_window_seconds: float = Field(default=0.05, gt=0)
    max_batch_delay_seconds: float = Field(default=0.5, gt=0)
    max_batch_size: int = Field(default=200, gt=0)
    wait_timeout_seconds: float = Field(default=10.0, gt=0)
    lookup_timeout_seconds: float = Field(default=30.0, gt=0)
    item_ttl_seconds: float = Field(default=60 * 60, gt=0)
    failure_ttl_seconds: float = Field(default=60, ge=0)

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """
        Build settings from ``GW2_API_KEY`` and ``GW2DASH_*`` variables.

        Parameters
        ----------
        **overrides
            Values taking precedence over the environment. ``None`` values are ignored.

        Returns
        -------
        Settings
            Validated settings.
        """
        load_dotenv()
        values: dict[str, object] = {}
        api_key = os.getenv(API_KEY_ENV_VAR)
        if api_key:
            values["api_key"] = api_key
        for name in cls.model_fields:
            if name == "api_key":
                continue
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw:
                values[name] = raw
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)

    def require_api_key(self) -> str:
        if not self.api_key or not self.api_key.strip():
            raise MissingApiKey()
        return self.api_key.strip()
