import yaml
import os
from typing import List, Optional
from pydantic import BaseModel, HttpUrl, Field, model_validator

DEFAULT_CONFIG_PATH = "config.yaml"


class KomgaConfig(BaseModel):
    """Komga Connection Settings."""
    base_url: HttpUrl
    api_key: str


class IntegrationConfig(BaseModel):
    """Discord and Imgur Settings."""
    discord_client_id: str
    use_imgur_cover: bool = True
    imgur_client_id: Optional[str] = None
    discord_asset_name: Optional[str] = None


class ImageConfig(BaseModel):
    """Image Optimization Settings."""
    max_size: int = 512
    jpeg_quality: int = 85
    max_file_bytes: int = 4194304 # 4MB


# Keys of the original flat config.json and where they live now
_LEGACY_KEYS = {
    "komga_url": ("komga", "base_url"),
    "komga_api_key": ("komga", "api_key"),
    "discord_client_id": ("integration", "discord_client_id"),
    "use_imgur_cover": ("integration", "use_imgur_cover"),
    "imgur_client_id": ("integration", "imgur_client_id"),
    "show_progress": ("general", "show_progress"),
}


class Settings(BaseModel):
    """Master configuration model."""
    komga: KomgaConfig
    integration: IntegrationConfig
    image: ImageConfig = Field(default_factory=ImageConfig)
    exclude_libraries: List[str] = Field(default_factory=list)
    general: dict = Field(default_factory=dict) # Catch all for loop/logging settings

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_keys(cls, data):
        """Accept the flat config.json layout alongside the nested one."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for legacy, (section, key) in _LEGACY_KEYS.items():
            if legacy not in data:
                continue
            value = data.pop(legacy)
            target = dict(data.get(section) or {})
            target.setdefault(key, value)
            data[section] = target
        if data.get("exclude_libraries") is None:
            data["exclude_libraries"] = []
        return data

    @property
    def server_url(self) -> str:
        return str(self.komga.base_url).rstrip("/")

    @property
    def poll_interval(self) -> int:
        return self.general.get("poll_interval_seconds", 15)

    @property
    def reconnect_cooldown(self) -> int:
        return self.general.get("reconnect_cooldown_seconds", 5)

    @property
    def freshness_window(self) -> int:
        """Seconds since the last page turn that still count as reading now."""
        return self.general.get("freshness_window_seconds", 300)

    @property
    def show_progress(self) -> bool:
        return bool(self.general.get("show_progress", True))

    @property
    def log_file(self) -> Optional[str]:
        return self.general.get("log_file", "komrpc.log")

    @property
    def log_level(self) -> str:
        return self.general.get("log_level", "INFO")

    @property
    def rehost_covers(self) -> bool:
        return self.integration.use_imgur_cover and bool(self.integration.imgur_client_id)

    def is_excluded(self, library_name: Optional[str]) -> bool:
        if not library_name:
            return False
        wanted = library_name.strip().casefold()
        return any(name.strip().casefold() == wanted for name in self.exclude_libraries)


def load_config(path: str = DEFAULT_CONFIG_PATH) -> Settings:
    """Loads and validates configuration from a YAML (or JSON) file."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Configuration file not found at: {path}. Use config.yaml.example or run with --init to create one.")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return Settings(**data)
