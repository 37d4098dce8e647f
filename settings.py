from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_SUPPORTED_RESOLUTIONS = (300, 600)


class Settings(BaseSettings):
    output_dir: Path = Path("./scanned-photos")
    scan_source_dir: Path = Path("./scans")
    scan_timeout_s: float = 120.0
    discovery_timeout_s: float = 5.0
    default_resolution: int = 300
    color_mode: Literal["RGB24", "Grayscale8"] = "RGB24"
    scan_format: Literal["image/jpeg", "image/png"] = "image/jpeg"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PHS_",
        env_file_encoding="utf-8",
    )

    @field_validator("scan_timeout_s", "discovery_timeout_s")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("default_resolution")
    @classmethod
    def resolution_must_be_supported(cls, v: int) -> int:
        if v not in _SUPPORTED_RESOLUTIONS:
            raise ValueError(f"default_resolution must be one of {_SUPPORTED_RESOLUTIONS}")
        return v

    @property
    def raw_dir(self) -> Path:
        return self.output_dir / "raw"
