from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils import read_json

FAST_FORWARD_MARKER = ">>"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GOLDEN_MATRIX_")

    write_baseline: bool = False
    baseline_root: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    golden_suffix: str = ".out.txt"
    max_workers: int = 2
    invocation_timeout_s: float = 60.0
    run_timeout_s: Optional[float] = None
    regex_mode: Literal["implicit", "explicit"] = "implicit"
    regex_prefix: str = "re:"

    @field_validator("max_workers")
    @classmethod
    def _positive_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_workers must be at least 1")
        return value


def load_settings(config: Optional[Path]) -> Settings:
    if config is None:
        return Settings()
    data = read_json(config)
    return Settings(**data)
