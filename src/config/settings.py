import logging
import os
import tempfile
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

REPO_ROOT = Path(__file__).resolve().parents[2]


def load_env(env_path: Optional[Path] = None) -> None:
    path = env_path or REPO_ROOT / ".env"
    if path.exists():
        load_dotenv(dotenv_path=path)
    else:
        load_dotenv()


def _default_data_dir() -> Path:
    return Path.home() / ".clipnest"


def _default_runtime_dir() -> Path:
    runtime = os.getenv("XDG_RUNTIME_DIR")
    if runtime:
        return Path(runtime)
    return Path(tempfile.gettempdir())


class AppSettings(BaseModel):
    max_items: int = Field(default=100, ge=0)
    data_dir: Path = Field(default_factory=_default_data_dir)
    runtime_dir: Path = Field(default_factory=_default_runtime_dir)
    backend: Literal["file", "redis"] = "file"
    probe_timeout: float = Field(default=2.0, gt=0)
    read_timeout: float = Field(default=1.0, gt=0)
    poll_interval: float = Field(default=0.25, gt=0)
    save_delay: float = Field(default=1.0, ge=0)

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "AppSettings":
        load_env(env_path)

        env_keys = {
            "max_items": "CLIPNEST_MAX_ITEMS",
            "data_dir": "CLIPNEST_DATA_DIR",
            "runtime_dir": "CLIPNEST_RUNTIME_DIR",
            "backend": "CLIPNEST_BACKEND",
            "probe_timeout": "CLIPNEST_PROBE_TIMEOUT",
            "read_timeout": "CLIPNEST_READ_TIMEOUT",
            "poll_interval": "CLIPNEST_POLL_INTERVAL",
            "save_delay": "CLIPNEST_SAVE_DELAY",
        }

        values = {}
        for field_name, env_key in env_keys.items():
            raw = os.getenv(env_key)
            if raw is None or raw.strip() == "":
                continue
            try:
                cls.model_validate({field_name: raw.strip()})
            except ValidationError:
                logger.warning(f"Ignoring invalid {env_key}={raw!r}")
                continue
            values[field_name] = raw.strip()

        return cls.model_validate(values)
