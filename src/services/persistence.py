from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import redis

from config.settings import AppSettings

logger = logging.getLogger(__name__)

DEFAULT_TAB = "clipboard"


class HistoryBackend(ABC):
    """Storage for one serialized history blob."""

    @abstractmethod
    def read(self) -> Optional[bytes]:
        pass

    @abstractmethod
    def write(self, data: bytes) -> None:
        pass

    @abstractmethod
    def purge(self) -> None:
        pass

    def close(self) -> None:
        pass


class FileHistoryBackend(HistoryBackend):

    def __init__(self, base_dir: Optional[Path] = None, tab: str = DEFAULT_TAB):
        if base_dir is None:
            base_dir = Path.home() / ".clipnest"
        self.base_dir = Path(base_dir)
        self.tab = tab

    @property
    def path(self) -> Path:
        return self.base_dir / f"{self.tab}.dat"

    def read(self) -> Optional[bytes]:
        if not self.path.exists():
            return None
        return self.path.read_bytes()

    def write(self, data: bytes) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.tab}-", suffix=".tmp", dir=self.base_dir)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, self.path)
        except OSError:
            try:
                os.remove(tmp_name)
            except OSError:
                pass
            raise
        logger.debug(f"Saved {len(data)} bytes to {self.path}")

    def purge(self) -> None:
        try:
            self.path.unlink()
            logger.info(f"Removed {self.path}")
        except FileNotFoundError:
            pass


@dataclass(frozen=True)
class RedisConfig:
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RedisConfig":
        uri = os.getenv("REDIS_URI")
        if uri:
            return cls.from_uri(uri)

        host = os.getenv("REDIS_HOST", cls.host)
        port_raw = os.getenv("REDIS_PORT")
        db_raw = os.getenv("REDIS_DB")
        password = os.getenv("REDIS_PASSWORD") or None

        port = int(port_raw) if port_raw else cls.port
        db = int(db_raw) if db_raw else cls.db

        return cls(host=host, port=port, db=db, password=password)

    @classmethod
    def from_uri(cls, uri: str) -> "RedisConfig":
        parsed = urlparse(uri)
        if parsed.scheme not in {"redis", "rediss"}:
            raise ValueError(
                f"Unsupported Redis URI scheme: {parsed.scheme!r}")

        host = parsed.hostname or cls.host
        port = parsed.port or cls.port
        password = parsed.password or None
        db_fragment = parsed.path.lstrip("/")
        db = int(db_fragment) if db_fragment else cls.db

        return cls(host=host, port=port, db=db, password=password)

    def create_client(self) -> redis.Redis:
        # history blobs are binary, responses must stay bytes
        return redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=False,
        )


class RedisHistoryBackend(HistoryBackend):

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        config: Optional[RedisConfig] = None,
        tab: str = DEFAULT_TAB,
    ):
        self.config = config or RedisConfig.from_env()
        self.client = client or self.config.create_client()
        self.tab = tab

    @property
    def key(self) -> str:
        return f"clipnest:history:{self.tab}"

    def read(self) -> Optional[bytes]:
        return self.client.get(self.key)

    def write(self, data: bytes) -> None:
        self.client.set(self.key, data)
        logger.debug(f"Saved {len(data)} bytes to Redis key {self.key}")

    def purge(self) -> None:
        self.client.delete(self.key)

    def close(self) -> None:
        self.client.close()


def create_backend(settings: AppSettings, tab: str = DEFAULT_TAB) -> HistoryBackend:
    if settings.backend == "redis":
        return RedisHistoryBackend(tab=tab)
    return FileHistoryBackend(base_dir=settings.data_dir, tab=tab)
