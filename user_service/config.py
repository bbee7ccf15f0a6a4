"""Environment-driven settings for the user service.

Values come from the process environment. A ``.env`` file in the working
directory is loaded first, without overriding variables already set.
"""

import os
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError, field_validator

DEFAULT_REDIS_PORT = 6379

STORE_KINDS = ("redis", "inmemory")


class Settings(BaseModel):
    redis_host: str = f"localhost:{DEFAULT_REDIS_PORT}"
    redis_password: Optional[str] = None
    redis_tls: bool = True
    redis_timeout_s: float = 5.0
    user_store: str = "redis"
    port: int = 8080
    log_level: str = "INFO"

    @field_validator("user_store")
    @classmethod
    def _check_store(cls, v: str) -> str:
        v = v.lower()
        if v not in STORE_KINDS:
            raise ValueError(f"expected one of {', '.join(STORE_KINDS)}")
        return v

    @field_validator("port")
    @classmethod
    def _check_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("port out of range")
        return v

    @field_validator("redis_timeout_s")
    @classmethod
    def _check_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()

    def redis_address(self) -> Tuple[str, int]:
        """Split REDIS_HOST into (host, port)."""
        host, sep, port = self.redis_host.rpartition(":")
        if not sep:
            return self.redis_host, DEFAULT_REDIS_PORT
        try:
            return host, int(port)
        except ValueError:
            raise ValueError(f"invalid REDIS_HOST {self.redis_host!r}") from None


_ENV_FIELDS = {
    "REDIS_HOST": "redis_host",
    "REDIS_PASSWORD": "redis_password",
    "REDIS_TLS": "redis_tls",
    "REDIS_TIMEOUT_S": "redis_timeout_s",
    "USER_STORE": "user_store",
    "PORT": "port",
    "LOG_LEVEL": "log_level",
}


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment.

    Empty variables count as unset. Raises ValueError on invalid values.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    values = {}
    for var, field in _ENV_FIELDS.items():
        raw = environ.get(var)
        if raw:
            values[field] = raw
    try:
        return Settings(**values)
    except ValidationError as e:
        raise ValueError(f"invalid configuration: {e}") from e
