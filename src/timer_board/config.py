"""Service configuration, read from the environment."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache

ENV_PREFIX = "TIMER_BOARD_"


@dataclass(frozen=True)
class Settings:
    host: str = "127.0.0.1"
    port: int = 8003
    log_level: str = "INFO"
    # Unset means boards live in memory only
    store_dir: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        raw_port = env.get(f"{ENV_PREFIX}PORT", str(cls.port))
        try:
            port = int(raw_port)
        except ValueError:
            raise ValueError(f"{ENV_PREFIX}PORT must be an integer, got {raw_port!r}") from None

        return cls(
            host=env.get(f"{ENV_PREFIX}HOST", cls.host),
            port=port,
            log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL", cls.log_level).upper(),
            store_dir=env.get(f"{ENV_PREFIX}STORE_DIR") or None,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
