from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_USER_AGENT = "ClipTerminal/0.1 (clipboard link preview; +https://github.com/clipterminal)"


def _to_bool(value: Optional[str], default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None


def _default_data_dir() -> Path:
    return Path.home() / ".clipterminal"


@dataclass(frozen=True)
class Settings:
    data_dir: Path = field(default_factory=_default_data_dir)
    max_history: int = 100
    poll_interval: float = 0.5
    page_timeout: float = 8.0
    image_timeout: float = 5.0
    user_agent: str = DEFAULT_USER_AGENT
    enrich_links: bool = True
    log_level: str = "WARNING"

    @property
    def history_file(self) -> Path:
        return self.data_dir / "history.json"

    @property
    def images_dir(self) -> Path:
        return self.data_dir / "images"

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "Settings":
        if env_path is not None:
            load_dotenv(dotenv_path=env_path)
        else:
            load_dotenv()

        data_dir_raw = os.getenv("CLIPTERMINAL_DATA_DIR")
        data_dir = Path(data_dir_raw).expanduser() if data_dir_raw else _default_data_dir()

        max_history = _number("CLIPTERMINAL_MAX_HISTORY", cls.max_history, int)
        if max_history <= 0:
            raise ValueError("CLIPTERMINAL_MAX_HISTORY must be > 0")

        return cls(
            data_dir=data_dir,
            max_history=max_history,
            poll_interval=_number("CLIPTERMINAL_POLL_INTERVAL", cls.poll_interval, float),
            page_timeout=_number("CLIPTERMINAL_PAGE_TIMEOUT", cls.page_timeout, float),
            image_timeout=_number("CLIPTERMINAL_IMAGE_TIMEOUT", cls.image_timeout, float),
            user_agent=os.getenv("CLIPTERMINAL_USER_AGENT") or DEFAULT_USER_AGENT,
            enrich_links=_to_bool(os.getenv("CLIPTERMINAL_ENRICH_LINKS"), default=True),
            log_level=(os.getenv("CLIPTERMINAL_LOG_LEVEL") or cls.log_level).upper(),
        )
