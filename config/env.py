"""Environment variable loading helpers.

Local configuration comes from dotenv-style files.

Load order (first found wins; existing process env vars are never overridden):
- .env
- .env.dev (only when DJANGO_ENV=dev)

In production the invocation host injects real environment variables instead.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

_TRUTHY = {"1", "true", "yes", "on"}


def _should_load_dev_env() -> bool:
    return os.environ.get("DJANGO_ENV", "").lower() in {"dev", "development", "local"}


def load_env(base_dir: Path | None = None) -> None:
    """Load .env files into process environment.

    Safe to call multiple times.

    Args:
        base_dir: Project root directory. Defaults to config/.. (the Django BASE_DIR).
    """

    if base_dir is None:
        base_dir = Path(__file__).resolve().parent.parent

    load_dotenv(base_dir / ".env", override=False)

    if _should_load_dev_env():
        load_dotenv(base_dir / ".env.dev", override=False)


def env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, default)


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY
