"""Helpers for the ``.env`` file that backs EpiCheck's configuration."""

from __future__ import annotations

import os
from typing import Dict

from dotenv import dotenv_values, load_dotenv, set_key

ENV_HEADER = "# EpiCheck Configuration\n"


def load_env(path: str = ".env") -> None:
    """Populate :data:`os.environ` from ``path`` without overriding existing values."""
    if os.path.exists(path):
        load_dotenv(path, override=False)


def read_env_file(path: str = ".env") -> Dict[str, str]:
    """Return the non-empty KEY=value pairs stored in ``path``."""
    if not os.path.exists(path):
        return {}
    return {key: value for key, value in dotenv_values(path).items() if value}


def ensure_env_file(env_file: str = ".env", template: str = ".env.example") -> None:
    """Ensure `.env` exists; copy from example or create minimal fallback."""
    if os.path.exists(env_file):
        return
    if template and os.path.exists(template):
        import shutil

        shutil.copy2(template, env_file)
        return
    with open(env_file, "w", encoding="utf-8") as f:
        f.write(ENV_HEADER)


def append_to_env_file(env_file: str, key: str, value: str) -> None:
    """Add or update ``key`` in `.env`, quoting the value. Idempotent."""
    if not os.path.exists(env_file):
        with open(env_file, "w", encoding="utf-8") as f:
            f.write(ENV_HEADER)
    set_key(env_file, key, value)


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip() in ("1", "true", "True", "yes")


__all__ = ["load_env", "read_env_file", "ensure_env_file", "append_to_env_file", "env_flag"]
