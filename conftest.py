"""Root conftest: exports .env.test into the environment before Settings is built."""
from __future__ import annotations

import os
from pathlib import Path

_ENV_TEST = Path(__file__).resolve().parent / ".env.test"


def _load_env_file(path: Path) -> None:
    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        os.environ.setdefault(key.strip(), value.strip().strip('"'))


if _ENV_TEST.exists():
    _load_env_file(_ENV_TEST)
