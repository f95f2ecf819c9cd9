from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple


logger = logging.getLogger("control-plane.env")

# Repository root, one level above api-code/.
DEFAULT_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
_QUOTES = ("'", '"')


def parse_env_line(raw_line: str) -> Optional[Tuple[str, str]]:
    """Return ``(key, value)`` for an assignment line, ``None`` for blanks and comments.

    Raises ``ValueError`` for lines that are neither.
    """
    line = raw_line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export ") :].lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ValueError(f"not a KEY=value assignment: {raw_line!r}")

    value = value.strip()
    if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
        value = value[1:-1]
    return key, value


def load_local_env(env_path: Optional[Path | str] = None, *, override: bool = False) -> List[str]:
    """Apply a local .env file to ``os.environ`` and return the keys that were set.

    Variables already present in the process environment win unless ``override``.
    """
    path = Path(env_path) if env_path is not None else DEFAULT_ENV_PATH
    if not path.is_file():
        return []

    applied: List[str] = []
    for number, raw_line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        try:
            parsed = parse_env_line(raw_line)
        except ValueError:
            logger.warning("Skipping malformed line %d in %s", number, path)
            continue
        if parsed is None:
            continue
        key, value = parsed
        if not override and key in os.environ:
            continue
        os.environ[key] = value
        applied.append(key)

    logger.debug("Loaded %d variables from %s", len(applied), path)
    return applied
