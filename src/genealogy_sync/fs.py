"""Crash-safe file writes for the provider cache."""
from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def atomic_write_json(path: Path | str, payload: Any) -> Path:
    """Replace ``path`` with ``payload`` serialized as JSON.

    The document goes to a sibling ``.tmp`` file first and is renamed over the
    target after fsync, so a reader sees the old snapshot or the new one and
    never a partial file. The ``.tmp`` suffix keeps in-flight files out of
    ``*.json`` listings.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=target.parent, prefix=f".{target.stem}.", suffix=".tmp", delete=False
    ) as tmp:
        try:
            json.dump(payload, tmp, indent=2, ensure_ascii=False)
            tmp.flush()
            os.fsync(tmp.fileno())
        except BaseException:
            tmp.close()
            os.unlink(tmp.name)
            raise
    try:
        os.replace(tmp.name, target)
    except OSError:
        os.unlink(tmp.name)
        raise
    return target
