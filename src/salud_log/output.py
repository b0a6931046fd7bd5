"""Escritura de artefactos todo-o-nada en el directorio de salida."""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from salud_log.errors import ExportFailure

logger = logging.getLogger(__name__)


@contextmanager
def atomic_output(path: Path) -> Iterator[Path]:
    """Yield a temporary path next to ``path`` and move it into place on success.

    On any error the temporary file is removed and ``ExportFailure`` is
    raised, so a truncated artifact never appears under the final name.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.stem}.", suffix=f".part{path.suffix}", dir=path.parent
        )
        os.close(fd)
    except OSError as exc:
        raise ExportFailure(f"Could not prepare {path}: {exc}") from exc

    tmp = Path(tmp_name)
    try:
        yield tmp
        os.replace(tmp, path)
    except Exception as exc:
        tmp.unlink(missing_ok=True)
        logger.warning("Discarded partial output for %s", path)
        if isinstance(exc, ExportFailure):
            raise
        raise ExportFailure(f"Could not write {path}: {exc}") from exc


def write_text_atomic(path: Path, text: str) -> Path:
    """Write UTF-8 text to ``path`` all-or-nothing."""
    with atomic_output(path) as tmp:
        tmp.write_text(text, encoding="utf-8", newline="")
    return path
