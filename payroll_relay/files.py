"""Scratch-file handling for uploaded and downloaded spreadsheets."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator
from uuid import uuid4

from werkzeug.utils import secure_filename

_FALLBACK_NAME = "payroll.csv"


@contextmanager
def scoped_upload(directory: Path, filename: str | None = None) -> Generator[Path, None, None]:
    """Yield a fresh path inside *directory* and delete the file on exit.

    The file itself is not created; callers write to the path. Removal happens
    on success and on error alike.
    """

    directory.mkdir(parents=True, exist_ok=True)
    safe_name = secure_filename(filename or "") or _FALLBACK_NAME
    path = directory / f"{uuid4().hex}-{safe_name}"
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)
