from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from typing import Iterable


def atomic_write_lines(path: Path, lines: Iterable[str]) -> None:
    """Write ``lines`` to ``path`` through a temp file in the same directory.

    The temp file is flushed and fsynced before ``os.replace``, so a crash at any
    point leaves either the previous file or the complete new one. The temp
    file is removed when anything fails before the replace.

    Raises:
        OSError: Propagated from the filesystem; callers decide whether to log.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            for line in lines:
                f.write(line)
                f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


def atomic_write_text(path: Path, text: str) -> None:
    atomic_write_lines(path, [text])
