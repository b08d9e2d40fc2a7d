from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import IO, Callable

from completeseries.core.errors import StorageError

logger = logging.getLogger(__name__)


def atomic_write_text(write_fn: Callable[[IO[str]], None], out_path: str) -> None:
    """
    Write through a uniquely named temp file beside `out_path`, then rename it
    over the target. The target is either the old file or the complete new one.
    """
    d = os.path.dirname(out_path) or "."
    try:
        os.makedirs(d, exist_ok=True)
    except OSError as e:
        raise StorageError(f"Cannot create data directory {d}: {e}") from e

    tmp_path = ""
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            delete=False,
            dir=d,
            prefix=f"{os.path.basename(out_path)}.tmp.",
            encoding="utf-8",
        ) as tf:
            tmp_path = tf.name
            write_fn(tf)
            tf.flush()
            os.fsync(tf.fileno())
        os.replace(tmp_path, out_path)
    except OSError as e:
        raise StorageError(f"Failed to save data file {out_path}: {e}") from e
    finally:
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError as e:
                logger.debug("could not remove temp file %s: %s", tmp_path, e)


def atomic_write_json(data: object, out_path: str) -> None:
    def _dump(fh: IO[str]) -> None:
        json.dump(data, fh, ensure_ascii=False, indent=4)
        fh.write("\n")

    atomic_write_text(_dump, out_path)
