"""File and directory copying helpers."""

from __future__ import annotations

import os
import shutil
import stat


def copy_file(source: str | os.PathLike, dest: str | os.PathLike) -> None:
    """Copy the contents of ``source`` to ``dest``."""
    shutil.copyfile(source, dest)


def copy_dir(source: str | os.PathLike, dest: str | os.PathLike) -> list[OSError]:
    """Recursively copy ``source`` into ``dest``.

    Failures on individual entries are printed and copying carries on; the
    list of those failures is returned.
    """
    mode = stat.S_IMODE(os.stat(source).st_mode)
    os.makedirs(dest, mode=mode, exist_ok=True)

    failures: list[OSError] = []
    with os.scandir(source) as entries:
        for entry in entries:
            src = os.path.join(source, entry.name)
            dst = os.path.join(dest, entry.name)
            try:
                if entry.is_dir():
                    failures.extend(copy_dir(src, dst))
                else:
                    copy_file(src, dst)
            except OSError as exc:
                print(exc)
                failures.append(exc)
    return failures