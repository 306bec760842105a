"""On-disk storage of cache archives, uploaded in parts."""

from __future__ import annotations

import os
import shutil
from typing import BinaryIO, Union

Readable = Union[bytes, bytearray, memoryview, BinaryIO]


class Storage:
    """Stores archives under a root directory.

    Uploads land as parts in a temporary directory per cache id and are
    joined, in offset order, when committed.
    """

    def __init__(self, root_dir: str | os.PathLike) -> None:
        self.root_dir = os.fspath(root_dir)
        os.makedirs(self.root_dir, mode=0o755, exist_ok=True)

    def exist(self, cache_id: int) -> bool:
        """True if a committed archive exists for ``cache_id``."""
        try:
            os.stat(self.filename(cache_id))
        except FileNotFoundError:
            return False
        return True

    def write(self, cache_id: int, offset: int, reader: Readable) -> None:
        """Store one uploaded part starting at ``offset``."""
        name = self._temp_name(cache_id, offset)
        os.makedirs(os.path.dirname(name), mode=0o755, exist_ok=True)
        with open(name, "wb") as out:
            if isinstance(reader, (bytes, bytearray, memoryview)):
                out.write(reader)
            else:
                shutil.copyfileobj(reader, out)

    def commit(self, cache_id: int, size: int) -> None:
        """Join the uploaded parts into the final archive.

        Raises ValueError if the joined size differs from ``size``, and
        FileNotFoundError if nothing was uploaded. The parts are discarded
        either way.
        """
        name = self.filename(cache_id)
        try:
            parts = self._temp_names(cache_id)
            os.makedirs(os.path.dirname(name), mode=0o755, exist_ok=True)
            with open(name, "wb") as out:
                for part in parts:
                    with open(part, "rb") as src:
                        shutil.copyfileobj(src, out)
                written = out.tell()
            if written != size:
                os.remove(name)
                raise ValueError(f"broken file: {written} != {size}")
        finally:
            shutil.rmtree(self._temp_dir(cache_id), ignore_errors=True)

    def remove(self, cache_id: int) -> None:
        """Delete the archive and any pending parts for ``cache_id``."""
        try:
            os.remove(self.filename(cache_id))
        except OSError:
            pass
        shutil.rmtree(self._temp_dir(cache_id), ignore_errors=True)

    def filename(self, cache_id: int) -> str:
        """Path of the committed archive for ``cache_id``."""
        return os.path.join(self.root_dir, f"{cache_id % 0xFF:02x}", str(cache_id))

    def _temp_dir(self, cache_id: int) -> str:
        return os.path.join(self.root_dir, "tmp", str(cache_id))

    def _temp_name(self, cache_id: int, offset: int) -> str:
        return os.path.join(self._temp_dir(cache_id), f"{offset:016x}")

    def _temp_names(self, cache_id: int) -> list[str]:
        directory = self._temp_dir(cache_id)
        with os.scandir(directory) as entries:
            names = sorted(entry.name for entry in entries if not entry.is_dir())
        return [os.path.join(directory, name) for name in names]