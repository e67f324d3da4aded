# backend/app/integrations/store/archive.py
from __future__ import annotations

import logging
import os
import shutil
import zipfile
from pathlib import Path
from typing import Any, List, Protocol, Union

from ..errors import ArchiveError

logger = logging.getLogger("integrations.store.archive")


class ArchiveEngine(Protocol):
    """
    The storage/archive engine the store delegates extraction to.

    A package artifact must contain exactly one restore point; the store
    treats any other count as a fatal inconsistency.
    """

    def open(self, locator: Union[str, Path]) -> Any: ...

    def list_restore_points(self, handle: Any) -> List[str]: ...

    def extract(
        self,
        handle: Any,
        restore_point: str,
        dest_dir: Union[str, Path],
        strip_prefix: str,
    ) -> None: ...

    def close(self, handle: Any) -> None: ...


class ZipArchiveEngine:
    """
    Zip-backed archive engine.

    Every top-level directory of the zip is a restore point; extracting one
    writes its members into dest_dir with strip_prefix removed. Members
    that would land outside dest_dir are refused.
    """

    def open(self, locator: Union[str, Path]) -> zipfile.ZipFile:
        try:
            return zipfile.ZipFile(locator, "r")
        except zipfile.BadZipFile as e:
            raise ArchiveError(str(locator), f"not a valid archive: {e}") from e

    def close(self, handle: zipfile.ZipFile) -> None:
        handle.close()

    def list_restore_points(self, handle: zipfile.ZipFile) -> List[str]:
        points: list[str] = []
        for info in handle.infolist():
            top, sep, _ = info.filename.partition("/")
            if not sep:
                # loose file at the archive root; not part of a restore point
                continue
            if top and top not in points:
                points.append(top)
        return points

    def extract(
        self,
        handle: zipfile.ZipFile,
        restore_point: str,
        dest_dir: Union[str, Path],
        strip_prefix: str,
    ) -> None:
        dest = Path(dest_dir)
        dest.mkdir(parents=True, exist_ok=True)
        root = os.path.realpath(dest)

        prefix = strip_prefix.strip("/") + "/"
        for info in handle.infolist():
            if not info.filename.startswith(restore_point.rstrip("/") + "/"):
                continue
            rel = info.filename[len(prefix):] if info.filename.startswith(prefix) else info.filename
            if not rel:
                continue

            target = os.path.realpath(os.path.join(root, rel))
            if os.path.commonpath([root, target]) != root:
                raise ArchiveError(handle.filename or "<archive>", f"member escapes destination: {info.filename}")

            if info.is_dir():
                os.makedirs(target, exist_ok=True)
                continue

            os.makedirs(os.path.dirname(target), exist_ok=True)
            with handle.open(info, "r") as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)

            # keep the executable bit for connector binaries
            mode = (info.external_attr >> 16) & 0o777
            if mode:
                os.chmod(target, mode)

        logger.debug("Extracted restore point %s into %s", restore_point, dest)
