from __future__ import annotations

import errno
import itertools
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import IO, Iterator, Optional, Tuple

from ..domain.manifest import MANIFEST_FILENAME, load_manifest
from ..domain.models import Manifest, Platform
from ..domain.package import DEFAULT_ARCHIVE_SUFFIX, PackageIdentity
from ..errors import ArchiveError
from .archive import ArchiveEngine, ZipArchiveEngine
from .hooks import StoreHooks

logger = logging.getLogger("integrations.store.flat")

# directory entries are read this many at a time
LIST_BATCH_SIZE = 16

ListEntry = Tuple[Optional[PackageIdentity], Optional[Exception]]


class FlatStore:
    """
    Stores integration packages in a single, flat directory.

    pkg_dir holds one artifact per installed package, named by its
    canonical filename. cache_dir holds the extracted copy of each artifact
    and can be rebuilt from pkg_dir at any time.

    Operations are not safe to run concurrently on the same package; the
    caller is expected to serialize them.
    """

    def __init__(
        self,
        pkg_dir: Path,
        cache_dir: Path,
        *,
        platform: Platform,
        engine: Optional[ArchiveEngine] = None,
        hooks: Optional[StoreHooks] = None,
        suffix: str = DEFAULT_ARCHIVE_SUFFIX,
    ):
        self.pkg_dir = Path(pkg_dir)
        self.cache_dir = Path(cache_dir)
        self.platform = platform
        self.engine: ArchiveEngine = engine or ZipArchiveEngine()
        self.hooks = hooks or StoreHooks()
        self.suffix = suffix

        self.pkg_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info("FlatStore initialized, pkg_dir=%s cache_dir=%s", self.pkg_dir, self.cache_dir)

    # ----------------------------
    # Paths
    # ----------------------------

    def artifact_path(self, identity: PackageIdentity) -> Path:
        return self.pkg_dir / identity.filename(self.suffix)

    def extraction_path(self, identity: PackageIdentity) -> Path:
        return self.cache_dir / identity.basename

    # ----------------------------
    # Enumerate
    # ----------------------------

    def list_packages(self, name: str = "") -> Iterator[ListEntry]:
        """
        Yield (identity, None) for each installed package, optionally only
        those called `name`.

        Entries whose file name cannot be parsed are yielded as
        (None, error) and the scan goes on. Stopping the iteration early
        closes the directory handle.
        """
        try:
            it = os.scandir(self.pkg_dir)
        except OSError as e:
            yield None, e
            return

        with it:
            while True:
                try:
                    batch = list(itertools.islice(it, LIST_BATCH_SIZE))
                except OSError as e:
                    yield None, e
                    return
                if not batch:
                    return

                for entry in batch:
                    # hidden files are in-flight installs
                    if entry.name.startswith("."):
                        continue

                    try:
                        identity = PackageIdentity.parse(entry.name, self.suffix)
                    except Exception as e:
                        logger.debug("Skipping unparsable entry %s: %s", entry.name, e)
                        yield None, e
                        continue

                    if name and identity.name != name:
                        continue

                    yield identity, None

    # ----------------------------
    # Stage + commit
    # ----------------------------

    def stage(self, identity: PackageIdentity, stream: IO[bytes]) -> Path:
        """
        Install the artifact read from `stream` as `identity`.

        The package is extracted and its manifest validated before it
        becomes visible in pkg_dir. On any failure before the commit both
        pkg_dir and cache_dir are left as they were.

        Returns the extraction directory.
        """
        artifact = self.artifact_path(identity)
        if artifact.exists():
            raise FileExistsError(errno.EEXIST, "package already present", str(artifact))

        logger.info("Staging package %s", identity)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{identity.name}-", dir=self.pkg_dir)
        tmp = Path(tmp_name)
        extracted = self.extraction_path(identity)

        try:
            try:
                with os.fdopen(fd, "wb") as fp:
                    shutil.copyfileobj(stream, fp)

                # extract and validate the manifest before enabling it
                self._extract(extracted, tmp)
                manifest = load_manifest(extracted / MANIFEST_FILENAME, self.platform)
                self.hooks.pre_commit(manifest)
                self._commit(tmp, artifact)
            except BaseException:
                logger.warning("Staging %s failed, rolling back", identity)
                self._rollback(tmp, extracted)
                raise
        finally:
            # the committed name is a hard link, the temp name is redundant
            if tmp.exists():
                tmp.unlink()

        logger.info("Committed package %s", identity)
        self._post_commit(manifest, identity, extracted)
        return extracted

    def _commit(self, tmp: Path, artifact: Path) -> None:
        try:
            os.link(tmp, artifact)
        except FileExistsError:
            raise
        except OSError as e:
            if e.errno not in (errno.EPERM, errno.EXDEV, errno.ENOTSUP, errno.EOPNOTSUPP):
                raise
            logger.debug("Hard links unsupported in %s (%s), renaming instead", self.pkg_dir, e)
            os.replace(tmp, artifact)

    def _extract(self, dest: Path, artifact: Path) -> None:
        handle = self.engine.open(artifact)
        try:
            points = self.engine.list_restore_points(handle)
            if len(points) != 1:
                raise ArchiveError(
                    str(artifact),
                    f"expected exactly one restore point in package, found {len(points)}",
                )
            point = points[0]

            tmpdir = Path(tempfile.mkdtemp(prefix=".extract-", dir=dest.parent))
            try:
                content = tmpdir / "content"
                self.engine.extract(handle, point, content, point)

                # stale cache left behind without its artifact
                if dest.exists():
                    shutil.rmtree(dest)
                os.rename(content, dest)
            finally:
                shutil.rmtree(tmpdir, ignore_errors=True)
        finally:
            self.engine.close(handle)

        logger.debug("Extracted %s into %s", artifact.name, dest)

    def _post_commit(self, manifest: Manifest, identity: PackageIdentity, extracted: Path) -> None:
        try:
            self.hooks.post_commit(manifest, identity, extracted)
        except Exception:
            # the package is installed regardless of host registration
            logger.exception("post_commit hook failed for %s", identity)

    # ----------------------------
    # Rollback / evict
    # ----------------------------

    def _discard(self, artifact: Path, extracted: Optional[Path], *, missing_ok: bool) -> None:
        error: Optional[OSError] = None

        try:
            os.remove(artifact)
        except FileNotFoundError as e:
            if not missing_ok:
                error = e
        except OSError as e:
            error = e

        if extracted is not None:
            try:
                shutil.rmtree(extracted)
            except FileNotFoundError:
                pass
            except OSError as e:
                if error is None:
                    error = e

        if error is not None:
            raise error

    def _rollback(self, artifact: Path, extracted: Optional[Path]) -> None:
        try:
            self._discard(artifact, extracted, missing_ok=True)
        except OSError:
            logger.exception("Rollback of %s left files behind", artifact)

    def evict(self, identity: PackageIdentity) -> None:
        """
        Remove an installed package and its extraction.

        A missing extraction is fine; a missing artifact is an error.
        """
        logger.info("Evicting package %s", identity)
        self._discard(self.artifact_path(identity), self.extraction_path(identity), missing_ok=False)

        try:
            self.hooks.post_evict(identity)
        except Exception:
            logger.exception("post_evict hook failed for %s", identity)

    # ----------------------------
    # Reload
    # ----------------------------

    def rehydrate(self, identity: PackageIdentity) -> Path:
        """
        Make a committed package available again after a restart,
        re-extracting it if the cache is gone.

        The pre_commit hook is not run again. A package that can no longer
        be extracted or validated is removed.
        """
        artifact = self.artifact_path(identity)
        extracted = self.extraction_path(identity)

        try:
            if not extracted.exists():
                logger.info("Extraction cache missing for %s, extracting", identity)
                self._extract(extracted, artifact)
            manifest = load_manifest(extracted / MANIFEST_FILENAME, self.platform)
        except Exception:
            logger.error("Failed to reload %s, removing it", identity)
            self._rollback(artifact, extracted)
            raise

        self._post_commit(manifest, identity, extracted)
        return extracted

    def reload_all(self) -> int:
        """Rehydrate every committed package; stops at the first error."""
        count = 0
        for identity, err in self.list_packages():
            if err is not None:
                raise err
            self.rehydrate(identity)
            count += 1
        logger.info("Reloaded %d package(s)", count)
        return count

    def manifest(self, identity: PackageIdentity) -> Manifest:
        """Manifest of an installed package, read from the extraction cache."""
        if not self.artifact_path(identity).exists():
            raise FileNotFoundError(errno.ENOENT, "package not installed", str(self.artifact_path(identity)))
        return load_manifest(self.extraction_path(identity) / MANIFEST_FILENAME, self.platform)
