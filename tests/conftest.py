"""
Shared fixtures: a linux/amd64 platform, a FlatStore rooted in tmp_path and
a builder for zip-backed package archives.
"""

import zipfile
from pathlib import Path

import pytest

from backend.app.integrations.domain.models import Platform
from backend.app.integrations.store.flat import FlatStore
from backend.app.integrations.store.hooks import StoreHooks

DEFAULT_MANIFEST = """\
name: {name}
display_name: {name} integration
description: test integration
api_version: v1.0.0
tags: [test]
connectors:
  - type: storage
    protocols: [{name}]
    location_flags: [localfs, file]
    executable: bin/worker
"""


class RecordingHooks(StoreHooks):
    """Records every hook call; pre_commit can be told to veto."""

    def __init__(self, veto: bool = False):
        self.veto = veto
        self.pre = []
        self.post = []
        self.evicted = []

    def pre_commit(self, manifest):
        self.pre.append(manifest.name)
        if self.veto:
            raise RuntimeError("vetoed by host")

    def post_commit(self, manifest, identity, extracted):
        self.post.append((manifest.name, identity, extracted))

    def post_evict(self, identity):
        self.evicted.append(identity)


@pytest.fixture
def platform():
    return Platform(os="linux", arch="amd64")


@pytest.fixture
def hooks():
    return RecordingHooks()


@pytest.fixture
def store(tmp_path, platform, hooks):
    return FlatStore(tmp_path / "pkg", tmp_path / "cache", platform=platform, hooks=hooks)


def build_package(
    dest: Path,
    name: str = "foo",
    version: str = "v1.0.0",
    manifest: str = None,
    restore_points=("snapshot",),
    os_: str = "linux",
    arch: str = "amd64",
) -> Path:
    """Write a package archive named by its canonical filename into dest."""
    dest.mkdir(parents=True, exist_ok=True)
    path = dest / f"{name}_{version}_{os_}_{arch}.ptar"
    text = DEFAULT_MANIFEST.format(name=name) if manifest is None else manifest

    with zipfile.ZipFile(path, "w") as zf:
        for point in restore_points:
            zf.writestr(f"{point}/manifest.yaml", text)
            info = zipfile.ZipInfo(f"{point}/bin/worker")
            info.external_attr = 0o755 << 16
            zf.writestr(info, "#!/bin/sh\necho worker\n")
    return path


@pytest.fixture
def make_package(tmp_path):
    def _make(**kwargs) -> Path:
        return build_package(tmp_path / "incoming", **kwargs)

    return _make
