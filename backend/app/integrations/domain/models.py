# backend/app/integrations/domain/models.py
from __future__ import annotations

import platform as _host
from enum import IntFlag
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

PLUGIN_API_VERSION = "v1.0.0"

# -----------------------------
# Platform
# -----------------------------

_OS_ALIASES = {
    "darwin": "darwin",
    "linux": "linux",
    "windows": "windows",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
}

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "armv6l": "arm",
    "riscv64": "riscv64",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}


class Platform(BaseModel):
    """
    Target os/architecture pair, using the repository's naming
    (e.g. "linux"/"amd64", "windows"/"arm64").

    Passed explicitly to everything that depends on it; detect() is only
    used to fill in configuration defaults.
    """
    model_config = ConfigDict(frozen=True)

    os: str
    arch: str

    @classmethod
    def detect(cls) -> "Platform":
        system = _host.system().lower()
        machine = _host.machine().lower()
        return cls(
            os=_OS_ALIASES.get(system, system),
            arch=_ARCH_ALIASES.get(machine, machine),
        )

    @property
    def executable_suffix(self) -> str:
        return ".exe" if self.os == "windows" else ""


# -----------------------------
# Manifest
# -----------------------------

class LocationFlag(IntFlag):
    """Closed set of location flags a connector may declare."""

    NONE = 0
    LOCALFS = 1 << 0
    FILE = 1 << 1
    NEEDACK = 1 << 2
    CLEANUP = 1 << 3
    STREAM = 1 << 4


LOCATION_FLAG_NAMES = {
    "localfs": LocationFlag.LOCALFS,
    "file": LocationFlag.FILE,
    "needack": LocationFlag.NEEDACK,
    "cleanup": LocationFlag.CLEANUP,
    "stream": LocationFlag.STREAM,
}


class ManifestConnector(BaseModel):
    """
    One connector shipped by an integration.

    - type: "storage", "importer" or "exporter"
    - executable: path relative to the manifest directory
    - location_flags: tokens from LOCATION_FLAG_NAMES
    """
    model_config = ConfigDict(extra="allow")

    type: str = ""
    protocols: List[str] = Field(default_factory=list)
    location_flags: List[str] = Field(default_factory=list)
    executable: str = ""
    args: List[str] = Field(default_factory=list)
    extra_files: List[str] = Field(default_factory=list)

    def flags(self) -> LocationFlag:
        from .manifest import parse_location_flags

        return parse_location_flags(self.location_flags)


class Manifest(BaseModel):
    """
    Mirrors the manifest.yaml found at the root of an extracted package.
    """
    # allow unknown fields so newer manifests still load
    model_config = ConfigDict(extra="allow")

    name: str = ""
    display_name: str = ""
    description: str = ""
    homepage: str = ""
    license: str = ""
    tags: List[str] = Field(default_factory=list)
    api_version: str = ""

    connectors: List[ManifestConnector] = Field(default_factory=list)


# -----------------------------
# Remote descriptors
# -----------------------------

class Recipe(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    version: str
    repository: str = ""


InstallationStatus = Literal["installed", "not-installed"]


class IntegrationInstallation(BaseModel):
    status: InstallationStatus = "not-installed"
    version: Optional[str] = None
    available: bool = False


class IntegrationTypes(BaseModel):
    storage: bool = False
    source: bool = False
    destination: bool = False
    provider: bool = False


class Integration(BaseModel):
    """
    Catalog row: remote index metadata merged with local installation state.
    """
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    display_name: str = ""
    description: str = ""
    homepage: str = ""
    repository: str = ""
    license: str = ""
    tags: List[str] = Field(default_factory=list)
    api_version: str = ""
    latest_version: str = ""
    stage: str = ""
    types: IntegrationTypes = Field(default_factory=IntegrationTypes)

    documentation: str = ""  # README.md
    icon: str = ""           # assets/icon.{png,svg}
    featured: str = ""       # assets/featured.{png,svg}

    installation: IntegrationInstallation = Field(default_factory=IntegrationInstallation)


class IntegrationIndex(BaseModel):
    model_config = ConfigDict(extra="ignore")

    integrations: List[Integration] = Field(default_factory=list)
