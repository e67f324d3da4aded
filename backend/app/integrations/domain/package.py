# backend/app/integrations/domain/package.py
from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, model_validator

from ..errors import BadIdentityError
from . import semver

DEFAULT_ARCHIVE_SUFFIX = ".ptar"

_NAME_RE = re.compile(r"[A-Za-z0-9-]+", re.ASCII)
_OS_ARCH_RE = re.compile(r"[A-Za-z0-9]*", re.ASCII)


class PackageIdentity(BaseModel):
    """
    Identity of one installed integration package.

    Serialized as "{name}_{version}_{os}_{arch}.ptar". The field order and
    the "_" delimiter are part of the on-disk and repository contract.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    version: str
    os: str
    arch: str

    @model_validator(mode="after")
    def _validate(self) -> "PackageIdentity":
        label = self.name or "<empty>"
        if not self.name:
            raise BadIdentityError(label, "empty name", field="name")
        for c in self.name:
            if not _NAME_RE.fullmatch(c):
                raise BadIdentityError(label, f"name contains invalid char {c!r}", field="name")

        if not semver.is_valid(self.version):
            raise BadIdentityError(label, f"invalid version {self.version!r}", field="version")

        if not _OS_ARCH_RE.fullmatch(self.os):
            raise BadIdentityError(label, f"invalid os {self.os!r}", field="os")
        if not _OS_ARCH_RE.fullmatch(self.arch):
            raise BadIdentityError(label, f"invalid arch {self.arch!r}", field="arch")
        return self

    @classmethod
    def parse(cls, filename: str, suffix: str = DEFAULT_ARCHIVE_SUFFIX) -> "PackageIdentity":
        if not filename.endswith(suffix):
            raise BadIdentityError(filename, f"does not end with {suffix}", field="suffix")

        atoms = filename[: -len(suffix)].split("_")
        if len(atoms) != 4:
            raise BadIdentityError(filename, "is malformed")

        name, version, os_, arch = atoms
        try:
            return cls(name=name, version=version, os=os_, arch=arch)
        except BadIdentityError as e:
            # report the full file name, not just the package name
            raise BadIdentityError(filename, e.reason, field=e.field) from e

    @property
    def basename(self) -> str:
        return f"{self.name}_{self.version}_{self.os}_{self.arch}"

    def filename(self, suffix: str = DEFAULT_ARCHIVE_SUFFIX) -> str:
        return self.basename + suffix

    def __str__(self) -> str:
        return self.basename
