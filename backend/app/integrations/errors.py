from __future__ import annotations

from typing import Optional


class IntegrationError(Exception):
    """Base class for every error raised by the integration lifecycle."""


class BadIdentityError(IntegrationError):
    """
    A package name, version, os or arch failed validation.

    - filename: the name being parsed (or the bare package name)
    - field: which of name/version/os/arch/suffix was at fault, if known
    """

    def __init__(self, filename: str, reason: str, field: Optional[str] = None):
        self.filename = filename
        self.field = field
        self.reason = reason
        super().__init__(f"invalid package name {filename!r}: {reason}")


class ManifestDecodeError(IntegrationError):
    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"failed to decode the manifest {source}: {reason}")


class UnsafeExecutablePathError(IntegrationError):
    def __init__(self, executable: str, manifest_dir: str):
        self.executable = executable
        self.manifest_dir = manifest_dir
        super().__init__(f"bad executable path {executable!r} (escapes {manifest_dir})")


class UnknownLocationFlagError(IntegrationError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(f"unknown location flag: {token!r}")


class AlreadyInstalledError(IntegrationError):
    def __init__(self, name: str, version: str, installed: Optional[str] = None):
        self.name = name
        self.version = version
        self.installed = installed
        msg = f"already installed: {name} {version}"
        if installed and installed != version:
            msg += f" (found {installed})"
        super().__init__(msg)


class InvalidPolicyOptionsError(IntegrationError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"invalid options: {reason}")


class AuthorizationRequiredError(IntegrationError):
    def __init__(self, url: str):
        self.url = url
        super().__init__(f"authorization required: {url}")


class RemoteFetchFailedError(IntegrationError):
    def __init__(self, url: str, status_code: int, reason: str = ""):
        self.url = url
        self.status_code = status_code
        self.reason = reason
        super().__init__(
            f"non-OK status code while fetching {url}: {status_code} {reason}".rstrip()
        )


class RemoteDecodeError(IntegrationError):
    """A document served by the repository or catalog API could not be decoded."""

    def __init__(self, url: str, document: str, reason: str):
        self.url = url
        self.document = document
        self.reason = reason
        super().__init__(f"invalid {document} at {url}: {reason}")


class ArchiveError(IntegrationError):
    """The archive engine could not open or extract an artifact."""

    def __init__(self, locator: str, reason: str):
        self.locator = locator
        self.reason = reason
        super().__init__(f"{locator}: {reason}")
