# backend/app/integrations/domain/manifest.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import IO, Iterable, Union

import yaml
from pydantic import ValidationError

from ..errors import ManifestDecodeError, UnknownLocationFlagError, UnsafeExecutablePathError
from .models import LOCATION_FLAG_NAMES, LocationFlag, Manifest, ManifestConnector, Platform

logger = logging.getLogger("integrations.domain.manifest")

MANIFEST_FILENAME = "manifest.yaml"


def parse_manifest(
    data: Union[bytes, str, IO],
    platform: Platform,
    *,
    source: str = "<manifest>",
) -> Manifest:
    """
    Decode a manifest document.

    Windows wants executables to end with .exe, so when targeting it every
    connector executable gets the suffix appended if it is missing.
    """
    try:
        raw = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise ManifestDecodeError(source, str(e)) from e

    if not isinstance(raw, dict):
        raise ManifestDecodeError(source, "document is not a mapping")

    try:
        manifest = Manifest.model_validate(raw)
    except ValidationError as e:
        raise ManifestDecodeError(source, str(e)) from e

    suffix = platform.executable_suffix
    if suffix:
        for conn in manifest.connectors:
            if not conn.executable.endswith(suffix):
                conn.executable += suffix

    return manifest


def validate_connector_path(manifest_dir: Union[str, Path], connector: ManifestConnector) -> Path:
    """
    Ensure the connector executable stays inside manifest_dir.

    Returns the resolved executable path.
    """
    base = os.path.normpath(os.path.abspath(manifest_dir))
    exe = os.path.normpath(os.path.join(base, connector.executable))

    if os.path.commonpath([base, exe]) != base:
        logger.error("Rejecting executable %r outside %s", connector.executable, base)
        raise UnsafeExecutablePathError(connector.executable, base)
    return Path(exe)


def parse_location_flags(tokens: Iterable[str]) -> LocationFlag:
    flags = LocationFlag.NONE
    for token in tokens:
        f = LOCATION_FLAG_NAMES.get(token)
        if f is None:
            raise UnknownLocationFlagError(token)
        flags |= f
    return flags


def load_manifest(path: Union[str, Path], platform: Platform) -> Manifest:
    """
    Read, decode and validate the manifest at `path`.

    Each connector must point inside the manifest directory and declare
    only known location flags.
    """
    path = Path(path)
    logger.debug("Loading manifest from %s", path)

    with path.open("rb") as fp:
        manifest = parse_manifest(fp, platform, source=str(path))

    manifest_dir = path.parent
    for conn in manifest.connectors:
        validate_connector_path(manifest_dir, conn)
        conn.flags()

    return manifest
