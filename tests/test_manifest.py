"""
Tests for manifest decoding and validation.
"""

import pytest

from backend.app.integrations.domain.manifest import (
    load_manifest,
    parse_location_flags,
    parse_manifest,
    validate_connector_path,
)
from backend.app.integrations.domain.models import LocationFlag, ManifestConnector, Platform
from backend.app.integrations.errors import (
    ManifestDecodeError,
    UnknownLocationFlagError,
    UnsafeExecutablePathError,
)

MANIFEST = b"""\
name: s3
display_name: Amazon S3
description: S3 storage and source
homepage: https://example.org/s3
license: ISC
tags: [cloud, s3]
api_version: v1.0.0
connectors:
  - type: storage
    protocols: [s3]
    location_flags: [stream]
    executable: bin/s3-storage
    args: [--verbose]
  - type: importer
    protocols: [s3]
    executable: bin/s3-importer.exe
    extra_files: [README.md]
"""


class TestParseManifest:
    def test_parse_full_manifest(self, platform):
        m = parse_manifest(MANIFEST, platform)

        assert m.name == "s3"
        assert m.display_name == "Amazon S3"
        assert m.license == "ISC"
        assert m.tags == ["cloud", "s3"]
        assert len(m.connectors) == 2
        assert m.connectors[0].executable == "bin/s3-storage"
        assert m.connectors[0].args == ["--verbose"]
        assert m.connectors[1].extra_files == ["README.md"]
        assert m.connectors[1].location_flags == []

    def test_windows_gets_exe_suffix(self):
        """Executables get .exe once when targeting windows."""
        m = parse_manifest(MANIFEST, Platform(os="windows", arch="amd64"))

        assert m.connectors[0].executable == "bin/s3-storage.exe"
        assert m.connectors[1].executable == "bin/s3-importer.exe"

    def test_invalid_yaml(self, platform):
        with pytest.raises(ManifestDecodeError):
            parse_manifest(b"name: [unterminated", platform)

    def test_not_a_mapping(self, platform):
        with pytest.raises(ManifestDecodeError):
            parse_manifest(b"- just\n- a list\n", platform)

    def test_sparse_manifest(self, platform):
        """Every field may be omitted; missing strings decode as empty."""
        m = parse_manifest(b"connectors:\n  - protocols: [fs]\n", platform)

        assert m.name == ""
        assert m.connectors[0].type == ""
        assert m.connectors[0].executable == ""
        assert m.connectors[0].protocols == ["fs"]

    def test_wrong_field_type(self, platform):
        with pytest.raises(ManifestDecodeError):
            parse_manifest(b"name: x\nconnectors: not-a-list\n", platform)


class TestConnectorPath:
    def test_path_inside_directory(self, tmp_path):
        conn = ManifestConnector(type="storage", executable="bin/worker")
        assert validate_connector_path(tmp_path, conn) == tmp_path / "bin" / "worker"

    @pytest.mark.parametrize(
        "executable",
        ["../../etc/passwd", "bin/../../outside", "/etc/passwd"],
    )
    def test_path_escapes_directory(self, tmp_path, executable):
        conn = ManifestConnector(type="storage", executable=executable)
        with pytest.raises(UnsafeExecutablePathError):
            validate_connector_path(tmp_path / "pkg", conn)

    def test_sibling_with_common_prefix(self, tmp_path):
        """pkg-evil is not inside pkg even though the strings share a prefix."""
        conn = ManifestConnector(type="storage", executable="../pkg-evil/worker")
        with pytest.raises(UnsafeExecutablePathError):
            validate_connector_path(tmp_path / "pkg", conn)


class TestLocationFlags:
    def test_fold_flags(self):
        flags = parse_location_flags(["localfs", "file", "stream"])
        assert flags == LocationFlag.LOCALFS | LocationFlag.FILE | LocationFlag.STREAM

    def test_no_flags(self):
        assert parse_location_flags([]) == LocationFlag.NONE

    def test_unknown_flag(self):
        with pytest.raises(UnknownLocationFlagError) as exc:
            parse_location_flags(["localfs", "teleport"])
        assert exc.value.token == "teleport"

    def test_connector_flags(self):
        conn = ManifestConnector(type="storage", executable="x", location_flags=["needack", "cleanup"])
        assert conn.flags() == LocationFlag.NEEDACK | LocationFlag.CLEANUP


class TestLoadManifest:
    def test_load_valid(self, tmp_path, platform):
        path = tmp_path / "manifest.yaml"
        path.write_bytes(MANIFEST)

        m = load_manifest(path, platform)
        assert m.name == "s3"

    def test_load_rejects_escape(self, tmp_path, platform):
        path = tmp_path / "manifest.yaml"
        path.write_text("name: x\nconnectors:\n  - type: storage\n    executable: ../../etc/passwd\n")

        with pytest.raises(UnsafeExecutablePathError):
            load_manifest(path, platform)

    def test_load_rejects_unknown_flag(self, tmp_path, platform):
        path = tmp_path / "manifest.yaml"
        path.write_text(
            "name: x\nconnectors:\n  - type: storage\n    executable: bin/x\n    location_flags: [bogus]\n"
        )

        with pytest.raises(UnknownLocationFlagError):
            load_manifest(path, platform)

    def test_load_missing_file(self, tmp_path, platform):
        with pytest.raises(FileNotFoundError):
            load_manifest(tmp_path / "manifest.yaml", platform)
