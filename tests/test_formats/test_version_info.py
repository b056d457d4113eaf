"""Tests for slipstream_tools.formats.version_info module."""

from collections.abc import Callable
from pathlib import Path

import pytest

from slipstream_tools.formats.version_info import (
    FileVersionInfo,
    VersionInfoParser,
    is_executable,
)


class TestIsExecutable:
    """Test the DOS header check."""

    def test_mz_header(self):
        assert is_executable(b"MZ\x90\x00")

    def test_other_data(self):
        assert not is_executable(b"PK\x03\x04")
        assert not is_executable(b"")


class TestVersionInfoParser:
    """Test fixed version block parsing."""

    def test_parse_version(self, make_executable: Callable[..., bytes]):
        info = VersionInfoParser().parse(make_executable((15, 0, 4420, 1017)))

        assert info.file_version == (15, 0, 4420, 1017)
        assert info.product_version == (15, 0, 4420, 1017)
        assert info.major == 15
        assert info.version_string == "15.0.4420.1017"

    def test_parse_file(self, tmp_path: Path, make_executable: Callable[..., bytes]):
        path = tmp_path / "setup.exe"
        path.write_bytes(make_executable((14, 0, 4763, 1000)))

        info = VersionInfoParser().parse_file(path)
        assert info.major == 14

    def test_unaligned_signature_is_skipped(self, make_executable: Callable[..., bytes]):
        data = bytearray(make_executable((15, 0, 4569, 1000)))
        # A stray unaligned signature ahead of the real block
        data[5:9] = b"\xbd\x04\xef\xfe"

        info = VersionInfoParser().parse(bytes(data))
        assert info.version_string == "15.0.4569.1000"

    def test_not_executable(self):
        with pytest.raises(ValueError, match="Not a Windows executable"):
            VersionInfoParser().parse(b"not an exe")

    def test_no_version_resource(self):
        with pytest.raises(ValueError, match="No version resource"):
            VersionInfoParser().parse(b"MZ" + b"\x00" * 200)

    def test_truncated(self, make_executable: Callable[..., bytes]):
        data = make_executable((15, 0, 1, 1))
        with pytest.raises(ValueError, match="Truncated"):
            VersionInfoParser().parse(data[:70])


class TestFileVersionInfo:
    def test_version_string(self):
        info = FileVersionInfo(file_version=(14, 0, 7015, 1000), product_version=(14, 0, 0, 0))
        assert info.version_string == "14.0.7015.1000"
        assert info.major == 14
