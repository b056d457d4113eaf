"""Executable version resource parser.

Windows executables carry a ``VS_VERSIONINFO`` resource whose fixed part,
``VS_FIXEDFILEINFO``, starts with the signature ``0xFEEF04BD``:

    DWORD dwSignature        0xFEEF04BD
    DWORD dwStrucVersion
    DWORD dwFileVersionMS    major << 16 | minor
    DWORD dwFileVersionLS    build << 16 | revision
    DWORD dwProductVersionMS
    DWORD dwProductVersionLS
    ...

Only these leading fields are needed to identify installation media, so
the parser scans for the signature instead of walking the resource tree.
"""

from __future__ import annotations

import struct
from typing import BinaryIO

import structlog
from pydantic import BaseModel, Field

from slipstream_tools.formats.base import FormatParser

logger = structlog.get_logger()

FIXED_FILE_INFO_SIGNATURE = 0xFEEF04BD
_SIGNATURE_BYTES = struct.pack("<I", FIXED_FILE_INFO_SIGNATURE)
_FIXED_HEADER = struct.Struct("<6I")


class FileVersionInfo(BaseModel):
    """Version numbers read from an executable's fixed version block."""
    file_version: tuple[int, int, int, int] = Field(..., description="File version")
    product_version: tuple[int, int, int, int] = Field(..., description="Product version")

    @property
    def major(self) -> int:
        return self.file_version[0]

    @property
    def version_string(self) -> str:
        return ".".join(str(part) for part in self.file_version)


def _split(ms: int, ls: int) -> tuple[int, int, int, int]:
    return (ms >> 16, ms & 0xFFFF, ls >> 16, ls & 0xFFFF)


def is_executable(data: bytes) -> bool:
    """Check for the DOS ``MZ`` header."""
    return data[:2] == b"MZ"


class VersionInfoParser(FormatParser[FileVersionInfo]):
    """Parser for the fixed version block of a PE executable."""

    def parse(self, data: bytes | BinaryIO) -> FileVersionInfo:
        raw = self._read_all(data)

        if not is_executable(raw):
            raise ValueError("Not a Windows executable (missing MZ header)")

        # The signature is DWORD-aligned inside the resource section
        offset = raw.find(_SIGNATURE_BYTES)
        while offset != -1 and offset % 4:
            offset = raw.find(_SIGNATURE_BYTES, offset + 1)

        if offset == -1:
            raise ValueError("No version resource found")
        if offset + _FIXED_HEADER.size > len(raw):
            raise ValueError("Truncated version resource")

        (
            _signature,
            _struct_version,
            file_ms,
            file_ls,
            product_ms,
            product_ls,
        ) = _FIXED_HEADER.unpack_from(raw, offset)

        info = FileVersionInfo(
            file_version=_split(file_ms, file_ls),
            product_version=_split(product_ms, product_ls),
        )
        logger.debug("version_info_parsed", version=info.version_string, offset=offset)
        return info
