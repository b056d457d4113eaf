"""Pytest configuration and shared fixtures for slipstream_tools tests."""

import io
import struct
import tempfile
import zipfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from slipstream_tools.core.catalog import Catalog
from slipstream_tools.core.config import AppConfig
from slipstream_tools.core.expand import Expander
from slipstream_tools.core.types import Product
from slipstream_tools.formats.catalog import CatalogParser

SAMPLE_CATALOG = b"""<?xml version="1.0" encoding="utf-8"?>
<Products>
  <!-- <Product Name="SP2007" Year="2007" VersionPrefix="12"/> -->
  <Product Name="SP2010" Year="2010" VersionPrefix="14">
    <PrerequisitePackages>
      <PrerequisitePackage Name="Native Client" Url="http://example.test/prereq/sqlncli.msi"/>
      <PrerequisitePackage Name="KB2554876" Url="http://example.test/prereq/433385_intl_x64_zip.exe" ExpandedFile="Windows6.1-KB2554876-v2-x64.msu"/>
    </PrerequisitePackages>
    <ServicePacks>
      <ServicePack Name="SP1" Threshold="3" Url="http://example.test/sp2010/officeserver2010sp1-kb2460045-x64-fullfile-en-us.exe"/>
    </ServicePacks>
    <CumulativeUpdates>
      <CumulativeUpdate Name="August 2012" ServicePack="SP1" Url="http://example.test/cu2010/451060_intl_x64_zip.exe" ExpandedFile="ubersrv2010-kb2687564-fullfile-x64-glb.exe"/>
    </CumulativeUpdates>
    <LanguagePacks>
      <LanguagePack Name="fr-fr" Url="http://example.test/lp2010/fr-fr/ServerLanguagePack.exe"/>
    </LanguagePacks>
  </Product>
  <Product Name="SP2013" Year="2013" VersionPrefix="15">
    <ServicePacks>
      <ServicePack Name="SP1" Threshold="3">
        <Package Name="officeserversp2013-kb2880552" Url="http://example.test/sp2013/officeserversp2013-kb2880552-fullfile-x64-en-us.exe"/>
      </ServicePack>
    </ServicePacks>
    <CumulativeUpdates>
      <CumulativeUpdate Name="March 2013 PU" Url="http://example.test/cu2013/ubersrvprjsp2013-kb2767999-fullfile-x64-glb.exe"/>
      <CumulativeUpdate Name="August 2014" ServicePack="SP1" Requires="March 2013 PU">
        <Package Name="ubersrv2013-kb2883086" Url="http://example.test/cu2013/ubersrv2013-kb2883086-fullfile-x64-glb.exe"/>
      </CumulativeUpdate>
      <CumulativeUpdate Name="September 2014" ServicePack="SP1" Url="http://example.test/cu2013/ubersrv2013-kb2883068-fullfile-x64-glb.exe"/>
    </CumulativeUpdates>
    <LanguagePacks>
      <LanguagePack Name="FR-FR" Url="http://example.test/lp2013/fr-fr/serverlanguagepack.exe">
        <ServicePack Name="SP1" Url="http://example.test/lp2013/fr-fr/serverlanguagepacksp2013-kb2880554-fullfile-x64-fr-fr.exe"/>
        <CumulativeUpdate Name="August 2014" Url="http://example.test/lp2013/fr-fr/ubersrvlp2013-aug2014-fr-fr.exe"/>
      </LanguagePack>
      <LanguagePack Name="es-es" Url="http://example.test/lp2013/es-es/serverlanguagepack.exe"/>
    </LanguagePacks>
    <OfficeWebApps>
      <ServicePacks>
        <ServicePack Name="SP1" Threshold="2" Url="http://example.test/owa2013/wacserversp2013-kb2880558-fullfile-x64-glb.exe"/>
      </ServicePacks>
      <CumulativeUpdates>
        <CumulativeUpdate Name="September 2014" Url="http://example.test/owa2013/wacserver2013-kb2889898-fullfile-x64-glb.exe"/>
      </CumulativeUpdates>
    </OfficeWebApps>
  </Product>
</Products>
"""


def build_executable(version: tuple[int, int, int, int], padding: int = 61) -> bytes:
    """Minimal MZ image carrying a VS_FIXEDFILEINFO block."""
    major, minor, build, revision = version
    data = bytearray(b"MZ" + b"\x00" * padding)
    # Fixed file info is DWORD-aligned
    data += b"\x00" * (-len(data) % 4)
    data += struct.pack(
        "<6I",
        0xFEEF04BD,
        0x00010000,
        (major << 16) | minor,
        (build << 16) | revision,
        (major << 16) | minor,
        (build << 16) | revision,
    )
    data += b"\x00" * 32
    return bytes(data)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def sample_catalog_xml() -> bytes:
    """Catalog with two products, language packs and Office Web Apps."""
    return SAMPLE_CATALOG


@pytest.fixture
def catalog(sample_catalog_xml: bytes) -> Catalog:
    return Catalog(CatalogParser().parse(sample_catalog_xml))


@pytest.fixture
def sp2010(catalog: Catalog) -> Product:
    product = catalog.get_product("SP2010")
    assert product is not None
    return product


@pytest.fixture
def sp2013(catalog: Catalog) -> Product:
    product = catalog.get_product("SP2013")
    assert product is not None
    return product


@pytest.fixture
def catalog_file(temp_dir: Path, sample_catalog_xml: bytes) -> Path:
    path = temp_dir / "catalog.xml"
    path.write_bytes(sample_catalog_xml)
    return path


@pytest.fixture
def make_executable() -> Callable[..., bytes]:
    """Factory for fake executables with a version resource."""
    return build_executable


@pytest.fixture
def make_media() -> Callable[[Path, tuple[int, int, int, int]], Path]:
    """Factory creating an installation media folder for a file version."""

    def _make(folder: Path, version: tuple[int, int, int, int]) -> Path:
        folder.mkdir(parents=True, exist_ok=True)
        (folder / "setup.exe").write_bytes(build_executable(version))
        (folder / "PrerequisiteInstaller.exe").write_bytes(b"MZ")
        (folder / "files").mkdir(exist_ok=True)
        (folder / "files" / "setup.dll").write_bytes(b"base media")
        return folder

    return _make


@pytest.fixture
def app_config(temp_dir: Path, catalog_file: Path) -> AppConfig:
    """Configuration pointing at the sample catalog and temp folders."""
    return AppConfig(
        catalog_path=catalog_file,
        default_destination=temp_dir / "SP" / "2010",
        media_roots=[temp_dir / "media"],
        expand={"log_dir": temp_dir / "logs"},
    )


class FakeDownloader:
    """Downloader stand-in serving canned payloads."""

    def __init__(self) -> None:
        self.payloads: dict[str, bytes] = {}
        self.failures: dict[str, Exception] = {}
        self.fetched: list[str] = []

    def fetch(self, url: str, destination: Path) -> Path:
        if url in self.failures:
            raise self.failures[url]
        self.fetched.append(url)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(self.payloads.get(url, b"MZ payload"))
        return destination


class FakeExpander:
    """Expander stand-in; patch extraction drops a .msp per installer."""

    def __init__(self) -> None:
        self.extracted: list[tuple[Path, Path]] = []
        self.failures: dict[str, Exception] = {}

    def unzip(self, archive: Path, target: Path) -> list[Path]:
        return Expander().unzip(archive, target)

    def extract_patch(self, executable: Path, target: Path) -> None:
        if executable.name in self.failures:
            raise self.failures[executable.name]
        self.extracted.append((executable, target))
        target.mkdir(parents=True, exist_ok=True)
        (target / f"{executable.stem}.msp").write_bytes(b"patch")


def build_zip(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def fake_downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def fake_expander() -> FakeExpander:
    return FakeExpander()


@pytest.fixture
def make_zip() -> Callable[[dict[str, bytes]], bytes]:
    """Factory for in-memory zip archives."""
    return build_zip
