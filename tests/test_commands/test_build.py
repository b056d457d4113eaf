"""Tests for slipstream_tools.commands.build module."""

import json
from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from slipstream_tools.__main__ import main
from slipstream_tools.core.config import AppConfig
from slipstream_tools.core.report import MANIFEST_FILENAME


@pytest.fixture
def media(temp_dir: Path, make_media: Callable) -> Path:
    return make_media(temp_dir / "media" / "sp2013", (15, 0, 4420, 1017))


@pytest.fixture
def config_file(temp_dir: Path, app_config: AppConfig) -> Path:
    path = temp_dir / "config.json"
    app_config.save(path)
    return path


@pytest.fixture
def capabilities(fake_downloader, fake_expander) -> Generator[MagicMock, None, None]:
    """Route the build command's downloads and extractions to the fakes."""
    with (
        patch("slipstream_tools.commands.build.Downloader") as downloader_cls,
        patch("slipstream_tools.commands.build.Expander", return_value=fake_expander),
    ):
        downloader_cls.return_value.__enter__.return_value = fake_downloader
        downloader_cls.return_value.__exit__.return_value = False
        yield downloader_cls


def _invoke(config_file: Path, *args: str, output: str = "plain", input: str | None = None):
    runner = CliRunner()
    return runner.invoke(
        main, ["--config", str(config_file), "--output", output, "build", *args], input=input
    )


class TestBuildCommand:
    """Test the build command end to end."""

    def test_build_with_languages(
        self, temp_dir: Path, config_file: Path, media: Path, capabilities, fake_downloader
    ):
        destination = temp_dir / "out"

        result = _invoke(
            config_file,
            "--source", str(media),
            "--destination", str(destination),
            "--cumulative-update", "August 2014",
            "--language", "fr-fr,zz-zz",
            "--no-prompt",
        )

        assert result.exit_code == 0, result.output
        assert "applied  SharePoint 2013 SP1" in result.output
        assert "WARNING" in result.output
        assert "zz-zz" in result.output
        manifest = (destination / MANIFEST_FILENAME).read_text()
        assert "Language Pack fr-fr" in manifest
        assert "SharePoint 2013 August 2014 CU" in manifest
        assert len(fake_downloader.fetched) == 6

    def test_default_destination_follows_media_year(
        self, temp_dir: Path, config_file: Path, media: Path, capabilities
    ):
        result = _invoke(config_file, "--no-prompt")

        assert result.exit_code == 0, result.output
        assert (temp_dir / "SP" / "2013" / MANIFEST_FILENAME).exists()
        assert not (temp_dir / "SP" / "2010").exists()
        assert (temp_dir / "SP" / "2013" / "SharePoint" / "setup.exe").exists()

    def test_rerun_downloads_nothing(
        self, temp_dir: Path, config_file: Path, media: Path, capabilities, fake_downloader
    ):
        args = ("--cumulative-update", "September 2014", "--no-prompt")
        assert _invoke(config_file, *args).exit_code == 0
        fetched = len(fake_downloader.fetched)

        result = _invoke(config_file, *args)

        assert result.exit_code == 0, result.output
        assert len(fake_downloader.fetched) == fetched
        assert "Downloads: 0" in result.output

    def test_prompt_for_update(
        self, temp_dir: Path, config_file: Path, media: Path, capabilities
    ):
        result = _invoke(config_file, input="3\n")

        assert result.exit_code == 0, result.output
        assert "1. March 2013 PU" in result.output
        manifest = (temp_dir / "SP" / "2013" / MANIFEST_FILENAME).read_text()
        assert "SharePoint 2013 September 2014 CU" in manifest

    def test_invalid_update_reprompts(
        self, temp_dir: Path, config_file: Path, media: Path, capabilities
    ):
        result = _invoke(config_file, "--cumulative-update", "May 2099", input="\n")

        assert result.exit_code == 0, result.output
        assert "Available cumulative updates" in result.output
        manifest = (temp_dir / "SP" / "2013" / MANIFEST_FILENAME).read_text()
        assert "May 2099" in manifest
        assert "SharePoint 2013 SP1" in manifest
        assert "2014 CU" not in manifest

    def test_unlisted_answer_is_asked_again(
        self, temp_dir: Path, config_file: Path, media: Path, capabilities
    ):
        result = _invoke(config_file, input="Agust 2014\n7\nAugust 2014\n")

        assert result.exit_code == 0, result.output
        assert "'Agust 2014' is not one of the listed updates" in result.output
        assert "'7' is not one of the listed updates" in result.output
        manifest = (temp_dir / "SP" / "2013" / MANIFEST_FILENAME).read_text()
        assert "SharePoint 2013 August 2014 CU" in manifest
        assert "Agust" not in manifest

    def test_update_location(
        self, temp_dir: Path, config_file: Path, media: Path, capabilities
    ):
        staging = temp_dir / "downloads"

        result = _invoke(config_file, "--update-location", str(staging), "--no-prompt")

        assert result.exit_code == 0, result.output
        assert (staging / "officeserversp2013-kb2880552-fullfile-x64-en-us.exe").exists()

    def test_json_report(self, config_file: Path, media: Path, capabilities):
        result = _invoke(config_file, "--no-prompt", output="json")

        assert result.exit_code == 0, result.output
        assert '"product": "SharePoint 2013"' in result.output

    def test_json_report_never_prompts(self, config_file: Path, media: Path, capabilities):
        result = _invoke(config_file, output="json")

        assert result.exit_code == 0, result.output
        report = json.loads(result.output)
        assert report["product"] == "SharePoint 2013"
        assert "cumulative_update" not in [stage["stage"] for stage in report["stages"]]

    def test_rich_report(self, config_file: Path, media: Path, capabilities):
        result = _invoke(config_file, "--no-prompt", output="rich")

        assert result.exit_code == 0, result.output
        assert "Build Plan" in result.output
        assert "Success" in result.output

    def test_source_not_found(self, temp_dir: Path, config_file: Path, capabilities):
        empty = temp_dir / "empty"
        empty.mkdir()

        result = _invoke(config_file, "--source", str(empty), "--no-prompt")

        assert result.exit_code == 1
        assert "No installation media" in result.output

    def test_missing_catalog(self, temp_dir: Path, media: Path, capabilities):
        config_file = temp_dir / "broken.json"
        AppConfig(catalog_path=temp_dir / "missing.xml").save(config_file)

        result = _invoke(config_file, "--source", str(media), "--no-prompt")

        assert result.exit_code == 1
        assert "Catalog not found" in result.output
