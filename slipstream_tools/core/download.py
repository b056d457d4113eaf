"""Resumable HTTP downloads with bounded retry."""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from pathlib import Path

import httpx
import structlog

from slipstream_tools.core.config import FetchConfig
from slipstream_tools.core.errors import FetchError, FilesystemError

logger = structlog.get_logger()

# Progress callback: (file name, bytes downloaded, total bytes if known)
ProgressCallback = Callable[[str, int, int | None], None]

# Client errors that will not go away by asking again
_RETRYABLE_CLIENT_STATUS = {408, 425, 429}


def partial_path(destination: Path) -> Path:
    """Where an in-progress download of ``destination`` is kept."""
    return destination.with_name(destination.name + ".part")


class Downloader:
    """Fetches URLs to local files.

    Interrupted transfers leave a ``.part`` file behind which the next
    attempt (or the next run) resumes with an HTTP range request.
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        progress: ProgressCallback | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize downloader.

        Args:
            config: Optional fetch configuration
            progress: Optional progress callback
            client: Optional pre-built HTTP client
            sleep: Delay function used between attempts
        """
        self.config = config or FetchConfig()
        self.progress = progress
        self._client = client
        self._sleep = sleep

    @property
    def client(self) -> httpx.Client:
        """Get or create sync HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.config.timeout,
                verify=self.config.verify_ssl,
                follow_redirects=True,
            )
        return self._client

    def fetch(self, url: str, destination: Path) -> Path:
        """Download ``url`` to ``destination``.

        Args:
            url: Source URL
            destination: Target file path

        Returns:
            The destination path

        Raises:
            FetchError: If the transfer still fails after all retries
            FilesystemError: If the target folder cannot be created
        """
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"Cannot create folder {destination.parent}: {e}", path=destination.parent
            ) from e

        part = partial_path(destination)
        last_error: Exception | None = None

        for attempt in range(1, self.config.max_retries + 1):
            try:
                self._transfer(url, part, destination.name)
                break
            except httpx.HTTPStatusError as e:
                last_error = e
                status = e.response.status_code
                if 400 <= status < 500 and status not in _RETRYABLE_CLIENT_STATUS:
                    logger.error("download_rejected", url=url, status=status)
                    raise FetchError(
                        f"Download of {url} rejected with HTTP {status}",
                        url=url,
                        attempts=attempt,
                    ) from e
            except (httpx.HTTPError, OSError) as e:
                last_error = e

            logger.warning(
                "download_retry",
                url=url,
                attempt=attempt,
                max_retries=self.config.max_retries,
                error=str(last_error),
            )
            if attempt < self.config.max_retries:
                self._sleep(self.config.backoff * (2 ** (attempt - 1)))
        else:
            logger.error("download_failed", url=url, attempts=self.config.max_retries)
            raise FetchError(
                f"Download of {url} failed after {self.config.max_retries} attempts: "
                f"{last_error}",
                url=url,
                attempts=self.config.max_retries,
            ) from last_error

        os.replace(part, destination)
        logger.info("download_complete", url=url, path=str(destination))
        return destination

    def _transfer(self, url: str, part: Path, name: str) -> None:
        """Run a single transfer attempt, resuming ``part`` if it exists."""
        offset = part.stat().st_size if part.exists() else 0
        headers = {"Range": f"bytes={offset}-"} if offset else {}

        with self.client.stream("GET", url, headers=headers) as response:
            if response.status_code == 416 and offset:
                # Nothing left beyond what is already on disk
                logger.debug("download_already_complete", url=url, size=offset)
                return
            response.raise_for_status()

            if response.status_code == 206:
                mode = "ab"
                logger.debug("download_resume", url=url, offset=offset)
            else:
                mode = "wb"
                offset = 0

            length = response.headers.get("content-length")
            total = int(length) + offset if length and length.isdigit() else None

            with open(part, mode) as f:
                for chunk in response.iter_bytes(self.config.chunk_size):
                    f.write(chunk)
                    offset += len(chunk)
                    if self.progress:
                        self.progress(name, offset, total)

    def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> Downloader:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
