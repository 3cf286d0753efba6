"""Readers for calendar files from disk or over HTTP."""
import logging
import time
from pathlib import Path
from typing import Tuple
from urllib.parse import unquote, urlparse

import requests

from processor.exceptions import IcsReadError

logger = logging.getLogger(__name__)


class IcsFetcher:
    """Loads raw calendar content for the parser."""

    MAX_FILE_SIZE = 10 * 1024 * 1024

    def __init__(self, timeout: int = 30):
        """
        Initialize the fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.timeout = timeout

    def read_file(self, path: str) -> Tuple[str, bytes]:
        """
        Read a calendar file from disk.

        Args:
            path: Path of the .ics file

        Returns:
            Tuple of (file name, raw content)

        Raises:
            IcsReadError: If the file cannot be read or is too large
        """
        file_path = Path(path)
        try:
            size = file_path.stat().st_size
            if size > self.MAX_FILE_SIZE:
                raise IcsReadError(
                    f"Calendar file {file_path.name} exceeds {self.MAX_FILE_SIZE} bytes"
                )
            content = file_path.read_bytes()
        except OSError as e:
            raise IcsReadError(f"Cannot read calendar file {path}: {e}") from e

        logger.info(f"Read {len(content)} bytes from {file_path.name}")
        return file_path.name, content

    def fetch_url(self, url: str) -> Tuple[str, bytes]:
        """
        Download a calendar from a URL with retry logic.

        Args:
            url: HTTP(S) URL of the calendar feed

        Returns:
            Tuple of (file name derived from the URL, raw content)

        Raises:
            requests.RequestException: If all retry attempts fail
            IcsReadError: If the downloaded calendar is too large
        """
        if url.startswith('webcal://'):
            url = 'https://' + url[len('webcal://'):]

        max_retries = 3
        base_delay = 1  # seconds

        for attempt in range(max_retries):
            try:
                logger.info(f"Fetching calendar {url} (attempt {attempt + 1}/{max_retries})")
                response = requests.get(url, timeout=self.timeout)
                response.raise_for_status()
                content = response.content
                if len(content) > self.MAX_FILE_SIZE:
                    raise IcsReadError(
                        f"Calendar at {url} exceeds {self.MAX_FILE_SIZE} bytes"
                    )
                return self._file_name_from_url(url), content

            except requests.RequestException as e:
                if attempt < max_retries - 1:
                    # Calculate exponential backoff delay
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def _file_name_from_url(self, url: str) -> str:
        name = unquote(Path(urlparse(url).path).name)
        return name or urlparse(url).netloc or 'calendar.ics'
