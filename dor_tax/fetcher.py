"""
Remote ZIP archive download and extraction.

One blocking GET per call, bounded by a (connect, read) timeout and an
optional cancel token checked between body chunks. There is no retry
loop here; callers decide whether a NetworkError is worth another try.
"""

from __future__ import annotations

import io
import logging
import shutil
import tempfile
import threading
import zipfile
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator, Optional, Union

import requests

from dor_tax.config import Settings
from dor_tax.errors import ArchiveCorruptError, NetworkError

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "dor-tax-rates/1.0 (+https://dor.wa.gov)",
    "Accept": "application/zip, application/octet-stream, */*",
}


def _entry_filename(name: str) -> str:
    """Bare file name of an archive member, directory parts dropped."""
    return PurePosixPath(name.replace("\\", "/")).name


class ArchiveFetcher:
    """
    Downloads ZIP archives and exposes their members.

    ``session`` is anything with a requests-compatible ``get``; a fresh
    ``requests.Session`` is created when omitted.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        settings: Optional[Settings] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.session = session or requests.Session()
        self.settings = settings or Settings()
        self.cancel_event = cancel_event

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _cancelled(self, cancel: Optional[threading.Event]) -> bool:
        # Per-call token or the fetcher-wide one
        return any(t is not None and t.is_set() for t in (cancel, self.cancel_event))

    def _download(
        self, url: str, sink: BinaryIO, cancel: Optional[threading.Event] = None
    ) -> int:
        """Stream the body of ``url`` into ``sink``; returns bytes written."""
        if self._cancelled(cancel):
            raise NetworkError(url, "Download cancelled")

        logger.info("Downloading %s", url)
        written = 0
        try:
            with self.session.get(
                url,
                headers=HEADERS,
                stream=True,
                timeout=self.settings.timeout,
                allow_redirects=True,
            ) as response:
                try:
                    response.raise_for_status()
                except requests.HTTPError as e:
                    raise NetworkError(
                        url,
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                    ) from e
                for chunk in response.iter_content(
                    chunk_size=self.settings.chunk_size
                ):
                    if self._cancelled(cancel):
                        raise NetworkError(url, "Download cancelled")
                    if chunk:
                        sink.write(chunk)
                        written += len(chunk)
        except requests.Timeout as e:
            raise NetworkError(url, "Timed out") from e
        except requests.RequestException as e:
            raise NetworkError(url, f"Request failed ({e})") from e

        logger.debug("Downloaded %d bytes from %s", written, url)
        return written

    def fetch(self, url: str, cancel: Optional[threading.Event] = None) -> bytes:
        """Download ``url`` and return the response body."""
        buffer = io.BytesIO()
        self._download(url, buffer, cancel)
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Archive access
    # ------------------------------------------------------------------

    @staticmethod
    def open_archive(
        data: Union[bytes, Path], source: str = "<bytes>"
    ) -> zipfile.ZipFile:
        """Open ``data`` (bytes or a file path) as a ZIP, or raise ArchiveCorruptError."""
        try:
            archive = zipfile.ZipFile(io.BytesIO(data) if isinstance(data, bytes) else data)
            archive.namelist()
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as e:
            raise ArchiveCorruptError(
                f"Not a readable ZIP archive: {source}"
            ) from e
        return archive

    @classmethod
    def read_entries(cls, data: bytes, source: str = "<bytes>") -> dict[str, bytes]:
        """All file members of a ZIP held in memory, in archive order."""
        entries: dict[str, bytes] = {}
        with cls.open_archive(data, source) as archive:
            for info in archive.infolist():
                if info.is_dir():
                    continue
                try:
                    entries[info.filename] = archive.read(info)
                except (zipfile.BadZipFile, OSError, EOFError) as e:
                    raise ArchiveCorruptError(
                        f"Cannot read {info.filename} from {source}"
                    ) from e
        return entries

    def fetch_and_extract(
        self, url: str, cancel: Optional[threading.Event] = None
    ) -> dict[str, bytes]:
        """Download an archive and return ``{entry name: content}``."""
        return self.read_entries(self.fetch(url, cancel), source=url)

    def extract_to(self, archive_path: Path, directory: Path, source: str) -> None:
        """Copy every file member into ``directory``, one member at a time."""
        with self.open_archive(archive_path, source) as archive:
            for info in archive.infolist():
                filename = _entry_filename(info.filename)
                if info.is_dir() or not filename:
                    continue
                try:
                    with archive.open(info) as src, open(directory / filename, "wb") as dst:
                        shutil.copyfileobj(src, dst, self.settings.chunk_size)
                except (zipfile.BadZipFile, EOFError) as e:
                    raise ArchiveCorruptError(
                        f"Cannot read {info.filename} from {source}"
                    ) from e

    @contextmanager
    def extracted(
        self, url: str, cancel: Optional[threading.Event] = None
    ) -> Iterator[Path]:
        """
        Download an archive and unpack it into a scratch directory.

        The body goes straight to disk and members are copied out one at a
        time. The directory is removed when the block exits, whether it
        exits normally, through an exception, or because a generator
        holding it was closed early.
        """
        with tempfile.TemporaryDirectory(prefix="dor_tax_") as tmp:
            archive_path = Path(tmp) / "download.zip"
            root = Path(tmp) / "entries"
            root.mkdir()
            with open(archive_path, "wb") as sink:
                self._download(url, sink, cancel)
            self.extract_to(archive_path, root, source=url)
            archive_path.unlink()
            logger.debug("Extracted %s into %s", url, root)
            yield root
