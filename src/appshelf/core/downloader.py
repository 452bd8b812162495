"""Download functionality with hashing, progress reporting and cancellation."""

from enum import Enum
from pathlib import Path
import hashlib
import logging
import tempfile
import time

import httpx

from appshelf.core.checksum import Sha256Hasher
from appshelf.core.config import get_config
from appshelf.core.errors import AppShelfError
from appshelf.models.operation import Progress

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class DownloadErrorKind(str, Enum):
    TRANSPORT = "transport"
    CANCELLED = "cancelled"


class DownloadError(AppShelfError):
    """Error during download."""

    def __init__(self, kind: DownloadErrorKind, message: str, *, cause: BaseException | None = None):
        super().__init__(message, cause=cause)
        self.kind = kind

    @property
    def cancelled(self) -> bool:
        return self.kind == DownloadErrorKind.CANCELLED


def url_basename(url: str) -> str:
    """The last path component of a URL, without query string."""
    name = url.split("?", 1)[0].split("#", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    return name or "download"


def cache_path_name(url: str) -> str:
    """Homebrew's download cache name: ``<sha256 of url>--<basename>``."""
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
    return f"{digest}--{url_basename(url)}"


async def download(
    url: str,
    *,
    headers: dict[str, str] | None = None,
    progress: Progress | None = None,
    dest_dir: Path | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float = 60.0,
    chunk_size: int = CHUNK_SIZE,
) -> tuple[Path, str]:
    """Download a file from URL, hashing it as it streams.

    Returns the path of the downloaded temporary file and its SHA-256 hex digest.
    """
    if dest_dir is None:
        dest_dir = get_config().cache_dir
    dest_dir.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix="download-", suffix="-" + url_basename(url), dir=dest_dir)
    file_path = Path(tmp_name)
    hasher = Sha256Hasher()
    start = time.monotonic()

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(follow_redirects=True, timeout=timeout)

    try:
        with open(fd, "wb") as f:
            async with client.stream("GET", url, headers=headers or {}) as response:
                if response.status_code != 200:
                    raise DownloadError(
                        DownloadErrorKind.TRANSPORT,
                        f"Failed to download {url}: HTTP {response.status_code}",
                    )

                total = int(response.headers.get("content-length", 0) or 0)
                if progress is not None and total > 0:
                    progress.set_total(total)

                async for chunk in response.aiter_bytes(chunk_size=chunk_size):
                    if progress is not None and progress.cancelled:
                        raise DownloadError(DownloadErrorKind.CANCELLED, f"Download of {url} cancelled")
                    f.write(chunk)
                    hasher.update(chunk)
                    if progress is not None:
                        progress.advance(len(chunk))
    except httpx.HTTPError as e:
        file_path.unlink(missing_ok=True)
        raise DownloadError(DownloadErrorKind.TRANSPORT, f"Failed to download {url}", cause=e)
    except BaseException:
        file_path.unlink(missing_ok=True)
        raise
    finally:
        if owns_client:
            await client.aclose()

    logger.debug(
        "downloaded %s: %d bytes in %.2fs", url, hasher.bytes_hashed, time.monotonic() - start
    )
    return file_path, hasher.hexdigest()
