"""Download and install the Bedrock dedicated server bundle."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Callable

import httpx
import typer

from bsm.archive import extract_tree
from bsm.errors import AlreadyRunningError, BsmError, DownloadError
from bsm.server.supervisor import ProcessSupervisor

logger = logging.getLogger("bsm.server.setup")

DOWNLOAD_URL_TEMPLATE = (
    "https://www.minecraft.net/bedrockdedicatedserver/bin-linux/bedrock-server-{version}.zip"
)
DOWNLOAD_TIMEOUT_SECONDS = 30 * 60
# The download host rejects clients that do not look like a browser.
DOWNLOAD_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
}
# Operator-owned files an update must not overwrite.
PRESERVED_ON_UPDATE = ("worlds", "server.properties", "allowlist.json", "permissions.json")


def build_download_url(version: str) -> str:
    cleaned = str(version or "").strip()
    if not cleaned:
        raise BsmError("server version is required", error_code="VERSION_REQUIRED")
    return DOWNLOAD_URL_TEMPLATE.format(version=cleaned)


def _echo_progress(downloaded: int, total: int) -> None:
    if total > 0:
        typer.echo(f"\rDownloading... {downloaded / total * 100:.1f}%", nl=False)
    else:
        typer.echo(f"\rDownloading... {downloaded} bytes", nl=False)


def download_file(
    url: str,
    dest_path: Path,
    *,
    client: httpx.Client | None = None,
    progress: Callable[[int, int], None] | None = None,
) -> int:
    """Stream ``url`` to ``dest_path``; return the number of bytes written."""
    dest_path = Path(dest_path)
    own_client = client is None
    if client is None:
        client = httpx.Client(timeout=httpx.Timeout(DOWNLOAD_TIMEOUT_SECONDS))
    downloaded = 0
    try:
        with client.stream("GET", url, headers=DOWNLOAD_HEADERS, follow_redirects=True) as response:
            if response.status_code != 200:
                raise DownloadError(f"bad status downloading {url}: HTTP {response.status_code}")
            total = int(response.headers.get("Content-Length") or 0)
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            with open(dest_path, "wb") as out:
                for chunk in response.iter_bytes():
                    out.write(chunk)
                    downloaded += len(chunk)
                    if progress is not None:
                        progress(downloaded, total)
    except httpx.HTTPError as exc:
        raise DownloadError(f"error downloading {url}: {exc}") from exc
    except OSError as exc:
        raise DownloadError(f"error saving {url} to {dest_path}: {exc}") from exc
    finally:
        if own_client:
            client.close()
    logger.info("Downloaded %s (%d bytes)", url, downloaded)
    return downloaded


def setup_server(
    download_url: str,
    server_dir: str | Path,
    *,
    preserve: tuple[str, ...] = (),
    client: httpx.Client | None = None,
    echo: Callable[[str], None] = typer.echo,
    progress: Callable[[int, int], None] | None = _echo_progress,
) -> Path:
    """Download the server bundle and extract it into ``server_dir``."""
    server_dir = Path(server_dir)
    with tempfile.TemporaryDirectory(prefix="bedrock-server") as tmpdir:
        zip_path = Path(tmpdir) / "server.zip"
        echo("Downloading server...")
        download_file(download_url, zip_path, client=client, progress=progress)
        echo("")

        try:
            server_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BsmError(f"error creating server directory {server_dir}: {exc}") from exc

        echo("Extracting server files...")
        count = extract_tree(zip_path, server_dir, preserve=preserve)
    logger.info("Installed %d server files into %s", count, server_dir)
    return server_dir


def update_server(
    version: str,
    supervisor: ProcessSupervisor,
    *,
    client: httpx.Client | None = None,
    echo: Callable[[str], None] = typer.echo,
    progress: Callable[[int, int], None] | None = _echo_progress,
) -> Path:
    """Install a new server version over a stopped installation, keeping operator files."""
    status = supervisor.status()
    if status.running:
        raise AlreadyRunningError(status.pid or 0)
    return setup_server(
        build_download_url(version),
        supervisor.server_dir,
        preserve=PRESERVED_ON_UPDATE,
        client=client,
        echo=echo,
        progress=progress,
    )
