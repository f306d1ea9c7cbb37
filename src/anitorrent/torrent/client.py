"""Embedded BitTorrent client contract and its libtorrent implementation."""

import errno
import logging
import socket
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel

from anitorrent.torrent.models import TorrentFile, TorrentStatus
from anitorrent.utils.errors import BufferExhaustedError, DownloadError
from anitorrent.utils.http import build_client

logger = logging.getLogger(__name__)

DEFAULT_PORT = 6881


class ClientSettings(BaseModel):
    """Session settings handed to a client factory."""

    download_dir: Path
    port: int | None = None
    connections_limit: int = 200


class TorrentClient(Protocol):
    """What the torrent engine needs from an embedded client.

    Methods taking an info hash raise KeyError for unknown torrents.
    """

    listen_port: int

    def add(self, uri: str, save_path: Path) -> str:
        """Add a magnet link or .torrent URL/path; return its info hash."""
        ...

    def status(self, info_hash: str) -> TorrentStatus: ...

    def files(self, info_hash: str) -> list[TorrentFile]: ...

    def select_file(self, info_hash: str, index: int) -> None:
        """Download only the file at index."""
        ...

    def file_progress(self, info_hash: str, index: int) -> int:
        """Bytes of the file at index that are complete."""
        ...

    def list_torrents(self) -> list[TorrentStatus]: ...

    def remove(self, info_hash: str, delete_files: bool = False) -> None: ...

    def check_errors(self) -> None:
        """Raise BufferExhaustedError if the session ran out of buffer space."""
        ...

    def shutdown(self) -> None: ...


def find_available_port(start: int = DEFAULT_PORT, attempts: int = 100) -> int:
    """Return the first port from start upwards that can be bound.

    Raises:
        DownloadError: If none of the probed ports is free
    """
    for port in range(start, start + attempts):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind(("0.0.0.0", port))
            except OSError:
                logger.debug(f"Port {port} in use")
                continue
        return port
    raise DownloadError(f"No free port in range {start}-{start + attempts - 1}")


class LibtorrentClient:
    """TorrentClient backed by an in-process libtorrent session."""

    def __init__(self, settings: ClientSettings) -> None:
        try:
            import libtorrent as lt
        except ImportError as e:
            raise DownloadError(
                "libtorrent is not installed; install it with: pip install 'anitorrent-cli[torrent]'"
            ) from e

        self._lt = lt
        self.listen_port = settings.port or find_available_port()
        self._session = lt.session(
            {
                "listen_interfaces": f"0.0.0.0:{self.listen_port}",
                "connections_limit": settings.connections_limit,
                "alert_mask": lt.alert.category_t.error_notification,
                "enable_dht": True,
                "enable_lsd": True,
            }
        )
        self._handles: dict[str, object] = {}
        logger.info(f"Torrent session listening on port {self.listen_port}")

    @staticmethod
    def _hash_of(handle) -> str:
        hashes = getattr(handle, "info_hashes", None)
        if hashes is not None:
            return str(hashes().get_best())
        return str(handle.info_hash())

    def _params_for(self, uri: str, save_path: Path):
        lt = self._lt
        if uri.startswith("magnet:"):
            params = lt.parse_magnet_uri(uri)
        else:
            if uri.startswith(("http://", "https://")):
                with build_client(timeout=30.0) as http:
                    response = http.get(uri)
                    response.raise_for_status()
                    data = response.content
            else:
                data = Path(uri).read_bytes()
            params = lt.add_torrent_params()
            params.ti = lt.torrent_info(lt.bdecode(data))
        params.save_path = str(save_path)
        return params

    def add(self, uri: str, save_path: Path) -> str:
        try:
            params = self._params_for(uri, save_path)
        except Exception as e:
            raise DownloadError(f"Could not load torrent {uri[:80]}: {e}") from e
        try:
            handle = self._session.add_torrent(params)
        except RuntimeError as e:
            raise DownloadError(f"Torrent session rejected {uri[:80]}: {e}") from e
        info_hash = self._hash_of(handle)
        self._handles[info_hash] = handle
        return info_hash

    def _torrent_info(self, handle):
        getter = getattr(handle, "torrent_file", None)
        return getter() if getter is not None else handle.get_torrent_info()

    def status(self, info_hash: str) -> TorrentStatus:
        st = self._handles[info_hash].status()
        error = None
        errc = getattr(st, "errc", None)
        if errc is not None and errc.value():
            error = errc.message()
        return TorrentStatus(
            info_hash=info_hash,
            name=st.name,
            progress=min(max(st.progress, 0.0), 1.0),
            num_peers=st.num_peers,
            uploaded=st.all_time_upload,
            downloaded=st.all_time_download,
            added_at=float(st.added_time),
            has_metadata=st.has_metadata,
            is_finished=st.is_finished or st.is_seeding,
            error=error,
        )

    def files(self, info_hash: str) -> list[TorrentFile]:
        storage = self._torrent_info(self._handles[info_hash]).files()
        return [
            TorrentFile(index=i, path=storage.file_path(i), size_bytes=storage.file_size(i))
            for i in range(storage.num_files())
        ]

    def select_file(self, info_hash: str, index: int) -> None:
        handle = self._handles[info_hash]
        count = self._torrent_info(handle).num_files()
        priorities = [0] * count
        priorities[index] = 4
        handle.prioritize_files(priorities)

    def file_progress(self, info_hash: str, index: int) -> int:
        return int(self._handles[info_hash].file_progress()[index])

    def list_torrents(self) -> list[TorrentStatus]:
        return [self.status(info_hash) for info_hash in list(self._handles)]

    def remove(self, info_hash: str, delete_files: bool = False) -> None:
        handle = self._handles.pop(info_hash)
        flags = 0
        if delete_files:
            flags = getattr(self._lt, "options_t", self._lt.session).delete_files
        self._session.remove_torrent(handle, flags)

    def check_errors(self) -> None:
        for alert in self._session.pop_alerts():
            error = getattr(alert, "error", None)
            if error is not None and error.value() == errno.ENOBUFS:
                raise BufferExhaustedError(f"Torrent session out of buffer space: {alert.message()}")
            if isinstance(alert, self._lt.torrent_error_alert):
                logger.warning(f"Torrent error: {alert.message()}")

    def shutdown(self) -> None:
        """Remove every torrent and release the session and its listen port.

        Files stay on disk. The client cannot be used afterwards.
        """
        if self._session is None:
            return
        for info_hash in list(self._handles):
            self._session.remove_torrent(self._handles.pop(info_hash))
        self._session = None
        logger.debug("Torrent session stopped")
