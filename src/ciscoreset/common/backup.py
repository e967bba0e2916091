"""Backup helpers: parameter validation and the built-in TFTP listener."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable

import tftpy

from ciscoreset.console.context import ProgressSink
from ciscoreset.core.models import BackupParameters

TFTP_PORT = 69
DEFAULT_STOP_TIMEOUT = 30.0

_MISSING_MESSAGES = {
    "destination_host": "Backup destination is empty",
    "source_ip": "Backup source is empty",
    "subnet_mask": "Subnet mask is empty",
}


def router_config_filename(prefix: str) -> str:
    return f"{prefix}-router-config.txt"


class BackupCoordinator:
    """Decide whether a backup can run and host the TFTP listener for it.

    The listener runs in a daemon thread. ``stop`` asks tftpy for a graceful
    shutdown so an in-flight transfer can finish, and waits at most
    ``timeout`` seconds before forcing it down.
    """

    def __init__(
        self,
        params: BackupParameters,
        root: Path,
        progress: ProgressSink,
        logger: logging.Logger | None = None,
        log_extra: dict[str, Any] | None = None,
        server_factory: Callable[[str], Any] = tftpy.TftpServer,
        listen_ip: str = "",
        listen_port: int = TFTP_PORT,
    ) -> None:
        self.params = params
        self.root = root
        self.progress = progress
        self.logger = logger or logging.getLogger(__name__)
        self.log_extra = log_extra or {}
        self._server_factory = server_factory
        self.listen_ip = listen_ip
        self.listen_port = listen_port
        self._server: Any | None = None
        self._thread: threading.Thread | None = None
        self.server_error: Exception | None = None
        self.received_bytes: int | None = None
        self.expected_files: list[str] = []

    @property
    def enabled(self) -> bool:
        return self.params.enabled

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def filename(self) -> str:
        return router_config_filename(self.params.filename_prefix)

    def validate(self) -> bool:
        """Force-disable the backup when required values are missing."""

        if not self.params.enabled:
            return False

        missing = self.params.missing_fields()
        if missing:
            self.params.enabled = False
            self.progress.emit("Unable to back up the config due to missing values")
            for name in missing:
                self.progress.emit(_MISSING_MESSAGES[name])
            self.logger.warning("backup disabled missing=%s", ",".join(missing), extra=self.log_extra)
            return False

        self.logger.debug(
            "backup enabled destination=%s address=%s builtin=%s",
            self.params.destination_host,
            self.params.address_argument(),
            self.params.use_built_in_server,
            extra=self.log_extra,
        )
        return True

    def start(self) -> bool:
        """Launch the TFTP listener when the backup asks for the built-in server."""

        if not (self.params.enabled and self.params.use_built_in_server):
            return False

        self.root.mkdir(parents=True, exist_ok=True)
        self._server = self._server_factory(str(self.root))
        self._thread = threading.Thread(target=self._serve, name="tftp-server", daemon=True)
        self._thread.start()
        self.progress.emit(f"Started the built-in TFTP server, saving into {self.root}")
        return True

    def _serve(self) -> None:
        assert self._server is not None
        try:
            self._server.listen(self.listen_ip, self.listen_port)
        except (tftpy.TftpException, OSError) as exc:
            self.server_error = exc
            self.logger.error("tftp server stopped with error=%s", exc, extra=self.log_extra)
            self.progress.warning(f"Built-in TFTP server stopped: {exc}")

    def stop(self, timeout: float | None = DEFAULT_STOP_TIMEOUT) -> bool:
        """Stop the listener, letting a running transfer complete first.

        Returns True when the server thread has exited.
        """

        if self._server is None or self._thread is None:
            return True

        self._server.stop(now=False)
        self._thread.join(timeout)
        if self._thread.is_alive():
            self.logger.warning(
                "tftp server still busy after %ss, forcing shutdown", timeout, extra=self.log_extra
            )
            self._server.stop(now=True)
            self._thread.join(1.0)

        stopped = not self._thread.is_alive()
        if stopped:
            self.progress.emit("Stopped the built-in TFTP server")
            self.verify_received()
        return stopped

    def verify_received(self) -> int:
        """Check every uploaded file exists and is non-empty.

        Returns the total size, or 0 as soon as one file fails the check.
        The router uploads a single file; a switch uploads one per renamed
        flash file, listed in ``expected_files``.
        """

        self.received_bytes = 0
        total = 0
        for name in self.expected_files or [self.filename]:
            path = self.root / name
            if not path.exists():
                self.logger.error("backup verification failed reason=missing path=%s", path, extra=self.log_extra)
                return 0

            size = path.stat().st_size
            if size <= 0:
                self.logger.error("backup verification failed reason=zero-size path=%s", path, extra=self.log_extra)
                return 0

            self.logger.info("backup verification passed path=%s size=%d", path, size, extra=self.log_extra)
            total += size

        self.received_bytes = total
        return total
