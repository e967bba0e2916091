"""Serial console transport built on pyserial."""

from __future__ import annotations

import logging
from typing import Any, Callable

import serial

from ciscoreset.core.models import PortSettings

logger = logging.getLogger(__name__)

_PARITY_MAP = {
    "none": serial.PARITY_NONE,
    "even": serial.PARITY_EVEN,
    "odd": serial.PARITY_ODD,
    "mark": serial.PARITY_MARK,
    "space": serial.PARITY_SPACE,
}

_STOPBITS_MAP = {
    1: serial.STOPBITS_ONE,
    1.5: serial.STOPBITS_ONE_POINT_FIVE,
    2: serial.STOPBITS_TWO,
}

_BYTESIZE_MAP = {
    5: serial.FIVEBITS,
    6: serial.SIXBITS,
    7: serial.SEVENBITS,
    8: serial.EIGHTBITS,
}

LINE_TERMINATOR = b"\n"


class TransportError(RuntimeError):
    """Raised when the serial line cannot be opened, read or written."""


def serial_kwargs(settings: PortSettings) -> dict[str, Any]:
    """Translate PortSettings into pyserial keyword arguments."""

    try:
        return {
            "baudrate": settings.baud,
            "bytesize": _BYTESIZE_MAP[settings.data_bits],
            "parity": _PARITY_MAP[settings.parity],
            "stopbits": _STOPBITS_MAP[settings.stop_bits],
        }
    except KeyError as exc:
        raise TransportError(f"Unsupported serial setting: {exc.args[0]!r}") from exc


class TransportSession:
    """Duplex byte stream over a serial console.

    Reads are line-bounded (newline or buffer-full) and timeout-bounded; a
    timeout yields whatever arrived so far, possibly nothing.
    """

    def __init__(
        self,
        port: str,
        settings: PortSettings | None = None,
        read_timeout: float = 1.0,
        serial_factory: Callable[..., Any] = serial.Serial,
    ) -> None:
        self.port = port
        self.settings = settings or PortSettings()
        self.read_timeout = read_timeout
        self._serial_factory = serial_factory
        self._serial: Any | None = None

    @property
    def is_open(self) -> bool:
        return self._serial is not None and bool(getattr(self._serial, "is_open", True))

    def open(self) -> "TransportSession":
        log_extra = {"port": self.port}
        logger.debug(
            "opening serial port=%s settings=%s timeout=%s",
            self.port,
            self.settings.label(),
            self.read_timeout,
            extra=log_extra,
        )
        try:
            self._serial = self._serial_factory(
                port=self.port,
                timeout=self.read_timeout,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
                **serial_kwargs(self.settings),
            )
        except (serial.SerialException, OSError, ValueError) as exc:
            raise TransportError(f"Unable to open serial port {self.port}: {exc}") from exc
        logger.info("serial port opened settings=%s", self.settings.label(), extra=log_extra)
        return self

    def _require_open(self) -> Any:
        if self._serial is None:
            raise TransportError(f"Serial port {self.port} is not open")
        return self._serial

    def read_line(self, size: int) -> bytes:
        """Read up to ``size`` bytes, stopping after a newline."""

        port = self._require_open()
        try:
            return bytes(port.read_until(LINE_TERMINATOR, size))
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Error while reading from {self.port}: {exc}") from exc

    def write(self, data: bytes) -> int:
        port = self._require_open()
        try:
            written = port.write(data)
            port.flush()
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Error while writing to {self.port}: {exc}") from exc
        return written or 0

    def set_read_timeout(self, seconds: float) -> None:
        port = self._require_open()
        try:
            port.timeout = seconds
        except (serial.SerialException, ValueError) as exc:
            raise TransportError(f"Error while setting read timeout on {self.port}: {exc}") from exc
        self.read_timeout = seconds

    def close(self) -> None:
        if self._serial is None:
            return
        try:
            self._serial.close()
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Error while closing {self.port}: {exc}") from exc
        finally:
            self._serial = None
        logger.debug("serial port closed", extra={"port": self.port})

    def __enter__(self) -> "TransportSession":
        if self._serial is None:
            self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
