"""``logging`` integration: ship standard library log records to OpenObserve."""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from typing import Any

from openobserve_shipper.config import ShipperConfig
from openobserve_shipper.shipper import OpenObserveShipper

# Records from these loggers are produced while shipping; forwarding them
# would feed every delivery back into the buffer.
_IGNORED_LOGGERS = frozenset({"openobserve_shipper", "httpx", "httpcore"})

_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


class JSONLineFormatter(logging.Formatter):
    """Render a record as one newline-terminated JSON object.

    ``_timestamp`` is microseconds since the epoch.  Attributes passed via
    ``extra=`` are included; values that are not JSON serializable are
    stored as their ``repr``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "_timestamp": int(record.created * 1_000_000),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_") or key in entry:
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = repr(value)
            entry[key] = value

        return json.dumps(entry, ensure_ascii=False) + "\n"


class OpenObserveHandler(logging.Handler):
    """Logging handler that feeds formatted records to an OpenObserveShipper.

    ``emit`` may be called from any thread; records logged off the
    shipper's event loop are handed over with ``call_soon_threadsafe``.
    Records logged before the shipper is bound to a loop (no loop given and
    nothing logged from inside one yet) are held and passed on, in order, with
    the first record emitted once a loop is known.
    """

    def __init__(self, shipper: OpenObserveShipper, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.shipper = shipper
        self._backlog: deque[str] = deque()
        self.setFormatter(JSONLineFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.split(".", 1)[0] in _IGNORED_LOGGERS:
            return
        try:
            entry = self.format(record)
            if self._on_shipper_loop():
                accept = self.shipper.accept
            elif self.shipper.loop is not None:
                accept = self.shipper.accept_threadsafe
            else:
                self._backlog.append(entry)
                return
            while self._backlog:
                accept(self._backlog.popleft())
            accept(entry)
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        loop = self.shipper.loop
        if loop is not None and not loop.is_closed():
            if self._on_shipper_loop():
                self.shipper.shutdown()
            else:
                loop.call_soon_threadsafe(self.shipper.shutdown)
        super().close()

    def _on_shipper_loop(self) -> bool:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            return False
        return self.shipper.loop is None or running is self.shipper.loop


def attach(
    config: ShipperConfig,
    logger: logging.Logger | None = None,
    level: int = logging.INFO,
    loop: asyncio.AbstractEventLoop | None = None,
) -> OpenObserveHandler:
    """Create a shipper for *config* and route *logger* (root by default) to it."""
    shipper = OpenObserveShipper(config, loop=loop)
    handler = OpenObserveHandler(shipper, level=level)
    (logger or logging.getLogger()).addHandler(handler)
    return handler
