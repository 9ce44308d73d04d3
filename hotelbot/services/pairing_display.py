from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from threading import Lock

import qrcode

logger = logging.getLogger(__name__)


@dataclass
class OperatorStatus:
    status: str
    fatal: bool = False
    detail: str | None = None


def render_ascii_qr(data: str) -> str:
    qr = qrcode.QRCode(border=1)
    qr.add_data(data)
    qr.make(fit=True)
    buffer = io.StringIO()
    qr.print_ascii(out=buffer, invert=True)
    return buffer.getvalue()


class PairingDisplay:
    """Latest pairing challenge and operator-facing status per tenant.

    The admin surface reads from here; the terminal gets an ASCII QR the
    way the old console bot printed it.
    """

    def __init__(self, *, print_qr: bool = True) -> None:
        self.print_qr = print_qr
        self._challenges: dict[str, str] = {}
        self._statuses: dict[str, OperatorStatus] = {}
        self._lock = Lock()

    def show_pairing_challenge(self, tenant_id: str, code: str) -> None:
        with self._lock:
            self._challenges[tenant_id] = code
        logger.info("pairing challenge received", extra={"tenant_id": tenant_id})
        if self.print_qr:
            logger.info("scan to pair:\n%s", render_ascii_qr(code), extra={"tenant_id": tenant_id})

    def clear_pairing_challenge(self, tenant_id: str) -> None:
        with self._lock:
            self._challenges.pop(tenant_id, None)

    def pairing_challenge(self, tenant_id: str) -> str | None:
        with self._lock:
            return self._challenges.get(tenant_id)

    def report_status(self, tenant_id: str, status: str, *, fatal: bool = False, detail: str | None = None) -> None:
        with self._lock:
            self._statuses[tenant_id] = OperatorStatus(status=status, fatal=fatal, detail=detail)
        if fatal:
            logger.error(
                "session needs operator action: %s",
                detail or status,
                extra={"tenant_id": tenant_id, "status": status},
            )
        else:
            logger.info("session %s", status, extra={"tenant_id": tenant_id, "status": status})

    def operator_status(self, tenant_id: str) -> OperatorStatus | None:
        with self._lock:
            return self._statuses.get(tenant_id)
