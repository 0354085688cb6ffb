"""
Cooperative cancellation for pipeline runs.
"""
import threading
from typing import Optional

from .exceptions import Cancelled


class CancelToken:
    """
    Checked before each network call and between confirmation polls.

    Cancelling never undoes work already sent to the network: a transaction
    that was submitted may still confirm after its run stops watching it.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = "") -> None:
        if self._event.is_set():
            raise Cancelled(f"Run cancelled{' before ' + where if where else ''}")

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, waking early on cancel. Returns True if cancelled."""
        return self._event.wait(seconds)


def check_cancelled(token: Optional[CancelToken], where: str = "") -> None:
    if token is not None:
        token.raise_if_cancelled(where)
