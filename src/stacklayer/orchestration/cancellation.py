"""Cooperative cancellation."""

from __future__ import annotations

from typing import Optional

from stacklayer.core.errors import DeploymentCancelled


class CancellationToken:
    """Checked by units between intents; a child also sees its parent's cancellation."""

    def __init__(self, parent: Optional[CancellationToken] = None) -> None:
        self._parent = parent
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancellation requested") -> None:
        if self._reason is None:
            self._reason = reason

    @property
    def cancelled(self) -> bool:
        return self._reason is not None or (self._parent is not None and self._parent.cancelled)

    @property
    def reason(self) -> Optional[str]:
        if self._reason is not None:
            return self._reason
        return self._parent.reason if self._parent is not None else None

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise DeploymentCancelled(f"cancelled: {self.reason}")

    def child(self) -> CancellationToken:
        return CancellationToken(self)
