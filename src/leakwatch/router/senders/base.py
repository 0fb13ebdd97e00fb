"""LeakSender protocol - every delivery backend must satisfy this."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from leakwatch.detector.models import Leak


@runtime_checkable
class LeakSender(Protocol):
    """Protocol for leak delivery backends."""

    def start(self) -> None:
        """Acquire resources; raise SenderError if the backend cannot run."""
        ...

    def send(self, leak: Leak) -> None:
        """Deliver one leak. Retries and timeouts are the backend's concern."""
        ...

    def stop(self) -> None:
        """Release resources."""
        ...
