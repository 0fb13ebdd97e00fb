"""Leaks router - fans every detected leak out to all delivery backends."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable

from leakwatch.config import LeakWatchConfig
from leakwatch.detector.models import Leak
from leakwatch.router.senders import EmailSender, FileSender, LeakSender

logger = logging.getLogger(__name__)

SenderFactory = Callable[[LeakWatchConfig], dict[str, LeakSender]]


def build_senders(config: LeakWatchConfig) -> dict[str, LeakSender]:
    """Instantiate the backends enabled in the configuration."""
    senders: dict[str, LeakSender] = {}
    if config.smtp.enabled:
        senders["email"] = EmailSender(config.smtp)
    if config.common.leaks_file is not None:
        senders["file"] = FileSender(config.common.leaks_file)
    return senders


class LeaksRouter:
    """Owns the delivery backends and the single dispatch loop feeding them.

    ``start`` is all-or-nothing: if any backend fails to start, the ones
    already started are stopped again and the error propagates. ``stop``
    lets the in-flight fan-out finish, drains leaks still queued for at most
    ``drain_timeout`` seconds, then stops every backend exactly once.
    """

    def __init__(
        self,
        leak_queue: queue.Queue[Leak],
        config: LeakWatchConfig,
        sender_factory: SenderFactory = build_senders,
        drain_timeout: float | None = None,
        poll_interval: float = 0.5,
    ) -> None:
        self._leak_queue = leak_queue
        self._config = config
        self._sender_factory = sender_factory
        self._drain_timeout = (
            config.common.drain_timeout if drain_timeout is None else drain_timeout
        )
        self._poll_interval = poll_interval
        self._senders: dict[str, LeakSender] = {}
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.leaks_dispatched = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def senders(self) -> dict[str, LeakSender]:
        return dict(self._senders)

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("LeaksRouter already started")

        senders = self._sender_factory(self._config)
        started: list[tuple[str, LeakSender]] = []
        for name, sender in senders.items():
            try:
                sender.start()
            except Exception:
                logger.error("Sender '%s' failed to start", name)
                self._stop_senders(started)
                raise
            started.append((name, sender))
            logger.debug("Sender '%s' started", name)

        self._senders = senders
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._dispatch_loop, name="leaks-router", daemon=True
        )
        self._thread.start()
        logger.info("Leaks router started with senders: %s", ", ".join(senders) or "-")

    def stop(self) -> None:
        """Stop dispatching, then stop every backend.

        Raises the first backend stop error after all backends were stopped.
        """
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join()
        self._thread = None

        errors = self._stop_senders(list(self._senders.items()))
        self._senders = {}
        logger.info("Leaks router stopped after %d leak(s)", self.leaks_dispatched)
        if errors:
            raise errors[0]

    def dispatch(self, leak: Leak) -> None:
        """Send one leak to every backend; one backend's failure spares the rest."""
        for name, sender in self._senders.items():
            try:
                sender.send(leak)
            except Exception:
                logger.exception("Sender '%s' failed on leak %s", name, leak.id)
        self.leaks_dispatched += 1

    def _dispatch_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                leak = self._leak_queue.get(timeout=self._poll_interval)
            except queue.Empty:
                continue
            try:
                self.dispatch(leak)
            finally:
                self._leak_queue.task_done()
        self._drain()

    def _drain(self) -> None:
        """Deliver leaks already queued at stop time, within the drain deadline."""
        if self._drain_timeout <= 0:
            return
        deadline = time.monotonic() + self._drain_timeout
        drained = 0
        while time.monotonic() < deadline:
            try:
                leak = self._leak_queue.get_nowait()
            except queue.Empty:
                break
            try:
                self.dispatch(leak)
            finally:
                self._leak_queue.task_done()
            drained += 1
        if drained:
            logger.debug("Drained %d queued leak(s) on shutdown", drained)
        if not self._leak_queue.empty():
            logger.warning(
                "Drain deadline reached, %d leak(s) left undelivered",
                self._leak_queue.qsize(),
            )

    @staticmethod
    def _stop_senders(senders: list[tuple[str, LeakSender]]) -> list[Exception]:
        errors: list[Exception] = []
        for name, sender in senders:
            try:
                sender.stop()
            except Exception as e:
                logger.error("Sender '%s' failed to stop: %s", name, e)
                errors.append(e)
        return errors
