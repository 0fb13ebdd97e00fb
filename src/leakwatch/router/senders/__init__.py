"""Delivery backends for detected leaks."""

from leakwatch.router.senders.base import LeakSender
from leakwatch.router.senders.email import EmailSender
from leakwatch.router.senders.file import FileSender

__all__ = ["EmailSender", "FileSender", "LeakSender"]
