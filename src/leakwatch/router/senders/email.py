"""Email sender - mails each leak to the auditor over SMTP."""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage

from leakwatch.config import SMTPConfig
from leakwatch.detector.models import Leak
from leakwatch.errors import SenderError

logger = logging.getLogger(__name__)

# Seconds before an SMTP connection attempt is abandoned
_SMTP_TIMEOUT = 30


class EmailSender:
    """Composes a plain-text notification per leak and delivers it."""

    def __init__(self, config: SMTPConfig, recipient: str | None = None) -> None:
        self._config = config
        self._recipient = recipient or config.recipient
        self.sent = 0
        self.failed = 0

    def start(self) -> None:
        missing = [
            name
            for name, value in (
                ("host", self._config.host),
                ("from", self._config.from_addr),
                ("recipient", self._recipient),
            )
            if not value
        ]
        if missing:
            raise SenderError(f"SMTP settings missing: {', '.join(missing)}")
        logger.info(
            "Mailing leaks to %s via %s:%d",
            self._recipient,
            self._config.host,
            self._config.port,
        )

    def send(self, leak: Leak) -> None:
        msg = compose_message(leak, self._config.from_addr, self._recipient)
        try:
            with smtplib.SMTP(
                self._config.host, self._config.port, timeout=_SMTP_TIMEOUT
            ) as server:
                if self._config.tls:
                    server.starttls(context=ssl.create_default_context())
                if self._config.username:
                    server.login(self._config.username, self._config.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            self.failed += 1
            logger.warning("Failed to mail leak %s: %s", leak.id, e)
            return
        self.sent += 1

    def stop(self) -> None:
        logger.debug(
            "Email sender stopped (%d sent, %d failed)", self.sent, self.failed
        )


def compose_message(leak: Leak, from_addr: str, recipient: str) -> EmailMessage:
    msg = EmailMessage()
    repo = leak.repo_url or leak.repo_path
    msg["Subject"] = f"[LeakWatch] {leak.pattern_name} in {repo}"
    msg["From"] = from_addr
    msg["To"] = recipient

    location = f"{leak.file_path}:{leak.line}" if leak.line else leak.file_path
    body = "\n".join(
        [
            "A possible secret was committed.",
            "",
            f"Repository: {repo}",
            f"File:       {location}",
            f"Commit:     {leak.commit_hash}",
            f"Author:     {leak.commit_author} <{leak.commit_email}>",
            f"Date:       {leak.timestamp.isoformat()}",
            f"Pattern:    {leak.pattern_name} ({leak.regexp})",
            "",
            leak.leak_string,
            "",
        ]
    )
    msg.set_content(body)
    return msg
