"""
core/mailer.py -- Notification port and the logging implementation.

SMTP delivery is outside Marquee. Route handlers only need something with a
send(recipient, template, data) method; LoggingMailer satisfies that for
development and is the default wired into the app.

The data dict routinely contains token plaintexts (activation and reset
links), so LoggingMailer logs the recipient, template, and the *names* of
the data keys -- never the values.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("marquee.mailer")

WELCOME_TEMPLATE = "user_welcome"
ACTIVATION_TEMPLATE = "token_activation"
PASSWORD_RESET_TEMPLATE = "token_password_reset"


class Mailer(Protocol):
    def send(self, recipient: str, template: str, data: dict) -> None: ...


class LoggingMailer:
    def send(self, recipient: str, template: str, data: dict) -> None:
        logger.info("mail %s -> %s (fields: %s)", template, recipient, ", ".join(sorted(data)))
