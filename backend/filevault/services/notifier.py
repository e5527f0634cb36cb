"""Owner notification after a file record is persisted.

Ingestion emits a FileUploaded event and moves on. Delivery runs in its own
task; whatever happens there is logged and never reaches the upload response.
"""
import asyncio
import logging
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

import aiosmtplib

logger = logging.getLogger(__name__)

# Strong references so pending deliveries are not garbage-collected
_pending: set[asyncio.Task] = set()


@dataclass(frozen=True)
class FileUploaded:
    file_id: str
    name: str
    url: str
    email: str


class OwnerNotifier:
    """Consumes upload events. The base class only logs them."""

    async def notify(self, event: FileUploaded) -> None:
        logger.info(f"File uploaded: {event.name} ({event.file_id}) for {event.email}")


class SmtpNotifier(OwnerNotifier):
    """Emails the owner a link to the uploaded file."""

    def __init__(self, host: str, port: int, username: str = "", password: str = "", sender: str = ""):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username

    def build_message(self, event: FileUploaded) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = self.sender
        message["To"] = event.email
        message["Subject"] = "New file uploaded"
        body = (
            "<h2>Hello</h2>"
            f'<p>Your file has been uploaded: <a href="{escape(event.url)}">{escape(event.name)}</a></p>'
        )
        message.attach(MIMEText(body, "html"))
        return message

    async def notify(self, event: FileUploaded) -> None:
        await aiosmtplib.send(
            self.build_message(event),
            hostname=self.host,
            port=self.port,
            start_tls=True,
            username=self.username or None,
            password=self.password or None,
        )
        logger.info(f"Upload notification sent to {event.email}")


def _log_outcome(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(f"Owner notification failed: {exc}")


def dispatch(notifier: OwnerNotifier | None, event: FileUploaded) -> asyncio.Task | None:
    """Schedule delivery and return immediately."""
    if notifier is None:
        return None
    task = asyncio.create_task(notifier.notify(event))
    _pending.add(task)
    task.add_done_callback(_log_outcome)
    return task
