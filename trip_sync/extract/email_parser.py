"""Read candidate travel emails from a local mbox file."""

import asyncio
import hashlib
import logging
import mailbox
import re
from email.header import decode_header
from pathlib import Path
from typing import List, Union

from bs4 import BeautifulSoup

from trip_sync.collaborators import MailboxAuthError
from trip_sync.models import EmailMessage

logger = logging.getLogger(__name__)

# Subjects worth sending to the extractor
_TRAVEL_SUBJECT = re.compile(
    r'your\s+(?:reservation|booking|flight|trip)|e-?ticket|itinerary|confirm(?:ation|ed)',
    re.I,
)


def decode_str(s: str) -> str:
    if not s:
        return ""
    decoded = decode_header(s)
    parts = []
    for part, encoding in decoded:
        if isinstance(part, bytes):
            try:
                parts.append(part.decode(encoding or "utf-8", errors="ignore"))
            except LookupError:
                parts.append(part.decode("utf-8", errors="ignore"))
        else:
            parts.append(str(part))
    return "".join(parts)


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for s in soup(["script", "style"]):
        s.decompose()
    return soup.get_text(separator=" ", strip=True)


def message_id(subject: str, date: str, sender: str, header_id: str = "") -> str:
    """The Message-ID header, or a stable hash of subject + date + from."""
    if header_id.strip():
        return header_id.strip().strip("<>")
    key = f"{subject}|{date}|{sender}"
    return hashlib.md5(key.encode("utf-8")).hexdigest()


def extract_message(msg: mailbox.Message) -> EmailMessage:
    """Pull subject, from, date, id and a plain-text body out of a message."""
    subject = decode_str(msg.get("subject", ""))
    sender = decode_str(msg.get("from", ""))
    date_header = msg.get("date", "") or ""
    header_id = msg.get("Message-ID", "") or msg.get("Message-Id", "") or ""

    body_text = ""
    html_content = ""

    if msg.is_multipart():
        for part in msg.walk():
            ct = part.get_content_type()
            if ct == "text/plain":
                p = part.get_payload(decode=True)
                if p:
                    body_text += p.decode(errors="ignore") + "\n\n"
            elif ct == "text/html":
                p = part.get_payload(decode=True)
                if p:
                    html_content += p.decode(errors="ignore")
    else:
        p = msg.get_payload(decode=True)
        if p:
            if msg.get_content_type() == "text/html":
                html_content = p.decode(errors="ignore")
            else:
                body_text = p.decode(errors="ignore")

    if html_content and not body_text.strip():
        body_text = html_to_text(html_content)

    return EmailMessage(
        id=message_id(subject, date_header, sender, header_id),
        body=body_text.strip(),
        subject=subject,
        sender=sender,
        date=date_header,
    )


class MboxMailSource:
    """Mail source backed by an mbox export of the shared travel inbox."""

    def __init__(self, path: Union[str, Path], travel_only: bool = True):
        self.path = Path(path)
        self.travel_only = travel_only

    def read_messages(self) -> List[EmailMessage]:
        try:
            with self.path.open("rb"):
                pass
        except PermissionError as e:
            raise MailboxAuthError(f"not allowed to read mailbox {self.path}: {e}") from e

        messages = []
        mb = mailbox.mbox(str(self.path), create=False)
        try:
            for msg in mb:
                content = extract_message(msg)
                if self.travel_only and not _TRAVEL_SUBJECT.search(content.subject):
                    continue
                messages.append(content)
        finally:
            mb.close()
        logger.info("Read %d candidate message(s) from %s", len(messages), self.path)
        return messages

    async def fetch_messages(self) -> List[EmailMessage]:
        return await asyncio.to_thread(self.read_messages)
