# candidate_intake/models/domain/gmail_domain.py
"""
Gmail Domain Models
Wraps the Gmail API message resource with the pieces the intake pipeline
needs: headers, sender, receipt time and attachment references.
"""

import base64
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

from candidate_intake.features.candidate_pipeline.domain import AttachmentRef


class GmailMessage:
    """Domain model for a Gmail message fetched with format=full."""

    def __init__(self, data: dict):
        self.id = data.get("id")
        self.thread_id = data.get("threadId")
        self.internal_date = data.get("internalDate")
        self.payload = data.get("payload", {}) or {}

        self._parse_headers()
        self.attachments: list[AttachmentRef] = []
        self._collect_attachments(self.payload)

    def _parse_headers(self):
        """Parse email headers from payload."""
        headers = self.payload.get("headers", [])
        self.headers = {h["name"].lower(): h["value"] for h in headers}

        self.subject = self.headers.get("subject", "(No Subject)")
        self.sender = self._parse_email_address(self.headers.get("from", ""))
        self.date = self.headers.get("date", "")

    def _parse_email_address(self, address_str: str) -> dict[str, str]:
        """Parse "Name <email>" or a bare address into name and email."""
        if not address_str:
            return {"name": "", "email": ""}

        if "<" in address_str and ">" in address_str:
            name_part = address_str.split("<")[0].strip().strip('"')
            email_part = address_str.split("<")[1].split(">")[0].strip()
            return {"name": name_part, "email": email_part}
        return {"name": "", "email": address_str.strip()}

    def _collect_attachments(self, part: dict):
        """Walk the MIME tree depth-first, keeping parts that carry an attachmentId."""
        body = part.get("body", {}) or {}
        if part.get("filename") and body.get("attachmentId"):
            self.attachments.append(
                AttachmentRef(
                    filename=part["filename"],
                    mime_type=part.get("mimeType", ""),
                    size=int(body.get("size", 0) or 0),
                    attachment_id=body["attachmentId"],
                )
            )

        for child in part.get("parts", []) or []:
            self._collect_attachments(child)

    @property
    def sender_email(self) -> str:
        return self.sender["email"]

    @property
    def received_at(self) -> datetime | None:
        """
        Message timestamp: the Date header when it parses to an aware datetime,
        else Gmail's internalDate (epoch milliseconds).
        """
        if self.date:
            try:
                parsed = parsedate_to_datetime(self.date)
            except (TypeError, ValueError):
                parsed = None
            if parsed is not None and parsed.tzinfo is not None:
                return parsed

        if self.internal_date:
            try:
                return datetime.fromtimestamp(int(self.internal_date) / 1000, tz=UTC)
            except (TypeError, ValueError):
                return None
        return None


def decode_attachment_data(data: str) -> bytes:
    """Decode Gmail's URL-safe base64 (padding optional) into raw bytes."""
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
