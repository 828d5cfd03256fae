from datetime import UTC, datetime

from candidate_intake.models.domain.gmail_domain import GmailMessage, decode_attachment_data


def test_headers_and_sender_parsed(gmail_payload_factory):
    message = GmailMessage(
        gmail_payload_factory("m1", sender='"Naledi Khumalo" <naledi@example.com>', subject="CV")
    )

    assert message.subject == "CV"
    assert message.sender == {"name": "Naledi Khumalo", "email": "naledi@example.com"}
    assert message.sender_email == "naledi@example.com"
    assert message.thread_id == "thread-m1"


def test_attachments_collected_from_nested_parts():
    data = {
        "id": "m2",
        "payload": {
            "mimeType": "multipart/mixed",
            "headers": [],
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        {"mimeType": "text/plain", "body": {"size": 4, "data": "dGVzdA"}},
                    ],
                },
                {
                    "mimeType": "multipart/mixed",
                    "parts": [
                        {
                            "mimeType": "application/pdf",
                            "filename": "cv.pdf",
                            "body": {"size": 40960, "attachmentId": "a-1"},
                        }
                    ],
                },
                {
                    "mimeType": "image/png",
                    "filename": "logo.png",
                    "body": {"size": 2048, "attachmentId": "a-2"},
                },
                # inline part with a filename but no attachment id
                {"mimeType": "text/calendar", "filename": "invite.ics", "body": {"size": 10}},
            ],
        },
    }

    message = GmailMessage(data)

    assert [(a.filename, a.attachment_id, a.size) for a in message.attachments] == [
        ("cv.pdf", "a-1", 40960),
        ("logo.png", "a-2", 2048),
    ]


def test_received_at_prefers_date_header(gmail_payload_factory):
    message = GmailMessage(
        gmail_payload_factory("m3", date_header="Mon, 13 Jan 2025 23:50:00 +0000", internal_date="0")
    )

    assert message.received_at == datetime(2025, 1, 13, 23, 50, tzinfo=UTC)


def test_received_at_falls_back_to_internal_date(gmail_payload_factory):
    message = GmailMessage(
        gmail_payload_factory("m4", date_header="not a date", internal_date="1736812200000")
    )

    assert message.received_at == datetime(2025, 1, 13, 23, 50, tzinfo=UTC)


def test_received_at_none_without_any_timestamp(gmail_payload_factory):
    message = GmailMessage(gmail_payload_factory("m5", date_header=None, internal_date=None))

    assert message.received_at is None


def test_decode_attachment_data_handles_missing_padding():
    assert decode_attachment_data("aGVsbG8td29ybGQ_") == b"hello-world?"
    assert decode_attachment_data("aGk") == b"hi"
