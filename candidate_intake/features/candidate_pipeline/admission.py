"""
Attachment admission filter.

Decides from size and file type alone whether an attachment is worth an
extraction call. Filenames are only used for their extension; whether a
document is actually a CV is left to extraction.
"""

from candidate_intake.features.candidate_pipeline.domain.models import AdmissionDecision

MIN_ATTACHMENT_SIZE = 5 * 1024  # 5 KB
MAX_ATTACHMENT_SIZE = 15 * 1024 * 1024  # 15 MB

ALLOWED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/rtf",
        "text/rtf",
    }
)

ALLOWED_EXTENSIONS = frozenset({"pdf", "doc", "docx", "rtf"})

BLOCKED_EXTENSIONS = frozenset(
    {
        # images
        "png", "jpg", "jpeg", "gif", "heic", "webp", "svg", "bmp", "tiff",
        # audio / video
        "mp3", "mp4", "avi", "mov", "wmv", "wav", "flac",
        # archives
        "zip", "rar", "7z", "tar", "gz",
        # executables and scripts
        "exe", "msi", "bat", "cmd", "sh",
        # spreadsheets and presentations
        "xls", "xlsx", "csv", "ppt", "pptx",
    }
)  # fmt: skip


def get_file_extension(filename: str | None) -> str:
    """Lowercased text after the last dot, or "" when there is none."""
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].strip().lower()


def check_attachment(filename: str | None, mime_type: str | None, size: int) -> AdmissionDecision:
    """
    Admit or deny an attachment. Rules are evaluated in order, first match wins.

    Args:
        filename: Attachment filename (only the extension is inspected)
        mime_type: Declared media type from the message part
        size: Size in bytes as reported by the mail source

    Returns:
        AdmissionDecision with a human-readable reason
    """
    if size < MIN_ATTACHMENT_SIZE:
        return AdmissionDecision(
            False, f"File too small: {size} bytes (min {MIN_ATTACHMENT_SIZE})"
        )
    if size > MAX_ATTACHMENT_SIZE:
        return AdmissionDecision(
            False, f"File too large: {size} bytes (max {MAX_ATTACHMENT_SIZE})"
        )

    ext = get_file_extension(filename)
    if ext and ext in BLOCKED_EXTENSIONS:
        return AdmissionDecision(False, f"Blocked extension: .{ext}")

    normalized_mime = (mime_type or "").split(";")[0].strip().lower()
    if normalized_mime in ALLOWED_MIME_TYPES:
        return AdmissionDecision(True, "Allowed by MIME type")

    # Generic declared types (application/octet-stream) fall through to the extension
    if ext and ext in ALLOWED_EXTENSIONS:
        return AdmissionDecision(True, f"Allowed by extension: .{ext}")

    return AdmissionDecision(False, f"Unknown type: {mime_type or 'none'} / .{ext}")
