"""
Google Gmail API Service for the intake mailbox.
Low-level, read-only Gmail client: message search, full message fetch and
attachment download. Handles HTTP retries and error mapping; domain parsing
lives in models/domain/gmail_domain.py.

Calls are blocking (requests); async callers run them via asyncio.to_thread.
"""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from candidate_intake.config import settings
from candidate_intake.infrastructure.observability.logging import get_logger
from candidate_intake.models.domain.gmail_domain import GmailMessage, decode_attachment_data

logger = get_logger(__name__)

GMAIL_API_BASE_URL = "https://gmail.googleapis.com/gmail/v1"
GMAIL_USER_ID = "me"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 30  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2


class GoogleGmailError(Exception):
    """Custom exception for Google Gmail API errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


class GoogleGmailService:
    """
    Service for Google Gmail API operations.

    Pure API client that handles HTTP requests, authentication headers, error
    handling and retry logic.
    """

    def __init__(self, page_size: int | None = None):
        self.page_size = page_size or settings.GMAIL_PAGE_SIZE
        self._session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create requests session with retry strategy for Gmail API."""
        session = requests.Session()

        retry_strategy = Retry(
            total=MAX_RETRIES,
            backoff_factor=BACKOFF_FACTOR,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)

        return session

    def _get_auth_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    def _handle_api_response(self, response: requests.Response, operation: str) -> dict:
        """
        Handle and validate Gmail API response.

        Raises:
            GoogleGmailError: If response contains errors
        """
        logger.debug(
            f"Gmail API {operation} response",
            status_code=response.status_code,
            response_size=len(response.text) if response.text else 0,
        )

        if response.ok:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                logger.error(f"Failed to parse Gmail API {operation} response", error=str(e))
                raise GoogleGmailError(f"Invalid response format: {e}") from e

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            logger.error(
                f"Gmail API {operation} failed with non-JSON response",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            raise GoogleGmailError(
                f"Gmail API error (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from None

        error_info = error_data.get("error", {})
        error_code = error_info.get("code", "unknown")
        error_message = error_info.get("message", "Unknown Gmail API error")

        logger.error(
            f"Gmail API {operation} failed",
            status_code=response.status_code,
            error_code=error_code,
            error_message=error_message,
        )

        raise GoogleGmailError(
            self._map_gmail_error(str(error_code), error_message),
            error_code=str(error_code),
            status_code=response.status_code,
            response_data=error_data,
        )

    def _map_gmail_error(self, error_code: str, error_message: str) -> str:
        """Map Gmail API error codes to readable messages."""
        error_mappings = {
            "403": "Gmail access denied. Check mailbox permissions.",
            "404": "Gmail resource not found.",
            "400": "Invalid Gmail request format.",
            "401": "Gmail authorization expired.",
            "429": "Gmail rate limit exceeded.",
            "500": "Gmail service temporarily unavailable.",
        }
        return error_mappings.get(error_code, f"Gmail error: {error_message}")

    def _get(self, access_token: str, path: str, params: dict, operation: str) -> dict:
        url = f"{GMAIL_API_BASE_URL}/users/{GMAIL_USER_ID}/{path}"
        try:
            response = self._session.get(
                url,
                headers=self._get_auth_headers(access_token),
                params=params,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error(f"Gmail API {operation} request failed", error=str(e))
            raise GoogleGmailError(f"Gmail request failed: {e}") from e
        return self._handle_api_response(response, operation)

    def list_message_ids(self, access_token: str, query: str) -> list[str]:
        """
        Return every message id matching a Gmail search query, following
        nextPageToken until the listing is exhausted.

        Raises:
            GoogleGmailError: If any page fails
        """
        message_ids: list[str] = []
        page_token: str | None = None
        pages = 0

        while True:
            params = {"q": query, "maxResults": min(self.page_size, 500)}
            if page_token:
                params["pageToken"] = page_token

            data = self._get(access_token, "messages", params, "list_messages")
            message_ids.extend(msg["id"] for msg in data.get("messages", []))
            pages += 1

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        logger.info(
            "Gmail messages listed",
            query=query,
            message_count=len(message_ids),
            pages=pages,
        )
        return message_ids

    def get_message(self, access_token: str, message_id: str) -> GmailMessage:
        """
        Fetch a full message (headers and MIME tree).

        Raises:
            GoogleGmailError: If getting message fails
        """
        data = self._get(
            access_token, f"messages/{message_id}", {"format": "full"}, "get_message"
        )
        message = GmailMessage(data)
        logger.debug(
            "Message retrieved",
            message_id=message_id,
            attachment_count=len(message.attachments),
        )
        return message

    def get_attachment(self, access_token: str, message_id: str, attachment_id: str) -> bytes:
        """
        Download an attachment body and decode it to raw bytes.

        Raises:
            GoogleGmailError: If the download fails or the body is empty
        """
        data = self._get(
            access_token,
            f"messages/{message_id}/attachments/{attachment_id}",
            {},
            "get_attachment",
        )
        encoded = data.get("data")
        if not encoded:
            raise GoogleGmailError("Attachment body is empty")

        try:
            return decode_attachment_data(encoded)
        except ValueError as e:
            raise GoogleGmailError(f"Attachment body is not valid base64: {e}") from e
