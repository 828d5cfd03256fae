"""
Async mailbox facade used by the coordinator.

Owns the access token for the shared inbox (refreshed on expiry) and runs
the blocking Gmail client in worker threads.
"""

import asyncio

from candidate_intake.infrastructure.observability.logging import get_logger
from candidate_intake.models.domain.gmail_domain import GmailMessage
from candidate_intake.services.google_gmail_service import GoogleGmailService
from candidate_intake.services.google_oauth_service import GoogleOAuthService, TokenResponse

logger = get_logger(__name__)


class GmailMailbox:
    def __init__(
        self,
        gmail: GoogleGmailService | None = None,
        oauth: GoogleOAuthService | None = None,
    ):
        self.gmail = gmail or GoogleGmailService()
        self.oauth = oauth or GoogleOAuthService()
        self._token: TokenResponse | None = None
        self._token_lock = asyncio.Lock()

    async def _access_token(self) -> str:
        async with self._token_lock:
            if self._token is None or self._token.is_expired():
                self._token = await self.oauth.refresh_access_token()
                logger.debug("Mailbox access token refreshed")
            return self._token.access_token

    async def list_message_ids(self, query: str) -> list[str]:
        token = await self._access_token()
        return await asyncio.to_thread(self.gmail.list_message_ids, token, query)

    async def get_message(self, message_id: str) -> GmailMessage:
        token = await self._access_token()
        return await asyncio.to_thread(self.gmail.get_message, token, message_id)

    async def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        token = await self._access_token()
        return await asyncio.to_thread(
            self.gmail.get_attachment, token, message_id, attachment_id
        )
