"""
Read access to inbound_email_routes.
"""

from candidate_intake.db.helpers import fetch_all
from candidate_intake.features.candidate_pipeline.domain import TenantRoute
from candidate_intake.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RouteRepository:
    """Mailbox-to-tenant routing table. Read-only from the pipeline."""

    @classmethod
    async def fetch_routes(cls) -> list[TenantRoute]:
        query = """
            SELECT id, source_email, user_id, organization_id, inbox_tz_id
            FROM inbound_email_routes
            ORDER BY source_email
        """
        rows = await fetch_all(query)

        routes = [
            TenantRoute(
                id=str(row["id"]),
                source_email=row["source_email"],
                user_id=str(row["user_id"]),
                organization_id=str(row["organization_id"]),
                inbox_tz_id=row.get("inbox_tz_id") or "",
            )
            for row in rows
        ]
        logger.info("Routes loaded", route_count=len(routes))
        return routes
