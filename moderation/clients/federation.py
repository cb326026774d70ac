"""
Client for the federation outbox, which signs and delivers Flag activities.
"""
import logging

import httpx

logger = logging.getLogger(__name__)


class FederationOutboxClient:
    def __init__(
        self,
        base_url: str,
        *,
        service_token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {"X-Service-Token": service_token} if service_token else {}
        self.timeout = timeout
        self.transport = transport

    async def deliver_flag(self, remote_admin_uri: str, payload: dict) -> bool:
        """
        Hand a Flag to the outbox for delivery to ``remote_admin_uri``.

        Returns:
            True if the outbox accepted it, False if it refused or was unreachable.
        """
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.post(
                    "/internal/flags",
                    json={"target": remote_admin_uri, "activity": payload},
                )
        except httpx.HTTPError:
            logger.exception(f"Federation outbox unreachable for {remote_admin_uri}")
            return False

        if response.is_success:
            return True
        logger.warning(
            f"Federation outbox refused flag for {remote_admin_uri}: "
            f"{response.status_code}"
        )
        return False
