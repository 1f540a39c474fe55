# ============================================================================
# CONTROLLER CLIENT
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Worker -> controller registration
# PURPOSE: Tell the controller a worker is up and where to reach it
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Controller Client

A worker is not handed tasks until it has registered. Registration is
retried with exponential backoff; a worker that cannot register exits so
its batch job frees the allocation.

POST /api/v1/workers/{worker_id}/register
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)


class RegistrationError(Exception):
    """The controller refused or never answered a registration."""
    pass


class ControllerClient:
    """HTTP client for the controller's worker endpoints."""

    def __init__(
        self,
        controller_url: str,
        timeout_seconds: float = 10.0,
        max_attempts: int = 5,
    ):
        self._controller_url = controller_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._max_attempts = max_attempts
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def register(
        self,
        worker_id: str,
        address: str,
        pool_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Register this worker.

        Returns:
            The controller's view of the worker

        Raises:
            RegistrationError: rejected (4xx) or retries exhausted
        """
        url = f"{self._controller_url}/api/v1/workers/{worker_id}/register"
        payload = {"address": address, "pool_name": pool_name}

        for attempt in range(self._max_attempts):
            try:
                session = await self._get_session()
                async with session.post(url, json=payload) as response:
                    if response.status == 200:
                        logger.info(f"Registered {worker_id} at {address}")
                        return await response.json()

                    body = await response.text()
                    if 400 <= response.status < 500:
                        # The controller does not know us (or we are terminating)
                        raise RegistrationError(
                            f"registration rejected: status={response.status}, body={body[:500]}"
                        )
                    logger.warning(
                        f"Registration failed: status={response.status}, body={body[:500]}"
                    )

            except asyncio.TimeoutError:
                logger.warning(
                    f"Registration timeout (attempt {attempt + 1}/{self._max_attempts})"
                )

            except aiohttp.ClientError as e:
                logger.warning(
                    f"Registration error: {e} (attempt {attempt + 1}/{self._max_attempts})"
                )

            # Exponential backoff
            if attempt < self._max_attempts - 1:
                await asyncio.sleep(2 ** attempt)

        raise RegistrationError(f"registration failed after {self._max_attempts} attempts")

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


__all__ = ["ControllerClient", "RegistrationError"]
