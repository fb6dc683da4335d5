"""
API dependency injection module.

Endpoints receive the shared RecipeBookClient through ``get_client``; tests
replace it with ``app.dependency_overrides``.
"""

import logging
from typing import Optional

from recipebook.client import RecipeBookClient

logger = logging.getLogger(__name__)

_client: Optional[RecipeBookClient] = None


def get_recipebook_client() -> RecipeBookClient:
    """
    Get the process-wide client, creating it on first use.

    Returns:
        RecipeBookClient: Client built from environment settings
    """
    global _client
    if _client is None:
        logger.info("Creating RecipeBook client from settings")
        _client = RecipeBookClient()
    return _client


async def get_client() -> RecipeBookClient:
    return get_recipebook_client()


async def close_recipebook_client() -> None:
    global _client
    if _client is not None:
        await _client.disconnect()
        _client = None
