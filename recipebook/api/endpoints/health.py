from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from recipebook.api.deps import get_client
from recipebook.client import RecipeBookClient

router = APIRouter()


@router.get("/health", response_model=Dict[str, Any])
async def health_check(client: RecipeBookClient = Depends(get_client)):
    """
    Basic health check endpoint.

    Returns:
        dict: Database status and connection pool information
    """
    if not await client.db.test_connection():
        raise HTTPException(status_code=503, detail="Service unavailable")
    return {
        "status": "healthy",
        "database": "connected",
        "pool": await client.db.get_connection_info(),
    }
