"""
API key check for the /api routes.
Every client of the household shares one key, sent in the X-API-Key header
and configured through KINGDOM_API_KEY.
"""
import os
import secrets
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

API_KEY = os.getenv("KINGDOM_API_KEY", "change-me")

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def key_matches(candidate: Optional[str]) -> bool:
    if not candidate:
        return False
    return secrets.compare_digest(candidate.encode(), API_KEY.encode())


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """Reject requests without the shared household key"""
    if not key_matches(api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or wrong X-API-Key header",
            headers={"WWW-Authenticate": "APIKey"},
        )
    return api_key
