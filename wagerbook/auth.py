"""
API-key authentication: the key in ``X-API-Key`` decides which ledger
account signs the request.

``API_KEY_USER<n>`` (n = 1..5) authenticates as account ``user<n>``.
``user1`` is the ledger admin.  With no keys configured and
``ENVIRONMENT=development``, the key ``dev-key-insecure`` signs as the admin.
"""

import os
from typing import Dict

from dotenv import load_dotenv
from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

load_dotenv()

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

ADMIN_ACCOUNT = "user1"
MAX_ACCOUNTS = 5
DEV_KEY = "dev-key-insecure"


def get_valid_api_keys() -> Dict[str, str]:
    """Key → account id, read from the environment on every call."""
    keys = {
        os.environ[f"API_KEY_USER{n}"]: f"user{n}"
        for n in range(1, MAX_ACCOUNTS + 1)
        if os.getenv(f"API_KEY_USER{n}")
    }
    if keys:
        return keys
    if os.getenv("ENVIRONMENT") == "development":
        return {DEV_KEY: ADMIN_ACCOUNT}
    raise ValueError("No API keys configured; set API_KEY_USER1 in the environment")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    """Account id of the caller; 401 when the key is missing or unknown."""
    if not api_key:
        raise _unauthorized("Missing X-API-Key header")
    account = get_valid_api_keys().get(api_key)
    if account is None:
        raise _unauthorized("Invalid API key")
    return account


async def verify_admin_api_key(caller: str = Security(verify_api_key)) -> str:
    if caller != ADMIN_ACCOUNT:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin account required")
    return caller
