"""
Authentication utilities.
"""
import secrets
from typing import Optional
from fastapi import Header, HTTPException, Request


def extract_api_key(x_api_key: Optional[str], authorization: Optional[str]) -> Optional[str]:
    """Take the key from X-API-Key, else from an "Authorization: Bearer" header."""
    if x_api_key:
        return x_api_key

    if authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]

    return None


def verify_api_key(provided: str, expected: str) -> bool:
    """Constant-time comparison of two keys."""
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def require_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None)
):
    """Dependency guarding write endpoints."""
    api_key = extract_api_key(x_api_key, authorization)
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing API key")

    if not verify_api_key(api_key, request.app.state.api_key):
        raise HTTPException(status_code=401, detail="Invalid API key")
