"""
Request identity. The signed-in user id arrives in X-User-Id (set by the web tier after session checks).
"""
from fastapi import Header, HTTPException


def optional_user_id(x_user_id: str | None = Header(None, alias="X-User-Id")) -> str | None:
    return (x_user_id or "").strip() or None


def current_user_id(x_user_id: str | None = Header(None, alias="X-User-Id")) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Sign in required")
    return user_id
