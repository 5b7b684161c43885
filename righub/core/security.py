from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from righub.core.config import get_settings
from righub.core.database import get_db
from righub.models.user import User

settings = get_settings()


def _bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def _user_from_token(token: str, db: Session) -> Optional[User]:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except jwt.PyJWTError:
        return None

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None

    user = db.get(User, user_id)
    if user is None or user.deleted_at is not None:
        return None
    return user


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Tokens are issued elsewhere; here we only verify the signature and
    resolve 'sub' to an existing, non-deleted user.
    """
    token = _bearer_token(request)
    user = _user_from_token(token, db) if token else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> Optional[User]:
    token = _bearer_token(request)
    return _user_from_token(token, db) if token else None


def verify_cron_secret(request: Request) -> None:
    cron_secret = get_settings().cron_secret
    if not cron_secret:
        raise HTTPException(status_code=500, detail="Cron secret not configured")

    if request.headers.get("authorization") == f"Bearer {cron_secret}":
        return
    if request.headers.get("x-cron-secret") == cron_secret:
        return
    raise HTTPException(status_code=401, detail="Unauthorized")
