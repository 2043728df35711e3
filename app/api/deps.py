"""Request identity for the public API."""
import uuid
from typing import Optional
from fastapi import Depends, Header, HTTPException
from app.core.exceptions import ValidationError
from app.utils.identifiers import parse_id


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[uuid.UUID]:
    """The gateway authenticates the caller and forwards its id in X-User-Id."""
    if not x_user_id:
        return None
    try:
        return parse_id(x_user_id, "user id")
    except ValidationError:
        return None


def require_user_id(user_id: Optional[uuid.UUID] = Depends(get_current_user_id)) -> uuid.UUID:
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id
