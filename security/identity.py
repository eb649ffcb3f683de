import logging
from typing import Optional

import jwt
from fastapi import Header

from core.errors import AuthError, ForbiddenError
from security import jwt as jwt_utils

logger = logging.getLogger(__name__)


def get_current_user_id(authorization: Optional[str] = Header(default=None, alias="Authorization")) -> str:
    """Resolve the bearer token to the identity provider's user id. Fails closed."""
    if not authorization:
        raise ForbiddenError("Forbidden")
    token = authorization.split(" ", 1)[1] if authorization.lower().startswith("bearer ") else authorization
    try:
        payload = jwt_utils.decode_access(token.strip())
    except jwt.PyJWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise AuthError("Unauthorised")
    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Unauthorised")
    return str(user_id)
