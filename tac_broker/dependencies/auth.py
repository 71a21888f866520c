# tac_broker/dependencies/auth.py
import os
from typing import Optional

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

logger = structlog.get_logger(__name__)

# tokens come from the external identity provider; we only verify them
SECRET_KEY = os.getenv("AUTH_JWT_SECRET", "change_me_now")
ALGORITHM = os.getenv("AUTH_JWT_ALGORITHM", "HS256")
AUDIENCE: Optional[str] = os.getenv("AUTH_JWT_AUDIENCE") or None

bearer_scheme = HTTPBearer(auto_error=False)

def decode_token(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            audience=AUDIENCE,
            options={"verify_aud": AUDIENCE is not None},
        )
    except JWTError as e:
        logger.warning("token_decode_failed", error=str(e))
        raise

async def get_current_user_id(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> str:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid token")
    return str(user_id)
