from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from typing import Optional

from app.config import settings

# Tokens are issued by the case-management app's auth service; this API
# only verifies them to learn which staff member is acting.
security = HTTPBearer(auto_error=False)

def decode_staff_token(token: str) -> int:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        staff_id = payload.get("staff_id")
        if staff_id is None:
            raise credentials_exception
        return int(staff_id)
    except (JWTError, TypeError, ValueError):
        raise credentials_exception

async def get_acting_staff_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[int]:
    """Staff id from the bearer token, or None when no token was sent"""
    if credentials is None:
        return None
    return decode_staff_token(credentials.credentials)
