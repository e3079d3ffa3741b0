from fastapi import HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .entities import Actor
from .service import validate_token

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_actor(
    creds: HTTPAuthorizationCredentials = Security(bearer_scheme),
) -> Actor:
    if not creds or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid auth header")
    return await validate_token(creds.credentials)
