"""
Authentication dependencies for FastAPI.

Producer tokens are issued by the platform's identity service; this service
only verifies them. Producer routes must filter every query by the token's
producer id.
"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError
from paysettle.config import settings


# Security scheme
security = HTTPBearer()


class TokenPayload(BaseModel):
    """JWT token payload model."""
    sub: str      # user_id
    role: str
    email: str


def decode_token(token: str) -> TokenPayload | None:
    """
    Verify a bearer token and read its claims.

    Returns:
        TokenPayload, or None if the signature, expiry or claims are invalid
    """
    try:
        claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return TokenPayload(**claims)
    except (JWTError, ValidationError):
        return None


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """
    Dependency that requires valid JWT token.

    Returns token payload if valid, raises 401 if invalid.
    """
    token = decode_token(credentials.credentials)

    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # picked up by LoggingMiddleware
    request.state.user_id = token.sub
    return token


def require_producer(current_user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
    """
    Dependency that requires the producer role.

    Returns user if producer, raises 403 otherwise.
    """
    if current_user.role != "producer":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Producer access required"
        )

    return current_user
