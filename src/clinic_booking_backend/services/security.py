'''
Verifies bearer tokens issued by the practice's identity service.
Token issuance and password handling live in that service.
'''
from datetime import datetime, timedelta, timezone
from typing import Optional, Annotated
from uuid import UUID
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from ..common.config import settings
from ..models.token import Actor, TokenPayload
from ..common.logger import log

# --- JWT Handling ---
class JWTHandler:
    @staticmethod
    def create_access_token(
        subject: UUID,
        role: Optional[str] = None,
        expires_delta: timedelta = timedelta(minutes=30)
    ) -> str:
        """Mints a token the same way the identity service does. Used by scripts and tests."""
        expire = datetime.now(timezone.utc) + expires_delta
        to_encode = {"sub": str(subject), "role": role, "exp": expire}
        encoded_jwt = jwt.encode(
            to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM
        )
        return encoded_jwt

    @staticmethod
    def decode_token(token: str) -> TokenPayload | None:
        try:
            payload = jwt.decode(
                token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
            )
            token_data = TokenPayload(**payload)
            return token_data
        except (JWTError, ValueError) as e: # Catch Pydantic validation errors too
            log.warning(f"JWT decode/validation error: {e}") # Add logging
            return None

# --- JWT Verification Dependency Function ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

async def get_current_actor(
    token: Annotated[str, Depends(oauth2_scheme)]
    ) -> Actor:
    """
    Dependency to verify the JWT and return the acting user.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = JWTHandler.decode_token(token)
    if not token_data:
        log.warning("JWT decode failed or invalid token structure.")
        raise credentials_exception

    log.info(f"JWT verified successfully for actor: {token_data.sub} (Role: {token_data.role})")
    return Actor(id=token_data.sub, role=token_data.role)
