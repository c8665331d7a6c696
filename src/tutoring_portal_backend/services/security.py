'''
Session validation. Tokens are issued by the identity provider; this service
only verifies them and resolves the caller's profile and role.
'''
from datetime import datetime, timedelta, timezone
from typing import Optional, Annotated
from uuid import UUID
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from ..common.config import settings
from ..models.token import TokenPayload
from ..models.records import AccountRecord
from ..common.logger import log
from ..database.db_enums import UserRole
from ..database.repositories import AccountRepository

# --- JWT Handling ---
class JWTHandler:
    @staticmethod
    def create_access_token(
        subject: str,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        """Mirrors the identity provider's token format (used by tooling and tests)."""
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        expire = datetime.now(timezone.utc) + expires_delta
        to_encode = {"sub": str(subject), "exp": expire}
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
            return TokenPayload(**payload)
        except (JWTError, ValueError) as e: # Pydantic validation errors too
            log.warning(f"JWT decode/validation error: {e}")
            return None

# --- JWT Verification Dependency Function ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

async def verify_token_and_get_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    accounts: Annotated[AccountRepository, Depends(AccountRepository)]
    ) -> AccountRecord:
    """
    Dependency to verify the JWT and fetch the caller's profile.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = JWTHandler.decode_token(token)
    if not token_data or not token_data.sub:
        log.warning("JWT decode failed or invalid token structure.")
        raise credentials_exception

    user = await accounts.get_by_email(token_data.sub)

    if user is None:
        log.warning(f"User '{token_data.sub}' not found during token verification.")
        raise credentials_exception

    if not user.is_active:
        log.warning(f"User '{token_data.sub}' is not active.")
        raise credentials_exception

    log.info(f"JWT verified successfully for user: {user.email} (Role: {user.role.value})")
    return user

# --- Role / Ownership Helpers ---
def authorize_role(current_user: AccountRecord, allowed_roles: list[UserRole]) -> None:
    """Raises 403 unless the caller has one of the allowed roles."""
    if current_user.role not in allowed_roles:
        log.warning(f"Unauthorized action by user {current_user.id} (Role: {current_user.role.value}). Required one of: {[r.value for r in allowed_roles]}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to perform this action."
        )

def resolve_target_account(current_user: AccountRecord, requested_id: Optional[UUID]) -> UUID:
    """
    Admins may act on any account; students only on their own.
    An omitted id means the caller's own account.
    """
    if requested_id is None or requested_id == current_user.id:
        return current_user.id
    if current_user.role == UserRole.ADMIN:
        return requested_id
    log.warning(f"SECURITY: Student {current_user.id} tried to access account {requested_id}.")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Students can only access their own account."
    )
