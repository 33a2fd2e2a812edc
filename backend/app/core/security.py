import os
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from app.core.permissions import Action, is_allowed, normalize_permissions
from app.db.models.role import Role
from app.db.models.user import User
from app.db.session import get_db

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))
BCRYPT_PREFIX = "$2"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def _get_secret_key() -> str:
    secret = os.getenv("SECRET_KEY")
    if not secret:
        raise RuntimeError("SECRET_KEY is not set")
    return secret


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def is_password_hashed(stored: str) -> bool:
    return stored.startswith(BCRYPT_PREFIX)


def verify_password(password: str, stored: str) -> bool:
    # Rows created before hashing was introduced hold the plain password.
    if is_password_hashed(stored):
        return pwd_context.verify(password, stored)
    return password == stored


def create_access_token(payload: dict) -> str:
    to_encode = payload.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, _get_secret_key(), algorithm=ALGORITHM)


def create_user_token(user: User) -> str:
    return create_access_token(
        {"sub": user.username, "uid": user.id, "rid": user.role_id, "tv": user.token_version}
    )


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, _get_secret_key(), algorithms=[ALGORITHM])


def bearer_token_from_request(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _session_is_current(user: User | None, payload: dict) -> bool:
    if not user or not user.is_active:
        return False
    token_version = payload.get("tv")
    return token_version is not None and int(token_version) == int(user.token_version)


def role_id_for_token(db: Session, token: str | None) -> int | None:
    """Role id of a live session, or None.

    The token must decode, and its user must still be active with the same
    token version, so logout and deactivation end access immediately.
    """
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except JWTError:
        return None
    username = payload.get("sub")
    if not username:
        return None
    user = db.query(User).filter(User.username == username).first()
    if not _session_is_current(user, payload):
        return None
    role_id = payload.get("rid")
    try:
        return int(role_id) if role_id is not None else None
    except (TypeError, ValueError):
        return None


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        username = payload.get("sub")
        if not username:
            raise credentials_exception
    except JWTError as exc:
        raise credentials_exception from exc

    user = db.query(User).filter(User.username == username).first()
    if not _session_is_current(user, payload):
        raise credentials_exception
    return user


def get_user_role(db: Session, user: User) -> Role | None:
    if user.role_id is None:
        return None
    return db.get(Role, user.role_id)


def require_permission(module_key: str, action: Action):
    """Dependency for routes outside the gated prefix table."""

    def _dependency(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        role = get_user_role(db, current_user)
        role_name = role.name if role else None
        matrix = normalize_permissions(role.permissions if role else None)
        if not is_allowed(matrix, module_key, action, role_name):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _dependency
