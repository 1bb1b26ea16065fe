import os
from datetime import datetime, timedelta

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from database import to_object_id
from errors import Forbidden, Unauthorized
from i18n import Translator, get_translator
from repositories import Repositories, get_repositories

SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey-change")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 12))
API_PREFIX = os.getenv("API_PREFIX", "/api/v1")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{API_PREFIX}/auth/token", auto_error=False)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def generate_token(user: dict) -> str:
    return create_access_token(data={"sub": str(user["_id"]), "role": user.get("role", "user")})


def public_user(user: dict) -> dict:
    """User document without credentials."""
    return {k: v for k, v in user.items() if k != "password_hash"}


def current_identity(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "email": user["email"],
        "role": user.get("role", "user"),
        "user_name": user.get("user_name", ""),
    }


def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
) -> dict:
    credentials_exception = Unauthorized(t("invalidCredentials"))
    if not token:
        raise credentials_exception
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception
    user_id = to_object_id(payload.get("sub"))
    if user_id is None:
        raise credentials_exception
    user = repos.users.find_by_id(user_id)
    if user is None:
        raise credentials_exception
    # The stored role wins over the token claim so demotions apply immediately.
    return current_identity(user)


def require_roles(*roles: str):
    """Build a dependency that admits callers whose role is in `roles`."""

    def gate(current: dict = Depends(get_current_user), t: Translator = Depends(get_translator)) -> dict:
        if current.get("role") not in roles:
            raise Forbidden(t("accessDenied"))
        return current

    return gate


admin_only = require_roles("admin")
user_and_admin = require_roles("user", "admin")
user_only = require_roles("user")
