import datetime
import logging
from typing import Annotated, Literal, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from formsapi.config import config
from formsapi.database import database, user_table
from formsapi.errors import AuthenticationError
from formsapi.models.user import UserInDB

logging.getLogger('passlib').setLevel(logging.ERROR)
logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/token")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/token", auto_error=False)
pwd_context = CryptContext(schemes=["bcrypt"])


def access_token_expire_minutes() -> int:
    return config.ACCESS_TOKEN_EXPIRE_MINUTES


def create_access_token(email: str):
    logger.debug("Creating access token", extra={"email": email})
    expire = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
        minutes=access_token_expire_minutes()
    )
    jwt_data = {"sub": email, "exp": expire, "type": "access"}
    encoded_jwt = jwt.encode(jwt_data, key=config.SECRET_KEY, algorithm=config.ALGORITHM)
    return encoded_jwt


def get_subject_for_token_type(token: str, type: Literal["access"]) -> str:
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except ExpiredSignatureError as e:
        raise AuthenticationError("Token has expired") from e
    except JWTError as e:
        raise AuthenticationError("Invalid token") from e

    email = payload.get("sub")
    if email is None:
        raise AuthenticationError("Token is missing 'sub' field")

    token_type = payload.get("type")
    if token_type is None or token_type != type:
        raise AuthenticationError(f"Token has incorrect type, expected '{type}'")

    return email


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


async def get_user(email: str) -> Optional[UserInDB]:
    query = user_table.select().where(user_table.c.email == email)
    result = await database.fetch_one(query)
    if result:
        return UserInDB(**dict(result._mapping))
    return None


async def get_user_by_id(user_id: int) -> Optional[UserInDB]:
    query = user_table.select().where(user_table.c.id == user_id)
    result = await database.fetch_one(query)
    if result:
        return UserInDB(**dict(result._mapping))
    return None


async def authenticate_user(email: str, password: str) -> UserInDB:
    logger.debug("Authenticating user", extra={"email": email})
    user = await get_user(email)
    if not user:
        raise AuthenticationError("Invalid email or password")
    if not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    return user


async def get_current_user(token: Annotated[str, Depends(oauth2_scheme)]) -> UserInDB:
    email = get_subject_for_token_type(token, "access")
    user = await get_user(email=email)
    if user is None:
        raise AuthenticationError("Could not find user for this token")
    return user


async def get_optional_user(
    token: Annotated[Optional[str], Depends(optional_oauth2_scheme)]
) -> Optional[UserInDB]:
    """Resolve the caller when a bearer token is sent; anonymous otherwise."""
    if token is None:
        return None
    return await get_current_user(token)
