# auth/utils.py
"""
Bearer-token authentication for the registry API.

Access tokens are issued by the university identity service, not by this API;
`JWT_TOKEN_URL` tells the OpenAPI docs where to obtain one. Tokens are verified
here with the shared secret and resolved to the account they name.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Tuple

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from registry_api.academic.models import RequestingAccount
from registry_api.user_db.database import get_db
from registry_api.user_db.models import Admin, ICTStaff, Lecturer, Student

from .config import jwt_settings
from .models import TokenPayload

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=jwt_settings.token_url)

ACCOUNT_TABLES = {
    "admin": Admin,
    "lecturer": Lecturer,
    "ictstaff": ICTStaff,
    "student": Student,
}


def create_token(
    data: Dict[str, Any], expires_delta: int, token_type: str = "access"
) -> Tuple[str, str]:
    """Encode a signed JWT. Returns the token string and its JTI."""
    to_encode = data.copy()
    jti = secrets.token_hex(16)
    to_encode["jti"] = jti
    expire = datetime.now(timezone.utc) + timedelta(seconds=expires_delta)
    to_encode.update({"exp": int(expire.timestamp()), "type": token_type})
    encoded_jwt = jwt.encode(
        to_encode, jwt_settings.jwt_secret_key, algorithm=jwt_settings.jwt_algorithm
    )
    return encoded_jwt, jti


def create_access_token(account_type: str, account_id: int) -> str:
    token, _ = create_token(
        {"sub": f"{account_type}-{account_id}"},
        jwt_settings.access_token_expire_seconds,
        "access",
    )
    return token


def parse_subject(sub: str) -> Tuple[str, int]:
    """Split "lecturer-12" into ("lecturer", 12)."""
    account_type, _, raw_id = sub.rpartition("-")
    if account_type not in ACCOUNT_TABLES:
        raise ValueError(f"Unknown account type in subject: {sub}")
    return account_type, int(raw_id)


def to_requesting_account(account_type: str, account) -> RequestingAccount:
    if account_type == "lecturer":
        return RequestingAccount(
            account_type=account_type,
            id=account.id,
            department_id=account.department_id,
            role=account.role,
        )
    if account_type == "ictstaff":
        return RequestingAccount(
            account_type=account_type,
            id=account.id,
            can_manage_course_registration=account.can_manage_course_registration,
        )
    if account_type == "student":
        return RequestingAccount(
            account_type=account_type, id=account.id, department_id=account.department_id
        )
    return RequestingAccount(account_type=account_type, id=account.id)


async def get_current_account(
    token: str = Depends(oauth2_scheme), db: AsyncSession = Depends(get_db)
) -> RequestingAccount:
    """
    Validate the access token and load the account it names.
    Raises 401 if the token is invalid/expired or the account no longer exists.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token, jwt_settings.jwt_secret_key, algorithms=[jwt_settings.jwt_algorithm]
        )
        token_payload = TokenPayload(**payload)
        if token_payload.type != "access" or token_payload.sub is None:
            raise credentials_exception
        account_type, account_id = parse_subject(token_payload.sub)
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except (JWTError, ValueError) as e:
        logger.warning(f"Rejected access token: {e}")
        raise credentials_exception

    account = await db.get(ACCOUNT_TABLES[account_type], account_id)
    if account is None:
        logger.error(f"Token subject {account_type}-{account_id} has no matching account.")
        raise credentials_exception
    if getattr(account, "is_active", True) is False:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive.")

    return to_requesting_account(account_type, account)


async def require_admin(
    account: RequestingAccount = Depends(get_current_account),
) -> RequestingAccount:
    if account.account_type != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required.")
    return account


async def require_student(
    account: RequestingAccount = Depends(get_current_account),
) -> RequestingAccount:
    if account.account_type != "student":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Student access required.")
    return account
