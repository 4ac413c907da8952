# auth/models.py
from typing import Optional

from pydantic import BaseModel


class TokenPayload(BaseModel):
    """Internal model for JWT payload validation"""

    sub: Optional[str] = None  # "<account type>-<id>", e.g. "admin-3", "student-42"
    exp: Optional[int] = None
    type: str  # only "access" is accepted by the API
    jti: Optional[str] = None
