'''

'''
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class TokenPayload(BaseModel):
    sub: UUID # 'sub' is standard JWT claim for subject (the acting user's id)
    role: Optional[str] = None
    exp: datetime


class Actor(BaseModel):
    """The authenticated caller, as vouched for by the identity service's token."""
    id: UUID
    role: Optional[str] = None
