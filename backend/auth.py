from datetime import datetime, timedelta, timezone
from typing import Optional, Set
import os

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel, Field, ValidationError

load_dotenv()

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    raise Exception("SECRET_KEY environment variable is not set!")

ALGORITHM = os.getenv("ALGORITHM", "HS256")

# Tokens are issued by the account service at sign-in.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


class Participant(BaseModel):
    participant_id: str
    study_id: str
    user_id: Optional[str] = None
    created_on: datetime
    data_groups: Set[str] = Field(default_factory=set)
    time_zone: Optional[str] = None


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta if expires_delta else timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_participant(token: str = Depends(oauth2_scheme)) -> Participant:
    """Participant identity and enrollment data carried in the bearer token."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise _invalid_credentials()

    if not payload.get("sub") or not payload.get("study") or not payload.get("createdOn"):
        raise _invalid_credentials()
    try:
        return Participant(
            participant_id=payload["sub"],
            study_id=payload["study"],
            user_id=payload.get("userId"),
            created_on=payload["createdOn"],
            data_groups=payload.get("dataGroups") or [],
            time_zone=payload.get("timeZone"),
        )
    except ValidationError:
        raise _invalid_credentials()
