# dependencies/auth.py
# Stand-in for the account service: resolves the caller from HTTP Basic
# credentials, creating the account on first use.

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.db import get_db
from models.models import User

security = HTTPBasic(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Basic"},
    )


def get_current_user_id(
    credentials: Optional[HTTPBasicCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> int:
    if credentials is None or not credentials.username:
        raise _unauthorized("You are not logged in! Please log in to get access.")

    username = credentials.username
    password = credentials.password

    if not password:
        raise _unauthorized("Password is required when username is provided.")

    user = db.query(User).filter_by(username=username).first()

    if user:
        if secrets.compare_digest(user.password, password):
            return user.id
        raise _unauthorized("Incorrect password.")

    # Auto-create user
    try:
        new_user = User(username=username, password=password)
        db.add(new_user)
        db.commit()
        db.refresh(new_user)
        return new_user.id
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=500,
            detail="User creation failed due to integrity error."
        )
