import logging
from datetime import UTC, datetime

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from db import get_db
from models.database import User

logger = logging.getLogger(__name__)

# Tokens are issued by the external identity provider; this service never mints them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    return _get_user_from_identity_token(token, db, credentials_exception)


def _get_user_from_identity_token(token: str, db: Session, credentials_exception: HTTPException) -> User:
    """Resolve the identity-provider JWT to a local user, creating it on first sight.

    Decode JWT (without signature verification for now - TODO: add JWKS validation)
    """
    try:
        payload = jwt.decode(
            token,
            key="",
            options={"verify_signature": False, "verify_aud": False},
        )
    except JWTError as e:
        logger.error(f"JWT decode error: {e}")
        raise credentials_exception

    exp = payload.get("exp")
    if exp and exp < datetime.now(UTC).timestamp():
        logger.warning("Token expired")
        raise credentials_exception

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id:
        logger.warning("Token missing 'sub' claim")
        raise credentials_exception
    if not email:
        logger.warning("Token missing 'email' claim")
        raise credentials_exception

    name = payload.get("name") or email.split("@")[0]

    user = db.query(User).filter(User.id == user_id).first()
    if user is not None:
        return user

    existing_by_email = db.query(User).filter(User.email == email).first()
    if existing_by_email:
        logger.info(f"User found by email {email}, updating id from {existing_by_email.id} to {user_id}")
        existing_by_email.id = user_id
        existing_by_email.name = name
        db.commit()
        db.refresh(existing_by_email)
        return existing_by_email

    logger.info(f"Creating new user: {email} (id: {user_id})")
    user = User(id=user_id, email=email, name=name, plan="free")
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User created successfully: {user.id}")
    return user
