import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from taskboard.config import COOKIE_NAME, COOKIE_SECURE, ACCESS_TOKEN_EXPIRE_MINUTES
from taskboard.schemas.user import UserCredentials, AuthResponse
from taskboard.models.user import User
from taskboard.utils.auth import hash_password, verify_password, create_token
from taskboard.utils.errors import AuthenticationFailure, ConflictFailure, ValidationFailure
from taskboard.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _set_session_cookie(response: Response, user_id: int):
    response.set_cookie(
        COOKIE_NAME,
        create_token(user_id),
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="strict",
        max_age=int(ACCESS_TOKEN_EXPIRE_MINUTES * 60),
    )


@router.post("/signup", response_model=AuthResponse, status_code=201)
def signup(user: UserCredentials, response: Response, db: Session = Depends(get_db)):
    exists = db.query(User).filter(User.email == user.email).first()
    if exists:
        raise ConflictFailure("User with this email already exists.")

    try:
        hashed = hash_password(user.password)
    except ValueError as e:
        raise ValidationFailure(str(e), [{"field": "password", "message": str(e)}])

    new_user = User(email=user.email, password=hashed)
    db.add(new_user)
    try:
        db.commit()
    except IntegrityError as e:
        # lost a race with a concurrent signup for the same email
        db.rollback()
        raise ConflictFailure("User with this email already exists.") from e
    db.refresh(new_user)

    _set_session_cookie(response, new_user.id)
    logger.info("User signed up", extra={"user_id": new_user.id})
    return AuthResponse(message="User created successfully.", data={"id": new_user.id, "email": new_user.email})


@router.post("/signin", response_model=AuthResponse)
def signin(user: UserCredentials, response: Response, db: Session = Depends(get_db)):
    db_user = db.query(User).filter(User.email == user.email).first()
    if not db_user or not verify_password(user.password, db_user.password):
        raise AuthenticationFailure("Invalid email or password.")

    _set_session_cookie(response, db_user.id)
    return AuthResponse(message="Login successful.", data={"id": db_user.id})


@router.post("/signout", response_model=AuthResponse)
def signout(response: Response):
    response.delete_cookie(COOKIE_NAME)
    return AuthResponse(message="Signed out.", data={})
