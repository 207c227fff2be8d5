from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from tender.api.deps import get_current_user
from tender.core.config import settings
from tender.core.logger import logger
from tender.core.security import create_access_token, get_password_hash, verify_password
from tender.db import models, schemas
from tender.db.database import get_db

router = APIRouter()


def _set_session_cookie(response: Response, user: models.User) -> str:
    token = create_access_token({"sub": str(user.id), "email": user.email})
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )
    return token


@router.post("/register", response_model=schemas.UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: schemas.UserRegister, response: Response, db: Session = Depends(get_db)):
    """Create an account and start a session for it."""
    email = payload.email.strip().lower()
    if db.query(models.User).filter(models.User.email == email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    user = models.User(
        email=email,
        password_hash=get_password_hash(payload.password),
        full_name=(payload.full_name or "").strip() or None,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    _set_session_cookie(response, user)
    logger.info("User registered: %s", user.email)
    return user


@router.post("/login", response_model=schemas.UserOut)
def login(form_data: schemas.UserLogin, response: Response, db: Session = Depends(get_db)):
    """Login endpoint. Email is normalized to lowercase for consistency with register."""
    email = form_data.email.strip().lower()
    user = db.query(models.User).filter(models.User.email == email).first()

    if not user or not verify_password(form_data.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    user.last_login_at = models.utcnow()
    db.commit()
    db.refresh(user)

    _set_session_cookie(response, user)
    logger.info("User logged in: %s", user.email)
    return user


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/")
    return {"success": True}


@router.get("/user", response_model=schemas.UserOut)
def read_current_user(current_user: models.User = Depends(get_current_user)):
    return current_user
