from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from publishdesk.application.services.auth_service import AuthService
from publishdesk.application.services.token_security_service import prune_expired_revoked_tokens, revoke_token
from publishdesk.core.config import settings
from publishdesk.core.security import create_access_token, decode_token
from publishdesk.domain.models.user import User
from publishdesk.infrastructure.db.session import get_db
from publishdesk.interfaces.api.deps import extract_session_token, get_current_user, oauth2_scheme

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1)


def _serialize_user(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role,
    }


@router.post("/login")
def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)) -> dict:
    user = AuthService.authenticate(db, email=payload.email, password=payload.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    access_token = create_access_token(user_id=user.id, role=user.role)
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=access_token,
        httponly=True,
        secure=settings.use_secure_cookies,
        samesite="lax",
        max_age=settings.jwt_access_token_expire_minutes * 60,
        path="/",
    )
    return {"access_token": access_token, "token_type": "bearer", "user": _serialize_user(user)}


@router.get("/me")
def me(current_user: User = Depends(get_current_user)) -> dict:
    return _serialize_user(current_user)


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    token: str | None = Depends(oauth2_scheme),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    session_token = extract_session_token(request, token)
    claims = decode_token(session_token)
    prune_expired_revoked_tokens(db)
    revoke_token(
        db,
        token=session_token,
        expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        claims=claims,
    )
    db.commit()
    response.delete_cookie(key=settings.auth_cookie_name, path="/")
    return {"success": True}
