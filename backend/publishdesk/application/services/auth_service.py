from sqlalchemy import select
from sqlalchemy.orm import Session

from publishdesk.core.security import hash_password, verify_password
from publishdesk.domain.models.user import User, UserRole


class AuthService:
    @staticmethod
    def authenticate(db: Session, *, email: str, password: str) -> User | None:
        normalized_email = email.strip().lower()
        user = db.execute(select(User).where(User.email == normalized_email)).scalar_one_or_none()
        if not user:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    @staticmethod
    def create_user(
        db: Session,
        *,
        email: str,
        name: str,
        password: str,
        role: UserRole = UserRole.OPERATOR,
    ) -> User:
        user = User(
            email=email.strip().lower(),
            name=name.strip(),
            password_hash=hash_password(password),
            role=role.value,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
