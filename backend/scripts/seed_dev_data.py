import os

from sqlalchemy import select

from publishdesk.application.services.auth_service import AuthService
from publishdesk.domain import models  # noqa: F401
from publishdesk.domain.models.user import User, UserRole
from publishdesk.infrastructure.db.base import Base
from publishdesk.infrastructure.db.session import SessionLocal, engine


DEFAULT_ADMIN_EMAIL = "admin@publishdesk.local"
DEFAULT_ADMIN_PASSWORD = "devpassword123"
DEFAULT_OPERATOR_EMAIL = "operator@publishdesk.local"


def seed_dev_data() -> None:
    Base.metadata.create_all(bind=engine)

    admin_email = os.getenv("SEED_ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL)
    admin_password = os.getenv("SEED_ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD)

    with SessionLocal() as db:
        existing_admin = db.execute(select(User).where(User.email == admin_email.lower())).scalar_one_or_none()
        if existing_admin is not None:
            print(f"Seed exists: admin_id={existing_admin.id}")
            return

        admin = AuthService.create_user(
            db,
            email=admin_email,
            name="Admin",
            password=admin_password,
            role=UserRole.ADMIN,
        )
        operator = AuthService.create_user(
            db,
            email=os.getenv("SEED_OPERATOR_EMAIL", DEFAULT_OPERATOR_EMAIL),
            name="Operator",
            password=admin_password,
        )

        print("Created dev seed data:")
        print(f"- admin_id: {admin.id}")
        print(f"- admin_email: {admin.email}")
        print(f"- operator_id: {operator.id}")
        print(f"- operator_email: {operator.email}")


if __name__ == "__main__":
    seed_dev_data()
