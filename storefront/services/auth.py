from typing import Optional
from sqlmodel import Session, select, func

from storefront.core.exceptions import ValidationError
from storefront.core.logging import get_logger
from storefront.core.security import get_password_hash, verify_password
from storefront.models.user import User

logger = get_logger(__name__)

class AuthService:
    def __init__(self, session: Session):
        self.session = session

    def get_user_by_email(self, email: str) -> Optional[User]:
        # Emails are matched case-insensitively
        return self.session.exec(
            select(User).where(func.lower(User.email) == email.lower())
        ).first()

    def register_user(self, email: str, password: str, name: Optional[str] = None) -> User:
        if self.get_user_by_email(email):
            raise ValidationError("Email already registered")

        user = User(
            email=email,
            name=name,
            password_hash=get_password_hash(password),
            is_active=True,
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info(f"Registered user {user.id}")
        return user

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        user = self.get_user_by_email(email)
        if not user or not user.is_active:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user
