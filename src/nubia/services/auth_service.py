from sqlalchemy.orm import Session

from nubia.core.config import Config
from nubia.core.exceptions import ConflictError, NotFoundError, UnauthorizedError
from nubia.core.security import check_password, hash_password, issue_token
from nubia.models import User
from nubia.repositories.user_repository import UserRepository
from nubia.utils.dates import DateUtils
import logging

logger = logging.getLogger(__name__)


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "phone": user.phone,
        "created_at": DateUtils.to_iso_string(user.created_at),
    }


class AuthService:
    """Customer accounts: bcrypt-hashed passwords, JWT sessions."""

    def __init__(self, session: Session, config: Config):
        self.users = UserRepository(session)
        self.config = config

    def _session(self, user: User) -> dict:
        return {"user": serialize_user(user), "token": issue_token(str(user.id), "customer")}

    def signup(self, data: dict) -> dict:
        email = data["email"]
        if self.users.get_by_email(email) is not None:
            raise ConflictError("An account with this email already exists", "email")

        user = self.users.add(
            User(
                email=email,
                hashed_password=hash_password(data["password"], self.config.security.password_hash_rounds),
                full_name=data.get("full_name"),
                phone=data.get("phone"),
            )
        )
        logger.info(f"New customer account {user.id}")
        return self._session(user)

    def login(self, email: str, password: str) -> dict:
        user = self.users.get_by_email(email)
        if user is None or not check_password(password, user.hashed_password):
            logger.info("Failed customer login")
            raise UnauthorizedError("Invalid email or password")
        return self._session(user)

    def me(self, user_id: int) -> dict:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))
        return serialize_user(user)
