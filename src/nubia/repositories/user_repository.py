from typing import Optional

from sqlalchemy import select

from nubia.models import User
from nubia.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    model = User
    resource_name = "User"

    def get_by_email(self, email: str) -> Optional[User]:
        return self.scalar(select(User).where(User.email == email))
