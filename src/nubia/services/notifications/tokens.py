import hashlib
import secrets
import time
from typing import Optional

from sqlalchemy.orm import Session

from nubia.core.exceptions import UnauthorizedError
from nubia.models import OrderValidationToken
from nubia.repositories.order_repository import OrderRepository
from nubia.utils.dates import DateUtils

TOKEN_TTL_HOURS = 24


def generate_validation_token(order_id: int) -> str:
    """sha256 of '<orderId>-<ms>-<random>', first 32 hex chars."""
    seed = f"{order_id}-{int(time.time() * 1000)}-{secrets.token_hex(8)}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:32]


class ValidationTokenService:
    """Single-use tokens behind the confirm/cancel links sent to the manager."""

    def __init__(self, session: Session):
        self.orders = OrderRepository(session)

    def issue(self, order_id: Optional[int] = None, custom_order_id: Optional[int] = None) -> str:
        token = generate_validation_token(order_id or custom_order_id)
        self.orders.session.add(
            OrderValidationToken(
                order_id=order_id,
                custom_order_id=custom_order_id,
                token=token,
                expires_at=DateUtils.create_expiry_time(TOKEN_TTL_HOURS * 60),
            )
        )
        self.orders.flush()
        return token

    def consume(self, token: str, order_id: Optional[int] = None, custom_order_id: Optional[int] = None) -> None:
        """Mark the token used; raise 401 when unknown, for another order, expired or reused."""
        record = self.orders.get_validation_token(token, for_update=True)
        if record is None or (record.order_id, record.custom_order_id) != (order_id, custom_order_id):
            raise UnauthorizedError("Invalid validation link")
        if record.used_at is not None:
            raise UnauthorizedError("This validation link has already been used")
        if DateUtils.is_expired(record.expires_at):
            raise UnauthorizedError("This validation link has expired")
        record.used_at = DateUtils.now_utc()
        self.orders.flush()
