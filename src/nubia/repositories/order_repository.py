from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import cast, func, or_, select, String
from sqlalchemy.orm import selectinload

from nubia.models import Order, OrderValidationToken, Shipment
from nubia.repositories.base import BaseRepository


class OrderRepository(BaseRepository[Order]):
    model = Order
    resource_name = "Order"

    def get_with_items(self, order_id: int, for_update: bool = False) -> Optional[Order]:
        stmt = select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.scalar(stmt)

    def get_by_number(self, order_number: str, for_update: bool = False) -> Optional[Order]:
        stmt = select(Order).options(selectinload(Order.items)).where(Order.order_number == order_number)
        if for_update:
            stmt = stmt.with_for_update()
        return self.scalar(stmt)

    def get_by_reference(self, reference: str, for_update: bool = False) -> Optional[Order]:
        """Gateways echo back either our numeric id or the order number."""
        if str(reference).isdigit():
            return self.get_with_items(int(reference), for_update=for_update)
        return self.get_by_number(str(reference), for_update=for_update)

    def list_for_user(self, user_id: int, limit: int, after: Optional[int] = None) -> Tuple[List[Order], bool]:
        stmt = select(Order).options(selectinload(Order.items)).where(Order.user_id == user_id)
        if after is not None:
            stmt = stmt.where(Order.id < after)
        rows = self.scalars(stmt.order_by(Order.id.desc()).limit(limit + 1))
        return rows[:limit], len(rows) > limit

    def admin_list(
        self,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        criteria = []
        if status:
            criteria.append(Order.status == status)
        if payment_status:
            criteria.append(Order.payment_status == payment_status)
        if search:
            pattern = f"%{search}%"
            criteria.append(
                or_(
                    Order.order_number.ilike(pattern),
                    cast(Order.shipping_address, String).ilike(pattern),
                )
            )

        stmt = select(Order).options(selectinload(Order.items))
        if criteria:
            stmt = stmt.where(*criteria)
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
        return self.scalars(stmt), self.count(*criteria)

    def processing_since(self, cutoff: datetime) -> List[Order]:
        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.status == "processing", Order.updated_at <= cutoff)
            .order_by(Order.id)
            .with_for_update()
        )
        return self.scalars(stmt)

    def shipped_since(self, cutoff: datetime) -> List[Order]:
        stmt = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.status == "shipped", Order.shipped_at <= cutoff)
            .order_by(Order.id)
            .with_for_update()
        )
        return self.scalars(stmt)

    def add_shipment(self, shipment: Shipment) -> Shipment:
        with self.guard("INSERT"):
            self.session.add(shipment)
            self.session.flush()
            return shipment

    def latest_shipment(self, order_id: int) -> Optional[Shipment]:
        stmt = select(Shipment).where(Shipment.order_id == order_id).order_by(Shipment.id.desc())
        return self.scalar(stmt)

    def get_validation_token(self, token: str, for_update: bool = False) -> Optional[OrderValidationToken]:
        stmt = select(OrderValidationToken).where(OrderValidationToken.token == token)
        if for_update:
            stmt = stmt.with_for_update()
        return self.scalar(stmt)

    def status_counts(self) -> dict:
        stmt = select(Order.status, func.count()).group_by(Order.status)
        with self.guard("SELECT"):
            return {status: int(n) for status, n in self.session.execute(stmt).all()}

    def totals_by_payment_status(self) -> dict:
        stmt = select(Order.payment_status, func.count(), func.coalesce(func.sum(Order.total), 0)).group_by(
            Order.payment_status
        )
        with self.guard("SELECT"):
            return {
                status: {"count": int(n), "amount": int(amount)}
                for status, n, amount in self.session.execute(stmt).all()
            }

    def customer_keys_since(self, since: datetime) -> List[str]:
        """One key per ordering customer: the user id, or the address email for guests."""
        stmt = select(Order.user_id, Order.shipping_address).where(Order.created_at >= since)
        with self.guard("SELECT"):
            rows = self.session.execute(stmt).all()
        keys = set()
        for user_id, address in rows:
            if user_id is not None:
                keys.add(f"user:{user_id}")
            elif (address or {}).get("email"):
                keys.add(f"email:{address['email'].lower()}")
        return sorted(keys)

    def history_for_user(self, user_id: int) -> List[Order]:
        """Every order of a customer, newest first, without items."""
        stmt = select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.id.desc())
        return self.scalars(stmt)
