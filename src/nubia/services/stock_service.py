from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from nubia.core.exceptions import InsufficientStockError, NotFoundError, ValidationError
from nubia.models import Order, Product, ProductVariant, StockReservation
from nubia.repositories.cart_repository import CartRepository
from nubia.repositories.product_repository import ProductRepository
from nubia.repositories.reservation_repository import ReservationRepository
from nubia.utils.dates import DateUtils
import logging

logger = logging.getLogger(__name__)

# Products sold without size/colour variants are not stock-tracked.
UNTRACKED_STOCK = 999
ABANDONED_CART_DAYS = 30


class StockService:
    """
    Inventory availability and the reservation lifecycle.

    available = on-hand variant stock - active holds

    A hold is created per order line when an order is placed. Payment
    success finalizes it (stock is decremented and the hold stops
    counting); payment failure, cancellation or expiry releases it.
    Releasing an already-finalized line puts the units back on the shelf.
    """

    def __init__(self, session: Session):
        self.session = session
        self.products = ProductRepository(session)
        self.reservations = ReservationRepository(session)
        self.carts = CartRepository(session)

    # ------------------------------------------------------------------ #
    # Availability                                                        #
    # ------------------------------------------------------------------ #

    @staticmethod
    def on_hand(product: Product, variant_id: Optional[int] = None) -> int:
        if not product.variants:
            return UNTRACKED_STOCK
        if variant_id is not None:
            return sum(v.stock for v in product.variants if v.id == variant_id)
        return sum(v.stock for v in product.variants)

    def available_quantities(self, products: Iterable[Product], now: Optional[datetime] = None) -> Dict[int, int]:
        products = list(products)
        now = now or DateUtils.now_utc()
        held = self.reservations.held_quantities([p.id for p in products], now)
        result = {}
        for product in products:
            if not product.in_stock:
                result[product.id] = 0
            else:
                result[product.id] = max(0, self.on_hand(product) - held.get(product.id, 0))
        return result

    def available_quantity(self, product: Product, now: Optional[datetime] = None) -> int:
        return self.available_quantities([product], now)[product.id]

    def available_variant_quantities(
        self, variants: Iterable[ProductVariant], now: Optional[datetime] = None
    ) -> Dict[int, int]:
        variants = list(variants)
        held = self.reservations.held_by_variant([v.id for v in variants], now or DateUtils.now_utc())
        return {v.id: max(0, v.stock - held.get(v.id, 0)) for v in variants}

    def ensure_available(self, requested: Dict[int, int], products: Dict[int, Product]) -> None:
        """
        requested maps product_id -> total quantity across all lines.
        Raises InsufficientStockError for the first product that can't cover it.
        """
        available = self.available_quantities(products.values())
        for product_id, quantity in requested.items():
            product = products[product_id]
            if available[product_id] < quantity:
                raise InsufficientStockError(product.name, available[product_id], quantity)

    # ------------------------------------------------------------------ #
    # Reservation lifecycle                                               #
    # ------------------------------------------------------------------ #

    def reserve(self, order: Order, ttl_minutes: int, finalize: bool = False) -> List[StockReservation]:
        now = DateUtils.now_utc()
        expires_at = DateUtils.create_expiry_time(ttl_minutes, now)
        created = []
        for item in order.items:
            created.append(
                self.reservations.add(
                    StockReservation(
                        order_id=order.id,
                        product_id=item.product_id,
                        variant_id=item.variant_id,
                        qty=item.quantity,
                        expires_at=expires_at,
                    )
                )
            )
        logger.info(f"Reserved {len(created)} line(s) for order {order.order_number} until {expires_at.isoformat()}")

        if finalize:
            self.finalize(order.id)
        return created

    def finalize(self, order_id: int) -> int:
        """Turn holds into real stock movements. 404 if nothing is left to finalize."""
        pending = self.reservations.unfinalized_for_order(order_id)
        if not pending:
            raise NotFoundError("Active stock reservations for order", str(order_id))

        now = DateUtils.now_utc()
        products = self.products.get_many([r.product_id for r in pending], for_update=True)
        for reservation in pending:
            product = products.get(reservation.product_id)
            if product is not None:
                self._decrement(product, reservation.variant_id, reservation.qty)
            reservation.finalized_at = now

        self.reservations.flush()
        logger.info(f"Finalized {len(pending)} reservation(s) for order {order_id}")
        return len(pending)

    def release(self, order_id: int) -> int:
        """Drop every open hold for the order, restocking finalized ones. 404 if none."""
        open_rows = self.reservations.unreleased_for_order(order_id)
        if not open_rows:
            raise NotFoundError("Unreleased stock reservations for order", str(order_id))

        now = DateUtils.now_utc()
        products = self.products.get_many(
            [r.product_id for r in open_rows if r.finalized_at is not None], for_update=True
        )
        for reservation in open_rows:
            if reservation.finalized_at is not None and reservation.product_id in products:
                self._restock(products[reservation.product_id], reservation.variant_id, reservation.qty)
            reservation.released_at = now

        self.reservations.flush()
        logger.info(f"Released {len(open_rows)} reservation(s) for order {order_id}")
        return len(open_rows)

    def release_if_any(self, order_id: int) -> int:
        try:
            return self.release(order_id)
        except NotFoundError:
            return 0

    def cleanup(self, now: Optional[datetime] = None) -> dict:
        """Release expired holds and purge carts untouched for 30 days."""
        now = now or DateUtils.now_utc()

        expired = self.reservations.expired_holds(now)
        for reservation in expired:
            reservation.released_at = now
        self.reservations.flush()

        stale = self.carts.stale_cart_ids(now - timedelta(days=ABANDONED_CART_DAYS))
        carts_deleted = self.carts.delete_carts(stale)

        logger.info(f"Cleanup released {len(expired)} expired reservation(s), deleted {carts_deleted} cart(s)")
        return {
            "cleaned": {"reservations": len(expired), "carts": carts_deleted},
            "stats": self.reservations.stats(now),
        }

    def stats(self) -> dict:
        return self.reservations.stats(DateUtils.now_utc())

    def list_reservations(self, status: Optional[str] = None, limit: int = 100) -> dict:
        now = DateUtils.now_utc()
        rows = self.reservations.list_by_status(status, now, limit)
        return {
            "reservations": [
                {
                    "id": r.id,
                    "order_id": r.order_id,
                    "product_id": r.product_id,
                    "variant_id": r.variant_id,
                    "qty": r.qty,
                    "expires_at": DateUtils.to_iso_string(r.expires_at),
                    "finalized_at": DateUtils.to_iso_string(r.finalized_at),
                    "released_at": DateUtils.to_iso_string(r.released_at),
                    "created_at": DateUtils.to_iso_string(r.created_at),
                }
                for r in rows
            ],
            "count": len(rows),
            "stats": self.reservations.stats(now),
        }

    # ------------------------------------------------------------------ #
    # Stock movements                                                     #
    # ------------------------------------------------------------------ #

    def _decrement(self, product: Product, variant_id: Optional[int], qty: int) -> None:
        if not product.variants:
            return

        if variant_id is not None:
            variants = [v for v in product.variants if v.id == variant_id]
        else:
            # Draw from the deepest bins first
            variants = sorted(product.variants, key=lambda v: (-v.stock, v.id))

        remaining = qty
        for variant in variants:
            if remaining == 0:
                break
            take = min(variant.stock, remaining)
            variant.stock -= take
            remaining -= take

        if remaining:
            # Oversold relative to on-hand count; stock is floored at zero.
            logger.warning(f"Finalizing {qty} of product {product.id} left a shortfall of {remaining}")

        product.in_stock = any(v.stock > 0 for v in product.variants)

    def _restock(self, product: Product, variant_id: Optional[int], qty: int) -> None:
        if not product.variants:
            return
        target = next((v for v in product.variants if v.id == variant_id), None)
        if target is None:
            target = max(product.variants, key=lambda v: (v.stock, -v.id))
        target.stock += qty
        product.in_stock = True

    def set_variant_stock(self, variant_id: int, stock: int) -> Product:
        if stock < 0:
            raise ValidationError("stock must be >= 0")
        variant = self.products.get_variant(variant_id, for_update=True)
        if variant is None:
            raise NotFoundError("Product variant", str(variant_id))
        variant.stock = stock
        product = variant.product
        product.in_stock = any(v.stock > 0 for v in product.variants)
        self.products.flush()
        return product
