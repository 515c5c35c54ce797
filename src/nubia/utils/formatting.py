import random
import time
import uuid
from decimal import Decimal
from typing import Union


class FormattingUtils:
    """Money formatting and the human-facing identifiers (order, return, tracking numbers)."""

    CURRENCY_FORMATS = {
        "XOF": {"symbol": "FCFA", "decimal_places": 0, "symbol_position": "after"},
        "EUR": {"symbol": "€", "decimal_places": 2, "symbol_position": "after"},
        "USD": {"symbol": "$", "decimal_places": 2, "symbol_position": "before"},
        "MAD": {"symbol": "DH", "decimal_places": 2, "symbol_position": "after"},
    }

    @classmethod
    def format_money(cls, amount: Union[int, Decimal, float], currency: str = "XOF") -> str:
        """
        Format an amount already expressed in the currency's main unit.

        Examples:
            format_money(25000) -> "25 000 FCFA"
            format_money(Decimal("38.11"), "EUR") -> "38.11 €"
        """
        config = cls.CURRENCY_FORMATS.get(currency, cls.CURRENCY_FORMATS["XOF"])
        places = config["decimal_places"]
        formatted = f"{Decimal(str(amount)):,.{places}f}".replace(",", " ")

        if config["symbol_position"] == "before":
            return f"{config['symbol']}{formatted}"
        return f"{formatted} {config['symbol']}"

    @staticmethod
    def _epoch_ms() -> int:
        return int(time.time() * 1000)

    @classmethod
    def order_number(cls) -> str:
        # Millisecond timestamp plus three random digits keeps numbers sortable
        # and avoids collisions between two checkouts in the same millisecond.
        return f"ORD-{cls._epoch_ms()}{random.randint(0, 999):03d}"

    @classmethod
    def return_number(cls) -> str:
        return f"RET-{cls._epoch_ms()}{random.randint(0, 999):03d}"

    @classmethod
    def tracking_number(cls, order_id: int) -> str:
        return f"TRK-{cls._epoch_ms()}-{order_id}"

    @classmethod
    def custom_order_reference(cls) -> str:
        return uuid.uuid4().hex[:8].upper()
