from datetime import timedelta

import pytest

from nubia.core.exceptions import InsufficientStockError, NotFoundError
from nubia.models import Cart
from nubia.services.stock_service import UNTRACKED_STOCK, StockService
from nubia.utils.dates import DateUtils


@pytest.fixture
def stock(db_session):
    return StockService(db_session)


def test_active_holds_reduce_availability(stock, db_session, make_product, make_order):
    product = make_product(variants=[("M", "rouge", 10)])
    order = make_order(product, quantity=3)

    stock.reserve(order, ttl_minutes=30)
    db_session.commit()

    assert stock.available_quantity(product) == 7


def test_expired_holds_do_not_count(stock, db_session, make_product, make_order):
    product = make_product(variants=[("M", "rouge", 10)])
    stock.reserve(make_order(product, quantity=3), ttl_minutes=-1)
    db_session.commit()

    assert stock.available_quantity(product) == 10


def test_untracked_and_out_of_stock_products(stock, make_product):
    assert stock.available_quantity(make_product(variants=[])) == UNTRACKED_STOCK
    assert stock.available_quantity(make_product(in_stock=False)) == 0


def test_ensure_available_raises_for_short_stock(stock, make_product):
    product = make_product(variants=[("S", None, 2)])
    with pytest.raises(InsufficientStockError) as exc:
        stock.ensure_available({product.id: 3}, {product.id: product})
    assert exc.value.details == {"available": 2, "requested": 3}


def test_finalize_decrements_stock_and_flips_in_stock(stock, db_session, make_product, make_order):
    product = make_product(variants=[("M", "rouge", 3)])
    order = make_order(product, quantity=3)
    stock.reserve(order, ttl_minutes=30)

    assert stock.finalize(order.id) == 1
    db_session.commit()

    assert product.variants[0].stock == 0
    assert product.in_stock is False
    with pytest.raises(NotFoundError):
        stock.finalize(order.id)


def test_finalize_without_variant_draws_from_deepest_bin(stock, db_session, make_product, make_order):
    product = make_product(variants=[("S", None, 10), ("M", None, 4)])
    order = make_order(product, quantity=12)
    order.items[0].variant_id = None
    db_session.commit()

    stock.reserve(order, ttl_minutes=30, finalize=True)
    db_session.commit()

    assert [v.stock for v in product.variants] == [0, 2]
    assert product.in_stock is True


def test_release_restocks_finalized_lines(stock, db_session, make_product, make_order):
    product = make_product(variants=[("M", "rouge", 5)])
    order = make_order(product, quantity=2)
    stock.reserve(order, ttl_minutes=30, finalize=True)

    assert stock.release(order.id) == 1
    db_session.commit()

    assert product.variants[0].stock == 5
    with pytest.raises(NotFoundError):
        stock.release(order.id)
    assert stock.release_if_any(order.id) == 0


def test_release_of_open_hold_leaves_stock_alone(stock, db_session, make_product, make_order):
    product = make_product(variants=[("M", "rouge", 5)])
    order = make_order(product, quantity=2)
    stock.reserve(order, ttl_minutes=30)

    stock.release(order.id)
    db_session.commit()

    assert product.variants[0].stock == 5
    assert stock.available_quantity(product) == 5


def test_cleanup_releases_expired_holds_and_stale_carts(stock, db_session, make_product, make_order, user):
    product = make_product()
    stock.reserve(make_order(product), ttl_minutes=-5)
    stock.reserve(make_order(product), ttl_minutes=30)
    db_session.add(Cart(user_id=user.id, updated_at=DateUtils.now_utc() - timedelta(days=31)))
    db_session.commit()

    result = stock.cleanup()
    db_session.commit()

    assert result["cleaned"] == {"reservations": 1, "carts": 1}
    assert result["stats"]["active"] == 1
    assert result["stats"]["released"] == 1
    assert stock.list_reservations("released")["count"] == 1


def test_set_variant_stock(stock, db_session, make_product):
    product = make_product(variants=[("M", None, 0)])
    product.in_stock = False
    db_session.commit()

    stock.set_variant_stock(product.variants[0].id, 4)

    assert product.in_stock is True
    with pytest.raises(NotFoundError):
        stock.set_variant_stock(99999, 1)
