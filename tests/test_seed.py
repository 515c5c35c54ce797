from nubia.models import Product, PromoCode
from nubia.seed import seed
from nubia.services.promo_service import PromoService


def test_seed_is_idempotent(db_session):
    first = seed(db_session)
    db_session.commit()
    second = seed(db_session)

    assert first["products"] == 4
    assert first["promo_codes"] == 2
    assert second == {key: 0 for key in second}


def test_seeded_catalog_is_usable(db_session):
    seed(db_session)
    db_session.commit()

    scarf = db_session.query(Product).filter(~Product.variants.any()).one()
    assert scarf.in_stock is True

    assert PromoService(db_session).evaluate("bienvenue10", 300000).discount_amount == 20000
    assert db_session.query(PromoCode).count() == 2
