import pytest

from nubia import db
from nubia.app import create_app
from nubia.core.config import (
    AppConfig,
    Config,
    DatabaseConfig,
    NotificationConfig,
    PaymentConfig,
    SecurityConfig,
)
from nubia.core.security import hash_admin_password, issue_token
from nubia.models import Category, Order, OrderItem, Product, ProductVariant, PromoCode, User

ADMIN_USERNAME = "atelier"
ADMIN_PASSWORD = "dakar-2024"
ADMIN_SALT = "pepper"

PAYDUNYA_MASTER_KEY = "pd-master"
AIRWALLEX_WEBHOOK_SECRET = "aw-secret"

CRON_SECRET = "cron-secret"
CLEANUP_API_KEY = "cleanup-key"


def make_config(**payment_overrides) -> Config:
    payments = dict(
        paydunya_master_key=PAYDUNYA_MASTER_KEY,
        paydunya_private_key="pd-private",
        paydunya_token="pd-token",
        airwallex_client_id="aw-client",
        airwallex_api_key="aw-key",
        airwallex_webhook_secret=AIRWALLEX_WEBHOOK_SECRET,
    )
    payments.update(payment_overrides)
    return Config(
        database=DatabaseConfig(url="sqlite://"),
        security=SecurityConfig(
            jwt_secret_key="test-secret",
            password_hash_rounds=4,
            admin_username=ADMIN_USERNAME,
            admin_password_hash=hash_admin_password(ADMIN_PASSWORD, ADMIN_SALT),
            admin_salt=ADMIN_SALT,
            cron_secret=CRON_SECRET,
            cleanup_api_key=CLEANUP_API_KEY,
        ),
        payments=PaymentConfig(**payments),
        notifications=NotificationConfig(site_url="https://nubia.test"),
        app=AppConfig(testing=True, log_level="WARNING"),
    )


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def app(config):
    application = create_app(config)
    import nubia.models  # noqa: F401

    db.Base.metadata.create_all(db.get_engine())
    with application.app_context():
        yield application
    db.Base.metadata.drop_all(db.get_engine())


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    session = db.SessionLocal()
    yield session
    session.commit()
    session.close()


# ---------------------------------------------------------------------- #
# Factories                                                               #
# ---------------------------------------------------------------------- #

@pytest.fixture
def make_product(db_session):
    counter = {"n": 0}

    def _make(name="Robe Wax", price=20000, variants=((None, None, 10),), in_stock=True, category=None):
        counter["n"] += 1
        product = Product(
            slug=f"{name.lower().replace(' ', '-')}-{counter['n']}",
            name=name,
            price=price,
            images=[],
            in_stock=in_stock,
            category=category,
        )
        for index, (size, color, stock) in enumerate(variants or ()):
            product.variants.append(
                ProductVariant(sku=f"SKU-{counter['n']}-{index}", size=size, color=color, stock=stock)
            )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture
def make_category(db_session):
    def _make(name="Robes", slug="robes"):
        category = Category(name=name, slug=slug)
        db_session.add(category)
        db_session.commit()
        return category

    return _make


@pytest.fixture
def make_promo(db_session):
    def _make(code="AURA10", discount_type="percentage", discount_value=10, **fields):
        promo = PromoCode(
            code=code,
            discount_type=discount_type,
            discount_value=discount_value,
            current_uses=fields.pop("current_uses", 0),
            is_active=fields.pop("is_active", True),
            **fields,
        )
        db_session.add(promo)
        db_session.commit()
        return promo

    return _make


@pytest.fixture
def user(db_session):
    customer = User(email="awa@example.com", full_name="Awa Diop")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture
def make_order(db_session):
    counter = {"n": 0}

    def _make(product, quantity=1, user_id=None, status="pending", payment_status="pending", country="SN", **fields):
        counter["n"] += 1
        total = product.price * quantity
        order = Order(
            order_number=f"ORD-TEST{counter['n']:04d}",
            user_id=user_id,
            status=status,
            payment_status=payment_status,
            subtotal=total,
            discount=0,
            shipping=0,
            tax=0,
            total=total,
            currency="XOF",
            shipping_address={
                "firstName": "Awa",
                "lastName": "Diop",
                "email": "awa@example.com",
                "phone": "+221771234567",
                "address": "12 rue Carnot",
                "city": "Dakar",
                "country": country,
            },
            shipping_method="standard",
            **fields,
        )
        variant = product.variants[0] if product.variants else None
        order.items.append(
            OrderItem(
                product_id=product.id,
                variant_id=variant.id if variant else None,
                product_name=product.name,
                unit_price=product.price,
                quantity=quantity,
                subtotal=total,
            )
        )
        db_session.add(order)
        db_session.commit()
        return order

    return _make


# ---------------------------------------------------------------------- #
# Auth headers                                                            #
# ---------------------------------------------------------------------- #

@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {issue_token(str(user.id), 'customer')}"}


@pytest.fixture
def admin_headers(app):
    return {"Authorization": f"Bearer {issue_token(ADMIN_USERNAME, 'admin', hours=8)}"}


@pytest.fixture
def cron_headers():
    return {"x-cron-secret": CRON_SECRET}


@pytest.fixture
def address():
    return {
        "firstName": "Awa",
        "lastName": "Diop",
        "email": "awa@example.com",
        "phone": "+221 77 123 45 67",
        "address": "12 rue Carnot",
        "city": "Dakar",
        "country": "SN",
    }


@pytest.fixture
def notify(mocker):
    """Replace every outgoing customer and manager message with a mock."""
    from nubia.services.notifications.notifier import OrderNotifier

    names = (
        "order_confirmation",
        "manager_new_order",
        "order_status_update",
        "return_created",
        "return_status_changed",
        "custom_order_created",
        "custom_order_progress",
        "contact_received",
    )
    return {name: mocker.patch.object(OrderNotifier, name, return_value=True) for name in names}


@pytest.fixture
def fake_redis(app, mocker):
    """A dict-backed Redis mock installed as the app's client (get/set only)."""
    data = {}
    client = mocker.MagicMock()
    client.get.side_effect = data.get
    client.set.side_effect = lambda key, value, ex=None: data.__setitem__(key, value)
    app.extensions["redis"] = client
    return client
