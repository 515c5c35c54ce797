import pytest

from nubia.core.exceptions import ValidationError
from nubia.services.payments.airwallex import AirwallexProvider
from nubia.services.payments.cod import CashOnDeliveryProvider
from nubia.services.payments.registry import (
    currency_for,
    gateways_for,
    get_provider,
    normalize_country,
    primary_gateway,
)
from tests.conftest import make_config


@pytest.mark.parametrize(
    "country,code",
    [("Senegal", "SN"), ("sénégal", "SN"), ("Maroc", "MA"), ("morocco", "MA"), ("fr", "FR"), (None, "SN")],
)
def test_normalize_country(country, code):
    assert normalize_country(country) == code


@pytest.mark.parametrize(
    "country,gateways,currency",
    [
        ("SN", ("paydunya", "cod"), "XOF"),
        ("CI", ("paydunya", "cod"), "XOF"),
        ("MA", ("airwallex", "cod"), "MAD"),
        ("FR", ("airwallex", "cod"), "EUR"),
        ("US", ("airwallex", "cod"), "USD"),
    ],
)
def test_country_routing(country, gateways, currency):
    assert gateways_for(country) == gateways
    assert currency_for(country) == currency
    assert primary_gateway(country) == gateways[0]


def test_get_provider():
    config = make_config()
    assert isinstance(get_provider("airwallex", config), AirwallexProvider)
    assert isinstance(get_provider("cod", config), CashOnDeliveryProvider)
    with pytest.raises(ValidationError):
        get_provider("stripe", config)
