"""
Which gateways and which currency a shipping country gets.

    UEMOA   -> paydunya, cod  (XOF)
    MA      -> airwallex, cod (MAD)
    EU      -> airwallex, cod (EUR)
    OTHER   -> airwallex, cod (USD)
"""
from typing import Dict, Optional, Tuple, Type

from nubia.core.config import Config
from nubia.core.exceptions import ValidationError
from nubia.services.payments.airwallex import AirwallexProvider
from nubia.services.payments.base import PaymentProvider
from nubia.services.payments.cod import CashOnDeliveryProvider
from nubia.services.payments.paydunya import PaydunyaProvider

DEFAULT_COUNTRY = "SN"

UEMOA_COUNTRIES = ("SN", "CI", "ML", "BJ", "BF", "TG", "NE", "GW")

EUROPEAN_COUNTRIES = (
    "FR", "DE", "ES", "IT", "BE", "NL", "PT", "AT", "IE", "FI",
    "GR", "LU", "SK", "SI", "EE", "LV", "LT", "CY", "MT",
)

# Names customers actually type in the checkout form
COUNTRY_NAMES = {
    "SENEGAL": "SN",
    "SÉNÉGAL": "SN",
    "SEN": "SN",
    "COTE D'IVOIRE": "CI",
    "CÔTE D'IVOIRE": "CI",
    "IVORY COAST": "CI",
    "MALI": "ML",
    "BENIN": "BJ",
    "BÉNIN": "BJ",
    "BURKINA FASO": "BF",
    "TOGO": "TG",
    "NIGER": "NE",
    "GUINEE-BISSAU": "GW",
    "GUINÉE-BISSAU": "GW",
    "GUINEA-BISSAU": "GW",
    "MAROC": "MA",
    "MOROCCO": "MA",
    "FRANCE": "FR",
    "ALLEMAGNE": "DE",
    "GERMANY": "DE",
    "ESPAGNE": "ES",
    "SPAIN": "ES",
    "ITALIE": "IT",
    "ITALY": "IT",
    "BELGIQUE": "BE",
    "BELGIUM": "BE",
    "PAYS-BAS": "NL",
    "NETHERLANDS": "NL",
    "PORTUGAL": "PT",
    "AUTRICHE": "AT",
    "AUSTRIA": "AT",
    "IRLANDE": "IE",
    "IRELAND": "IE",
    "FINLANDE": "FI",
    "FINLAND": "FI",
    "GRÈCE": "GR",
    "GRECE": "GR",
    "GREECE": "GR",
    "LUXEMBOURG": "LU",
}

REGION_GATEWAYS: Dict[str, Tuple[str, ...]] = {
    "MA": ("airwallex", "cod"),
    "UEMOA": ("paydunya", "cod"),
    "EU": ("airwallex", "cod"),
    "OTHER": ("airwallex", "cod"),
}

REGION_CURRENCIES = {
    "MA": "MAD",
    "UEMOA": "XOF",
    "EU": "EUR",
    "OTHER": "USD",
}

PROVIDERS: Dict[str, Type[PaymentProvider]] = {
    "paydunya": PaydunyaProvider,
    "airwallex": AirwallexProvider,
    "cod": CashOnDeliveryProvider,
}


def normalize_country(country: Optional[str]) -> str:
    code = (country or DEFAULT_COUNTRY).strip().upper()
    return COUNTRY_NAMES.get(code, code)


def region_for(country: Optional[str]) -> str:
    code = normalize_country(country)
    if code == "MA":
        return "MA"
    if code in UEMOA_COUNTRIES:
        return "UEMOA"
    if code in EUROPEAN_COUNTRIES:
        return "EU"
    return "OTHER"


def currency_for(country: Optional[str]) -> str:
    return REGION_CURRENCIES[region_for(country)]


def gateways_for(country: Optional[str]) -> Tuple[str, ...]:
    return REGION_GATEWAYS[region_for(country)]


def primary_gateway(country: Optional[str]) -> str:
    return next((g for g in gateways_for(country) if g != "cod"), "cod")


def get_provider(gateway: str, config: Config) -> PaymentProvider:
    provider_class = PROVIDERS.get(gateway)
    if provider_class is None:
        raise ValidationError(f"Unknown payment gateway: {gateway}")
    return provider_class(config.payments, config.notifications.site_url)
