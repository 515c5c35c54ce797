from urllib.parse import parse_qs, urlparse

import pytest
import responses

from nubia.core.config import NotificationConfig
from nubia.core.exceptions import ExternalServiceError
from nubia.services.notifications.mailer import EmailSender
from nubia.services.notifications.notifier import OrderNotifier
from nubia.services.notifications.whatsapp import CALLMEBOT_URL, WhatsAppSender


def whatsapp_config(**overrides):
    settings = dict(callmebot_api_key="cmb-key", manager_whatsapp="+221 77 000 11 22")
    settings.update(overrides)
    return NotificationConfig(**settings)


@responses.activate
def test_whatsapp_sends_digits_only():
    responses.add(responses.GET, CALLMEBOT_URL, body="Message queued")

    assert WhatsAppSender(whatsapp_config()).send_to_manager("Nouvelle commande")

    query = parse_qs(urlparse(responses.calls[0].request.url).query)
    assert query["phone"] == ["221770001122"]
    assert query["text"] == ["Nouvelle commande"]
    assert query["apikey"] == ["cmb-key"]


@responses.activate
def test_whatsapp_skipped_without_key():
    assert not WhatsAppSender(whatsapp_config(callmebot_api_key="")).send_to_manager("x")
    assert len(responses.calls) == 0


@responses.activate
def test_whatsapp_error_status_raises():
    responses.add(responses.GET, CALLMEBOT_URL, status=500, body="boom")
    with pytest.raises(ExternalServiceError):
        WhatsAppSender(whatsapp_config()).send_to_manager("x")


def smtp_config(port=587):
    return NotificationConfig(
        smtp_host="smtp.test", smtp_port=port, smtp_user="shop@nubia.test", smtp_password="pw"
    )


def test_email_uses_starttls_on_587(mocker):
    smtp = mocker.patch("nubia.services.notifications.mailer.smtplib.SMTP")

    assert EmailSender(smtp_config()).send("awa@example.com", "Bonjour", "<p>Bonjour</p>")

    server = smtp.return_value.__enter__.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("shop@nubia.test", "pw")
    message = server.send_message.call_args[0][0]
    assert message["To"] == "awa@example.com"
    assert message["Subject"] == "Bonjour"


def test_email_uses_ssl_on_465(mocker):
    smtp_ssl = mocker.patch("nubia.services.notifications.mailer.smtplib.SMTP_SSL")
    assert EmailSender(smtp_config(465)).send("awa@example.com", "Bonjour", "<p>Bonjour</p>")
    smtp_ssl.assert_called_once()


def test_email_skipped_without_password(mocker):
    smtp = mocker.patch("nubia.services.notifications.mailer.smtplib.SMTP")
    sender = EmailSender(NotificationConfig(smtp_user="shop@nubia.test"))

    assert not sender.send("awa@example.com", "Bonjour", "<p>Bonjour</p>")
    smtp.assert_not_called()


def test_manager_message_carries_validation_links(app, config, make_product, make_order, mocker):
    send = mocker.patch.object(WhatsAppSender, "send_to_manager", return_value=True)
    order = make_order(make_product(), quantity=2, payment_method="cash_on_delivery")

    assert OrderNotifier(config).manager_new_order(order, "tok123", headline="NOUVELLE COMMANDE")

    text = send.call_args[0][0]
    assert "NOUVELLE COMMANDE" in text
    assert order.order_number in text
    assert "Paiement à la livraison" in text
    assert (
        f"https://nubia.test/api/v1/admin/orders/validate?id={order.order_number}&token=tok123&action=confirm"
        in text
    )


def test_send_failures_are_logged_not_raised(app, config, make_product, make_order, mocker):
    mocker.patch.object(EmailSender, "send", side_effect=ExternalServiceError("smtp", "down"))
    order = make_order(make_product())

    assert OrderNotifier(config).order_confirmation(order) is False


def test_status_email_only_for_known_statuses(app, config, make_product, make_order, mocker):
    send = mocker.patch.object(EmailSender, "send", return_value=True)
    notifier = OrderNotifier(config)

    assert notifier.order_status_update(make_order(make_product(), status="shipped"))
    assert send.call_args[0][1].endswith("a été expédiée")
    assert not notifier.order_status_update(make_order(make_product(), status="pending"))
