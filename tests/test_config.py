import logging

import stripe

from estore import config, stripe_service
from estore.log import log_level


def test_log_level_names():
    assert log_level("DEBUG") == logging.DEBUG
    assert log_level("warning") == logging.WARNING
    assert log_level("LOUD") == logging.INFO


def test_stripe_client_is_bounded():
    assert isinstance(stripe.default_http_client, stripe.RequestsClient)
    assert stripe.max_network_retries == config.STRIPE_MAX_NETWORK_RETRIES


def test_configure_stripe_applies_timeout_and_retries(monkeypatch, mocker):
    monkeypatch.setattr(stripe, "default_http_client", stripe.default_http_client)
    monkeypatch.setattr(stripe, "max_network_retries", stripe.max_network_retries)
    monkeypatch.setattr(config, "STRIPE_TIMEOUT_SECONDS", 3.5)
    monkeypatch.setattr(config, "STRIPE_MAX_NETWORK_RETRIES", 1)
    requests_client = mocker.patch("stripe.RequestsClient")

    stripe_service.configure_stripe()

    requests_client.assert_called_once_with(timeout=3.5)
    assert stripe.default_http_client is requests_client.return_value
    assert stripe.max_network_retries == 1
