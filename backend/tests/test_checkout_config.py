import pytest

from backend.app.checkout import DEFAULT_STRIPE_API_VERSION, load_checkout_config


def test_defaults_without_environment():
    config = load_checkout_config(env={})

    assert config.stripe_secret_key is None
    assert config.provider_configured is False
    assert config.stripe_api_version == DEFAULT_STRIPE_API_VERSION
    assert config.app_domain == "http://localhost:3000"
    assert config.return_path == "/orders/confirmation"
    assert config.price_lookup_max_workers == 8


def test_live_secret_key_and_public_domain_are_fallbacks():
    config = load_checkout_config(
        env={
            "STRIPE_LIVE_SECRET_KEY": "sk_live_1",
            "NEXT_PUBLIC_DOMAIN": "https://shop.example.com/",
        }
    )

    assert config.stripe_secret_key == "sk_live_1"
    assert config.provider_configured is True
    assert config.app_domain == "https://shop.example.com"


def test_primary_variables_take_precedence():
    config = load_checkout_config(
        env={
            "STRIPE_SECRET_KEY": "sk_test_1",
            "STRIPE_LIVE_SECRET_KEY": "sk_live_1",
            "APP_DOMAIN": "https://app.example.com",
            "NEXT_PUBLIC_DOMAIN": "https://shop.example.com",
            "STRIPE_API_VERSION": "2024-06-20",
        }
    )

    assert config.stripe_secret_key == "sk_test_1"
    assert config.app_domain == "https://app.example.com"
    assert config.stripe_api_version == "2024-06-20"


def test_return_url_carries_session_placeholder():
    config = load_checkout_config(
        env={"APP_DOMAIN": "https://app.example.com", "CHECKOUT_RETURN_PATH": "thanks"}
    )

    assert config.return_path == "/thanks"
    assert config.return_url == "https://app.example.com/thanks?session_id={CHECKOUT_SESSION_ID}"


def test_price_lookup_workers_have_floor_of_one():
    config = load_checkout_config(env={"PRICE_LOOKUP_MAX_WORKERS": "0"})

    assert config.price_lookup_max_workers == 1


def test_invalid_worker_count_is_rejected():
    with pytest.raises(ValueError):
        load_checkout_config(env={"PRICE_LOOKUP_MAX_WORKERS": "many"})
