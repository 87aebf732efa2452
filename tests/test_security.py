from datetime import date

from jose import jwt

from app.core.config import settings
from app.core.security import Principal, Role, create_access_token, decode_access_token, parse_role
from app.services.email_service import build_booking_confirmation_html, send_booking_confirmation_email


def test_token_round_trip():
    principal = decode_access_token(create_access_token("user-42", Role.PROVIDER))
    assert principal == Principal(user_id="user-42", role=Role.PROVIDER)
    assert principal.is_provider and not principal.is_admin


def test_role_from_metadata_and_legacy_names():
    token = jwt.encode({"sub": "u1", "metadata": {"role": "barber"}}, settings.secret_key, algorithm=settings.algorithm)
    assert decode_access_token(token).role == Role.PROVIDER
    assert parse_role("user") == Role.CUSTOMER
    assert parse_role("ADMIN") == Role.ADMIN
    assert parse_role(None) == Role.CUSTOMER
    assert parse_role("wizard") == Role.CUSTOMER
    assert Principal("a", Role.ADMIN).is_provider


def test_invalid_tokens():
    assert decode_access_token("garbage") is None
    wrong_key = jwt.encode({"sub": "u1"}, "other-secret", algorithm=settings.algorithm)
    assert decode_access_token(wrong_key) is None
    no_subject = jwt.encode({"role": "admin"}, settings.secret_key, algorithm=settings.algorithm)
    assert decode_access_token(no_subject) is None


def test_confirmation_email_escapes_and_skips_without_smtp():
    html = build_booking_confirmation_html(
        customer_name="<Sam>",
        provider_name="Fade & Co",
        day=date(2026, 10, 20),
        start_time=540,
        end_time=570,
        services=["Haircut"],
        amount=2500,
        currency="usd",
    )
    assert "&lt;Sam&gt;" in html
    assert "Fade &amp; Co" in html
    assert "9:00 AM - 9:30 AM" in html
    assert "25.00 USD" in html

    sent = send_booking_confirmation_email(
        "sam@example.org", "Sam", "Fade", date(2026, 10, 20), 540, 570, ["Haircut"], 2500, "usd"
    )
    assert sent is False
