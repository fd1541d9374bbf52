# tests/test_cards.py
from datetime import datetime

import pytest

from edupay_app.errors import ValidationError
from edupay_app.models import SavedCard
from edupay_app.services.cards import (
    CardInput, save_card, set_default_card, delete_card, list_cards, detect_brand, luhn_ok,
)

NOW = datetime(2026, 6, 15)
VISA = "4111 1111 1111 1111"
MASTER = "5555555555554444"
AMEX = "378282246310005"


def _card(number=VISA, **kw):
    data = dict(card_number=number, card_holder_name="maria silva", expiration_month=12,
                expiration_year=2030, security_code="123")
    data.update(kw)
    return CardInput(**data)


def test_brand_and_luhn():
    assert detect_brand("4111111111111111") == "visa"
    assert detect_brand(MASTER) == "mastercard"
    assert detect_brand(AMEX) == "amex"
    assert detect_brand("6011111111111117") == "discover"
    assert luhn_ok("4111111111111111")
    assert not luhn_ok("4111111111111112")


def test_first_card_becomes_default_and_only_reference_is_stored(db_session, student):
    res = save_card(student.id, _card(), now=NOW)
    assert res.status == 201
    card = res.value
    assert card.is_default is True
    assert card.last4 == "1111"
    assert card.brand == "visa"
    assert card.card_holder_name == "MARIA SILVA"
    assert "card_number" not in card.to_dict()

    second = save_card(student.id, _card(MASTER), now=NOW).value
    assert second.is_default is False


def test_duplicate_card_is_refused(db_session, student):
    save_card(student.id, _card(), now=NOW)
    res = save_card(student.id, _card(), now=NOW)
    assert res.code == "card_already_saved"
    assert res.status == 409


@pytest.mark.parametrize("kw", [
    {"number": "4111111111111112"},
    {"number": "4111"},
    {"card_holder_name": "  "},
    {"expiration_month": 13},
    {"expiration_month": "xx"},
    {"expiration_year": 2026, "expiration_month": 5},
    {"security_code": "12"},
])
def test_invalid_cards(db_session, student, kw):
    number = kw.pop("number", VISA)
    with pytest.raises(ValidationError):
        save_card(student.id, _card(number, **kw), now=NOW)


def test_two_digit_year_is_accepted(db_session, student):
    card = save_card(student.id, _card(expiration_year=31), now=NOW).value
    assert card.expiration_year == 2031


def test_set_default_keeps_single_default(db_session, student):
    a = save_card(student.id, _card(), now=NOW).value
    b = save_card(student.id, _card(MASTER), now=NOW).value
    res = set_default_card(student.id, b.id)
    assert res.value.is_default is True
    db_session.expire_all()
    defaults = db_session.query(SavedCard).filter_by(user_id=student.id, is_default=True).all()
    assert [c.id for c in defaults] == [b.id]
    assert list_cards(student.id)[0].id == b.id
    assert a.is_default is False


def test_cards_are_scoped_to_owner(db_session, student, make_user):
    other = make_user("STUDENT")
    card = save_card(student.id, _card(), now=NOW).value
    assert set_default_card(other.id, card.id).code == "card_not_found"
    assert delete_card(other.id, card.id).code == "card_not_found"


def test_delete_default_promotes_most_recent(db_session, student):
    a = save_card(student.id, _card(), now=NOW).value
    save_card(student.id, _card(MASTER), now=NOW)
    c = save_card(student.id, _card(AMEX, security_code="1234"), now=NOW).value
    res = delete_card(student.id, a.id)
    assert res.value == {"deleted": a.id, "new_default": c.id}
    db_session.expire_all()
    assert db_session.get(SavedCard, c.id).is_default is True

    res = delete_card(student.id, c.id)
    assert res.value["new_default"] is not None
