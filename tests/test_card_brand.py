import pytest

from checkout.schemas.card import CardBrand
from checkout.services.card_brand import classify, display_name, format_number, mask_number


@pytest.mark.parametrize(
    "number,brand",
    [
        ("4111 1111 1111 1111", CardBrand.VISA),
        ("5555555555554444", CardBrand.MASTERCARD),
        ("2221000000000009", CardBrand.MASTERCARD),
        ("2720990000000000", CardBrand.MASTERCARD),
        ("378282246310005", CardBrand.AMEX),
        ("341111111111111", CardBrand.AMEX),
        ("6062825624254001", CardBrand.HIPERCARD),
        ("6362970000457013", CardBrand.ELO),
        ("5067001234567890", CardBrand.ELO),
        ("5090001234567890", CardBrand.ELO),
    ],
)
def test_classify(number, brand):
    assert classify(number).brand == brand


def test_elo_prefixes_win_over_visa():
    # 4011 78 e 4389 35 começam com 4, mas são Elo
    assert classify("4011781234567890").brand == CardBrand.ELO
    assert classify("4389351234567890").brand == CardBrand.ELO
    assert classify("4012881234567890").brand == CardBrand.VISA


def test_unknown_or_short_input_falls_back_to_visa():
    assert classify("").brand == CardBrand.VISA
    assert classify("9").brand == CardBrand.VISA
    assert classify("6011000000000004").brand == CardBrand.VISA


def test_brand_rules():
    amex = classify("3782")
    assert (amex.cvv_length, amex.max_digits) == (4, 15)
    visa = classify("4111")
    assert (visa.cvv_length, visa.max_digits) == (3, 16)


def test_format_groups():
    assert format_number("4111111111111111") == "4111 1111 1111 1111"
    assert format_number("378282246310005") == "3782 822463 10005"
    assert format_number("41111") == "4111 1"
    assert format_number("4a1-1 1") == "4111"


def test_format_truncates_to_brand_length():
    assert format_number("41111111111111119999") == "4111 1111 1111 1111"
    assert format_number("3782822463100059") == "3782 822463 10005"


def test_mask_number_pads_with_placeholders():
    assert mask_number("") == "•••• •••• •••• ••••"
    assert mask_number("4111 11") == "4111 11•• •••• ••••"


def test_display_name():
    assert display_name(CardBrand.AMEX) == "AMERICAN EXPRESS"
    assert display_name(CardBrand.ELO) == "ELO"
