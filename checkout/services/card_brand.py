import re
from dataclasses import dataclass
from typing import Callable, List, Tuple

from checkout.schemas.card import CardBrand

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class BrandRule:
    brand: CardBrand
    cvv_length: int
    max_digits: int


AMEX = BrandRule(CardBrand.AMEX, cvv_length=4, max_digits=15)
ELO = BrandRule(CardBrand.ELO, cvv_length=3, max_digits=16)
HIPERCARD = BrandRule(CardBrand.HIPERCARD, cvv_length=3, max_digits=16)
MASTERCARD = BrandRule(CardBrand.MASTERCARD, cvv_length=3, max_digits=16)
VISA = BrandRule(CardBrand.VISA, cvv_length=3, max_digits=16)

ELO_PREFIXES = (
    "401178", "401179", "431274", "438935", "451416", "457393", "457631", "457632",
    "504175", "506699", "509000", "627780", "636297", "636368",
)


def _prefix(*prefixes: str) -> Callable[[str], bool]:
    return lambda digits: digits.startswith(prefixes)


def _prefix_range(length: int, low: int, high: int) -> Callable[[str], bool]:
    def match(digits: str) -> bool:
        return len(digits) >= length and low <= int(digits[:length]) <= high
    return match


def _is_elo(digits: str) -> bool:
    return digits.startswith(ELO_PREFIXES) or _prefix_range(6, 506700, 506779)(digits)


def _is_mastercard(digits: str) -> bool:
    return _prefix_range(2, 51, 55)(digits) or _prefix_range(4, 2221, 2720)(digits)


# Ordem importa: primeiro match vence. Amex/Elo/Hipercard antes das faixas
# genéricas (Elo 4011.../43.../45... cairia em Visa; 50... e 6... em nada).
BRAND_TABLE: List[Tuple[Callable[[str], bool], BrandRule]] = [
    (_prefix("34", "37"), AMEX),
    (_is_elo, ELO),
    (_prefix("606282"), HIPERCARD),
    (_is_mastercard, MASTERCARD),
    (_prefix("4"), VISA),
]

DISPLAY_NAMES = {
    CardBrand.VISA: "VISA",
    CardBrand.MASTERCARD: "MASTERCARD",
    CardBrand.AMEX: "AMERICAN EXPRESS",
    CardBrand.ELO: "ELO",
    CardBrand.HIPERCARD: "HIPERCARD",
}


def digits_only(raw: str) -> str:
    return _NON_DIGITS.sub("", raw or "")


def classify(raw: str) -> BrandRule:
    """
    Ordered first-match-wins brand detection. Unmatched (or too short) input
    falls back to Visa so typing is never blocked.
    """
    digits = digits_only(raw)
    for predicate, rule in BRAND_TABLE:
        if predicate(digits):
            return rule
    return VISA


def format_number(raw: str) -> str:
    digits = digits_only(raw)
    rule = classify(digits)
    digits = digits[: rule.max_digits]
    groups = (4, 6, 5) if rule.brand == CardBrand.AMEX else (4, 4, 4, 4)
    parts = []
    start = 0
    for size in groups:
        chunk = digits[start:start + size]
        if not chunk:
            break
        parts.append(chunk)
        start += size
    return " ".join(parts)


def mask_number(raw: str) -> str:
    digits = digits_only(raw)[:16]
    padded = digits.ljust(16, "•")
    return " ".join(padded[i:i + 4] for i in range(0, 16, 4))


def display_name(brand: CardBrand) -> str:
    return DISPLAY_NAMES.get(brand, "CREDIT CARD")
