from dataclasses import dataclass, field
from enum import Enum


class CardBrand(str, Enum):
    VISA = "visa"
    MASTERCARD = "mastercard"
    AMEX = "amex"
    ELO = "elo"
    HIPERCARD = "hipercard"


class CardField(str, Enum):
    NUMBER = "number"
    HOLDER_NAME = "holder_name"
    EXPIRY_MONTH = "expiry_month"
    EXPIRY_YEAR = "expiry_year"
    CVV = "cvv"


class CardFace(str, Enum):
    FRONT = "front"
    BACK = "back"


class ValidationErrorKind(str, Enum):
    NUMBER_TOO_SHORT = "NUMBER_TOO_SHORT"
    NAME_TOO_SHORT = "NAME_TOO_SHORT"
    MONTH_OUT_OF_RANGE = "MONTH_OUT_OF_RANGE"
    CARD_EXPIRED = "CARD_EXPIRED"
    CVV_TOO_SHORT = "CVV_TOO_SHORT"


VALIDATION_MESSAGES = {
    ValidationErrorKind.NUMBER_TOO_SHORT: "Número do cartão incompleto",
    ValidationErrorKind.NAME_TOO_SHORT: "Nome do titular inválido",
    ValidationErrorKind.MONTH_OUT_OF_RANGE: "Mês de validade inválido",
    ValidationErrorKind.CARD_EXPIRED: "Cartão vencido",
    ValidationErrorKind.CVV_TOO_SHORT: "CVV inválido",
}


@dataclass(frozen=True)
class CardInput:
    """Snapshot of the entered card fields, read by a commit attempt."""

    number: str
    holder_name: str
    expiry_month: str
    expiry_year: str
    cvv: str

    @property
    def digits(self) -> str:
        return "".join(ch for ch in self.number if ch.isdigit())

    def __repr__(self) -> str:
        # Nunca expor PAN/CVV em logs
        return f"CardInput(last4={self.digits[-4:]!r}, holder_name={self.holder_name!r})"


@dataclass
class ValidationResult:
    errors: list[ValidationErrorKind] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def messages(self) -> list[str]:
        return [VALIDATION_MESSAGES[e] for e in self.errors]
