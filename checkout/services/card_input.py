import datetime as dt

from checkout.schemas.card import CardFace, CardField, CardInput, ValidationErrorKind, ValidationResult
from checkout.services.card_brand import classify, digits_only, display_name, format_number, mask_number

MIN_HOLDER_NAME = 3


def _month_value(month: str) -> int | None:
    if len(month) != 2 or not month.isdigit():
        return None
    value = int(month)
    return value if 1 <= value <= 12 else None


def is_expired(month: int, year_2d: str, today: dt.date) -> bool:
    if len(year_2d) != 2 or not year_2d.isdigit():
        return True
    year = 2000 + int(year_2d)
    return (year, month) < (today.year, today.month)


def validate(card: CardInput, today: dt.date | None = None) -> ValidationResult:
    """
    Checks a captured card against the brand rules. Errors come back in a fixed
    order: number, name, month, expiry, cvv.
    """
    today = today or dt.date.today()
    errors: list[ValidationErrorKind] = []
    rule = classify(card.digits)

    if len(card.digits) < rule.max_digits:
        errors.append(ValidationErrorKind.NUMBER_TOO_SHORT)
    if len(card.holder_name.strip()) < MIN_HOLDER_NAME:
        errors.append(ValidationErrorKind.NAME_TOO_SHORT)

    month = _month_value(card.expiry_month)
    if month is None:
        # headless: um dígito só é ambíguo, exige dois
        errors.append(ValidationErrorKind.MONTH_OUT_OF_RANGE)
    elif is_expired(month, card.expiry_year, today):
        errors.append(ValidationErrorKind.CARD_EXPIRED)

    cvv = digits_only(card.cvv)
    if len(cvv) != rule.cvv_length or cvv != card.cvv:
        errors.append(ValidationErrorKind.CVV_TOO_SHORT)
    return ValidationResult(errors=errors)


class CardDraft:
    """
    Local model of the card capture widget. Applies the input-time corrections
    (month padding and clamping, digit filtering, reformatting) and owns the
    front/back gate. Only a commit attempt reads it, through `to_card_input`.
    """

    def __init__(self):
        self.number = ""
        self.holder_name = ""
        self.expiry_month = ""
        self.expiry_year = ""
        self.cvv = ""
        self.face = CardFace.FRONT
        self.focus = CardField.NUMBER

    @property
    def brand(self):
        return classify(self.number).brand

    def update(self, field: CardField, value: str) -> "CardDraft":
        field = CardField(field)
        if field == CardField.NUMBER:
            self.number = format_number(value)
            # troca de bandeira pode encurtar o CVV permitido
            self.cvv = self.cvv[: classify(self.number).cvv_length]
        elif field == CardField.HOLDER_NAME:
            self.holder_name = (value or "").upper()
        elif field == CardField.EXPIRY_MONTH:
            self._update_month(value)
        elif field == CardField.EXPIRY_YEAR:
            self.expiry_year = digits_only(value)[:2]
        elif field == CardField.CVV:
            self.cvv = digits_only(value)[: classify(self.number).cvv_length]
        if field != CardField.EXPIRY_MONTH:
            self.focus = field
        return self

    def _update_month(self, value: str) -> None:
        digits = digits_only(value)
        self.focus = CardField.EXPIRY_MONTH
        if len(digits) > 2:
            return
        if len(digits) == 1 and int(digits) > 1:
            self.expiry_month = "0" + digits
            self.focus = CardField.EXPIRY_YEAR
            return
        if len(digits) == 2:
            if int(digits) > 12:
                digits = "12"
            self.focus = CardField.EXPIRY_YEAR
        self.expiry_month = digits

    @property
    def is_complete(self) -> bool:
        digits = digits_only(self.number)
        return (
            len(digits) >= classify(digits).max_digits
            and len(self.holder_name) >= MIN_HOLDER_NAME
            and len(self.expiry_month) == 2
            and len(self.expiry_year) == 2
        )

    def flip_to_back(self) -> bool:
        if not self.is_complete:
            return False
        self.face = CardFace.BACK
        self.focus = CardField.CVV
        return True

    def flip_to_front(self) -> bool:
        self.face = CardFace.FRONT
        return True

    def to_card_input(self) -> CardInput:
        return CardInput(
            number=self.number,
            holder_name=self.holder_name,
            expiry_month=self.expiry_month,
            expiry_year=self.expiry_year,
            cvv=self.cvv,
        )

    def snapshot(self) -> dict:
        digits = digits_only(self.number)
        return {
            "number": self.number,
            "last4": digits[-4:],
            "brand": self.brand.value,
            "brandName": display_name(self.brand),
            "masked": mask_number(self.number),
            "holderName": self.holder_name,
            "expiryMonth": self.expiry_month,
            "expiryYear": self.expiry_year,
            "cvvLength": len(self.cvv),
            "face": self.face.value,
            "focus": self.focus.value,
            "isComplete": self.is_complete,
        }
