from enum import Enum


class RetryAction(str, Enum):
    REVALIDATE = "revalidate"
    REQUOTE = "requote"
    RETOKENIZE = "retokenize"
    RECOMMIT = "recommit"


class CheckoutError(Exception):
    """Base for every failure a checkout flow can surface to the user."""

    kind = "checkout"
    retry_action: RetryAction | None = None
    default_message = "Não foi possível concluir a operação. Tente novamente."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class CardValidationError(CheckoutError):
    kind = "validation"
    retry_action = RetryAction.REVALIDATE
    default_message = "Verifique os dados do cartão."

    def __init__(self, errors, message: str | None = None):
        self.errors = list(errors)
        super().__init__(message)


class QuoteError(CheckoutError):
    kind = "quote"
    retry_action = RetryAction.REQUOTE
    default_message = "Erro ao calcular os valores da mudança de plano."


class TokenizeError(CheckoutError):
    kind = "tokenize"
    retry_action = RetryAction.RETOKENIZE
    default_message = "O cartão foi recusado. Confira os dados e informe o cartão novamente."


class CommitError(CheckoutError):
    kind = "commit"
    retry_action = RetryAction.RECOMMIT
    default_message = "Não foi possível ativar a assinatura. Tente novamente."


class IncompleteConfigurationError(CheckoutError):
    """Flow opened without a usable plan. Programmer error, never retried."""

    kind = "configuration"
    default_message = "Os dados do plano estão incompletos."


class FlowStateError(Exception):
    """Operation not allowed in the flow's current state."""


class BackendError(Exception):
    """Billing backend answered with an error envelope or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)
