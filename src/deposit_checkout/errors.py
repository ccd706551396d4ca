"""Error taxonomy for deposit checkout operations."""


class DepositCheckoutError(Exception):
    """Base error carrying an HTTP status and a machine-readable code."""

    status_code = 500
    code = "internal_error"
    public_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)


class ValidationFailed(DepositCheckoutError):
    """Client input was malformed; every violation is listed."""

    status_code = 400
    code = "validation_failed"
    public_message = "Validation failed"

    def __init__(self, errors: list[str]) -> None:
        super().__init__(self.public_message)
        self.errors = list(errors)


class SessionNotFound(DepositCheckoutError):
    status_code = 404
    code = "session_not_found"
    public_message = "Session not found or expired"


class RecordNotFound(DepositCheckoutError):
    """No partial payment record exists for the order; not retryable."""

    status_code = 404
    code = "record_not_found"
    public_message = "Partial payment record not found"


class AuthenticationFailure(DepositCheckoutError):
    status_code = 401
    code = "invalid_signature"
    public_message = "Invalid webhook signature"


class OrderNotResolved(DepositCheckoutError):
    status_code = 400
    code = "order_not_resolved"
    public_message = "Order ID not found in webhook data"


class AmountMismatch(DepositCheckoutError):
    status_code = 422
    code = "amount_mismatch"
    public_message = "Paid amount does not match the outstanding amount"


class UpstreamFailure(DepositCheckoutError):
    """The order gateway failed; the caller may retry."""

    status_code = 500
    code = "upstream_failure"
    public_message = "Order gateway request failed"
