"""Domain exceptions for the Safe Purchase escrow.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
Every rejected precondition has its own exception type and code.
"""


class EscrowError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Authorization Errors ---


class UnauthorizedError(EscrowError):
    """Raised when the caller does not hold the role an operation requires."""

    def __init__(self, caller: str, required_role: str) -> None:
        super().__init__(
            message=f"Caller {caller!r} is not the {required_role}",
            code="UNAUTHORIZED",
        )
        self.caller = caller
        self.required_role = required_role


# --- Lifecycle Errors ---


class AlreadyPurchasedError(EscrowError):
    """Raised when a pre-purchase operation is attempted after a purchase."""

    def __init__(self) -> None:
        super().__init__(
            message="The item has already been purchased",
            code="ALREADY_PURCHASED",
        )


class IncorrectAmountError(EscrowError):
    """Raised when the funds sent do not exactly match the required amount.

    Neither overpayment nor underpayment is accepted.
    """

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(
            message=f"Incorrect amount: expected exactly {expected}, received {received}",
            code="INCORRECT_AMOUNT",
        )
        self.expected = expected
        self.received = received


class ReturnInProgressError(EscrowError):
    """Raised when an operation requires that no return is pending."""

    def __init__(self) -> None:
        super().__init__(
            message="A return is in progress",
            code="RETURN_IN_PROGRESS",
        )


class NoReturnIssuedError(EscrowError):
    """Raised when an operation requires a pending return and there is none."""

    def __init__(self) -> None:
        super().__init__(
            message="No return has been issued",
            code="NO_RETURN_ISSUED",
        )


class InvalidStateTransitionError(EscrowError):
    """Raised when an operation is not legal from the current status.

    Example: LISTED -> RETURN_ISSUED (a return needs a settled delivery first)
    """

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {attempted_event} from {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


class EscrowNotFoundError(EscrowError):
    """Raised when an escrow ID does not exist."""

    def __init__(self, escrow_id: str) -> None:
        super().__init__(
            message=f"Escrow not found: {escrow_id}",
            code="ESCROW_NOT_FOUND",
        )
        self.escrow_id = escrow_id


# --- Deadline Errors ---


class WindowExpiredError(EscrowError):
    """Raised when an operation arrives after its deadline."""

    def __init__(self, window: str, elapsed: int | None, limit: int) -> None:
        if elapsed is None:
            message = f"The {window} window never opened"
        else:
            message = f"The {window} window has expired ({elapsed}s elapsed, limit {limit}s)"
        super().__init__(message=message, code="WINDOW_EXPIRED")
        self.window = window
        self.elapsed = elapsed
        self.limit = limit


class WindowNotElapsedError(EscrowError):
    """Raised when an operation arrives before its waiting period is over."""

    def __init__(self, window: str, elapsed: int | None, limit: int) -> None:
        if elapsed is None:
            message = f"The {window} window has not started"
        else:
            message = (
                f"The {window} window has not elapsed ({elapsed}s elapsed, "
                f"must exceed {limit}s)"
            )
        super().__init__(message=message, code="WINDOW_NOT_ELAPSED")
        self.window = window
        self.elapsed = elapsed
        self.limit = limit


# --- Payment Errors ---


class PaymentFailedError(EscrowError):
    """Raised when funds could not be moved into or out of escrow custody."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="PAYMENT_FAILED")


class InsufficientCustodyError(EscrowError):
    """Raised when a withdrawal exceeds the escrowed balance."""

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            message=f"Insufficient custody: required {required}, available {available}",
            code="INSUFFICIENT_CUSTODY",
        )
        self.required = required
        self.available = available


class LedgerError(EscrowError):
    """Raised by a ledger when a transfer cannot be carried out."""

    def __init__(self, message: str, account: str | None = None) -> None:
        super().__init__(message=message, code="LEDGER_ERROR")
        self.account = account
