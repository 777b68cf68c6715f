"""Error taxonomy for hedge trade planning and execution.

Validation errors are raised before any network call. Execution errors
(``LegSubmissionFailed``, ``PartialFailure``) are raised after legs have
started and are never rolled back automatically.
"""


class HedgeError(Exception):
    """Base class for every error surfaced by the hedge engine."""


class InvalidInput(HedgeError):
    """Malformed or missing order fields, or an order in the wrong state."""


class AccountStateUnavailable(InvalidInput):
    """No account snapshot has been fetched for a participant yet."""

    def __init__(self, account: str):
        self.account = account
        super().__init__(f"Account state for {account} is not available yet, refresh and retry")


class AttemptInProgress(HedgeError):
    """An opening or closing attempt is already running for this order."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"An attempt is already in progress for order {order_id}")


class LeverageMismatch(HedgeError):
    def __init__(self, leverages: dict[str, float]):
        self.leverages = dict(leverages)
        detail = ", ".join(f"{name}={lev:g}x" for name, lev in self.leverages.items())
        super().__init__(f"All accounts must use the same leverage ({detail})")


class InsufficientMargin(HedgeError):
    """Requested size is not below the margin-derived ceiling."""

    def __init__(self, ceiling: float, account: str | None = None):
        self.ceiling = ceiling
        self.account = account
        if account:
            msg = f"{account}: quantity must be less than {ceiling:.3f}"
        else:
            msg = f"Amount must be less than {ceiling:.3f}"
        super().__init__(msg)


class PriceUnavailable(HedgeError):
    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"No current price for {symbol}, try again shortly")


class CredentialsMissing(HedgeError):
    def __init__(self, account: str):
        self.account = account
        super().__init__(f"No API key/secret stored for account {account}")


class LegSubmissionFailed(HedgeError):
    """The venue rejected an order for one specific leg."""

    def __init__(self, account: str, reason: str):
        self.account = account
        self.reason = reason
        super().__init__(f"{account}: {reason}")


class PartialFailure(HedgeError):
    """Some legs of a multi-leg attempt failed while others went through."""

    def __init__(self, action: str, failures: list[LegSubmissionFailed], succeeded: list[str]):
        self.action = action
        self.failures = list(failures)
        self.succeeded = list(succeeded)
        failed = "; ".join(str(f) for f in self.failures)
        done = ", ".join(self.succeeded) or "none"
        super().__init__(f"{action.capitalize()} failed for {failed} (completed: {done})")
