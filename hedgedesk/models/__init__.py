"""Database models."""

from hedgedesk.models.account import Account
from hedgedesk.models.hedge_order import HedgeOrder
from hedgedesk.models.attempt_log import AttemptLog
from hedgedesk.models.operator import Operator

__all__ = [
    "Account",
    "HedgeOrder",
    "AttemptLog",
    "Operator",
]
