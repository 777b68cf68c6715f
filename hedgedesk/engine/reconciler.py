"""Derive a hedge trade's open/flat state from live position snapshots.

The venue gives no shared transaction id across accounts, so "these legs
belong to the same trade" is approximated: sizes must cancel out and the
legs' last-update timestamps must sit inside a short window. Under clock
skew or delayed fills this can misclassify a trade; the window is a
setting, not a guarantee.
"""

from collections.abc import Mapping
from itertools import combinations

from hedgedesk.engine.precision import round_half_up
from hedgedesk.engine.types import DerivedTradeState, LivePosition

DEFAULT_WINDOW_MS = 2000
SIZE_DECIMALS = 3


def _size(position: LivePosition | None) -> float:
    if position is None or not position.is_open:
        return 0.0
    return position.signed_size


def _within_window(positions: list[LivePosition], window_ms: int) -> bool:
    stamps = [p.update_time for p in positions]
    if any(ts is None for ts in stamps):
        return False
    return all(abs(a - b) <= window_ms for a, b in combinations(stamps, 2))


def reconcile(
    order,
    positions: Mapping[str, LivePosition | None],
    window_ms: int = DEFAULT_WINDOW_MS,
) -> DerivedTradeState:
    """Compute the derived state of ``order``.

    ``positions`` maps account name to that account's position in the
    order's symbol. ``None`` means the account is known to be flat; a
    missing key means no snapshot has been fetched yet.
    """
    participants = [order.primary_account, *order.hedge_accounts]
    known = {name: positions[name] for name in participants if name in positions}
    sizes = {name: _size(pos) for name, pos in known.items()}

    any_leg_open = any(size != 0 for size in sizes.values())
    is_fully_flat = len(known) == len(participants) and not any_leg_open

    return DerivedTradeState(
        is_fully_open=_is_matched(order, known, window_ms),
        is_fully_flat=is_fully_flat,
        any_leg_open=any_leg_open,
    )


def _is_matched(order, known: Mapping[str, LivePosition | None], window_ms: int) -> bool:
    participants = [order.primary_account, *order.hedge_accounts]
    legs = [known.get(name) for name in participants]
    if any(leg is None or not leg.is_open for leg in legs):
        return False

    primary, *hedges = legs
    if len(hedges) == 2 and hedges[0].signed_size * hedges[1].signed_size <= 0:
        return False
    if any(primary.signed_size * h.signed_size >= 0 for h in hedges):
        return False

    net = primary.signed_size + sum(h.signed_size for h in hedges)
    if round_half_up(net, SIZE_DECIMALS) != 0:
        return False

    return _within_window(legs, window_ms)
