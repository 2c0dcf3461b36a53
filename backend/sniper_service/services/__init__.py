"""Business services."""

from sniper_service.services.signal_service import SignalService
from sniper_service.services.resolver import (
    Resolution,
    ResultResolver,
    evaluate_outcome,
    find_realized_bar,
    parse_entry_zone,
)

__all__ = [
    "SignalService",
    "Resolution",
    "ResultResolver",
    "evaluate_outcome",
    "find_realized_bar",
    "parse_entry_zone",
]
