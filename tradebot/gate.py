"""
Execution gate: the single place that decides whether a trade may touch the
real exchange.

Decision table:

    mode    capable   result
    ------  --------  ------------------------------------------------------
    live    yes       Authorized(LIVE)
    live    no        Rejected("live trading unavailable: credentials not configured")
    paper   any       Authorized(PAPER)
    other   any       Rejected("unknown mode")

Capability is computed once, at construction, from the exchange client the
gate is given: ``None`` (credentials absent or construction failed) means
paper-only.
"""
from dataclasses import dataclass
from typing import Any, Optional, Union

from .models import TradeMode, TradeRequest

LIVE_UNAVAILABLE = "live trading unavailable: credentials not configured"
UNKNOWN_MODE = "unknown mode"


@dataclass(frozen=True)
class Authorized:
    mode: TradeMode


@dataclass(frozen=True)
class Rejected:
    reason: str


Decision = Union[Authorized, Rejected]


class ExecutionGate:
    def __init__(self, client: Optional[Any]):
        self._live_capable = client is not None and bool(getattr(client, "live_capable", False))

    def can_execute_live(self) -> bool:
        return self._live_capable

    def authorize(self, request: TradeRequest) -> Decision:
        mode = request.mode.value if isinstance(request.mode, TradeMode) else request.mode
        if mode == TradeMode.PAPER.value:
            return Authorized(TradeMode.PAPER)
        if mode == TradeMode.LIVE.value:
            if not self._live_capable:
                return Rejected(LIVE_UNAVAILABLE)
            return Authorized(TradeMode.LIVE)
        return Rejected(UNKNOWN_MODE)
