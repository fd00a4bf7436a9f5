"""Decision tagged union: one model per action family."""

import enum
from typing import Annotated, Literal, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, field_validator


class Action(str, enum.Enum):
    HOLD = "HOLD"
    ALLOCATE_TO_TREASURY = "ALLOCATE_TO_TREASURY"
    WITHDRAW_FROM_TREASURY = "WITHDRAW_FROM_TREASURY"
    REBALANCE = "REBALANCE"
    DEPOSIT_TO_DRIFT = "DEPOSIT_TO_DRIFT"
    OPEN_LONG = "OPEN_LONG"
    OPEN_SHORT = "OPEN_SHORT"
    CLOSE_LONG = "CLOSE_LONG"
    CLOSE_SHORT = "CLOSE_SHORT"
    # Executed-only: never proposed, only recorded
    FAILED = "FAILED"


OUTLOOKS = {"bullish", "bearish", "neutral"}


class _DecisionBase(BaseModel):
    confidence: float = 0.0
    reason: str = ""
    outlook: str = Field(
        default="neutral", validation_alias=AliasChoices("outlook", "market_outlook")
    )

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, v: float) -> float:
        return max(0.0, min(100.0, v))

    @field_validator("outlook", mode="before")
    @classmethod
    def _normalize_outlook(cls, v: object) -> str:
        text = str(v or "").strip().lower()
        return text if text in OUTLOOKS else "neutral"


class HoldDecision(_DecisionBase):
    action: Literal["HOLD"] = "HOLD"


class TransferDecision(_DecisionBase):
    action: Literal["ALLOCATE_TO_TREASURY", "WITHDRAW_FROM_TREASURY", "REBALANCE"]
    amount: float = Field(default=0.0, ge=0.0)


class DepositDecision(_DecisionBase):
    action: Literal["DEPOSIT_TO_DRIFT"] = "DEPOSIT_TO_DRIFT"
    amount: float = Field(default=0.0, ge=0.0)


class OpenDecision(_DecisionBase):
    action: Literal["OPEN_LONG", "OPEN_SHORT"]
    size: float = Field(default=0.0, ge=0.0)  # notional, USD
    leverage: float = 1.0

    @property
    def direction(self) -> str:
        return "LONG" if self.action == Action.OPEN_LONG else "SHORT"


class CloseDecision(_DecisionBase):
    action: Literal["CLOSE_LONG", "CLOSE_SHORT"]

    @property
    def direction(self) -> str:
        return "LONG" if self.action == Action.CLOSE_LONG else "SHORT"


Decision = Annotated[
    Union[HoldDecision, TransferDecision, DepositDecision, OpenDecision, CloseDecision],
    Field(discriminator="action"),
]

DECISION_ADAPTER: TypeAdapter = TypeAdapter(Decision)


def hold(reason: str, confidence: float = 0.0, outlook: str = "neutral") -> HoldDecision:
    return HoldDecision(confidence=confidence, reason=reason, outlook=outlook)
