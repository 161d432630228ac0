# utils/sales_analytics/classifiers.py
"""
Boundary mapping for free-text categorical fields.

Deal stages and risk flags arrive from the store as loosely-typed strings.
They are mapped here into closed enums (with an explicit fallback member)
before any scoring arithmetic touches them.
"""

from enum import Enum
from typing import Iterable, Optional

import pandas as pd

from .constants import NOT_HIGH_RISK_VALUES


class DealOutcome(Enum):
    WON = 'won'
    OTHER = 'other'


class RiskFlag(Enum):
    HIGH = 'high'
    NOT_HIGH = 'not_high'
    UNKNOWN = 'unknown'


class FunnelStage(Enum):
    """Pipeline stage of a historical deal row."""

    PROSPECTING = 'prospecting'
    QUALIFIED = 'qualified'
    PROPOSAL = 'proposal'
    NEGOTIATION = 'negotiation'
    CLOSED_WON = 'closed_won'
    CLOSED_LOST = 'closed_lost'
    UNKNOWN = 'unknown'

    @classmethod
    def parse(cls, value: Optional[str]) -> 'FunnelStage':
        """Map a raw ``deal_stage`` string, folding ``won``/``lost`` into the closed stages."""
        if not isinstance(value, str):
            return cls.UNKNOWN
        raw = value.strip()
        raw = _STAGE_ALIASES.get(raw, raw)
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN

    @property
    def rank(self) -> Optional[int]:
        """Position along the funnel; won and lost share the terminal rank."""
        return _STAGE_RANKS.get(self)

    @property
    def is_terminal(self) -> bool:
        return self in (FunnelStage.CLOSED_WON, FunnelStage.CLOSED_LOST)


_STAGE_ALIASES = {
    'won': 'closed_won',
    'lost': 'closed_lost',
}

_STAGE_RANKS = {
    FunnelStage.PROSPECTING: 0,
    FunnelStage.QUALIFIED: 1,
    FunnelStage.PROPOSAL: 2,
    FunnelStage.NEGOTIATION: 3,
    FunnelStage.CLOSED_WON: 4,
    FunnelStage.CLOSED_LOST: 4,
}

# Non-terminal stages in funnel order
LINEAR_FUNNEL_STAGES = [
    FunnelStage.PROSPECTING,
    FunnelStage.QUALIFIED,
    FunnelStage.PROPOSAL,
    FunnelStage.NEGOTIATION,
]

FUNNEL_STAGES = LINEAR_FUNNEL_STAGES + [FunnelStage.CLOSED_WON, FunnelStage.CLOSED_LOST]


def classify_outcome(stage: Optional[str], won_stages: Iterable[str]) -> DealOutcome:
    """Exact, case-sensitive match of a deal stage against one endpoint's won literals."""
    if isinstance(stage, str) and stage in won_stages:
        return DealOutcome.WON
    return DealOutcome.OTHER


def classify_risk(value: Optional[str], high_risk_values: Iterable[str]) -> RiskFlag:
    """Exact, case-sensitive match of ``is_high_risk`` against one endpoint's literals."""
    if not isinstance(value, str):
        return RiskFlag.UNKNOWN
    if value in high_risk_values:
        return RiskFlag.HIGH
    if value in NOT_HIGH_RISK_VALUES:
        return RiskFlag.NOT_HIGH
    return RiskFlag.UNKNOWN


def won_mask(stages: pd.Series, won_stages: Iterable[str]) -> pd.Series:
    """Boolean Series: True where the stage classifies as WON."""
    won_stages = frozenset(won_stages)
    return stages.map(lambda s: classify_outcome(s, won_stages) is DealOutcome.WON).astype(bool)


def high_risk_mask(flags: pd.Series, high_risk_values: Iterable[str]) -> pd.Series:
    """Boolean Series: True where the flag classifies as HIGH."""
    high_risk_values = frozenset(high_risk_values)
    return flags.map(lambda v: classify_risk(v, high_risk_values) is RiskFlag.HIGH).astype(bool)
