"""
Inputs and outputs of the enrichment collaborators.

The reconciler decides when to call financial inference and fit scoring;
the algorithms themselves live outside this package.
"""

from dataclasses import dataclass
from typing import Optional

from .enums import PrimaryTrade


@dataclass(frozen=True)
class FinancialInputs:
    asking_price: Optional[float] = None
    revenue: Optional[float] = None
    ebitda: Optional[float] = None
    sde: Optional[float] = None
    cash_flow: Optional[float] = None
    industry: Optional[str] = None
    category: Optional[str] = None
    price_to_sde: Optional[float] = None
    price_to_ebitda: Optional[float] = None


@dataclass(frozen=True)
class InferenceResult:
    inferred_ebitda: Optional[float]
    inferred_sde: Optional[float]
    inference_method: str
    inference_confidence: float


@dataclass(frozen=True)
class FitScoreInputs:
    primary_trade: PrimaryTrade
    revenue: Optional[float] = None
    established: Optional[int] = None
    state: Optional[str] = None
    metro_area: Optional[str] = None
    asking_price: Optional[float] = None
    ebitda: Optional[float] = None
    inferred_ebitda: Optional[float] = None
    target_multiple_low: float = 3.0
    target_multiple_high: float = 5.0


@dataclass(frozen=True)
class FitScoreResult:
    fit_score: float
