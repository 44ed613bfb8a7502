"""
Callable signatures for the enrichment collaborators.
"""

from typing import Awaitable, Callable, Optional

from src.domain.entities.enrichment import (
    FinancialInputs,
    FitScoreInputs,
    FitScoreResult,
    InferenceResult,
)

FinancialInference = Callable[[FinancialInputs], Awaitable[Optional[InferenceResult]]]
FitScorer = Callable[[FitScoreInputs], FitScoreResult]
