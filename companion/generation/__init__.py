"""
Generation subsystem: prompt enhancement, pricing, provider adapters,
fallback orchestration and ledger gating.
"""

from .orchestrator import FallbackOrchestrator, run_chain
from .pricing import quote
from .prompts import enhance
from .registry import ProviderRegistry
from .service import GenerationService, PhotoAnalysis

__all__ = [
    "FallbackOrchestrator",
    "GenerationService",
    "PhotoAnalysis",
    "ProviderRegistry",
    "enhance",
    "quote",
    "run_chain",
]
