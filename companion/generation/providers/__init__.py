"""
Provider adapters, one module per inference provider.
"""

from .base import AsyncTaskProvider, BaseProvider
from .dalle import DallE3Adapter
from .flux import FluxAdapter
from .gemini import GeminiVisionAdapter
from .gpt4_vision import GPT4VisionAdapter
from .openai_chat import OpenAIChatAdapter
from .sdxl import SDXLAdapter
from .simulated import SimulatedTextAdapter, canned_reply

__all__ = [
    "AsyncTaskProvider",
    "BaseProvider",
    "DallE3Adapter",
    "FluxAdapter",
    "GeminiVisionAdapter",
    "GPT4VisionAdapter",
    "OpenAIChatAdapter",
    "SDXLAdapter",
    "SimulatedTextAdapter",
    "canned_reply",
]
