"""
Companion Generative-AI Package

Provider-agnostic generation and streaming delivery for the companion app:
- Image generation across DALL-E 3, Flux Pro and Stable Diffusion XL
- Photo understanding with GPT-4 Vision and Gemini
- Token-level chat streaming over Server-Sent Events
- Per-account cost accounting around successful generations
"""

# Package metadata
__title__ = "Companion GenAI"
__version__ = "1.0.0"
__description__ = "Generative-AI orchestration and streaming delivery"
__license__ = "MIT"

# Avoid importing submodules at package import time to keep tests lightweight
__all__ = []
