"""
Prompt Enhancement Pipeline

Pure transformations from a raw user prompt plus options to the text sent to
providers. Unknown style or appearance keys fall back to defaults so a typo
never blocks a request.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .types import GenerationOptions


@dataclass(frozen=True)
class StylePreset:
    prefix: str
    suffix: str


STYLE_PRESETS: Dict[str, StylePreset] = {
    "realistic": StylePreset(
        prefix="photorealistic, highly detailed, 8k resolution, professional photography",
        suffix="cinematic lighting, sharp focus, depth of field",
    ),
    "anime": StylePreset(
        prefix="anime style, detailed anime art, vibrant colors, cel shaded",
        suffix="high quality anime artwork, expressive eyes, clean linework",
    ),
    "artistic": StylePreset(
        prefix="artistic painting, oil painting style, masterpiece quality",
        suffix="detailed brushstrokes, rich colors, museum quality",
    ),
    "professional": StylePreset(
        prefix="professional portrait, studio lighting, high-end photography",
        suffix="editorial quality, fashion photography, impeccable detail",
    ),
    "fantasy": StylePreset(
        prefix="fantasy art, magical atmosphere, ethereal lighting",
        suffix="mystical, dreamlike quality, enchanted scene",
    ),
    "romantic": StylePreset(
        prefix="romantic scene, soft lighting, warm tones, intimate atmosphere",
        suffix="dreamy, tender moment, emotional connection",
    ),
}
DEFAULT_STYLE = "realistic"

COMPANION_APPEARANCES: Dict[str, str] = {
    "default": "attractive person with kind eyes and warm smile",
    "elegant": "elegant and sophisticated person with refined features",
    "cute": "cute and cheerful person with bright eyes",
    "mysterious": "mysterious and alluring person with captivating gaze",
    "athletic": "athletic and energetic person with confident posture",
}
DEFAULT_APPEARANCE = "default"

QUALITY_MARKERS = "masterpiece, best quality, highly detailed"

# Quick presets; caller customization wins over template values
TEMPLATES: Dict[str, Dict[str, str]] = {
    "selfie": {
        "prompt": "taking a selfie, smiling at camera",
        "style": "realistic",
        "pose": "selfie pose with phone",
    },
    "formal": {
        "prompt": "professional portrait",
        "style": "professional",
        "outfit": "formal business attire",
    },
    "casual": {
        "prompt": "relaxed and comfortable",
        "style": "realistic",
        "outfit": "casual everyday clothes",
    },
    "fantasy": {
        "prompt": "in a magical setting",
        "style": "fantasy",
        "setting": "enchanted forest with glowing lights",
    },
    "beach": {
        "prompt": "enjoying the beach",
        "style": "realistic",
        "setting": "beautiful tropical beach at sunset",
        "outfit": "beach attire",
    },
    "coffee": {
        "prompt": "at a cozy café",
        "style": "artistic",
        "setting": "warm coffee shop interior",
        "pose": "sitting with coffee cup",
    },
}


def enhance(raw_prompt: str, options: Optional[GenerationOptions] = None) -> str:
    """
    Compose the provider-ready prompt.

    Order: style prefix, appearance, outfit, pose, setting, raw prompt,
    style suffix, quality markers. Deterministic and total.
    """
    options = options or GenerationOptions()
    preset = STYLE_PRESETS.get(options.style, STYLE_PRESETS[DEFAULT_STYLE])
    appearance = COMPANION_APPEARANCES.get(
        options.companion_appearance, COMPANION_APPEARANCES[DEFAULT_APPEARANCE]
    )

    parts = [preset.prefix, appearance]
    if options.outfit:
        parts.append(f"wearing {options.outfit}")
    if options.pose:
        parts.append(options.pose)
    if options.setting:
        parts.append(f"in {options.setting}")
    if raw_prompt:
        parts.append(raw_prompt)
    parts.append(preset.suffix)
    parts.append(QUALITY_MARKERS)

    return ", ".join(parts)


def resolve_template(template_id: str) -> Optional[Dict[str, str]]:
    """Return a copy of the template or None when unknown"""
    template = TEMPLATES.get(template_id)
    return dict(template) if template else None


@dataclass(frozen=True)
class AnalysisPrompt:
    system: str
    user: str


DEFAULT_TRAITS = {"friendly": 0.8, "caring": 0.9, "playful": 0.7, "supportive": 0.9}

ANALYSIS_USER_PROMPT = (
    "Please analyze this photo I'm sharing with you. What do you see? What do you think about it?"
)


def build_analysis_prompt(
    companion_name: str = "companion", personality: Optional[Mapping[str, Any]] = None
) -> AnalysisPrompt:
    """Personality-aware prompt for photo understanding"""
    personality = personality or {}
    # Zero and missing traits both use the default
    traits = {name: personality.get(name) or default for name, default in DEFAULT_TRAITS.items()}

    system = f"You are {companion_name}, a caring AI companion. "
    if traits["playful"] > 0.7:
        system += "You're playful and love to make observations with a fun twist. "
    if traits["caring"] > 0.8:
        system += "You're deeply caring and show genuine interest in everything shared with you. "
    if traits["supportive"] > 0.8:
        system += "You're supportive and encouraging, always finding positive aspects. "

    system += "When analyzing photos, you:"
    system += "\n1. Show genuine interest and excitement"
    system += "\n2. Notice specific details (objects, colors, emotions, setting)"
    system += "\n3. Ask thoughtful follow-up questions"
    system += "\n4. Share relatable comments or memories"
    system += "\n5. Give compliments naturally when appropriate"
    system += "\n6. Keep responses conversational and warm (2-4 sentences)"

    return AnalysisPrompt(system=system, user=ANALYSIS_USER_PROMPT)
