"""
Prompt assembly for the generation collaborator.

The assembled prompt is an ordered list of instruction strings. History
avoidance guidance and style guidance always come before the user's
explicit request.
"""

from typing import Optional

from .types import StyleConfig

HISTORY_GUIDANCE = (
    "History of previous prompts and comments, most recent first. "
    "Avoid repeating recent subjects, favour what the user loved or liked, "
    "steer away from what they disliked, and treat comments as feedback:"
)

DEFAULT_REQUEST = "Create a new wallpaper image prompt."


def style_guidance(style: StyleConfig) -> str:
    lines = []
    if style.style:
        lines.append(f"Style for every image: {style.style}")
    if style.contents:
        lines.append(f"Kinds of images to create: {style.contents}")
    if style.negative_contents:
        lines.append(f"Avoid: {style.negative_contents}")
    return "\n".join(lines)


def build_prompt_messages(
    history: str,
    style: StyleConfig,
    request: Optional[str] = None,
) -> list[str]:
    """
    Assemble instructions for a generation request.

    Args:
        history: Rendered history text from ``aggregate_history``
        style: Current style configuration
        request: Optional explicit request from the user

    Returns:
        [history guidance, style guidance, request]
    """
    history_text = history if history else "(no history yet)"
    messages = [f"{HISTORY_GUIDANCE}\n{history_text}"]
    guidance = style_guidance(style)
    if guidance:
        messages.append(guidance)
    if request and request.strip():
        messages.append(f"For this image the user requested: '{request.strip()}'")
    else:
        messages.append(DEFAULT_REQUEST)
    return messages
