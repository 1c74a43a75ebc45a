"""
Typeface readiness for text mutation.

Text content can only be changed once the element's typeface is loaded.
load_typeface() resolves the typeface (falling back to a default when the
element's typeface is mixed or unreadable) and awaits the host loader.
apply_typeface() is the synchronous half, run right before the text write:
it sets the fallback on elements that had no single typeface.

Invariants:
    - Resolution never raises; ambiguity falls back to the default font
    - The loader is awaited exactly once per element per operation
    - There is no timeout: a loader that never resolves stalls only the
      request that is waiting on it, so callers load before taking any lock
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from ..errors import FontResolutionFailure
from .tree import Element, FontName, TextElement

logger = logging.getLogger(__name__)

DEFAULT_FONT = FontName("Inter", "Regular")


@runtime_checkable
class TypefaceLoader(Protocol):
    """Host operation that makes a typeface available for text edits."""

    async def load(self, font: FontName) -> None:
        ...


class InstantTypefaceLoader:
    """Loader for headless documents: every typeface is available at once.

    Attributes:
        loaded: Fonts requested so far, in request order
    """

    def __init__(self) -> None:
        self.loaded: list[FontName] = []

    async def load(self, font: FontName) -> None:
        self.loaded.append(font)


def resolve_typeface(element: Element) -> FontName:
    """Typeface of a text element.

    Raises:
        FontResolutionFailure: If the element is not text or its typeface
            is mixed or unknown
    """
    if not isinstance(element, TextElement):
        raise FontResolutionFailure("Element has no typeface", element_id=element.id)
    if not isinstance(element.font_name, FontName):
        raise FontResolutionFailure(
            f"Typeface is {element.font_name!r}", element_id=element.id
        )
    return element.font_name


async def load_typeface(
    element: Element,
    loader: TypefaceLoader,
    fallback: FontName = DEFAULT_FONT,
) -> FontName:
    """Load the typeface a text edit of element will use.

    Returns:
        The element's own typeface, or fallback when it cannot be resolved
    """
    try:
        font = resolve_typeface(element)
    except FontResolutionFailure as e:
        logger.warning(
            "Using fallback typeface",
            extra={"element_id": element.id, "reason": e.message, "fallback": fallback.family},
        )
        font = fallback

    await loader.load(font)
    return font


def apply_typeface(element: TextElement, font: FontName) -> None:
    """Set a loaded fallback on an element whose typeface is mixed or unknown."""
    if not isinstance(element.font_name, FontName):
        element.font_name = font
