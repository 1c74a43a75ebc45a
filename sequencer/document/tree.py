"""
Document tree model for Sequencer.

The host owns the real document; this module models the slice of it the
engine needs:
- Elements tagged with a type, carrying per-element plugin data
- Text leaves with readable/writable characters and a typeface
- Containers with ordered children
- A Document with a current page, a selection and selection listeners

The in-memory implementation also backs tests, the CLI and the HTTP bridge
(documents round-trip through to_dict/from_dict).

Invariants:
    - Element ids are unique within a document
    - Plugin data is independent of content; copying an element copies it
      verbatim (this is how copy/paste produces duplicate stamps)
    - Selection listeners fire after every selection change

How to change safely:
    - Keep to_dict output stable; saved documents are read back by the CLI
    - New element types must declare whether they are containers
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ElementType(Enum):
    """Element type tags."""

    PAGE = "PAGE"
    FRAME = "FRAME"
    GROUP = "GROUP"
    COMPONENT = "COMPONENT"
    INSTANCE = "INSTANCE"
    SECTION = "SECTION"
    TEXT = "TEXT"
    RECTANGLE = "RECTANGLE"
    ELLIPSE = "ELLIPSE"
    VECTOR = "VECTOR"

    @property
    def is_container(self) -> bool:
        return self in _CONTAINER_TYPES


_CONTAINER_TYPES = frozenset(
    {
        ElementType.PAGE,
        ElementType.FRAME,
        ElementType.GROUP,
        ElementType.COMPONENT,
        ElementType.INSTANCE,
        ElementType.SECTION,
    }
)


@dataclass(frozen=True)
class FontName:
    """Typeface reference of a text element."""

    family: str
    style: str = "Regular"

    def to_dict(self) -> dict[str, str]:
        return {"family": self.family, "style": self.style}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FontName:
        return cls(family=data["family"], style=data.get("style", "Regular"))


class _Mixed:
    """Sentinel for a text element whose runs use different typefaces."""

    _instance: _Mixed | None = None

    def __new__(cls) -> _Mixed:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MIXED"


MIXED = _Mixed()


def _next_id() -> str:
    return uuid.uuid4().hex[:12]


class Element:
    """A node of the document tree.

    Attributes:
        id: Unique element id
        type: Element type tag
        name: Layer name
        children: Ordered children (containers only)
    """

    def __init__(
        self,
        type: ElementType,
        name: str = "",
        children: list[Element] | None = None,
        id: str | None = None,
        plugin_data: dict[str, str] | None = None,
    ) -> None:
        if children and not type.is_container:
            raise ValueError(f"{type.value} elements cannot have children")
        self.id = id or _next_id()
        self.type = type
        self.name = name or type.value.title()
        self.children: list[Element] = list(children or [])
        self.parent: Element | None = None
        self._plugin_data: dict[str, str] = dict(plugin_data or {})
        for child in self.children:
            child.parent = self

    @property
    def is_container(self) -> bool:
        return self.type.is_container

    @property
    def is_text(self) -> bool:
        return self.type == ElementType.TEXT

    def get_plugin_data(self, key: str) -> str:
        """Read per-element metadata ("" when absent)."""
        return self._plugin_data.get(key, "")

    def set_plugin_data(self, key: str, value: str) -> None:
        """Write per-element metadata."""
        self._plugin_data[key] = value

    def plugin_data_keys(self) -> list[str]:
        return [k for k, v in self._plugin_data.items() if v]

    def append_child(self, child: Element) -> Element:
        if not self.is_container:
            raise ValueError(f"{self.type.value} elements cannot have children")
        child.parent = self
        self.children.append(child)
        return child

    def walk(self) -> Iterator[Element]:
        """Depth-first, pre-order traversal including self."""
        yield self
        for child in self.children:
            yield from child.walk()

    def clone(self) -> Element:
        """Deep copy with fresh ids and verbatim plugin data."""
        return Element(
            type=self.type,
            name=self.name,
            children=[child.clone() for child in self.children],
            plugin_data=self._plugin_data,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "type": self.type.value, "name": self.name}
        if self._plugin_data:
            data["pluginData"] = dict(self._plugin_data)
        if self.is_container:
            data["children"] = [child.to_dict() for child in self.children]
        return data

    def __repr__(self) -> str:
        return f"<{self.type.value} id={self.id!r} name={self.name!r}>"


class TextElement(Element):
    """A text leaf.

    Attributes:
        characters: Text content
        font_name: Typeface, MIXED when runs differ, None when unknown
    """

    def __init__(
        self,
        characters: str = "",
        font_name: FontName | _Mixed | None = None,
        name: str = "",
        id: str | None = None,
        plugin_data: dict[str, str] | None = None,
    ) -> None:
        super().__init__(ElementType.TEXT, name=name or "Text", id=id, plugin_data=plugin_data)
        self.font_name: FontName | _Mixed | None = font_name
        self._characters = characters

    @property
    def characters(self) -> str:
        return self._characters

    @characters.setter
    def characters(self, value: str) -> None:
        self._characters = value

    def clone(self) -> TextElement:
        return TextElement(
            characters=self._characters,
            font_name=self.font_name,
            name=self.name,
            plugin_data=self._plugin_data,
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["characters"] = self._characters
        if isinstance(self.font_name, FontName):
            data["fontName"] = self.font_name.to_dict()
        elif self.font_name is MIXED:
            data["fontName"] = "MIXED"
        return data


def element_from_dict(data: dict[str, Any]) -> Element:
    """Rebuild an element subtree from its to_dict() form."""
    element_type = ElementType(data["type"])
    plugin_data = data.get("pluginData")

    if element_type == ElementType.TEXT:
        raw_font = data.get("fontName")
        font: FontName | _Mixed | None
        if raw_font == "MIXED":
            font = MIXED
        elif isinstance(raw_font, dict):
            font = FontName.from_dict(raw_font)
        else:
            font = None
        return TextElement(
            characters=data.get("characters", ""),
            font_name=font,
            name=data.get("name", ""),
            id=data.get("id"),
            plugin_data=plugin_data,
        )

    return Element(
        type=element_type,
        name=data.get("name", ""),
        children=[element_from_dict(child) for child in data.get("children", [])],
        id=data.get("id"),
        plugin_data=plugin_data,
    )


SelectionListener = Callable[[list[Element]], None]


class Document:
    """A document with one current page and a user selection.

    Example:
        >>> label = TextElement("INV-0099")
        >>> doc = Document(Element(ElementType.PAGE, children=[label]))
        >>> doc.select([label])
        >>> doc.selection == [label]
        True
    """

    def __init__(self, current_page: Element | None = None, name: str = "Untitled") -> None:
        self.name = name
        self.current_page = current_page or Element(ElementType.PAGE, name="Page 1")
        if self.current_page.type != ElementType.PAGE:
            raise ValueError("current_page must be a PAGE element")
        self._selection: list[Element] = []
        self._listeners: list[SelectionListener] = []

    @property
    def selection(self) -> list[Element]:
        return list(self._selection)

    def select(self, elements: list[Element]) -> None:
        """Replace the selection and notify listeners."""
        self._selection = list(elements)
        for listener in list(self._listeners):
            listener(self.selection)

    def select_ids(self, element_ids: list[str]) -> list[Element]:
        """Select elements by id; unknown ids are ignored."""
        elements = [e for e in (self.find_by_id(i) for i in element_ids) if e is not None]
        self.select(elements)
        return elements

    def on_selection_change(self, listener: SelectionListener) -> Callable[[], None]:
        """Register a selection listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def walk(self) -> Iterator[Element]:
        return self.current_page.walk()

    def find_by_id(self, element_id: str) -> Element | None:
        for element in self.walk():
            if element.id == element_id:
                return element
        return None

    def duplicate(self, element: Element) -> Element:
        """Copy/paste an element next to the original.

        The copy gets fresh ids but identical plugin data, so a stamped
        element and its copy carry the same link.
        """
        parent = element.parent or self.current_page
        copy = element.clone()
        copy.parent = parent
        parent.children.insert(parent.children.index(element) + 1, copy)
        logger.debug("Duplicated element", extra={"source": element.id, "copy": copy.id})
        return copy

    def remove(self, element: Element) -> None:
        """Delete an element (and its subtree) from the tree."""
        if element.parent is None:
            raise ValueError("Cannot remove an element without a parent")
        element.parent.children.remove(element)
        element.parent = None
        if any(e is element for e in self._selection):
            self.select([e for e in self._selection if e is not element])

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "currentPage": self.current_page.to_dict(),
            "selection": [e.id for e in self._selection],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Document:
        page = element_from_dict(data["currentPage"])
        doc = cls(page, name=data.get("name", "Untitled"))
        selection_ids = data.get("selection") or []
        doc._selection = [e for e in (doc.find_by_id(i) for i in selection_ids) if e is not None]
        return doc
