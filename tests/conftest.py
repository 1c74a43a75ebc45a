"""
Shared fixtures for Sequencer tests.
"""

import itertools

import pytest

from sequencer.document import Document, Element, ElementType, FontName, TextElement
from sequencer.links import LinkRegistry
from sequencer.store import InMemoryKeyValueStore, SequenceStore


class FakeClock:
    """Deterministic Unix-ms clock advancing one second per call."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1000
        return self.now


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(kv, clock):
    counter = itertools.count(1)
    store = SequenceStore(kv, id_factory=lambda: f"seq_{next(counter)}", clock=clock)
    store.migrate()
    return store


@pytest.fixture
def document():
    """A page with a frame holding two labels and a rectangle."""
    frame = Element(
        ElementType.FRAME,
        name="Invoice",
        children=[
            TextElement("Invoice number", font_name=FontName("Inter", "Bold"), id="label_a"),
            TextElement("", font_name=FontName("Inter", "Regular"), id="label_b"),
            Element(ElementType.RECTANGLE, id="rect"),
        ],
        id="frame",
    )
    return Document(Element(ElementType.PAGE, children=[frame], id="page"))


@pytest.fixture
def registry(document):
    return LinkRegistry(document)
