import io
import re
from dataclasses import dataclass, field

import pytest
from PIL import Image

from bbox_service.config import Settings
from bbox_service.errors import SelectorError
from bbox_service.models import BoundingBox, Graph


@pytest.fixture
def settings():
    return Settings(
        session_dir="unused",
        snapshot_concurrency=5,
        snapshot_padding=20,
        batch_size=5,
    )


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


def _box(selector="#el", role="source", x=0, y=0, width=0, height=0, **extra):
    return BoundingBox(
        selector=selector,
        role=role,
        x=x,
        y=y,
        width=width,
        height=height,
        top=y,
        left=x,
        right=x + width,
        bottom=y + height,
        url=extra.pop("url", "https://example.com/"),
        **extra,
    )


@pytest.fixture
def make_box():
    return _box


@pytest.fixture
def make_graph():
    def _graph(sources=(), targets=(), url="https://example.com/"):
        return Graph(url=url, sources=list(sources), targets=list(targets))
    return _graph


# ---------------------------------------------------------------------------
# Minimal DOM with hit testing: later elements paint over earlier ones
# ---------------------------------------------------------------------------

_SIMPLE_SELECTOR = re.compile(r"^([a-z][a-z0-9]*)?((?:[.#][A-Za-z_][\w-]*)*)$")


@dataclass(eq=False)
class Element:
    tag: str
    x: float
    y: float
    width: float
    height: float
    id: str = ""
    classes: list = field(default_factory=list)
    style: dict = field(default_factory=dict)
    parent: "Element | None" = None
    offset: tuple | None = None

    @property
    def rect(self):
        return {
            "x": self.x, "y": self.y, "width": self.width, "height": self.height,
            "top": self.y, "left": self.x,
            "right": self.x + self.width, "bottom": self.y + self.height,
        }


class MockDom:
    def __init__(self, viewport=(1280, 800)):
        self.viewport = viewport
        self.elements: list[Element] = []

    def add(self, tag, x, y, width, height, **kwargs) -> Element:
        style = {"display": "block", "visibility": "visible", "opacity": "1",
                 "zIndex": "auto", "position": "static"}
        style.update(kwargs.pop("style", {}))
        el = Element(tag, x, y, width, height, style=style, **kwargs)
        self.elements.append(el)
        return el

    def _matches(self, el, selector):
        m = _SIMPLE_SELECTOR.match(selector)
        tag, rest = m.group(1), m.group(2)
        if tag and el.tag != tag:
            return False
        for part in re.findall(r"[.#][\w-]+", rest):
            if part[0] == "#" and el.id != part[1:]:
                return False
            if part[0] == "." and part[1:] not in el.classes:
                return False
        return True

    def query_selector_all(self, selector):
        if not _SIMPLE_SELECTOR.match(selector) or selector == "":
            raise SelectorError(selector)
        return [el for el in self.elements if self._matches(el, selector)]

    def computed_style(self, element):
        return element.style

    def offset_size(self, element):
        if element.offset is not None:
            return element.offset
        if element.style.get("display") == "none":
            return (0, 0)
        return (element.width, element.height)

    def bounding_rect(self, element):
        return element.rect

    def _hit_testable(self, el):
        return el.style.get("display") != "none" and el.style.get("visibility") != "hidden"

    def element_from_point(self, x, y):
        if not (0 <= x < self.viewport[0] and 0 <= y < self.viewport[1]):
            return None
        for el in reversed(self.elements):
            r = el.rect
            if self._hit_testable(el) and r["left"] <= x < r["right"] and r["top"] <= y < r["bottom"]:
                return el
        return None

    def contains(self, ancestor, node):
        while node is not None:
            if node is ancestor:
                return True
            node = node.parent
        return False

    def element_id(self, element):
        return element.id

    def class_list(self, element):
        return element.classes


@pytest.fixture
def dom():
    return MockDom()
