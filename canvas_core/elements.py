"""
Canvas element models.

These models define the persistent document schema:
- Shapes (rectangle, rounded-rectangle, circle, triangle, arrow)
- Images, text blocks and groups (groups own their children)
- Viewport and the full canvas state record

Elements are a closed union discriminated on ``type``. Arrow endpoints
(``arrow_start``/``arrow_end``) are always relative to the arrow's own x/y.
Group children keep x/y relative to the group origin.
"""

import uuid
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from .geometry import normalize_rotation


class ElementType(str, Enum):
    """All element kinds a canvas can hold."""
    RECTANGLE = "rectangle"
    ROUNDED_RECTANGLE = "rounded-rectangle"
    CIRCLE = "circle"
    TRIANGLE = "triangle"
    ARROW = "arrow"
    IMAGE = "image"
    TEXT = "text"
    GROUP = "group"


class ImageFilter(str, Enum):
    GRAYSCALE = "grayscale"
    SEPIA = "sepia"
    BLUR = "blur"
    NONE = "none"


class AnchorPosition(str, Enum):
    """Anchor tags an arrow binding can point at."""
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"


def generate_element_id() -> str:
    """Generate a unique element ID."""
    return f"el{uuid.uuid4().hex[:12]}"


class Point(BaseModel):
    x: float
    y: float


class ArrowBinding(BaseModel):
    """
    Weak reference from an arrow endpoint to an anchor on another element.

    Only the target id is stored; it is resolved against the current element
    list every time, and a missing target means the binding is ignored.
    """
    element_id: str
    position: AnchorPosition = AnchorPosition.CENTER


class TextStyle(BaseModel):
    font_family: str = "Arial"
    font_size: float = 16
    color: str = "#000000"
    background_color: Optional[str] = None
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strikethrough: bool = False


class TextRangeStyle(BaseModel):
    """Style override for a character range of a text."""
    start: int
    end: int
    bold: Optional[bool] = None
    italic: Optional[bool] = None
    underline: Optional[bool] = None
    strikethrough: Optional[bool] = None
    color: Optional[str] = None
    background_color: Optional[str] = None
    font_size: Optional[float] = None
    font_family: Optional[str] = None


class BaseElement(BaseModel):
    """Fields shared by every element."""
    id: str = Field(default_factory=generate_element_id)
    x: float = 0
    y: float = 0
    width: float = Field(default=0, ge=0)
    height: float = Field(default=0, ge=0)
    rotation: float = 0.0  # degrees, normalised to [0, 360)
    z_index: int = 0

    @field_validator("rotation")
    @classmethod
    def wrap_rotation(cls, value: float) -> float:
        return normalize_rotation(value)

    def center(self) -> tuple[float, float]:
        """Get the center point of the element."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    def bounds(self) -> tuple[float, float, float, float]:
        """Get the bounding box (x, y, right, bottom)."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


class ShapeElement(BaseElement):
    """Basic shapes and arrows."""
    type: Literal["rectangle", "rounded-rectangle", "circle", "triangle", "arrow"]
    background_color: str = "#3b82f6"
    border_width: float = 2
    border_color: str = "#1e40af"
    corner_radius: Optional[float] = None
    content: Optional[str] = None
    text_style: Optional[TextStyle] = None
    text_range_styles: list[TextRangeStyle] = Field(default_factory=list)
    # Arrow-only fields
    arrow_start: Optional[Point] = None
    arrow_end: Optional[Point] = None
    arrow_head_size: Optional[float] = None
    arrow_tail_width: Optional[float] = None
    arrow_curve: Optional[float] = Field(default=None, ge=-1, le=1)
    start_binding: Optional[ArrowBinding] = None
    end_binding: Optional[ArrowBinding] = None

    @property
    def is_arrow(self) -> bool:
        return self.type == ElementType.ARROW.value


class ImageElement(BaseElement):
    type: Literal["image"] = "image"
    src: str
    filter: ImageFilter = ImageFilter.NONE


class TextElement(BaseElement):
    type: Literal["text"] = "text"
    content: str = ""
    style: TextStyle = Field(default_factory=TextStyle)
    range_styles: list[TextRangeStyle] = Field(default_factory=list)


class GroupElement(BaseElement):
    """A group owns its children; child x/y are relative to the group origin."""
    type: Literal["group"] = "group"
    children: list["CanvasElement"] = Field(default_factory=list)


CanvasElement = Annotated[
    Union[ShapeElement, ImageElement, TextElement, GroupElement],
    Field(discriminator="type"),
]

GroupElement.model_rebuild()

element_adapter: TypeAdapter = TypeAdapter(CanvasElement)
element_list_adapter: TypeAdapter = TypeAdapter(list[CanvasElement])


def parse_element(data: Any) -> "CanvasElement":
    """Validate a dict (or element) into the matching element model."""
    return element_adapter.validate_python(data)


def is_arrow(element: Any) -> bool:
    return isinstance(element, ShapeElement) and element.is_arrow


class Viewport(BaseModel):
    """Affine document-to-screen transform: screen = document * scale + (x, y)."""
    x: float = 0
    y: float = 0
    scale: float = Field(default=1, gt=0)

    def to_screen(self, x: float, y: float) -> tuple[float, float]:
        return (x * self.scale + self.x, y * self.scale + self.y)

    def to_canvas(self, x: float, y: float) -> tuple[float, float]:
        return ((x - self.x) / self.scale, (y - self.y) / self.scale)


class CanvasState(BaseModel):
    """The serializable document record: elements, selection and viewport."""
    elements: list[CanvasElement] = Field(default_factory=list)
    selected_ids: list[str] = Field(default_factory=list)
    viewport: Viewport = Field(default_factory=Viewport)

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return self.model_dump(mode="json")


def _as_dict(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(exclude_unset=True)
    return value


def apply_element_updates(element: "CanvasElement", updates: dict) -> "CanvasElement":
    """
    Apply a partial update to an element and return a new validated element.

    Arrows whose width/height change without new endpoints get their
    relative endpoints rescaled by new/old size (a zero old size counts as
    scale 1). Text ``style`` updates are merged into the existing style.

    Args:
        element: Current element (left untouched)
        updates: Field name to new value; ``id`` cannot be changed

    Returns:
        A new element of the (possibly updated) type
    """
    updates = {k: v for k, v in updates.items() if k != "id"}
    data = element.model_dump()

    if is_arrow(element):
        width_updated = isinstance(updates.get("width"), (int, float))
        height_updated = isinstance(updates.get("height"), (int, float))
        scale_x = updates["width"] / element.width if width_updated and element.width != 0 else 1
        scale_y = updates["height"] / element.height if height_updated and element.height != 0 else 1

        for key in ("arrow_start", "arrow_end"):
            if key in updates:
                continue
            point = getattr(element, key)
            if point is not None:
                updates[key] = {"x": point.x * scale_x, "y": point.y * scale_y}

    if isinstance(element, TextElement) and updates.get("style") is not None:
        updates["style"] = {**element.style.model_dump(), **_as_dict(updates["style"])}

    data.update(updates)
    return parse_element(data)


# Defaults for freshly created elements
DEFAULT_SHAPE_SIZE = 150
DEFAULT_ARROW_STYLE = {
    "background_color": "transparent",
    "border_width": 4,
    "border_color": "#2563eb",
    "arrow_head_size": 18,
    "arrow_tail_width": 4,
    "arrow_curve": 0,
}


def new_element(
    kind: ElementType | str,
    x: float,
    y: float,
    z_index: int = 0,
    src: Optional[str] = None,
    width: Optional[float] = None,
    height: Optional[float] = None,
) -> "CanvasElement":
    """
    Create an element of the given kind with the editor's default styling.

    Args:
        kind: Element type (group is not creatable directly)
        x, y: Top-left position
        z_index: Stacking position
        src: Image source (images only)
        width, height: Explicit size (images only, otherwise defaults apply)

    Returns:
        The new element
    """
    kind = ElementType(kind)
    base = {"x": x, "y": y, "z_index": z_index}

    if kind in (ElementType.RECTANGLE, ElementType.ROUNDED_RECTANGLE,
                ElementType.CIRCLE, ElementType.TRIANGLE):
        return ShapeElement(
            **base,
            type=kind.value,
            width=DEFAULT_SHAPE_SIZE,
            height=DEFAULT_SHAPE_SIZE,
            corner_radius=20 if kind == ElementType.ROUNDED_RECTANGLE else None,
            content="",
            text_style=TextStyle(color="#ffffff"),
        )
    if kind == ElementType.ARROW:
        return ShapeElement(
            **base,
            type=kind.value,
            width=180,
            height=60,
            arrow_start=Point(x=20, y=30),
            arrow_end=Point(x=160, y=30),
            **DEFAULT_ARROW_STYLE,
        )
    if kind == ElementType.TEXT:
        return TextElement(**base, width=300, height=80, content="Double-click to edit",
                           style=TextStyle(font_size=24))
    if kind == ElementType.IMAGE:
        return ImageElement(**base, width=width or 200, height=height or 200,
                            src=src or "https://via.placeholder.com/200")
    raise ValueError(f"Cannot create element of type {kind.value}")
