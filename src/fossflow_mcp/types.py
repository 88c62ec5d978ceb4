"""
Diagram Types
=============

Shapes of the two wire representations handled by fossflow-mcp.

Every entity travels as a plain JSON-compatible dict; the TypedDicts below
document the keys. Wire keys stay camelCase so payloads can be passed
through to the isometric editor untouched.

Full format (canonical, identifier-addressed)::

    {"title", "items": [ModelItem], "views": [View], "icons", "colors"}

Compact format (position-addressed, lossy)::

    {"t": title, "i": [[name, icon, description]],
     "v": [[positions, connections]], "_": {"f": "compact", "v": "1.0"}}
"""

from typing import List, Literal, Optional, TypedDict, Union


# ============================================================================
# Coordinates & References
# ============================================================================

class Coords(TypedDict):
    x: int
    y: int


class AnchorRef(TypedDict, total=False):
    item: str
    anchor: str
    tile: Coords


class ConnectorAnchor(TypedDict):
    id: str
    ref: AnchorRef


# ============================================================================
# Entities
# ============================================================================

ConnectorStyle = Literal["SOLID", "DOTTED", "DASHED"]
ConnectorLineType = Literal["SINGLE", "DOUBLE", "DOUBLE_WITH_CIRCLE"]
TextBoxOrientation = Literal["X", "Y"]
OutputFormat = Literal["full", "compact"]
DetectedFormat = Literal["full", "compact", "unknown"]

CONNECTOR_STYLES = ("SOLID", "DOTTED", "DASHED")
CONNECTOR_LINE_TYPES = ("SINGLE", "DOUBLE", "DOUBLE_WITH_CIRCLE")


class ModelItem(TypedDict, total=False):
    id: str
    name: str
    icon: str
    description: str


class ViewItem(TypedDict, total=False):
    id: str
    tile: Coords
    labelHeight: float


class Connector(TypedDict, total=False):
    id: str
    anchors: List[ConnectorAnchor]
    style: ConnectorStyle
    lineType: ConnectorLineType
    color: str
    showArrow: bool
    description: str  # label text


# "from" is a keyword, so Rectangle uses the functional syntax
Rectangle = TypedDict(
    "Rectangle",
    {"id": str, "from": Coords, "to": Coords, "color": str},
    total=False,
)


class TextBox(TypedDict, total=False):
    id: str
    tile: Coords
    content: str
    orientation: TextBoxOrientation
    fontSize: float


class View(TypedDict, total=False):
    id: str
    name: str
    description: str
    items: List[ViewItem]
    connectors: List[Connector]
    rectangles: List[Rectangle]
    textBoxes: List[TextBox]


class Color(TypedDict):
    id: str
    value: str


class Model(TypedDict, total=False):
    version: str
    title: str
    description: str
    items: List[ModelItem]
    views: List[View]
    icons: list
    colors: List[Color]


# ============================================================================
# Compact Format
# ============================================================================

CompactItem = List[str]            # [name, icon, description]
CompactPosition = List[int]        # [itemIndex, x, y]
CompactConnection = list           # [fromIndex, toIndex, style?, showArrow?]
CompactView = List[list]           # [positions, connections]


class CompactMeta(TypedDict):
    f: Literal["compact"]
    v: str


CompactDiagram = TypedDict(
    "CompactDiagram",
    {"t": str, "i": List[CompactItem], "v": List[CompactView], "_": CompactMeta},
)

Diagram = Union[Model, CompactDiagram]


# ============================================================================
# Defaults
# ============================================================================

DEFAULT_COLOR: Color = {"id": "__DEFAULT__", "value": "#6366f1"}
DEFAULT_LABEL_HEIGHT = 80
DEFAULT_VIEW_NAME = "Main View"
DEFAULT_TITLE = "Untitled"
MODEL_VERSION = "1.0"
COMPACT_VERSION = "1.0"

# Compact-form length limits
COMPACT_TITLE_MAX = 40
COMPACT_NAME_MAX = 30
COMPACT_DESCRIPTION_MAX = 100


def coords(x, y) -> Coords:
    """Build a tile coordinate dict."""
    return {"x": x, "y": y}


def set_if_present(target: dict, key: str, value: Optional[object]) -> None:
    """Set ``target[key]`` only when ``value`` is not None (JSON "undefined")."""
    if value is not None:
        target[key] = value
