"""
Format Converter
================

Bidirectional conversion between the compact (position-addressed) and full
(identifier-addressed) diagram encodings, plus format detection and
structural validation.

The compact form is lossy: identifiers, rectangles, text boxes and
connector styling beyond the endpoints do not survive full -> compact.
Only compact -> full -> compact is a round trip.
"""

import logging
import uuid
from typing import List

from .types import (
    COMPACT_DESCRIPTION_MAX,
    COMPACT_NAME_MAX,
    COMPACT_TITLE_MAX,
    COMPACT_VERSION,
    CONNECTOR_STYLES,
    DEFAULT_COLOR,
    DEFAULT_LABEL_HEIGHT,
    DEFAULT_VIEW_NAME,
    CompactDiagram,
    Diagram,
    DetectedFormat,
    Model,
    OutputFormat,
    coords,
    set_if_present,
)

logger = logging.getLogger(__name__)

UNKNOWN_FORMAT_MESSAGE = "Unable to detect diagram format. Must be either compact or full format."


class DiagramFormatError(ValueError):
    """Raised when a payload is neither a compact nor a full diagram."""


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ============================================================================
# Detection
# ============================================================================

def detect_format(diagram) -> DetectedFormat:
    """Detect whether a payload is compact, full, or unknown."""
    if not diagram or not isinstance(diagram, dict):
        return "unknown"

    meta = diagram.get("_")
    if isinstance(meta, dict) and meta.get("f") == "compact":
        return "compact"

    if "t" in diagram and "i" in diagram and "v" in diagram:
        if isinstance(diagram["i"], list) and isinstance(diagram["v"], list):
            return "compact"

    if "title" in diagram and "items" in diagram and "views" in diagram:
        return "full"

    return "unknown"


# ============================================================================
# Compact -> Full
# ============================================================================

def _item_id(index: int) -> str:
    return f"item-{index}"


def _connector_from_connection(connection: list, view_index: int, conn_index: int) -> dict:
    from_index, to_index = connection[0], connection[1]
    connector = {
        "id": f"connector-{view_index}-{conn_index}",
        "anchors": [
            {"id": str(uuid.uuid4()), "ref": {"item": _item_id(from_index), "anchor": "center"}},
            {"id": str(uuid.uuid4()), "ref": {"item": _item_id(to_index), "anchor": "center"}},
        ],
        "style": "SOLID",
        "lineType": "SINGLE",
        "showArrow": True,
    }

    # Optional extension: [from, to, style, showArrow]
    if len(connection) > 2 and connection[2] in CONNECTOR_STYLES:
        connector["style"] = connection[2]
    if len(connection) > 3 and connection[3] is not None:
        connector["showArrow"] = bool(connection[3])

    return connector


def to_full(compact: CompactDiagram) -> Model:
    """Convert a compact diagram to the full format.

    Item ``i[N]`` becomes ``item-N``; positions and connections are
    re-addressed through the same synthetic identifiers.
    """
    items = []
    for index, entry in enumerate(compact.get("i", [])):
        name, icon, description = (list(entry) + ["", "", ""])[:3]
        item = {"id": _item_id(index), "name": name}
        set_if_present(item, "icon", icon or None)
        set_if_present(item, "description", description or None)
        items.append(item)

    views = []
    for view_index, view_data in enumerate(compact.get("v", [])):
        positions, connections = (list(view_data) + [[], []])[:2]

        view_items = [
            {
                "id": _item_id(position[0]),
                "tile": coords(position[1], position[2]),
                "labelHeight": DEFAULT_LABEL_HEIGHT,
            }
            for position in positions or []
        ]

        connectors = [
            _connector_from_connection(connection, view_index, conn_index)
            for conn_index, connection in enumerate(connections or [])
        ]

        views.append({
            "id": f"view-{view_index}",
            "name": DEFAULT_VIEW_NAME if view_index == 0 else f"View {view_index + 1}",
            "items": view_items,
            "connectors": connectors,
            "rectangles": [],
            "textBoxes": [],
        })

    meta = compact.get("_") or {}
    return {
        "title": compact.get("t", ""),
        "version": meta.get("v", COMPACT_VERSION),
        "items": items,
        "views": views,
        "icons": [],
        "colors": [dict(DEFAULT_COLOR)],
    }


# ============================================================================
# Full -> Compact
# ============================================================================

def to_compact(full: Model) -> CompactDiagram:
    """Convert a full diagram to the compact format.

    Positions are taken from the current order of ``items``. View items and
    connectors that reference unknown items are dropped.
    """
    item_index = {item["id"]: index for index, item in enumerate(full.get("items", []))}

    items = [
        [
            item.get("name", "")[:COMPACT_NAME_MAX],
            item.get("icon") or "",
            (item.get("description") or "")[:COMPACT_DESCRIPTION_MAX],
        ]
        for item in full.get("items", [])
    ]

    views = []
    for view in full.get("views", []):
        positions = []
        for view_item in view.get("items", []):
            index = item_index.get(view_item.get("id"))
            if index is None:
                logger.debug("Dropping dangling view item %s", view_item.get("id"))
                continue
            tile = view_item.get("tile", {})
            positions.append([index, tile.get("x", 0), tile.get("y", 0)])

        connections = []
        for connector in view.get("connectors") or []:
            anchors = connector.get("anchors", [])
            if len(anchors) < 2:
                continue
            from_index = item_index.get(anchors[0].get("ref", {}).get("item"))
            to_index = item_index.get(anchors[-1].get("ref", {}).get("item"))
            if from_index is None or to_index is None:
                logger.debug("Dropping connector %s with unmapped endpoints", connector.get("id"))
                continue
            connections.append([from_index, to_index])

        views.append([positions, connections])

    if not views:
        views.append([[], []])

    return {
        "t": full.get("title", "")[:COMPACT_TITLE_MAX],
        "i": items,
        "v": views,
        "_": {"f": "compact", "v": COMPACT_VERSION},
    }


# ============================================================================
# Normalization
# ============================================================================

def normalize(diagram: Diagram) -> Model:
    """Return the full form of any diagram (compact input is converted)."""
    if detect_format(diagram) == "compact":
        return to_full(diagram)
    return diagram


def convert_to_format(diagram: Model, output_format: OutputFormat) -> Diagram:
    """Convert a full diagram to the requested output format."""
    if output_format == "compact":
        return to_compact(diagram)
    return diagram


# ============================================================================
# Validation
# ============================================================================

def _validate_compact_view(view, view_index: int, errors: List[str]) -> None:
    if not isinstance(view, list) or len(view) != 2:
        errors.append(f"View {view_index} must be an array of 2 elements [positions, connections]")
        return

    positions, connections = view
    if not isinstance(positions, list):
        errors.append(f"View {view_index} positions must be an array")
    else:
        for pos_index, position in enumerate(positions):
            if (
                not isinstance(position, list)
                or len(position) != 3
                or not _is_int(position[0])
                or not _is_number(position[1])
                or not _is_number(position[2])
            ):
                errors.append(
                    f"View {view_index} position {pos_index} must be [itemIndex, x, y] with numeric values"
                )

    if not isinstance(connections, list):
        errors.append(f"View {view_index} connections must be an array")
    else:
        for conn_index, connection in enumerate(connections):
            if (
                not isinstance(connection, list)
                or len(connection) < 2
                or not _is_int(connection[0])
                or not _is_int(connection[1])
            ):
                errors.append(
                    f"View {view_index} connection {conn_index} must be [fromIndex, toIndex]"
                )
            elif len(connection) > 2 and connection[2] not in CONNECTOR_STYLES:
                errors.append(
                    f"View {view_index} connection {conn_index} style must be one of "
                    f"{', '.join(CONNECTOR_STYLES)}"
                )


def validate_compact(diagram) -> List[str]:
    """Check the shape of a compact diagram. Returns a list of errors."""
    errors: List[str] = []

    if not diagram or not isinstance(diagram, dict):
        return ["Diagram must be an object"]

    title = diagram.get("t")
    if not isinstance(title, str):
        errors.append("Missing or invalid title (t)")
    elif len(title) > COMPACT_TITLE_MAX:
        errors.append(f"Title (t) exceeds {COMPACT_TITLE_MAX} characters")

    items = diagram.get("i")
    if not isinstance(items, list):
        errors.append("Missing or invalid items array (i)")
    else:
        for index, item in enumerate(items):
            if not isinstance(item, list) or len(item) != 3:
                errors.append(f"Item {index} must be an array of 3 elements [name, icon, description]")
                continue
            name, icon, description = item
            if not isinstance(name, str):
                errors.append(f"Item {index} name must be a string")
            elif len(name) > COMPACT_NAME_MAX:
                errors.append(f"Item {index} name exceeds {COMPACT_NAME_MAX} characters")
            if not isinstance(icon, str):
                errors.append(f"Item {index} icon must be a string")
            if not isinstance(description, str):
                errors.append(f"Item {index} description must be a string")
            elif len(description) > COMPACT_DESCRIPTION_MAX:
                errors.append(f"Item {index} description exceeds {COMPACT_DESCRIPTION_MAX} characters")

    views = diagram.get("v")
    if not isinstance(views, list):
        errors.append("Missing or invalid views array (v)")
    else:
        for view_index, view in enumerate(views):
            _validate_compact_view(view, view_index, errors)

    meta = diagram.get("_")
    if not isinstance(meta, dict):
        errors.append("Missing metadata (_)")
    else:
        if meta.get("f") != "compact":
            errors.append('Metadata format (_.f) must be "compact"')
        if not isinstance(meta.get("v"), str):
            errors.append("Metadata version (_.v) must be a string")

    return errors


def validate_full(diagram) -> List[str]:
    """Check the shape of a full diagram. Returns a list of errors."""
    if not diagram or not isinstance(diagram, dict):
        return ["Diagram must be an object"]

    errors: List[str] = []
    if not isinstance(diagram.get("title"), str):
        errors.append("Missing or invalid title")
    for key in ("items", "views", "icons", "colors"):
        if not isinstance(diagram.get(key), list):
            errors.append(f"Missing or invalid {key} array")
    return errors


def validate(diagram) -> dict:
    """Validate any diagram, dispatching on the detected format.

    Returns ``{"valid": bool, "format": str, "errors": [str]}``.
    """
    diagram_format = detect_format(diagram)

    if diagram_format == "unknown":
        errors = [UNKNOWN_FORMAT_MESSAGE]
    elif diagram_format == "compact":
        errors = validate_compact(diagram)
    else:
        errors = validate_full(diagram)

    return {"valid": not errors, "format": diagram_format, "errors": errors}
