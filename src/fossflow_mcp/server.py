#!/usr/bin/env python3
"""
FossFLOW MCP - Server Implementation
====================================

Provides tools to build, inspect, convert and preview isometric diagrams.

Diagrams travel in either representation:
- full: identifier-addressed, the canonical source of truth
- compact: position-addressed, size-minimized and lossy

Tools:
- create_diagram / validate_diagram / convert_format / get_diagram_info
- preview_ascii: ASCII grid preview plus Markdown summary
- add_node / update_node / remove_node / list_nodes
- add_connector / update_connector / remove_connector / list_connectors
- add_rectangle / remove_rectangle / add_text_box / remove_text_box
- remove_annotation / list_annotations
- batch_operations: apply several operations in one call
- generate_diagram / process_generated_diagram: compact-format authoring

Prompt diagram-from-description and resource fossflow://guide/compact-format
support diagram generation.

Every tool receives the whole diagram and returns a JSON string; the output
format defaults to the format of the input diagram.
"""

import json
import logging
import os
import re
from contextlib import asynccontextmanager
from typing import Annotated, Callable, Literal, Optional, Union

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from .ascii_renderer import render_ascii, render_summary
from .diagram_state import DiagramState, create_empty_diagram, load_diagram
from .format_converter import detect_format, normalize, to_compact, to_full, validate

# Configuration from environment
OUTPUT_FORMAT = os.environ.get("FOSSFLOW_MCP_OUTPUT_FORMAT", "full")
if OUTPUT_FORMAT not in ("full", "compact"):
    OUTPUT_FORMAT = "full"

logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

UNKNOWN_FORMAT_ERROR = "Unable to detect diagram format"

DiagramArg = Annotated[
    Union[dict, str],
    Field(description="The current diagram (compact or full format), as an object or JSON string"),
]
FormatArg = Annotated[
    Optional[Literal["full", "compact"]],
    Field(description="Output format (defaults to the input format)"),
]
StyleArg = Literal["SOLID", "DOTTED", "DASHED"]
LineTypeArg = Literal["SINGLE", "DOUBLE", "DOUBLE_WITH_CIRCLE"]


@asynccontextmanager
async def server_lifespan(server: FastMCP):
    """Log startup and shutdown."""
    logger.info("fossflow-mcp started (default output format: %s)", OUTPUT_FORMAT)
    yield
    logger.info("fossflow-mcp stopped")


# Initialize the MCP server
mcp = FastMCP(
    "fossflow-mcp",
    instructions=(
        "Build isometric diagrams. Every tool takes the whole diagram and returns "
        "the updated one. Use compact format for generation and full format when "
        "node/connector ids must stay stable across calls."
    ),
    lifespan=server_lifespan,
)


def create_server() -> FastMCP:
    """Create and return the MCP server instance."""
    return mcp


# ============================================================================
# Payload Handling
# ============================================================================

def _parse_diagram(diagram):
    """Accept a diagram as a dict or a JSON string."""
    if isinstance(diagram, str):
        return json.loads(diagram)
    return diagram


def _run(diagram, failure: str, operation: Callable[[DiagramState, str], dict]) -> dict:
    """Parse, detect and load a diagram, then apply ``operation``.

    ``operation`` receives the loaded state and the detected input format
    and returns the result dict.
    """
    try:
        payload = _parse_diagram(diagram)
    except json.JSONDecodeError as e:
        return {"success": False, "message": failure, "error": f"Invalid JSON: {str(e)}"}

    diagram_format = detect_format(payload)
    if diagram_format == "unknown":
        return {"success": False, "message": failure, "error": UNKNOWN_FORMAT_ERROR}

    try:
        return operation(load_diagram(payload), diagram_format)
    except Exception as e:
        logger.exception("%s", failure)
        return {"success": False, "message": failure, "error": str(e)}


def _not_found(failure: str, error: str) -> dict:
    return {"success": False, "message": failure, "error": error}


def _dump(result: dict) -> str:
    return json.dumps(result, indent=2, ensure_ascii=False)


# ============================================================================
# Diagram Tools
# ============================================================================

@mcp.tool()
def create_diagram(
    title: Annotated[str, Field(max_length=100, description="Title for the new diagram")],
    description: Annotated[Optional[str], Field(max_length=1000, description="Optional description")] = None,
    output_format: FormatArg = None,
) -> str:
    """Create a new empty isometric diagram with one default view.

    Returns:
        JSON string with success status and the new diagram
    """
    state = create_empty_diagram(title)
    if description:
        state = state.set_description(description)

    return _dump({
        "success": True,
        "diagram": state.to_json(output_format or OUTPUT_FORMAT),
        "message": f'Created new diagram "{title}"',
    })


@mcp.tool()
def validate_diagram(diagram: DiagramArg) -> str:
    """Validate a diagram's structure and report referential-integrity warnings.

    Errors are structural (types, lengths, required keys). Warnings flag
    view items without model items and connectors pointing at items that
    are not placed in the primary view.
    """
    try:
        payload = _parse_diagram(diagram)
    except json.JSONDecodeError as e:
        return _dump({"valid": False, "format": "unknown", "errors": [f"Invalid JSON: {str(e)}"], "warnings": []})

    result = validate(payload)
    warnings = []

    if result["valid"]:
        try:
            warnings = load_diagram(payload).integrity_warnings()
        except Exception as e:
            result["valid"] = False
            result["errors"].append(f"Failed to normalize diagram: {str(e)}")

    result["warnings"] = warnings
    return _dump(result)


@mcp.tool()
def convert_format(
    diagram: DiagramArg,
    target_format: Annotated[Literal["full", "compact"], Field(description="Target format to convert to")],
) -> str:
    """Convert a diagram between compact and full formats.

    full -> compact drops identifiers, rectangles, text boxes and connector
    styling; compact -> full regenerates identifiers as item-N.
    """
    try:
        payload = _parse_diagram(diagram)
    except json.JSONDecodeError as e:
        return _dump({"success": False, "error": f"Invalid JSON: {str(e)}"})

    source_format = detect_format(payload)
    if source_format == "unknown":
        return _dump({
            "success": False,
            "sourceFormat": "unknown",
            "targetFormat": target_format,
            "error": "Unable to detect source format",
        })

    try:
        if target_format == "compact":
            result = to_compact(normalize(payload))
        elif source_format == "compact":
            result = to_full(payload)
        else:
            result = payload
    except Exception as e:
        logger.exception("Conversion failed")
        return _dump({
            "success": False,
            "sourceFormat": source_format,
            "targetFormat": target_format,
            "error": str(e),
        })

    return _dump({
        "success": True,
        "diagram": result,
        "sourceFormat": source_format,
        "targetFormat": target_format,
    })


def _get_diagram_info(diagram) -> dict:
    def operation(state: DiagramState, diagram_format: str) -> dict:
        info = state.get_info()
        info["format"] = diagram_format
        info["nodes"] = state.list_nodes()
        info["connectors"] = state.list_connectors()
        return {"success": True, "info": info}

    return _run(diagram, "Failed to get diagram info", operation)


@mcp.tool()
def get_diagram_info(diagram: DiagramArg) -> str:
    """Get counts, nodes and connectors of a diagram's primary view."""
    return _dump(_get_diagram_info(diagram))


def _preview(diagram, show_coords: bool = True) -> dict:
    def operation(state: DiagramState, diagram_format: str) -> dict:
        return {
            "success": True,
            "ascii": render_ascii(state.model, show_coords=show_coords),
            "summary": render_summary(state.model),
        }

    return _run(diagram, "Failed to render preview", operation)


@mcp.tool()
def preview_ascii(
    diagram: DiagramArg,
    show_coords: Annotated[bool, Field(description="Whether to show grid coordinates")] = True,
) -> str:
    """Generate an ASCII preview and a Markdown summary of the primary view."""
    return _dump(_preview(diagram, show_coords))


# ============================================================================
# Node Tools
# ============================================================================

def _add_node(diagram, name, x, y, icon=None, description=None, label_height=None, output_format=None) -> dict:
    def operation(state: DiagramState, diagram_format: str) -> dict:
        new_state = state.add_node(
            name=name, x=x, y=y, icon=icon, description=description, label_height=label_height,
        )
        return {
            "success": True,
            "diagram": new_state.to_json(output_format or diagram_format),
            "nodeId": new_state.model["items"][-1]["id"],
            "message": f'Added node "{name}" at position ({x}, {y})',
        }

    return _run(diagram, "Failed to add node", operation)


@mcp.tool()
def add_node(
    diagram: DiagramArg,
    name: Annotated[str, Field(max_length=100, description="Name of the node")],
    x: Annotated[int, Field(description="X coordinate on the grid")],
    y: Annotated[int, Field(description="Y coordinate on the grid")],
    icon: Annotated[Optional[str], Field(description='Icon ID (e.g., "aws-lambda", "storage", "k8s-pod")')] = None,
    description: Annotated[Optional[str], Field(max_length=1000, description="Optional description")] = None,
    label_height: Annotated[Optional[float], Field(description="Label height offset (default: 80)")] = None,
    output_format: FormatArg = None,
) -> str:
    """Add a new node to the diagram with an icon and grid position."""
    return _dump(_add_node(diagram, name, x, y, icon, description, label_height, output_format))


def _update_node(diagram, node_id, name=None, icon=None, description=None, x=None, y=None,
                 label_height=None, output_format=None) -> dict:
    failure = "Failed to update node"

    def operation(state: DiagramState, diagram_format: str) -> dict:
        existing = next((item for item in state.model["items"] if item["id"] == node_id), None)
        if existing is None:
            return _not_found(failure, f'Node with ID "{node_id}" not found')

        new_state = state.update_node(
            node_id, name=name, icon=icon, description=description, x=x, y=y, label_height=label_height,
        )

        updates = []
        if name:
            updates.append(f'name="{name}"')
        if icon:
            updates.append(f'icon="{icon}"')
        if x is not None or y is not None:
            updates.append(f"position=({'?' if x is None else x}, {'?' if y is None else y})")

        return {
            "success": True,
            "diagram": new_state.to_json(output_format or diagram_format),
            "message": f'Updated node "{existing["name"]}": {", ".join(updates) or "no changes"}',
        }

    return _run(diagram, failure, operation)


@mcp.tool()
def update_node(
    diagram: DiagramArg,
    node_id: Annotated[str, Field(description="ID of the node to update")],
    name: Annotated[Optional[str], Field(max_length=100, description="New name")] = None,
    icon: Annotated[Optional[str], Field(description="New icon ID")] = None,
    description: Annotated[Optional[str], Field(max_length=1000, description="New description")] = None,
    x: Annotated[Optional[int], Field(description="New X coordinate")] = None,
    y: Annotated[Optional[int], Field(description="New Y coordinate")] = None,
    label_height: Annotated[Optional[float], Field(description="New label height")] = None,
    output_format: FormatArg = None,
) -> str:
    """Update an existing node (name, icon, description, position)."""
    return _dump(_update_node(diagram, node_id, name, icon, description, x, y, label_height, output_format))


def _remove_node(diagram, node_id, output_format=None) -> dict:
    failure = "Failed to remove node"

    def operation(state: DiagramState, diagram_format: str) -> dict:
        existing = next((item for item in state.model["items"] if item["id"] == node_id), None)
        if existing is None:
            return _not_found(failure, f'Node with ID "{node_id}" not found')

        affected = [
            connector for connector in state.primary_view.get("connectors") or []
            if any(anchor.get("ref", {}).get("item") == node_id for anchor in connector.get("anchors", []))
        ]
        new_state = state.remove_node(node_id)

        return {
            "success": True,
            "diagram": new_state.to_json(output_format or diagram_format),
            "message": f'Removed node "{existing["name"]}"',
            "removedConnectors": len(affected),
        }

    return _run(diagram, failure, operation)


@mcp.tool()
def remove_node(
    diagram: DiagramArg,
    node_id: Annotated[str, Field(description="ID of the node to remove")],
    output_format: FormatArg = None,
) -> str:
    """Remove a node; connectors attached to it are removed as well."""
    return _dump(_remove_node(diagram, node_id, output_format))


@mcp.tool()
def list_nodes(diagram: DiagramArg) -> str:
    """List all nodes in the diagram with their positions."""
    def operation(state: DiagramState, diagram_format: str) -> dict:
        nodes = state.list_nodes()
        return {"success": True, "nodes": nodes, "count": len(nodes)}

    return _dump(_run(diagram, "Failed to list nodes", operation))


# ============================================================================
# Connector Tools
# ============================================================================

def _add_connector(diagram, from_node_id, to_node_id, style=None, line_type=None, color=None,
                   show_arrow=None, label=None, output_format=None) -> dict:
    failure = "Failed to add connector"

    def operation(state: DiagramState, diagram_format: str) -> dict:
        items = {item["id"]: item for item in state.model["items"]}
        if from_node_id not in items:
            return _not_found(failure, f'Source node "{from_node_id}" not found')
        if to_node_id not in items:
            return _not_found(failure, f'Target node "{to_node_id}" not found')

        before = len(state.primary_view.get("connectors") or [])
        new_state = state.add_connector(
            from_node_id, to_node_id, style=style, line_type=line_type, color=color,
            show_arrow=show_arrow, label=label,
        )
        connectors = new_state.primary_view.get("connectors") or []
        if len(connectors) == before:
            return _not_found(failure, "Both nodes must be placed in the primary view")

        return {
            "success": True,
            "diagram": new_state.to_json(output_format or diagram_format),
            "connectorId": connectors[-1]["id"],
            "message": f'Added connector from "{items[from_node_id]["name"]}" to "{items[to_node_id]["name"]}"',
        }

    return _run(diagram, failure, operation)


@mcp.tool()
def add_connector(
    diagram: DiagramArg,
    from_node_id: Annotated[str, Field(description="ID of the source node")],
    to_node_id: Annotated[str, Field(description="ID of the target node")],
    style: Annotated[Optional[StyleArg], Field(description="Line style (default: SOLID)")] = None,
    line_type: Annotated[Optional[LineTypeArg], Field(description="Line type (default: SINGLE)")] = None,
    color: Annotated[Optional[str], Field(description="Color ID or hex color")] = None,
    show_arrow: Annotated[Optional[bool], Field(description="Show arrow at end (default: true)")] = None,
    label: Annotated[Optional[str], Field(max_length=1000, description="Label text for the connector")] = None,
    output_format: FormatArg = None,
) -> str:
    """Add a connector (line) between two nodes."""
    return _dump(_add_connector(
        diagram, from_node_id, to_node_id, style, line_type, color, show_arrow, label, output_format,
    ))


def _find_connector(state: DiagramState, connector_id: str) -> Optional[dict]:
    connectors = state.primary_view.get("connectors") or []
    return next((c for c in connectors if c.get("id") == connector_id), None)


def _update_connector(diagram, connector_id, style=None, line_type=None, color=None,
                      show_arrow=None, label=None, output_format=None) -> dict:
    failure = "Failed to update connector"

    def operation(state: DiagramState, diagram_format: str) -> dict:
        if _find_connector(state, connector_id) is None:
            return _not_found(failure, f'Connector with ID "{connector_id}" not found')

        new_state = state.update_connector(
            connector_id, style=style, line_type=line_type, color=color, show_arrow=show_arrow, label=label,
        )

        updates = []
        if style:
            updates.append(f'style="{style}"')
        if line_type:
            updates.append(f'lineType="{line_type}"')
        if label:
            updates.append(f'label="{label}"')

        return {
            "success": True,
            "diagram": new_state.to_json(output_format or diagram_format),
            "message": f"Updated connector: {', '.join(updates) or 'no changes'}",
        }

    return _run(diagram, failure, operation)


@mcp.tool()
def update_connector(
    diagram: DiagramArg,
    connector_id: Annotated[str, Field(description="ID of the connector to update")],
    style: Annotated[Optional[StyleArg], Field(description="New line style")] = None,
    line_type: Annotated[Optional[LineTypeArg], Field(description="New line type")] = None,
    color: Annotated[Optional[str], Field(description="New color")] = None,
    show_arrow: Annotated[Optional[bool], Field(description="Show/hide arrow")] = None,
    label: Annotated[Optional[str], Field(max_length=1000, description="New label text")] = None,
    output_format: FormatArg = None,
) -> str:
    """Update an existing connector (style, line type, color, arrow, label)."""
    return _dump(_update_connector(
        diagram, connector_id, style, line_type, color, show_arrow, label, output_format,
    ))


def _remove_connector(diagram, connector_id, output_format=None) -> dict:
    failure = "Failed to remove connector"

    def operation(state: DiagramState, diagram_format: str) -> dict:
        if _find_connector(state, connector_id) is None:
            return _not_found(failure, f'Connector with ID "{connector_id}" not found')

        new_state = state.remove_connector(connector_id)
        return {
            "success": True,
            "diagram": new_state.to_json(output_format or diagram_format),
            "message": f"Removed connector {connector_id}",
        }

    return _run(diagram, failure, operation)


@mcp.tool()
def remove_connector(
    diagram: DiagramArg,
    connector_id: Annotated[str, Field(description="ID of the connector to remove")],
    output_format: FormatArg = None,
) -> str:
    """Remove a connector."""
    return _dump(_remove_connector(diagram, connector_id, output_format))


@mcp.tool()
def list_connectors(diagram: DiagramArg) -> str:
    """List all connectors with source/target ids and node names."""
    def operation(state: DiagramState, diagram_format: str) -> dict:
        names = {item["id"]: item.get("name") for item in state.model["items"]}
        connectors = []
        for connector in state.list_connectors():
            connector["fromName"] = names.get(connector["from"])
            connector["toName"] = names.get(connector["to"])
            connectors.append(connector)
        return {"success": True, "connectors": connectors, "count": len(connectors)}

    return _dump(_run(diagram, "Failed to list connectors", operation))


# ============================================================================
# Annotation Tools
# ============================================================================

def _add_rectangle(diagram, from_x, from_y, to_x, to_y, color=None, output_format=None) -> dict:
    def operation(state: DiagramState, diagram_format: str) -> dict:
        new_state = state.add_rectangle(from_x, from_y, to_x, to_y, color=color)
        rectangles = new_state.primary_view.get("rectangles") or []
        return {
            "success": True,
            "diagram": new_state.to_json(output_format or diagram_format),
            "rectangleId": rectangles[-1]["id"] if rectangles else None,
            "message": f"Added rectangle from ({from_x}, {from_y}) to ({to_x}, {to_y})",
        }

    return _run(diagram, "Failed to add rectangle", operation)


@mcp.tool()
def add_rectangle(
    diagram: DiagramArg,
    from_x: Annotated[int, Field(description="X coordinate of the first corner")],
    from_y: Annotated[int, Field(description="Y coordinate of the first corner")],
    to_x: Annotated[int, Field(description="X coordinate of the opposite corner")],
    to_y: Annotated[int, Field(description="Y coordinate of the opposite corner")],
    color: Annotated[Optional[str], Field(description="Color ID or hex color")] = None,
    output_format: FormatArg = None,
) -> str:
    """Add a rectangle region to the diagram (not kept by compact format)."""
    return _dump(_add_rectangle(diagram, from_x, from_y, to_x, to_y, color, output_format))


def _remove_rectangle(diagram, rectangle_id, output_format=None) -> dict:
    failure = "Failed to remove rectangle"

    def operation(state: DiagramState, diagram_format: str) -> dict:
        rectangles = state.primary_view.get("rectangles") or []
        if not any(r.get("id") == rectangle_id for r in rectangles):
            return _not_found(failure, f'Rectangle with ID "{rectangle_id}" not found')

        new_state = state.remove_rectangle(rectangle_id)
        return {
            "success": True,
            "diagram": new_state.to_json(output_format or diagram_format),
            "message": f"Removed rectangle {rectangle_id}",
        }

    return _run(diagram, failure, operation)


@mcp.tool()
def remove_rectangle(
    diagram: DiagramArg,
    rectangle_id: Annotated[str, Field(description="ID of the rectangle to remove")],
    output_format: FormatArg = None,
) -> str:
    """Remove a rectangle."""
    return _dump(_remove_rectangle(diagram, rectangle_id, output_format))


def _add_text_box(diagram, x, y, content, orientation=None, font_size=None, output_format=None) -> dict:
    def operation(state: DiagramState, diagram_format: str) -> dict:
        new_state = state.add_text_box(x, y, content, orientation=orientation, font_size=font_size)
        text_boxes = new_state.primary_view.get("textBoxes") or []
        return {
            "success": True,
            "diagram": new_state.to_json(output_format or diagram_format),
            "textBoxId": text_boxes[-1]["id"] if text_boxes else None,
            "message": f'Added text box "{content}" at ({x}, {y})',
        }

    return _run(diagram, "Failed to add text box", operation)


@mcp.tool()
def add_text_box(
    diagram: DiagramArg,
    x: Annotated[int, Field(description="X coordinate for the text box")],
    y: Annotated[int, Field(description="Y coordinate for the text box")],
    content: Annotated[str, Field(max_length=100, description="Text content")],
    orientation: Annotated[Optional[Literal["X", "Y"]], Field(description="Text orientation (default: X)")] = None,
    font_size: Annotated[Optional[float], Field(ge=0.1, le=2, description="Font size multiplier")] = None,
    output_format: FormatArg = None,
) -> str:
    """Add a text annotation to the diagram (not kept by compact format)."""
    return _dump(_add_text_box(diagram, x, y, content, orientation, font_size, output_format))


def _remove_text_box(diagram, text_box_id, output_format=None) -> dict:
    failure = "Failed to remove text box"

    def operation(state: DiagramState, diagram_format: str) -> dict:
        text_boxes = state.primary_view.get("textBoxes") or []
        if not any(t.get("id") == text_box_id for t in text_boxes):
            return _not_found(failure, f'Text box with ID "{text_box_id}" not found')

        new_state = state.remove_text_box(text_box_id)
        return {
            "success": True,
            "diagram": new_state.to_json(output_format or diagram_format),
            "message": f"Removed text box {text_box_id}",
        }

    return _run(diagram, failure, operation)


@mcp.tool()
def remove_text_box(
    diagram: DiagramArg,
    text_box_id: Annotated[str, Field(description="ID of the text box to remove")],
    output_format: FormatArg = None,
) -> str:
    """Remove a text box."""
    return _dump(_remove_text_box(diagram, text_box_id, output_format))


@mcp.tool()
def remove_annotation(
    diagram: DiagramArg,
    annotation_id: Annotated[str, Field(description="ID of the rectangle or text box to remove")],
    output_format: FormatArg = None,
) -> str:
    """Remove a rectangle or text box by ID."""
    failure = "Failed to remove annotation"

    def operation(state: DiagramState, diagram_format: str) -> dict:
        view = state.primary_view
        if any(r.get("id") == annotation_id for r in view.get("rectangles") or []):
            new_state, kind, label = state.remove_rectangle(annotation_id), "rectangle", "rectangle"
        elif any(t.get("id") == annotation_id for t in view.get("textBoxes") or []):
            new_state, kind, label = state.remove_text_box(annotation_id), "textbox", "text box"
        else:
            return _not_found(failure, f'Annotation with ID "{annotation_id}" not found')

        return {
            "success": True,
            "diagram": new_state.to_json(output_format or diagram_format),
            "message": f"Removed {label} {annotation_id}",
            "type": kind,
        }

    return _dump(_run(diagram, failure, operation))


@mcp.tool()
def list_annotations(diagram: DiagramArg) -> str:
    """List rectangles and text boxes of the primary view."""
    def operation(state: DiagramState, diagram_format: str) -> dict:
        annotations = state.list_annotations()
        return {
            "success": True,
            "rectangles": annotations["rectangles"],
            "textBoxes": annotations["textBoxes"],
            "count": len(annotations["rectangles"]) + len(annotations["textBoxes"]),
        }

    return _dump(_run(diagram, "Failed to list annotations", operation))


# ============================================================================
# Batch Operations
# ============================================================================

BATCH_OPERATIONS = {
    "add_node": _add_node,
    "update_node": _update_node,
    "remove_node": _remove_node,
    "add_connector": _add_connector,
    "update_connector": _update_connector,
    "remove_connector": _remove_connector,
    "add_rectangle": _add_rectangle,
    "remove_rectangle": _remove_rectangle,
    "add_textbox": _add_text_box,
    "remove_textbox": _remove_text_box,
}

RESULT_ID_KEYS = ("nodeId", "connectorId", "rectangleId", "textBoxId")


def _snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _apply_operation(op: str, diagram, params: dict) -> dict:
    kwargs = {_snake_case(key): value for key, value in (params or {}).items()}
    kwargs.pop("diagram", None)
    # Intermediate steps stay in full format so nothing is lost between operations
    kwargs["output_format"] = "full"
    try:
        return BATCH_OPERATIONS[op](diagram, **kwargs)
    except TypeError as e:
        return {"success": False, "error": f"Invalid parameters for {op}: {str(e)}"}


def _batch_operations(diagram, operations: list, output_format=None, include_preview=False) -> dict:
    try:
        current = _parse_diagram(diagram)
    except json.JSONDecodeError as e:
        return {"success": False, "results": [], "successCount": 0, "errorCount": 0,
                "error": f"Invalid JSON: {str(e)}"}

    diagram_format = detect_format(current)
    if diagram_format == "unknown":
        return {"success": False, "results": [], "successCount": 0, "errorCount": 0,
                "error": UNKNOWN_FORMAT_ERROR}

    results = []
    success_count = 0
    error_count = 0

    for operation in operations:
        op = operation.get("op", "")
        if op not in BATCH_OPERATIONS:
            results.append({
                "op": op,
                "success": False,
                "error": f"Unknown operation: {op}. Supported: {', '.join(BATCH_OPERATIONS)}",
            })
            error_count += 1
            continue

        op_result = _apply_operation(op, current, operation.get("params", {}))
        entry = {"op": op, "success": op_result["success"]}
        for key in ("message", "error") + RESULT_ID_KEYS:
            if op_result.get(key) is not None:
                entry[key] = op_result[key]
        results.append(entry)

        if op_result["success"]:
            current = op_result["diagram"]
            success_count += 1
        else:
            error_count += 1

    logger.info("Batch applied: %d succeeded, %d failed", success_count, error_count)

    final = load_diagram(current).to_json(output_format or diagram_format)
    result = {
        "success": error_count == 0,
        "diagram": final,
        "results": results,
        "successCount": success_count,
        "errorCount": error_count,
    }
    if include_preview:
        result["preview"] = render_ascii(final)
    return result


@mcp.tool()
def batch_operations(
    diagram: DiagramArg,
    operations: Annotated[
        list[dict],
        Field(description=(
            'Operations applied in order: [{"op": "add_node", "params": {"name": "API", "x": 0, "y": 0}}]. '
            "Supported ops: " + ", ".join(BATCH_OPERATIONS) + ". Params use the camelCase keys of the "
            "diagram (nodeId, fromNodeId, labelHeight, ...)."
        )),
    ],
    output_format: FormatArg = None,
    include_preview: Annotated[bool, Field(description="Include ASCII preview in response")] = False,
) -> str:
    """Apply multiple operations in one call.

    A failing operation is reported in ``results`` and does not stop the
    remaining ones.
    """
    return _dump(_batch_operations(diagram, operations, output_format, include_preview))


# ============================================================================
# Diagram Generation
# ============================================================================

COMPACT_FORMAT_GUIDE = """
# Compact Format for Diagram Generation

Generate a JSON diagram using this compact format:

```json
{
  "t": "Diagram Title (max 40 chars)",
  "i": [
    ["Item Name (max 30 chars)", "icon_name", "Description (max 100 chars)"]
  ],
  "v": [
    [
      [[0, x, y], [1, x, y]],
      [[0, 1]]
    ]
  ],
  "_": { "f": "compact", "v": "1.0" }
}
```

- `i`: items as [name, icon, description]; an item is referenced by its index
- `v`: views as [positions, connections]
  - positions: [itemIndex, x, y]
  - connections: [fromIndex, toIndex], optionally [fromIndex, toIndex, "DASHED", false]
    to set the line style and hide the arrow

## Icons

Generic: storage, server, user, cloud, network, security, api, queue, cache,
function, mobile, web, email, analytics, backup, load-balancer, cdn, firewall, monitor.
Provider icons use a prefix: aws-, azure-, gcp-, k8s- (e.g. aws-lambda, k8s-pod).

## Positioning

- X-axis: negative = left, positive = right
- Y-axis: negative = up, positive = down
- Typical spacing: 4-6 units between components
- Center main components around (0, 0)

## Example

For "Simple web app with API and database":

```json
{
  "t": "Web App Architecture",
  "i": [
    ["Web Frontend", "web", "React application"],
    ["API Server", "api", "REST API"],
    ["Database", "storage", "PostgreSQL"]
  ],
  "v": [[[[0, -6, 0], [1, 0, 0], [2, 6, 0]], [[0, 1], [1, 2]]]],
  "_": { "f": "compact", "v": "1.0" }
}
```
"""

EXAMPLE_DIAGRAM = {
    "t": "Example Architecture",
    "i": [
        ["Frontend", "web", "User interface"],
        ["Backend", "api", "Business logic"],
        ["Database", "storage", "Data persistence"],
    ],
    "v": [[[[0, -6, 0], [1, 0, 0], [2, 6, 0]], [[0, 1], [1, 2]]]],
    "_": {"f": "compact", "v": "1.0"},
}


@mcp.resource("fossflow://guide/compact-format")
def compact_format_guide() -> str:
    """Guide for writing diagrams in compact format."""
    return COMPACT_FORMAT_GUIDE


ICON_HINTS = {
    "aws": "Use AWS icons (prefix: aws-) for cloud services.",
    "azure": "Use Azure icons (prefix: azure-) for cloud services.",
    "gcp": "Use GCP icons (prefix: gcp-) for cloud services.",
}
GENERIC_ICON_HINT = "Use generic icons from the isoflow collection."


@mcp.prompt(
    name="diagram-from-description",
    description="Generate an isometric diagram from a natural language description",
)
def diagram_from_description(description: str, cloud_provider: str = "generic") -> str:
    """Ask for a compact-format diagram, hinting at the provider's icon set.

    ``cloud_provider`` is one of aws, azure, gcp or generic.
    """
    icon_hint = ICON_HINTS.get((cloud_provider or "").lower(), GENERIC_ICON_HINT)
    return (
        "Generate an isometric diagram for the following:\n\n"
        f"{description or 'A simple web application architecture'}\n\n"
        f"{icon_hint}\n\n"
        f"{COMPACT_FORMAT_GUIDE}\n\n"
        "Please generate the diagram in compact JSON format."
    )


@mcp.tool()
def generate_diagram(
    description: Annotated[str, Field(description="Natural language description of the diagram to generate")],
) -> str:
    """Build a prompt for generating a diagram in compact format.

    Write the diagram JSON from the returned prompt, then pass it to
    process_generated_diagram.
    """
    prompt = (
        "Based on the following description, generate an isometric diagram in compact JSON format.\n\n"
        f"## User Request\n{description}\n\n"
        f"## Format Guide\n{COMPACT_FORMAT_GUIDE}\n"
        "## Instructions\n"
        "1. Identify the components and their relationships\n"
        "2. Choose appropriate icons\n"
        "3. Position components logically (left-to-right or top-to-bottom)\n"
        "4. Define connections between related components\n"
        "5. Output ONLY valid JSON in compact format\n"
    )
    return _dump({
        "success": True,
        "prompt": prompt,
        "instructions": COMPACT_FORMAT_GUIDE,
        "example": EXAMPLE_DIAGRAM,
    })


def _process_generated_diagram(diagram_json, output_format="compact", include_preview=True) -> dict:
    try:
        diagram = _parse_diagram(diagram_json)
    except json.JSONDecodeError:
        return {"success": False, "errors": ["Invalid JSON: Failed to parse diagram"]}

    validation = validate(diagram)
    if not validation["valid"]:
        return {"success": False, "errors": validation["errors"]}

    output = load_diagram(diagram).to_json(output_format)
    result = {"success": True, "diagram": output}
    if include_preview:
        result["preview"] = render_ascii(output)
        result["summary"] = render_summary(output)
    return result


@mcp.tool()
def process_generated_diagram(
    diagram_json: Annotated[Union[dict, str], Field(description="Generated diagram (object or JSON string)")],
    output_format: Annotated[Literal["full", "compact"], Field(description="Output format")] = "compact",
    include_preview: Annotated[bool, Field(description="Include ASCII preview and summary")] = True,
) -> str:
    """Validate a generated diagram and return it with an optional preview."""
    return _dump(_process_generated_diagram(diagram_json, output_format, include_preview))
