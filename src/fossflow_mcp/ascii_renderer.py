"""
ASCII Renderer
==============

Text previews of a diagram's primary view:

- render_ascii: grid projection with box-drawn nodes and Manhattan-routed
  connectors, framed with a title and legend.
- render_summary: Markdown listing of nodes, connectors and annotations
  with exact coordinates.

Both accept either format; compact payloads are normalized first.
"""

from typing import Dict, List, Optional, Tuple

from .format_converter import normalize
from .types import Diagram

Canvas = List[List[str]]

PADDING = 2          # grid units around the bounding box
CELL_WIDTH = 16      # characters per grid unit
CELL_HEIGHT = 3      # lines per grid unit
NAME_MAX = 12
ICON_MAX = 10
BOX_MARGIN = 4
EMPTY_BOX_WIDTH = 37

# Cells holding anything else (names, arrows) are never overwritten
OVERWRITABLE = frozenset(" ─│┌┐└┘")


# =============================================================================
# Canvas
# =============================================================================

def mk_canvas(width: int, height: int) -> Canvas:
    return [[" "] * width for _ in range(height)]


def safe_write(canvas: Canvas, y: int, x: int, char: str) -> None:
    """Write a character if it is in bounds and the cell is blank or a line."""
    if 0 <= y < len(canvas) and 0 <= x < len(canvas[y]):
        if canvas[y][x] in OVERWRITABLE:
            canvas[y][x] = char


def draw_node_box(canvas: Canvas, cx: int, cy: int, name: str, icon: str) -> None:
    """Draw a 3-line bordered box centered on (cx, cy) with the name inside."""
    width = max(len(name), len(icon)) + BOX_MARGIN
    start_x = max(0, cx - width // 2)
    start_y = max(0, cy - 1)

    if start_y >= len(canvas) or start_x >= len(canvas[0]):
        return

    safe_write(canvas, start_y, start_x, "┌")
    for i in range(1, width - 1):
        safe_write(canvas, start_y, start_x + i, "─")
    safe_write(canvas, start_y, start_x + width - 1, "┐")

    inner = width - 2
    padded = name.rjust((inner + len(name)) // 2).ljust(inner)
    safe_write(canvas, start_y + 1, start_x, "│")
    for i, char in enumerate(padded):
        safe_write(canvas, start_y + 1, start_x + 1 + i, char)
    safe_write(canvas, start_y + 1, start_x + width - 1, "│")

    safe_write(canvas, start_y + 2, start_x, "└")
    for i in range(1, width - 1):
        safe_write(canvas, start_y + 2, start_x + i, "─")
    safe_write(canvas, start_y + 2, start_x + width - 1, "┘")


def draw_line(canvas: Canvas, x1: int, y1: int, x2: int, y2: int, show_arrow: bool) -> None:
    """Route a connector with a single bend at the horizontal midpoint.

    Horizontal from the source to the bend column, vertical along the bend
    column, then horizontal into the target.
    """
    dx = x2 - x1
    dy = y2 - y1
    mid_x = x1 + dx // 2

    for x in range(min(x1, mid_x) + 1, max(x1, mid_x)):
        safe_write(canvas, y1, x, "─")

    for y in range(min(y1, y2) + 1, max(y1, y2)):
        safe_write(canvas, y, mid_x, "│")

    for x in range(min(mid_x, x2) + 1, max(mid_x, x2)):
        safe_write(canvas, y2, x, "─")

    if dy == 0 and dx != 0:
        safe_write(canvas, y1, mid_x, "─")

    if dx != 0 and dy != 0:
        if dy > 0:
            first, second = ("┐", "└") if dx > 0 else ("┌", "┘")
        else:
            first, second = ("┘", "┌") if dx > 0 else ("└", "┐")
        safe_write(canvas, y1, mid_x, first)
        safe_write(canvas, y2, mid_x, second)

    if not show_arrow:
        return

    if dx != 0:
        arrow = "▶" if dx > 0 else "◀"
        safe_write(canvas, y2, x2 - 2 if dx > 0 else x2 + 2, arrow)
    elif dy != 0:
        arrow = "▼" if dy > 0 else "▲"
        safe_write(canvas, y2 - 1 if dy > 0 else y2 + 1, x2, arrow)


# =============================================================================
# Grid preview
# =============================================================================

def _render_empty(title: str) -> str:
    inner = EMPTY_BOX_WIDTH
    label = "     Title: "
    rows = [
        "         Empty Diagram",
        label + title[:inner - len(label)],
        "     Items: 0",
    ]
    lines = [f"┌{'─' * inner}┐"]
    lines.extend(f"│{row.ljust(inner)}│" for row in rows)
    lines.append(f"└{'─' * inner}┘")
    return "\n".join(lines)


def render_ascii(diagram: Diagram, show_coords: bool = True) -> str:
    """Render the primary view of a diagram as a framed character grid."""
    model = normalize(diagram)
    title = model.get("title", "")
    views = model.get("views") or []
    view = views[0] if views else None

    if not view or not view.get("items"):
        return _render_empty(title)

    item_lookup = {item["id"]: item for item in model.get("items", [])}
    placements: Dict[str, Tuple[int, int]] = {}
    for view_item in view["items"]:
        tile = view_item.get("tile", {})
        placements.setdefault(view_item["id"], (int(tile.get("x", 0)), int(tile.get("y", 0))))

    tiles = [
        (int(vi.get("tile", {}).get("x", 0)), int(vi.get("tile", {}).get("y", 0)))
        for vi in view["items"]
    ]
    min_x = min(x for x, _ in tiles)
    max_x = max(x for x, _ in tiles)
    min_y = min(y for _, y in tiles)
    max_y = max(y for _, y in tiles)

    grid_min_x = min_x - PADDING
    grid_min_y = min_y - PADDING
    grid_width = (max_x + PADDING - grid_min_x + 1) * CELL_WIDTH
    grid_height = (max_y + PADDING - grid_min_y + 1) * CELL_HEIGHT

    canvas = mk_canvas(grid_width, grid_height)

    def to_char_coords(tile: Tuple[int, int]) -> Tuple[int, int]:
        return (
            (tile[0] - grid_min_x) * CELL_WIDTH + CELL_WIDTH // 2,
            (tile[1] - grid_min_y) * CELL_HEIGHT + CELL_HEIGHT // 2,
        )

    # Connectors first so node boxes land on top
    connectors = view.get("connectors") or []
    for connector in connectors:
        anchors = connector.get("anchors", [])
        if len(anchors) < 2:
            continue
        start = placements.get(anchors[0].get("ref", {}).get("item"))
        end = placements.get(anchors[-1].get("ref", {}).get("item"))
        if start is None or end is None:
            continue
        x1, y1 = to_char_coords(start)
        x2, y2 = to_char_coords(end)
        draw_line(canvas, x1, y1, x2, y2, connector.get("showArrow") is not False)

    for view_item in view["items"]:
        model_item = item_lookup.get(view_item["id"])
        if model_item is None:
            continue
        cx, cy = to_char_coords(placements[view_item["id"]])
        name = model_item.get("name", "")[:NAME_MAX]
        icon = (model_item.get("icon") or "")[:ICON_MAX]
        draw_node_box(canvas, cx, cy, name, icon)

    output = [
        f"╔{'═' * (grid_width + 2)}╗",
        f"║ {title[:grid_width].ljust(grid_width)} ║",
        f"╠{'═' * (grid_width + 2)}╣",
    ]
    for row in canvas:
        output.append(f"║ {''.join(row).rstrip().ljust(grid_width)} ║")
    output.append(f"╠{'═' * (grid_width + 2)}╣")
    output.append(f"║ Nodes: {len(view['items'])}  Connectors: {len(connectors)}".ljust(grid_width + 3) + "║")
    if show_coords:
        output.append(f"║ Grid: X[{min_x} to {max_x}] Y[{min_y} to {max_y}]".ljust(grid_width + 3) + "║")
    output.append(f"╚{'═' * (grid_width + 2)}╝")

    return "\n".join(output)


# =============================================================================
# Markdown summary
# =============================================================================

def _endpoint_label(item_id: Optional[str], names: Dict[str, str]) -> str:
    if not item_id:
        return "?"
    name = names.get(item_id)
    return f"{name} ({item_id})" if name else item_id


def render_summary(diagram: Diagram) -> str:
    """List nodes, connectors, rectangles and text boxes of the primary view."""
    model = normalize(diagram)
    views = model.get("views") or []
    view = views[0] if views else {}
    items = model.get("items", [])

    placements = {}
    for view_item in view.get("items", []):
        placements.setdefault(view_item.get("id"), view_item.get("tile", {}))
    names = {item["id"]: item.get("name", "") for item in items}

    lines = [f"# {model.get('title', '')}", ""]

    lines.append(f"## Nodes ({len(items)})")
    for item in items:
        tile = placements.get(item["id"])
        position = f"({tile.get('x')}, {tile.get('y')})" if tile is not None else "(not placed)"
        icon = f"[{item['icon']}]" if item.get("icon") else ""
        lines.append(" ".join(part for part in ("-", item.get("name", ""), icon, position) if part))
        if item.get("description"):
            lines.append(f"  {item['description']}")
    lines.append("")

    connectors = view.get("connectors") or []
    lines.append(f"## Connectors ({len(connectors)})")
    for connector in connectors:
        anchors = connector.get("anchors", [])
        if len(anchors) < 2:
            continue
        source = _endpoint_label(anchors[0].get("ref", {}).get("item"), names)
        target = _endpoint_label(anchors[-1].get("ref", {}).get("item"), names)
        arrow = "→" if connector.get("showArrow") is not False else "—"
        line = f"- {source} {arrow} {target} ({connector.get('style') or 'SOLID'})"
        if connector.get("description"):
            line += f' "{connector["description"]}"'
        lines.append(line)
    lines.append("")

    rectangles = view.get("rectangles") or []
    if rectangles:
        lines.append(f"## Rectangles ({len(rectangles)})")
        for rect in rectangles:
            start, end = rect.get("from", {}), rect.get("to", {})
            line = f"- ({start.get('x')},{start.get('y')}) to ({end.get('x')},{end.get('y')})"
            if rect.get("color"):
                line += f" [{rect['color']}]"
            lines.append(line)
        lines.append("")

    text_boxes = view.get("textBoxes") or []
    if text_boxes:
        lines.append(f"## Text Boxes ({len(text_boxes)})")
        for text_box in text_boxes:
            tile = text_box.get("tile", {})
            lines.append(f'- "{text_box.get("content", "")}" at ({tile.get("x")}, {tile.get("y")})')

    return "\n".join(lines).rstrip("\n")
