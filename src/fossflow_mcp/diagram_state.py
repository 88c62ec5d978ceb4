"""
Diagram State
=============

Immutable state manager for diagram operations.

A ``DiagramState`` wraps one canonical (full format) model. Every mutation
deep-copies the model, edits the copy and returns a new ``DiagramState``;
earlier snapshots are never altered.

Unknown node/connector/view ids are not errors here: updates and removals
against them leave the diagram unchanged. Callers that need confirmation
check existence first (the tool layer in ``server.py`` does).
"""

import copy
import logging
import uuid
from typing import List, Optional

from .format_converter import DiagramFormatError, convert_to_format, detect_format, normalize
from .types import (
    DEFAULT_COLOR,
    DEFAULT_LABEL_HEIGHT,
    DEFAULT_TITLE,
    DEFAULT_VIEW_NAME,
    MODEL_VERSION,
    ConnectorLineType,
    ConnectorStyle,
    Diagram,
    Model,
    OutputFormat,
    TextBoxOrientation,
    View,
    coords,
    set_if_present,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def _default_view() -> View:
    return {
        "id": _new_id(),
        "name": DEFAULT_VIEW_NAME,
        "items": [],
        "connectors": [],
        "rectangles": [],
        "textBoxes": [],
    }


def _initial_model() -> Model:
    return {
        "title": DEFAULT_TITLE,
        "version": MODEL_VERSION,
        "icons": [],
        "colors": [dict(DEFAULT_COLOR)],
        "items": [],
        "views": [_default_view()],
    }


def _find(entries: list, entry_id: str) -> Optional[dict]:
    return next((entry for entry in entries if entry.get("id") == entry_id), None)


def _without(entries: list, entry_id: str) -> list:
    return [entry for entry in entries if entry.get("id") != entry_id]


class DiagramState:
    """Immutable diagram state. All operations return a new instance."""

    def __init__(self, diagram: Optional[Diagram] = None):
        if diagram is None:
            self.model: Model = _initial_model()
        else:
            if detect_format(diagram) == "unknown":
                raise DiagramFormatError("Unable to detect diagram format")
            self.model = normalize(copy.deepcopy(diagram))
            if not self.model.get("views"):
                self.model["views"] = [_default_view()]

        # Derived scene data, passed through untouched
        self.scene = {"connectors": {}, "textBoxes": {}}

    @classmethod
    def _from_model(cls, model: Model) -> "DiagramState":
        state = cls.__new__(cls)
        state.model = model
        state.scene = {"connectors": {}, "textBoxes": {}}
        return state

    def _draft(self) -> Model:
        return copy.deepcopy(self.model)

    def _resolve_view(self, model: Model, view_id: Optional[str], fallback: bool = False) -> Optional[View]:
        if not view_id:
            return model["views"][0]
        view = _find(model["views"], view_id)
        if view is None and fallback:
            return model["views"][0]
        return view

    # ==================== Views ====================

    @property
    def primary_view(self) -> View:
        """The first view; default target when no view id is given."""
        return self.model["views"][0]

    def get_view(self, view_id: Optional[str] = None) -> View:
        """Return the view with ``view_id``, falling back to the primary view."""
        if not view_id:
            return self.primary_view
        return _find(self.model["views"], view_id) or self.primary_view

    # ==================== Nodes ====================

    def add_node(
        self,
        name: str,
        x: int,
        y: int,
        icon: Optional[str] = None,
        description: Optional[str] = None,
        label_height: Optional[float] = None,
        view_id: Optional[str] = None,
    ) -> "DiagramState":
        """Add a model item and place it in the resolved view.

        An unknown ``view_id`` falls back to the primary view.
        """
        node_id = _new_id()
        draft = self._draft()

        item = {"id": node_id, "name": name}
        set_if_present(item, "icon", icon)
        set_if_present(item, "description", description)
        draft["items"].append(item)

        view = self._resolve_view(draft, view_id, fallback=True)
        view.setdefault("items", []).append({
            "id": node_id,
            "tile": coords(x, y),
            "labelHeight": DEFAULT_LABEL_HEIGHT if label_height is None else label_height,
        })

        return DiagramState._from_model(draft)

    def update_node(
        self,
        node_id: str,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        description: Optional[str] = None,
        x: Optional[int] = None,
        y: Optional[int] = None,
        label_height: Optional[float] = None,
        view_id: Optional[str] = None,
    ) -> "DiagramState":
        """Patch a node's model fields and its placement in the resolved view."""
        draft = self._draft()

        item = _find(draft["items"], node_id)
        if item is not None:
            set_if_present(item, "name", name)
            set_if_present(item, "icon", icon)
            set_if_present(item, "description", description)
        else:
            logger.debug("update_node: unknown node %s", node_id)

        view = self._resolve_view(draft, view_id)
        view_item = _find(view.get("items", []), node_id) if view is not None else None
        if view_item is not None:
            tile = view_item.setdefault("tile", coords(0, 0))
            set_if_present(tile, "x", x)
            set_if_present(tile, "y", y)
            set_if_present(view_item, "labelHeight", label_height)

        return DiagramState._from_model(draft)

    def remove_node(self, node_id: str, view_id: Optional[str] = None) -> "DiagramState":
        """Remove a node and every connector touching it in the resolved view.

        Connectors in other views are left as they are.
        """
        draft = self._draft()
        draft["items"] = _without(draft["items"], node_id)

        view = self._resolve_view(draft, view_id)
        if view is not None:
            view["items"] = _without(view.get("items", []), node_id)
            if "connectors" in view:
                view["connectors"] = [
                    connector for connector in view["connectors"]
                    if not any(
                        anchor.get("ref", {}).get("item") == node_id
                        for anchor in connector.get("anchors", [])
                    )
                ]

        return DiagramState._from_model(draft)

    def list_nodes(self, view_id: Optional[str] = None) -> List[dict]:
        """Join model items with their placement in the resolved view."""
        view = self.get_view(view_id)
        placements = {view_item["id"]: view_item for view_item in view.get("items", [])}

        nodes = []
        for item in self.model["items"]:
            node = {"id": item["id"], "name": item.get("name", "")}
            set_if_present(node, "icon", item.get("icon"))
            set_if_present(node, "description", item.get("description"))
            view_item = placements.get(item["id"])
            if view_item is not None:
                tile = view_item.get("tile", {})
                node["position"] = coords(tile.get("x"), tile.get("y"))
            nodes.append(node)
        return nodes

    # ==================== Connectors ====================

    def add_connector(
        self,
        from_node_id: str,
        to_node_id: str,
        style: Optional[ConnectorStyle] = None,
        line_type: Optional[ConnectorLineType] = None,
        color: Optional[str] = None,
        show_arrow: Optional[bool] = None,
        label: Optional[str] = None,
        view_id: Optional[str] = None,
    ) -> "DiagramState":
        """Connect two placed nodes.

        Returns the state unchanged when either endpoint has no view item in
        the resolved view.
        """
        draft = self._draft()
        view = self._resolve_view(draft, view_id)
        if view is None:
            logger.debug("add_connector: view %s not found", view_id)
            return self

        placed = {view_item.get("id") for view_item in view.get("items", [])}
        if from_node_id not in placed or to_node_id not in placed:
            logger.debug("add_connector: endpoint missing (%s -> %s)", from_node_id, to_node_id)
            return self

        connector = {
            "id": _new_id(),
            "anchors": [
                {"id": _new_id(), "ref": {"item": from_node_id, "anchor": "center"}},
                {"id": _new_id(), "ref": {"item": to_node_id, "anchor": "center"}},
            ],
            "style": style or "SOLID",
            "lineType": line_type or "SINGLE",
            "showArrow": True if show_arrow is None else show_arrow,
        }
        set_if_present(connector, "color", color)
        set_if_present(connector, "description", label)

        view.setdefault("connectors", []).append(connector)
        return DiagramState._from_model(draft)

    def update_connector(
        self,
        connector_id: str,
        style: Optional[ConnectorStyle] = None,
        line_type: Optional[ConnectorLineType] = None,
        color: Optional[str] = None,
        show_arrow: Optional[bool] = None,
        label: Optional[str] = None,
        view_id: Optional[str] = None,
    ) -> "DiagramState":
        draft = self._draft()
        view = self._resolve_view(draft, view_id)
        connector = _find(view.get("connectors") or [], connector_id) if view is not None else None
        if connector is None:
            logger.debug("update_connector: unknown connector %s", connector_id)
            return DiagramState._from_model(draft)

        set_if_present(connector, "style", style)
        set_if_present(connector, "lineType", line_type)
        set_if_present(connector, "color", color)
        set_if_present(connector, "showArrow", show_arrow)
        set_if_present(connector, "description", label)
        return DiagramState._from_model(draft)

    def remove_connector(self, connector_id: str, view_id: Optional[str] = None) -> "DiagramState":
        draft = self._draft()
        view = self._resolve_view(draft, view_id)
        if view is not None and view.get("connectors"):
            view["connectors"] = _without(view["connectors"], connector_id)
        return DiagramState._from_model(draft)

    def list_connectors(self, view_id: Optional[str] = None) -> List[dict]:
        """Summarize connectors as source/target pairs."""
        view = self.get_view(view_id)
        connectors = []
        for connector in view.get("connectors") or []:
            anchors = connector.get("anchors", [])
            entry = {
                "id": connector.get("id"),
                "from": anchors[0].get("ref", {}).get("item", "") if anchors else "",
                "to": anchors[-1].get("ref", {}).get("item", "") if anchors else "",
            }
            set_if_present(entry, "style", connector.get("style"))
            set_if_present(entry, "label", connector.get("description"))
            connectors.append(entry)
        return connectors

    # ==================== Annotations ====================

    def add_rectangle(
        self,
        from_x: int,
        from_y: int,
        to_x: int,
        to_y: int,
        color: Optional[str] = None,
        view_id: Optional[str] = None,
    ) -> "DiagramState":
        draft = self._draft()
        view = self._resolve_view(draft, view_id)
        if view is None:
            return self

        rectangle = {"id": _new_id(), "from": coords(from_x, from_y), "to": coords(to_x, to_y)}
        set_if_present(rectangle, "color", color)
        view.setdefault("rectangles", []).append(rectangle)
        return DiagramState._from_model(draft)

    def remove_rectangle(self, rectangle_id: str, view_id: Optional[str] = None) -> "DiagramState":
        draft = self._draft()
        view = self._resolve_view(draft, view_id)
        if view is not None and view.get("rectangles"):
            view["rectangles"] = _without(view["rectangles"], rectangle_id)
        return DiagramState._from_model(draft)

    def add_text_box(
        self,
        x: int,
        y: int,
        content: str,
        orientation: Optional[TextBoxOrientation] = None,
        font_size: Optional[float] = None,
        view_id: Optional[str] = None,
    ) -> "DiagramState":
        draft = self._draft()
        view = self._resolve_view(draft, view_id)
        if view is None:
            return self

        text_box = {
            "id": _new_id(),
            "tile": coords(x, y),
            "content": content,
            "orientation": orientation or "X",
        }
        set_if_present(text_box, "fontSize", font_size)
        view.setdefault("textBoxes", []).append(text_box)
        return DiagramState._from_model(draft)

    def remove_text_box(self, text_box_id: str, view_id: Optional[str] = None) -> "DiagramState":
        draft = self._draft()
        view = self._resolve_view(draft, view_id)
        if view is not None and view.get("textBoxes"):
            view["textBoxes"] = _without(view["textBoxes"], text_box_id)
        return DiagramState._from_model(draft)

    def list_annotations(self, view_id: Optional[str] = None) -> dict:
        view = self.get_view(view_id)
        return {
            "rectangles": copy.deepcopy(view.get("rectangles") or []),
            "textBoxes": copy.deepcopy(view.get("textBoxes") or []),
        }

    # ==================== Diagram ====================

    def set_title(self, title: str) -> "DiagramState":
        draft = self._draft()
        draft["title"] = title
        return DiagramState._from_model(draft)

    def set_description(self, description: str) -> "DiagramState":
        draft = self._draft()
        draft["description"] = description
        return DiagramState._from_model(draft)

    # ==================== Serialization ====================

    def to_json(self, output_format: OutputFormat = "full") -> Diagram:
        """Export the diagram as a fresh JSON-compatible dict."""
        return convert_to_format(copy.deepcopy(self.model), output_format)

    def get_info(self) -> dict:
        """Aggregate counts; element counts are taken from the primary view."""
        view = self.primary_view
        info = {"title": self.model.get("title", "")}
        set_if_present(info, "description", self.model.get("description"))
        info.update({
            "nodeCount": len(self.model["items"]),
            "connectorCount": len(view.get("connectors") or []),
            "rectangleCount": len(view.get("rectangles") or []),
            "textBoxCount": len(view.get("textBoxes") or []),
            "viewCount": len(self.model["views"]),
        })
        return info

    def integrity_warnings(self, view_id: Optional[str] = None) -> List[str]:
        """Report dangling view items and connector anchors in a view."""
        view = self.get_view(view_id)
        warnings = []

        model_ids = {item.get("id") for item in self.model["items"]}
        orphaned = [vi for vi in view.get("items", []) if vi.get("id") not in model_ids]
        if orphaned:
            warnings.append(f"Found {len(orphaned)} view items without matching model items")

        placed = {vi.get("id") for vi in view.get("items", [])}
        for connector in view.get("connectors") or []:
            for anchor in connector.get("anchors", []):
                item_id = anchor.get("ref", {}).get("item")
                if item_id and item_id not in placed:
                    warnings.append(
                        f"Connector {connector.get('id')} references non-existent item {item_id}"
                    )
        return warnings


def create_empty_diagram(title: Optional[str] = None) -> DiagramState:
    """Create a new empty diagram, optionally titled."""
    state = DiagramState()
    if title:
        return state.set_title(title)
    return state


def load_diagram(diagram: Diagram) -> DiagramState:
    """Load a compact or full diagram payload."""
    return DiagramState(diagram)
