"""Tests for the immutable diagram state manager."""

import pytest

from fossflow_mcp.diagram_state import DiagramState, create_empty_diagram, load_diagram
from fossflow_mcp.format_converter import DiagramFormatError


@pytest.fixture
def empty_state():
    return create_empty_diagram("Test")


@pytest.fixture
def two_nodes(empty_state):
    state = empty_state.add_node(name="A", x=0, y=0, icon="server")
    state = state.add_node(name="B", x=4, y=2)
    return state


def node_ids(state):
    return [item["id"] for item in state.model["items"]]


class TestConstruction:
    def test_initial_model(self):
        state = DiagramState()
        assert state.model["title"] == "Untitled"
        assert state.model["version"] == "1.0"
        assert state.model["items"] == []
        assert len(state.model["views"]) == 1
        assert state.primary_view["name"] == "Main View"
        assert state.model["colors"] == [{"id": "__DEFAULT__", "value": "#6366f1"}]

    def test_create_empty_diagram_title(self):
        assert create_empty_diagram("Hello").model["title"] == "Hello"
        assert create_empty_diagram().model["title"] == "Untitled"

    def test_unknown_format_raises(self):
        with pytest.raises(DiagramFormatError):
            load_diagram({"nothing": True})

    def test_empty_dict_raises(self):
        with pytest.raises(DiagramFormatError):
            DiagramState({})

    def test_compact_is_normalized(self):
        state = load_diagram({"t": "x", "i": [["A", "", ""]], "v": [[[[0, 1, 1]], []]], "_": {"f": "compact", "v": "1.0"}})
        assert node_ids(state) == ["item-0"]

    def test_missing_views_get_default(self):
        state = load_diagram({"title": "x", "items": [], "views": []})
        assert len(state.model["views"]) == 1

    def test_input_is_copied(self):
        payload = {"title": "x", "items": [], "views": [], "icons": [], "colors": []}
        state = load_diagram(payload)
        state.model["items"].append({"id": "z", "name": "Z"})
        assert payload["items"] == []


class TestImmutability:
    def test_add_node_leaves_original(self, empty_state):
        new_state = empty_state.add_node(name="A", x=1, y=1)
        assert empty_state.model["items"] == []
        assert len(new_state.model["items"]) == 1
        assert new_state is not empty_state

    def test_to_json_returns_copy(self, two_nodes):
        exported = two_nodes.to_json()
        exported["items"].clear()
        assert len(two_nodes.model["items"]) == 2

    def test_remove_node_leaves_original(self, two_nodes):
        a = node_ids(two_nodes)[0]
        two_nodes.remove_node(a)
        assert len(two_nodes.model["items"]) == 2


class TestNodes:
    def test_add_node_places_item(self, two_nodes):
        a, b = node_ids(two_nodes)
        view_items = two_nodes.primary_view["items"]
        assert view_items[0] == {"id": a, "tile": {"x": 0, "y": 0}, "labelHeight": 80}
        assert view_items[1]["tile"] == {"x": 4, "y": 2}
        assert two_nodes.model["items"][0] == {"id": a, "name": "A", "icon": "server"}
        assert "icon" not in two_nodes.model["items"][1]

    def test_ids_are_unique(self, two_nodes):
        a, b = node_ids(two_nodes)
        assert a != b

    def test_update_node(self, two_nodes):
        a = node_ids(two_nodes)[0]
        state = two_nodes.update_node(a, name="Renamed", x=7)
        assert state.model["items"][0]["name"] == "Renamed"
        assert state.model["items"][0]["icon"] == "server"
        assert state.primary_view["items"][0]["tile"] == {"x": 7, "y": 0}

    def test_update_unknown_node_is_noop(self, two_nodes):
        state = two_nodes.update_node("missing", name="X")
        assert state.model == two_nodes.model

    def test_remove_node_prunes_connectors(self, two_nodes):
        a, b = node_ids(two_nodes)
        state = two_nodes.add_connector(a, b)
        state = state.remove_node(a)
        assert node_ids(state) == [b]
        assert [vi["id"] for vi in state.primary_view["items"]] == [b]
        assert state.primary_view["connectors"] == []

    def test_list_nodes(self, two_nodes):
        nodes = two_nodes.list_nodes()
        assert [node["name"] for node in nodes] == ["A", "B"]
        assert nodes[1]["position"] == {"x": 4, "y": 2}
        assert nodes[0]["icon"] == "server"


class TestConnectors:
    def test_add_connector_defaults(self, two_nodes):
        a, b = node_ids(two_nodes)
        connector = two_nodes.add_connector(a, b).primary_view["connectors"][0]
        assert connector["style"] == "SOLID"
        assert connector["lineType"] == "SINGLE"
        assert connector["showArrow"] is True
        assert [anchor["ref"]["item"] for anchor in connector["anchors"]] == [a, b]

    def test_missing_endpoint_returns_same_state(self, two_nodes):
        a = node_ids(two_nodes)[0]
        assert two_nodes.add_connector(a, "missing") is two_nodes

    def test_update_connector(self, two_nodes):
        a, b = node_ids(two_nodes)
        state = two_nodes.add_connector(a, b, label="calls")
        connector_id = state.primary_view["connectors"][0]["id"]
        state = state.update_connector(connector_id, style="DASHED", show_arrow=False)
        connector = state.primary_view["connectors"][0]
        assert connector["style"] == "DASHED"
        assert connector["showArrow"] is False
        assert connector["description"] == "calls"

    def test_remove_connector(self, two_nodes):
        a, b = node_ids(two_nodes)
        state = two_nodes.add_connector(a, b)
        connector_id = state.primary_view["connectors"][0]["id"]
        assert state.remove_connector(connector_id).primary_view["connectors"] == []

    def test_list_connectors(self, two_nodes):
        a, b = node_ids(two_nodes)
        state = two_nodes.add_connector(a, b, style="DOTTED", label="sync")
        listed = state.list_connectors()
        assert listed[0]["from"] == a
        assert listed[0]["to"] == b
        assert listed[0]["style"] == "DOTTED"
        assert listed[0]["label"] == "sync"


class TestAnnotations:
    def test_rectangle_lifecycle(self, empty_state):
        state = empty_state.add_rectangle(0, 0, 3, 3, color="#ff0000")
        rectangle = state.primary_view["rectangles"][0]
        assert rectangle["from"] == {"x": 0, "y": 0}
        assert rectangle["to"] == {"x": 3, "y": 3}
        assert rectangle["color"] == "#ff0000"
        assert state.remove_rectangle(rectangle["id"]).primary_view["rectangles"] == []

    def test_text_box_lifecycle(self, empty_state):
        state = empty_state.add_text_box(1, 2, "Note")
        text_box = state.primary_view["textBoxes"][0]
        assert text_box["orientation"] == "X"
        assert "fontSize" not in text_box
        assert state.remove_text_box(text_box["id"]).primary_view["textBoxes"] == []

    def test_list_annotations(self, empty_state):
        state = empty_state.add_rectangle(0, 0, 1, 1).add_text_box(0, 0, "T", font_size=0.5)
        annotations = state.list_annotations()
        assert len(annotations["rectangles"]) == 1
        assert annotations["textBoxes"][0]["fontSize"] == 0.5


class TestInfoAndExport:
    def test_get_info(self, two_nodes):
        a, b = node_ids(two_nodes)
        info = two_nodes.add_connector(a, b).set_description("desc").get_info()
        assert info == {
            "title": "Test",
            "description": "desc",
            "nodeCount": 2,
            "connectorCount": 1,
            "rectangleCount": 0,
            "textBoxCount": 0,
            "viewCount": 1,
        }

    def test_compact_export(self, two_nodes):
        a, b = node_ids(two_nodes)
        compact = two_nodes.add_connector(a, b).to_json("compact")
        assert compact["i"] == [["A", "server", ""], ["B", "", ""]]
        assert compact["v"] == [[[[0, 0, 0], [1, 4, 2]], [[0, 1]]]]

    def test_integrity_warnings(self):
        state = load_diagram({
            "title": "x",
            "items": [{"id": "a", "name": "A"}],
            "views": [{
                "id": "v",
                "items": [{"id": "a", "tile": {"x": 0, "y": 0}}, {"id": "ghost", "tile": {"x": 1, "y": 0}}],
                "connectors": [{"id": "c", "anchors": [
                    {"id": "1", "ref": {"item": "a"}},
                    {"id": "2", "ref": {"item": "nowhere"}},
                ]}],
            }],
        })
        warnings = state.integrity_warnings()
        assert "Found 1 view items without matching model items" in warnings
        assert "Connector c references non-existent item nowhere" in warnings


class TestProperties:
    def test_empty_info(self):
        assert create_empty_diagram("Test").get_info() == {
            "title": "Test",
            "nodeCount": 0,
            "connectorCount": 0,
            "rectangleCount": 0,
            "textBoxCount": 0,
            "viewCount": 1,
        }

    def test_add_single_node(self):
        state = create_empty_diagram().add_node(name="API Server", x=5, y=3)
        assert [item["name"] for item in state.model["items"]] == ["API Server"]
        view_items = state.primary_view["items"]
        assert len(view_items) == 1
        assert view_items[0]["tile"] == {"x": 5, "y": 3}
        assert view_items[0]["labelHeight"] == 80

    def test_unknown_view_falls_back_to_primary(self, empty_state):
        state = empty_state.add_node(name="A", x=0, y=0, view_id="missing-view")
        assert len(state.primary_view["items"]) == 1

    def test_remove_node_twice(self, two_nodes):
        a = node_ids(two_nodes)[0]
        once = two_nodes.remove_node(a)
        twice = once.remove_node(a)
        assert twice.model == once.model

    def test_connector_pruned_from_either_end(self, two_nodes):
        a, b = node_ids(two_nodes)
        connected = two_nodes.add_connector(a, b)
        for node_id in (a, b):
            assert connected.remove_node(node_id).get_info()["connectorCount"] == 0

    def test_compact_example(self):
        state = load_diagram({
            "t": "T",
            "i": [["A", "server", ""], ["B", "api", ""]],
            "v": [[[[0, 0, 0], [1, 5, 0]], [[0, 1]]]],
            "_": {"f": "compact", "v": "1.0"},
        })
        assert node_ids(state) == ["item-0", "item-1"]
        listed = state.list_connectors()
        assert len(listed) == 1
        assert (listed[0]["from"], listed[0]["to"]) == ("item-0", "item-1")


@pytest.fixture
def two_views():
    def view(view_id, a_tile, b_tile):
        return {
            "id": view_id,
            "name": view_id,
            "items": [{"id": "a", "tile": a_tile}, {"id": "b", "tile": b_tile}],
            "connectors": [{
                "id": f"{view_id}-link",
                "anchors": [
                    {"id": f"{view_id}-1", "ref": {"item": "a"}},
                    {"id": f"{view_id}-2", "ref": {"item": "b"}},
                ],
            }],
        }

    return load_diagram({
        "title": "Views",
        "items": [{"id": "a", "name": "A"}, {"id": "b", "name": "B"}],
        "views": [view("v1", {"x": 0, "y": 0}, {"x": 2, "y": 0}), view("v2", {"x": 9, "y": 9}, {"x": 7, "y": 7})],
        "icons": [],
        "colors": [],
    })


class TestViews:
    def test_remove_node_keeps_other_view_connectors(self, two_views):
        state = two_views.remove_node("a")
        assert state.get_view("v1")["connectors"] == []
        assert [c["id"] for c in state.get_view("v2")["connectors"]] == ["v2-link"]

    def test_remove_node_in_second_view(self, two_views):
        state = two_views.remove_node("a", view_id="v2")
        assert state.get_view("v2")["connectors"] == []
        assert [vi["id"] for vi in state.get_view("v2")["items"]] == ["b"]
        assert [c["id"] for c in state.get_view("v1")["connectors"]] == ["v1-link"]

    def test_update_node_in_second_view(self, two_views):
        state = two_views.update_node("a", x=1, y=-1, view_id="v2")
        assert state.get_view("v2")["items"][0]["tile"] == {"x": 1, "y": -1}
        assert state.get_view("v1")["items"][0]["tile"] == {"x": 0, "y": 0}

    def test_add_connector_in_second_view(self, two_views):
        state = two_views.add_connector("b", "a", style="DOTTED", view_id="v2")
        assert len(state.get_view("v2")["connectors"]) == 2
        assert len(state.get_view("v1")["connectors"]) == 1
        assert state.list_connectors("v2")[-1]["from"] == "b"

    def test_update_and_remove_connector_in_second_view(self, two_views):
        state = two_views.update_connector("v2-link", style="DASHED", view_id="v2")
        assert state.get_view("v2")["connectors"][0]["style"] == "DASHED"
        state = state.remove_connector("v2-link", view_id="v2")
        assert state.get_view("v2")["connectors"] == []
        assert len(state.get_view("v1")["connectors"]) == 1

    def test_connector_ids_are_scoped_to_their_view(self, two_views):
        state = two_views.remove_connector("v2-link")
        assert len(state.get_view("v2")["connectors"]) == 1

    def test_primary_view_without_id(self):
        state = load_diagram({
            "title": "x",
            "items": [],
            "views": [{"name": "Main", "items": []}],
            "icons": [],
            "colors": [],
        })
        state = state.add_node(name="A", x=0, y=0).add_rectangle(0, 0, 1, 1)
        assert len(state.primary_view["items"]) == 1
        assert len(state.primary_view["rectangles"]) == 1
        assert state.remove_node(node_ids(state)[0]).primary_view["items"] == []
