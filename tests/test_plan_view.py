import pytest

from planner_viz.core.config import VizConfig
from planner_viz.core.io.load_plan import load_plan
from planner_viz.core.model import Position
from planner_viz.core.service.node_service import InMemoryNodeService
from planner_viz.core.store.position_store import MemoryStorage, PositionStore
from planner_viz.core.view.scheduler import ManualScheduler
from planner_viz.core.view.plan_view import PlanView


class _FlakyService(InMemoryNodeService):
    def __init__(self, plans):
        super().__init__(plans)
        self.fail_fetch = False
        self.fail_mutation = False

    def get_nodes(self, plan_id):
        if self.fail_fetch:
            raise ConnectionError("backend down")
        return super().get_nodes(plan_id)

    def update_node_status(self, plan_id, node_id, status):
        if self.fail_mutation:
            raise ConnectionError("backend down")
        super().update_node_status(plan_id, node_id, status)


class _QuotaStorage(MemoryStorage):
    def set_item(self, key, value):
        raise OSError("quota exceeded")


def _plan_nodes():
    return load_plan("examples/basic-plan.yaml")["nodes"]


def _view(storage=None, service=None, config=None):
    service = service or _FlakyService({"plan-1": _plan_nodes()})
    view = PlanView(
        "plan-1",
        service,
        PositionStore(storage if storage is not None else MemoryStorage()),
        config=config or VizConfig(),
        scheduler=ManualScheduler(),
    )
    assert view.refresh() is True
    return view


def _positions(view):
    return {n.id: n.position for n in view.graph.nodes}


def test_initial_load_builds_annotated_graph():
    view = _view()
    assert [n.id for n in view.nodes] == ["A", "B", "C", "D", "M"]
    assert [e.id for e in view.graph.edges] == [
        "hier-A-B", "hier-B-C", "hier-B-D", "hier-B-M", "dep-C-M", "seq-C-D",
    ]
    for n in view.graph.nodes:
        assert n.data["lodTier"] == "detailed"
        assert n.data["activeLayer"] == "overview"


def test_drag_then_reload_keeps_override():
    storage = MemoryStorage()
    first = _view(storage)
    computed = _positions(first)

    assert first.drag("C", Position(500.0, 200.0)) is True
    assert _positions(first)["C"] == Position(500.0, 200.0)

    reloaded = _view(storage)
    positions = _positions(reloaded)
    assert positions["C"] == Position(500.0, 200.0)
    for nid in ("A", "B", "D", "M"):
        assert positions[nid] == computed[nid]


def test_drag_survives_failed_persistence():
    view = _view(_QuotaStorage())
    assert view.drag("C", Position(1.0, 2.0)) is False
    assert _positions(view)["C"] == Position(1.0, 2.0)
    # still in place after a refetch in the same session
    view.refresh()
    assert _positions(view)["C"] == Position(1.0, 2.0)


def test_drag_unknown_node():
    view = _view()
    with pytest.raises(ValueError):
        view.drag("ghost", Position(0.0, 0.0))


def test_reset_layout_restores_computed_positions():
    storage = MemoryStorage()
    view = _view(storage)
    computed = _positions(view)
    view.drag("C", Position(500.0, 200.0))
    assert view.reset_layout() is True
    assert _positions(view) == computed
    assert storage.get_item("planLayout_plan-1") is None


def test_mutation_schedules_refetch():
    view = _view()
    scheduler = view.scheduler
    assert view.update_status("M", "completed") is True
    # not applied until the scheduled refetch runs
    assert view.nodes[-1].status == "not_started"
    assert scheduler.pending == 1
    assert scheduler.advance(0.4) == 0
    assert scheduler.advance(0.2) == 1
    assert view.nodes[-1].status == "completed"


def test_create_node_appears_after_refetch():
    view = _view()
    nid = view.create_node({"title": "QA", "parent_id": "B", "order_index": 3})
    assert nid == "node-6"
    view.scheduler.run_pending()
    assert "node-6" in {n.id for n in view.nodes}
    assert "seq-D-node-6" in {e.id for e in view.edges}


def test_failed_mutation_is_reported_not_raised():
    service = _FlakyService({"plan-1": _plan_nodes()})
    view = _view(service=service)
    service.fail_mutation = True
    assert view.update_status("C", "blocked") is False
    assert view.scheduler.pending == 0
    assert view.pop_messages() == ["Failed to update status: backend down"]
    assert view.messages == []


def test_unknown_node_mutation_is_reported():
    view = _view()
    assert view.update_node("ghost", {"title": "x"}) is False
    assert len(view.messages) == 1
    assert "E_MUTATION_UNKNOWN_NODE" in view.messages[0]


def test_failed_fetch_keeps_previous_graph():
    service = _FlakyService({"plan-1": _plan_nodes()})
    view = _view(service=service)
    before = view.graph
    service.fail_fetch = True
    assert view.refresh() is False
    assert view.graph is before
    assert view.messages == ["Failed to load plan: backend down"]


def test_deleting_selected_node_closes_details():
    view = _view()
    assert view.select_node("D") is True
    assert view.detail_open is True
    assert view.delete_node("D") is True
    assert view.detail_open is False
    assert view.selected_node is None
    view.scheduler.run_pending()
    assert "D" not in {n.id for n in view.nodes}


def test_selected_node_removed_elsewhere_closes_details():
    service = _FlakyService({"plan-1": _plan_nodes()})
    view = _view(service=service)
    view.select_node("C")
    service.delete_node("plan-1", "C")
    view.refresh()
    assert view.detail_open is False
    assert view.selected_id is None


def test_select_unknown_node():
    view = _view()
    assert view.select_node("ghost") is False
    assert view.detail_open is False


def test_stale_fetch_is_discarded():
    view = _view()
    old = view.begin_fetch()
    new = view.begin_fetch()
    assert view.complete_fetch(new, [{"id": "only", "node_type": "root"}]) is True
    assert view.complete_fetch(old, _plan_nodes()) is False
    assert [n.id for n in view.nodes] == ["only"]


def test_last_completed_fetch_wins_when_not_discarding():
    view = _view(config=VizConfig(discard_stale_fetches=False))
    old = view.begin_fetch()
    new = view.begin_fetch()
    view.complete_fetch(new, [{"id": "only", "node_type": "root"}])
    assert view.complete_fetch(old, _plan_nodes()) is True
    assert len(view.nodes) == 5


def test_toggle_dependencies_hides_without_relayout():
    view = _view()
    before = _positions(view)
    assert view.toggle_dependencies() is False
    assert len(view.graph.edges) == 6
    assert [e.hidden for e in view.graph.edges] == [e.type != "hierarchical" for e in view.graph.edges]
    assert _positions(view) == before
    assert all(n.data["showDependencies"] is False for n in view.graph.nodes)


def test_zoom_and_layer_reannotate():
    view = _view()
    assert view.set_zoom(0.49) == "minimal"
    assert {n.data["lodTier"] for n in view.graph.nodes} == {"minimal"}
    view.set_zoom(0.5)
    view.set_layer("timeline")
    assert {n.data["lodTier"] for n in view.graph.nodes} == {"compact"}
    assert {n.data["activeLayer"] for n in view.graph.nodes} == {"timeline"}
    rendered = view.render()
    assert [r.tier for r in rendered] == ["compact"] * 5


def test_fit_to_view_sets_zoom():
    view = _view()
    vp = view.fit_to_view(200, 200)
    assert vp.zoom == 0.3
    assert view.viewport.state.zoom == 0.3
    assert {n.data["lodTier"] for n in view.graph.nodes} == {"minimal"}


def test_close_resets_viewport_and_ignores_late_fetches():
    view = _view()
    view.set_zoom(0.3)
    view.update_status("M", "completed")
    view.close()
    assert view.viewport.state.zoom == 1.0
    view.scheduler.run_pending()
    assert view.nodes[-1].status == "not_started"
