from planner_viz.core.flatten.flatten_tree import normalize_collection
from planner_viz.core.io.load_plan import load_plan
from planner_viz.core.validate.validate_nodes import validate_nodes


def test_validate_scenario_clean():
    plan = load_plan("examples/basic-plan.yaml")
    nodes, errors = validate_nodes(normalize_collection(plan["nodes"]), plan_id="plan-1")
    assert errors == []
    assert [n.id for n in nodes] == ["A", "B", "C", "D", "M"]
    assert [n.node_type for n in nodes] == ["root", "phase", "task", "task", "milestone"]
    assert nodes[2].parent_id == "B"
    assert nodes[3].metadata == {"assignees": ["dana", "lee"]}
    assert all(n.plan_id == "plan-1" for n in nodes)


def test_validate_lenient_with_codes():
    plan = load_plan("examples/invalid-nodes.yaml")
    nodes, errors = validate_nodes(plan["nodes"], plan_id="plan-bad", file=plan["__file__"])

    assert [n.id for n in nodes] == ["a", "b", "c"]
    assert nodes[1].node_type == "task"
    assert nodes[2].status == "not_started"
    # dangling parent is kept, not an error
    assert nodes[2].parent_id == "ghost"

    assert [(e.path, e.code) for e in errors] == [
        ("nodes[1].node_type", "E_INVALID_ENUM"),
        ("nodes[2].status", "E_INVALID_ENUM"),
        ("nodes[3].id", "E_REQUIRED_FIELD"),
        ("nodes[4].id", "E_DUPLICATE_ID"),
    ]
    assert all(e.file == plan["__file__"] for e in errors)


def test_validate_defaults():
    nodes, errors = validate_nodes([{"id": "x"}])
    assert errors == []
    n = nodes[0]
    assert n.node_type == "task"
    assert n.status == "not_started"
    assert n.title == "Untitled Node"
    assert n.order_index == 0
    assert n.parent_id is None
    assert n.metadata == {}
    assert n.comment_count is None


def test_validate_bad_field_types_fall_back():
    nodes, errors = validate_nodes(
        [{"id": "x", "order_index": "first", "parent_id": 7, "metadata": "nope"}]
    )
    assert nodes[0].order_index == 0
    assert nodes[0].parent_id is None
    assert nodes[0].metadata == {}
    assert sorted(e.path for e in errors) == [
        "nodes[0].metadata",
        "nodes[0].order_index",
        "nodes[0].parent_id",
    ]
    assert {e.code for e in errors} == {"E_INVALID_TYPE"}


def test_validate_non_object_entry():
    nodes, errors = validate_nodes(["nope", {"id": "ok"}])
    assert [n.id for n in nodes] == ["ok"]
    assert errors[0].code == "E_INVALID_TYPE"
    assert errors[0].path == "nodes[0]"
