"""Tests for activity tracking, grouping and group status."""

import pytest

from agent_sessions.activity import (
    ActivityGroup,
    ActivityStatus,
    ActivityTracker,
    ToolActivity,
    ToolBackgrounded,
    ToolEnd,
    ToolKind,
    ToolProgress,
    ToolStart,
    count_visible_rows,
    derive_group_status,
    group_activities,
    is_activity_group,
    parse_event,
    tool_kind,
)


def _activity(tool_use_id, tool_name, parent=None, status=ActivityStatus.RUNNING, is_error=False):
    return ToolActivity(
        tool_use_id=tool_use_id,
        tool_name=tool_name,
        parent_tool_use_id=parent,
        status=status,
        is_error=is_error,
    )


class TestTracker:
    def test_start_creates_running_activity(self):
        tracker = ActivityTracker([ToolStart("t1", "Bash", {"command": "ls"})])
        activity = tracker.get("t1")
        assert activity.status == ActivityStatus.RUNNING
        assert activity.done is False
        assert activity.result is None

    def test_end_sets_terminal_state(self):
        tracker = ActivityTracker([
            ToolStart("t1", "Bash"),
            ToolEnd("t1", result="ok", elapsed_seconds=2.5),
        ])
        activity = tracker.get("t1")
        assert activity.status == ActivityStatus.COMPLETED
        assert activity.done is True
        assert activity.result == "ok"
        assert activity.elapsed_seconds == 2.5

    def test_error_end(self):
        tracker = ActivityTracker([ToolStart("t1", "Bash"), ToolEnd("t1", result="boom", is_error=True)])
        activity = tracker.get("t1")
        assert activity.status == ActivityStatus.ERROR
        assert activity.is_error is True
        assert activity.done is True

    def test_backgrounded_is_still_in_flight(self):
        tracker = ActivityTracker([ToolStart("t1", "Bash"), ToolBackgrounded("t1")])
        activity = tracker.get("t1")
        assert activity.status == ActivityStatus.BACKGROUNDED
        assert activity.done is False

        tracker.apply(ToolEnd("t1", result="finished"))
        assert activity.status == ActivityStatus.COMPLETED

    def test_progress_updates_in_place(self):
        tracker = ActivityTracker([
            ToolStart("t1", "Bash", {"command": "sleep 5"}),
            ToolProgress("t1", elapsed_seconds=3, intent="Waiting", input={"timeout": 10}),
        ])
        activity = tracker.get("t1")
        assert activity.elapsed_seconds == 3
        assert activity.intent == "Waiting"
        assert activity.input == {"command": "sleep 5", "timeout": 10}

    def test_terminal_state_is_final(self):
        tracker = ActivityTracker([
            ToolStart("t1", "Bash"),
            ToolEnd("t1", result="first"),
            ToolEnd("t1", result="second", is_error=True),
            ToolBackgrounded("t1"),
            ToolStart("t1", "Read"),
        ])
        activity = tracker.get("t1")
        assert activity.status == ActivityStatus.COMPLETED
        assert activity.result == "first"
        assert activity.tool_name == "Bash"

    def test_events_for_unknown_ids_are_ignored(self):
        tracker = ActivityTracker([ToolEnd("ghost", result="x"), ToolProgress("ghost", elapsed_seconds=1)])
        assert tracker.activities == []

    def test_restart_refreshes_input(self):
        tracker = ActivityTracker([
            ToolStart("t1", "Edit"),
            ToolStart("t1", "Edit", {"file_path": "/a.py"}, intent="Fix typo"),
        ])
        assert len(tracker.activities) == 1
        assert tracker.get("t1").input == {"file_path": "/a.py"}
        assert tracker.get("t1").intent == "Fix typo"

    def test_arrival_order_is_kept(self):
        tracker = ActivityTracker([ToolStart("b", "Read"), ToolStart("a", "Bash"), ToolStart("c", "Grep")])
        assert [a.tool_use_id for a in tracker.activities] == ["b", "a", "c"]

    def test_apply_raw_drops_malformed(self):
        tracker = ActivityTracker()
        applied = tracker.apply_raw([
            {"type": "tool_start", "toolUseId": "t1", "toolName": "Read", "input": {"file_path": "/x"}},
            {"type": "tool_start", "toolUseId": "t2"},
            {"type": "mystery", "toolUseId": "t3"},
            "not even a dict",
            None,
            {"type": "tool_end", "toolUseId": "t1", "result": "contents", "isError": False},
        ])
        assert applied == 2
        assert [a.tool_use_id for a in tracker.activities] == ["t1"]
        assert tracker.get("t1").done


class TestParseEvent:
    def test_start_event(self):
        event = parse_event({
            "type": "tool_start",
            "toolUseId": "t1",
            "toolName": "Read",
            "parentToolUseId": "task1",
            "input": "not a dict",
        })
        assert event == ToolStart("t1", "Read", {}, parent_tool_use_id="task1")

    def test_end_event_flattens_block_results(self):
        event = parse_event({
            "type": "tool_end",
            "toolUseId": "t1",
            "result": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}],
            "isError": True,
        })
        assert event == ToolEnd("t1", result="a\nb", is_error=True)

    def test_progress_with_bad_elapsed(self):
        event = parse_event({"type": "tool_progress", "toolUseId": "t1", "elapsedSeconds": "soon"})
        assert event == ToolProgress("t1")

    @pytest.mark.parametrize("raw", [
        {},
        {"type": "tool_end"},
        {"type": "tool_end", "toolUseId": ""},
        {"type": "tool_start", "toolUseId": "t1", "toolName": ""},
        ["tool_start"],
    ])
    def test_malformed_events(self, raw):
        assert parse_event(raw) is None


class TestGrouping:
    def test_task_children_are_grouped(self):
        a = _activity("t1", "Task")
        b = _activity("b", "Edit", parent="t1")
        c = _activity("c", "Read", parent="t1")
        d = _activity("d", "Bash")

        items = group_activities([a, b, c, d])

        assert len(items) == 2
        group, top = items
        assert is_activity_group(group)
        assert group.parent is a
        assert group.children == [b, c]
        assert top is d

    def test_ungrouped_keep_relative_order(self):
        x = _activity("x", "Read")
        task = _activity("task", "Task")
        y = _activity("y", "Grep")
        child = _activity("child", "Bash", parent="task")
        z = _activity("z", "Glob")

        items = group_activities([x, task, y, child, z])
        assert [i.parent.tool_use_id if isinstance(i, ActivityGroup) else i.tool_use_id for i in items] == [
            "x", "task", "y", "z",
        ]
        assert items[1].children == [child]

    def test_orphans_stay_top_level(self):
        orphan = _activity("o", "Read", parent="missing")
        early = _activity("e", "Read", parent="late-task")
        task = _activity("late-task", "Task")
        items = group_activities([orphan, early, task])
        assert items[0] is orphan
        assert items[1] is early
        assert items[2].children == []

    def test_non_task_parent_does_not_group(self):
        bash = _activity("bash", "Bash")
        child = _activity("child", "Read", parent="bash")
        assert group_activities([bash, child]) == [bash, child]

    def test_each_child_in_exactly_one_group(self):
        t1 = _activity("t1", "Task")
        t2 = _activity("t2", "Task")
        c1 = _activity("c1", "Read", parent="t1")
        c2 = _activity("c2", "Read", parent="t2")
        c3 = _activity("c3", "Edit", parent="t1")

        items = group_activities([t1, t2, c1, c2, c3])
        assert items[0].children == [c1, c3]
        assert items[1].children == [c2]
        assert count_visible_rows(items) == 5

    def test_nested_task_opens_its_own_group(self):
        outer = _activity("t1", "Task")
        inner = _activity("t2", "Task", parent="t1")
        read = _activity("r1", "Read", parent="t2")

        items = group_activities([outer, inner, read])
        assert [i.parent for i in items] == [outer, inner]
        assert items[0].children == []
        assert items[1].children == [read]
        assert count_visible_rows(items) == 3

    def test_tracker_grouped(self):
        tracker = ActivityTracker([
            ToolStart("t1", "Task", {"description": "Explore repo", "subagent_type": "Explore"}),
            ToolStart("r1", "Read", parent_tool_use_id="t1"),
        ])
        [group] = tracker.grouped()
        assert group.description == "Explore repo"
        assert group.subagent_type == "Explore"
        assert group.done_count == 0


class TestGroupStatus:
    def test_running_parent_with_finished_children_completes(self):
        parent = _activity("t1", "Task")
        children = [
            _activity("a", "Read", status=ActivityStatus.COMPLETED),
            _activity("b", "Edit", status=ActivityStatus.COMPLETED),
        ]
        assert derive_group_status(parent, children) == ActivityStatus.COMPLETED

    def test_errored_child_makes_group_error(self):
        parent = _activity("t1", "Task")
        children = [
            _activity("a", "Read", status=ActivityStatus.COMPLETED),
            _activity("b", "Edit", status=ActivityStatus.ERROR, is_error=True),
        ]
        assert derive_group_status(parent, children) == ActivityStatus.ERROR

    def test_parent_terminal_state_wins(self):
        parent = _activity("t1", "Task", status=ActivityStatus.ERROR, is_error=True)
        children = [_activity("a", "Read", status=ActivityStatus.COMPLETED)]
        assert derive_group_status(parent, children) == ActivityStatus.ERROR

        parent = _activity("t1", "Task", status=ActivityStatus.COMPLETED)
        children = [_activity("a", "Read", status=ActivityStatus.ERROR, is_error=True)]
        assert derive_group_status(parent, children) == ActivityStatus.COMPLETED

    def test_unfinished_children_keep_parent_status(self):
        parent = _activity("t1", "Task")
        children = [
            _activity("a", "Read", status=ActivityStatus.COMPLETED),
            _activity("b", "Bash", status=ActivityStatus.BACKGROUNDED),
        ]
        assert derive_group_status(parent, children) == ActivityStatus.RUNNING

    def test_no_children_uses_parent_status(self):
        parent = _activity("t1", "Task", status=ActivityStatus.PENDING)
        assert derive_group_status(parent, []) == ActivityStatus.PENDING
        assert ActivityGroup(parent).status == ActivityStatus.PENDING


class TestToolActivitySnapshot:
    def test_from_dict_infers_status(self):
        done = ToolActivity.from_dict({"toolUseId": "a", "toolName": "Read", "done": True})
        failed = ToolActivity.from_dict({"toolUseId": "b", "toolName": "Read", "done": True, "isError": True})
        live = ToolActivity.from_dict({"toolUseId": "c", "toolName": "Read"})
        assert done.status == ActivityStatus.COMPLETED
        assert failed.status == ActivityStatus.ERROR
        assert live.status == ActivityStatus.RUNNING

    def test_to_dict_round_trip(self):
        activity = ToolActivity("a", "Edit", {"file_path": "/x"}, parent_tool_use_id="t", status=ActivityStatus.COMPLETED)
        data = activity.to_dict()
        assert data["done"] is True
        assert data["parentToolUseId"] == "t"
        assert ToolActivity.from_dict(data) == activity

    def test_tool_kinds(self):
        assert tool_kind("Task") == ToolKind.TASK
        assert tool_kind("TodoWrite") == ToolKind.TODO
        assert tool_kind("mcp__github__create_issue") == ToolKind.MCP
        assert tool_kind("SomethingNew") == ToolKind.OTHER
