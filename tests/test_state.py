"""Tests for the observable agent state."""

from canvasagent.agent.state import AgentState
from canvasagent.domain.actions import StreamingAction
from canvasagent.domain.history import PromptItem
from canvasagent.errors import AgentError, AgentErrorKind


def _preview(index: int) -> StreamingAction:
    return StreamingAction(index=index, kind="note", data={"kind": "note"}, complete=False, arrival_time=0.0)


def test_listeners_see_every_transition_until_unsubscribed():
    state = AgentState("gpt-4o")
    seen = []
    unsubscribe = state.subscribe(lambda s: seen.append(s.is_generating))

    state.set_generating(True)
    state.set_generating(False)
    unsubscribe()
    unsubscribe()
    state.set_generating(True)

    assert seen == [True, False]


def test_history_is_an_immutable_snapshot():
    state = AgentState("gpt-4o")
    index = state.append_history(PromptItem(text="hi"))

    snapshot = state.history
    state.append_history(PromptItem(text="again"))

    assert index == 0
    assert len(snapshot) == 1
    assert len(state.history) == 2


def test_preview_is_ordered_by_index_and_clears_quietly():
    state = AgentState("gpt-4o")
    calls = []
    state.subscribe(lambda s: calls.append(len(s.preview)))

    state.set_preview(_preview(2))
    state.set_preview(_preview(0))
    assert [action.index for action in state.preview] == [0, 2]

    state.drop_preview(0)
    state.drop_preview(0)
    state.clear_preview()
    state.clear_preview()

    assert calls == [1, 2, 1, 0]


def test_failing_listener_does_not_stop_others():
    state = AgentState("gpt-4o")
    seen = []

    def broken(_state):
        raise RuntimeError("boom")

    state.subscribe(broken)
    state.subscribe(lambda s: seen.append(s.model_name))
    state.set_model_name("claude-4.5-sonnet")

    assert seen == ["claude-4.5-sonnet"]


def test_last_error_round_trip():
    state = AgentState("gpt-4o")
    error = AgentError(AgentErrorKind.NETWORK, "offline", retryable=True, provider="openai")
    state.set_last_error(error)
    assert state.last_error is error
    state.set_last_error(None)
    assert state.last_error is None
