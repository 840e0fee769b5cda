"""Tests for the conversation decision engine."""

import asyncio
from datetime import UTC, timedelta

import pytest

from gymagent.agents import should_auto_dispatch
from gymagent.agents.models import ReplyDecision
from gymagent.constants import GymConstants
from gymagent.prompts import Prompt
from gymagent.tests.conftest import (
    DAYTIME,
    NEXT_MORNING,
    NIGHT,
    TEST_ACCOUNT,
    TEST_DESTINATION,
    decision,
)

OPENER = "Hey Sam, we miss you at the gym! Everything ok?"


def _set_level(gym, level: str) -> None:
    gym.db.accounts.upsert(TEST_ACCOUNT, "Iron Temple", "America/New_York", level)


@pytest.fixture
def thread(gym, make_thread):
    thread = make_thread()
    gym.db.conversations.append_message(thread.id, "outbound", OPENER)
    return thread


@pytest.mark.asyncio
async def test_two_turn_close(gym, mock_ollama, channel, thread):
    """
    A reply turn keeps the thread active, a close turn resolves it:
    1. Member says they've been busy; model replies (score 50)
    2. Member confirms; model closes with a last message (score 90)
    """
    mock_ollama.set_responses(
        decision("reply", 50, reply="No stress! Want me to save you a spot Thursday?"),
        decision("close", 90, reply="See you Thursday", resolved=True),
    )

    first = await gym.conversation_agent.handle_inbound(
        thread.id, "I've been slammed at work, back next week", now=DAYTIME
    )

    assert first.status == GymConstants.EvaluationStatus.APPLIED
    assert isinstance(first.decision, ReplyDecision)
    assert first.reply_sent
    assert first.dispatch == GymConstants.DispatchStatus.SENT
    assert len(gym.db.conversations.get_thread(thread.id)) == 3
    assert not gym.db.conversations.get(thread.id).resolved

    second = await gym.conversation_agent.handle_inbound(
        thread.id, "Thursday works!", now=DAYTIME
    )

    transcript = gym.db.conversations.get_thread(thread.id)
    assert second.reply_sent
    assert len(transcript) == 5
    assert gym.db.conversations.get(thread.id).resolved
    assert transcript[-1].role == "outbound"
    assert transcript[-1].content == "See you Thursday"
    assert len(gym.db.conversations.get_decisions(thread.id)) == 2
    assert channel.sent == [
        (TEST_DESTINATION, "No stress! Want me to save you a spot Thursday?"),
        (TEST_DESTINATION, "See you Thursday"),
    ]


@pytest.mark.asyncio
async def test_escalation(gym, mock_ollama, channel, thread):
    mock_ollama.set_responses(decision("escalate", 10))

    result = await gym.conversation_agent.handle_inbound(
        thread.id, "You charged me twice and nobody answers the phone!!", now=DAYTIME
    )

    updated = gym.db.conversations.get(thread.id)
    assert result.status == GymConstants.EvaluationStatus.APPLIED
    assert result.dispatch == GymConstants.DispatchStatus.NONE
    assert updated.needs_review
    assert not updated.resolved
    assert [m.role for m in gym.db.conversations.get_thread(thread.id)] == ["outbound", "inbound"]
    assert channel.sent == []


@pytest.mark.asyncio
async def test_wait_records_decision_only(gym, mock_ollama, channel, thread):
    mock_ollama.set_responses(decision("wait", 40))

    result = await gym.conversation_agent.handle_inbound(thread.id, "hmm", now=DAYTIME)

    assert result.status == GymConstants.EvaluationStatus.APPLIED
    assert len(gym.db.conversations.get_decisions(thread.id)) == 1
    assert channel.sent == []


@pytest.mark.asyncio
async def test_resolved_thread_records_inbound_without_evaluating(
    gym, mock_ollama, channel, thread
):
    gym.db.conversations.record_decision(thread.id, "{}", resolve=True)

    result = await gym.conversation_agent.handle_inbound(thread.id, "Thanks again!", now=DAYTIME)
    again = await gym.conversation_agent.handle_inbound(thread.id, "Thanks again!", now=DAYTIME)

    assert result.status == again.status == GymConstants.EvaluationStatus.SKIPPED_RESOLVED
    assert mock_ollama.requests == []
    assert channel.sent == []
    assert len(gym.db.conversations.get_decisions(thread.id)) == 1
    assert [m.content for m in gym.db.conversations.get_thread(thread.id)][-2:] == [
        "Thanks again!",
        "Thanks again!",
    ]


@pytest.mark.asyncio
async def test_unknown_thread(gym):
    with pytest.raises(ValueError):
        await gym.conversation_agent.handle_inbound(12345, "hello?")


@pytest.mark.asyncio
async def test_unparseable_response_is_recorded_as_failure(gym, mock_ollama, channel, thread):
    mock_ollama.set_responses("I think a friendly reply would be best here.")

    result = await gym.conversation_agent.handle_inbound(
        thread.id, "Please cancel my membership", now=DAYTIME
    )

    assert result.status == GymConstants.EvaluationStatus.FAILED
    assert result.error
    failures = gym.db.conversations.get_failures(thread.id)
    assert len(failures) == 1
    assert failures[0].raw_response == "I think a friendly reply would be best here."
    assert failures[0].sentiment_hint == -1
    assert gym.db.conversations.get_decisions(thread.id) == []
    assert not gym.db.conversations.get(thread.id).resolved
    assert channel.sent == []


@pytest.mark.asyncio
async def test_model_transport_error_propagates(gym, mock_ollama, thread):
    def handler(request: dict, count: int) -> dict:
        raise ConnectionError("ollama unreachable")

    mock_ollama.set_response_handler(handler)

    with pytest.raises(ConnectionError):
        await gym.conversation_agent.handle_inbound(thread.id, "hello", now=DAYTIME)

    # The inbound message is kept; no decision was made
    assert gym.db.conversations.get_thread(thread.id)[-1].content == "hello"
    assert gym.db.conversations.get_decisions(thread.id) == []


@pytest.mark.asyncio
async def test_smart_automation_gates_on_outcome_score(gym, mock_ollama, channel, thread):
    _set_level(gym, GymConstants.AutomationLevel.SMART)
    mock_ollama.set_responses(
        decision("reply", 80, reply="Love it, see you then!"),
        decision("reply", 40, reply="Would a discount help?"),
    )

    confident = await gym.conversation_agent.handle_inbound(thread.id, "I'll come Monday", DAYTIME)
    unsure = await gym.conversation_agent.handle_inbound(thread.id, "maybe, it's pricey", DAYTIME)

    assert confident.dispatch == GymConstants.DispatchStatus.SENT
    assert unsure.dispatch == GymConstants.DispatchStatus.WITHHELD
    assert not unsure.reply_sent
    assert channel.sent == [(TEST_DESTINATION, "Love it, see you then!")]

    held = gym.db.outbox.get_awaiting_approval(thread.id)
    assert [m.id for m in held] == [unsure.outbox_id]
    assert "Would a discount help?" not in [
        m.content for m in gym.db.conversations.get_thread(thread.id)
    ]

    approved = await gym.outbox_agent.approve(unsure.outbox_id, now=DAYTIME)
    assert approved.status == GymConstants.DispatchStatus.SENT
    assert gym.db.conversations.get_thread(thread.id)[-1].content == "Would a discount help?"


@pytest.mark.asyncio
async def test_smart_close_sends_regardless_of_score(gym, mock_ollama, channel, thread):
    _set_level(gym, GymConstants.AutomationLevel.SMART)
    mock_ollama.set_responses(decision("close", 40, reply="Take care, Sam!", resolved=True))

    result = await gym.conversation_agent.handle_inbound(thread.id, "I'm moving away", DAYTIME)

    assert result.dispatch == GymConstants.DispatchStatus.SENT
    assert result.reply_sent
    assert gym.db.conversations.get(thread.id).resolved
    assert channel.sent == [(TEST_DESTINATION, "Take care, Sam!")]


@pytest.mark.asyncio
async def test_smart_threshold_is_runtime_configurable(gym, mock_ollama, channel, thread):
    _set_level(gym, GymConstants.AutomationLevel.SMART)
    gym.db.set_runtime_config("SMART_MIN_OUTCOME_SCORE", "90", "Smart auto-send threshold")
    mock_ollama.set_responses(decision("reply", 80, reply="See you Monday!"))

    result = await gym.conversation_agent.handle_inbound(thread.id, "Monday?", now=DAYTIME)

    assert result.dispatch == GymConstants.DispatchStatus.WITHHELD
    assert channel.sent == []


@pytest.mark.asyncio
async def test_draft_only_never_sends(gym, mock_ollama, channel, thread):
    _set_level(gym, GymConstants.AutomationLevel.DRAFT_ONLY)
    mock_ollama.set_responses(decision("close", 100, reply="Welcome back!"))

    result = await gym.conversation_agent.handle_inbound(thread.id, "I'm back!", now=DAYTIME)

    assert result.dispatch == GymConstants.DispatchStatus.WITHHELD
    assert gym.db.conversations.get(thread.id).resolved
    assert channel.sent == []


@pytest.mark.asyncio
async def test_reply_during_quiet_hours_is_deferred(gym, mock_ollama, channel, thread):
    """A 22:30 reply waits for 08:00 local, then goes out on the next flush."""
    mock_ollama.set_responses(decision("reply", 70, reply="Great, talk tomorrow!"))

    result = await gym.conversation_agent.handle_inbound(thread.id, "ok sounds good", now=NIGHT)

    assert result.status == GymConstants.EvaluationStatus.APPLIED
    assert result.dispatch == GymConstants.DispatchStatus.DEFERRED
    assert not result.reply_sent
    assert channel.sent == []

    row = gym.db.outbox.get(result.outbox_id)
    assert row.status == GymConstants.OutboxStatus.DEFERRED
    assert row.not_before.replace(tzinfo=UTC) == NEXT_MORNING

    assert await gym.outbox_agent.flush(NIGHT + timedelta(hours=1)) == []
    assert channel.sent == []

    outcomes = await gym.outbox_agent.flush(NEXT_MORNING)
    assert [o.status for o in outcomes] == [GymConstants.DispatchStatus.SENT]
    assert channel.sent == [(TEST_DESTINATION, "Great, talk tomorrow!")]
    assert gym.db.conversations.get_thread(thread.id)[-1].content == "Great, talk tomorrow!"


@pytest.mark.asyncio
async def test_channel_failure_keeps_decision(gym, mock_ollama, channel, thread):
    channel.fail_with = "relay returned 500"
    mock_ollama.set_responses(decision("close", 85, reply="See you soon!"))

    result = await gym.conversation_agent.handle_inbound(thread.id, "Will do", now=DAYTIME)

    assert result.status == GymConstants.EvaluationStatus.APPLIED
    assert result.dispatch == GymConstants.DispatchStatus.FAILED
    assert result.dispatch_error == "relay returned 500"
    assert not result.reply_sent
    assert gym.db.conversations.get(thread.id).resolved
    assert gym.db.outbox.get(result.outbox_id).status == GymConstants.OutboxStatus.FAILED
    assert "See you soon!" not in [m.content for m in gym.db.conversations.get_thread(thread.id)]


@pytest.mark.asyncio
async def test_channel_exception_is_contained(gym, mock_ollama, channel, thread):
    channel.raise_with = RuntimeError("socket closed")
    mock_ollama.set_responses(decision("reply", 70, reply="Sounds good!"))

    result = await gym.conversation_agent.handle_inbound(thread.id, "Ok", now=DAYTIME)

    assert result.dispatch == GymConstants.DispatchStatus.FAILED
    assert result.dispatch_error == "socket closed"
    assert len(gym.db.conversations.get_decisions(thread.id)) == 1


@pytest.mark.asyncio
async def test_reopen_decision_updates_goal_and_holds_reply(gym, mock_ollama, channel, thread):
    mock_ollama.set_responses(
        decision(
            "reopen",
            60,
            newGoal="Book Sam a personal training intro",
            reply="We'd love to set you up with a coach!",
        )
    )

    result = await gym.conversation_agent.handle_inbound(
        thread.id, "Actually, do you do personal training?", now=DAYTIME
    )

    updated = gym.db.conversations.get(thread.id)
    assert result.dispatch == GymConstants.DispatchStatus.WITHHELD
    assert updated.goal == "Book Sam a personal training intro"
    assert not updated.resolved
    assert not updated.needs_review
    assert channel.sent == []


@pytest.mark.asyncio
async def test_reopen_thread(gym, mock_ollama, channel, thread):
    gym.db.conversations.record_decision(thread.id, "{}", resolve=True)

    with pytest.raises(ValueError):
        await gym.conversation_agent.reopen_thread(thread.id, "  ")

    reopened = await gym.conversation_agent.reopen_thread(thread.id, "Offer the summer challenge")
    assert not reopened.resolved
    assert reopened.goal == "Offer the summer challenge"

    mock_ollama.set_responses(decision("reply", 70, reply="It starts June 1st!"))
    result = await gym.conversation_agent.handle_inbound(thread.id, "What's that?", now=DAYTIME)
    assert result.reply_sent
    assert "Goal: Offer the summer challenge" in mock_ollama.user_prompt()


@pytest.mark.asyncio
async def test_evaluation_prompt(gym, mock_ollama, thread):
    """Skills, local time and the transcript (without decision rows) reach the model."""
    mock_ollama.set_responses(
        decision("reply", 50, reply="Totally get it!"),
        decision("wait", 50),
    )

    await gym.conversation_agent.handle_inbound(thread.id, "Been slammed", now=DAYTIME)
    await gym.conversation_agent.handle_inbound(thread.id, "Thanks", now=DAYTIME)

    system = mock_ollama.system_prompt()
    assert system.startswith("Current local time at the gym: Mar 10, 2026 at 12:00 PM")
    assert "# Churn Risk" in system
    assert system.endswith(Prompt.EVALUATION_TASK)

    user = mock_ollama.user_prompt()
    assert user.startswith("Goal: Get Sam back to two visits a week\nMember: Sam")
    assert f"[gym]: {OPENER}" in user
    assert "[member]: Been slammed" in user
    assert "[gym]: Totally get it!" in user
    assert user.endswith("[member]: Thanks")
    assert '"outcomeScore"' not in user


@pytest.mark.asyncio
async def test_inbound_messages_on_one_thread_are_serialized(gym, mock_ollama, thread):
    """Concurrent inbound messages are evaluated one after another, each seeing the last."""
    mock_ollama.set_responses(
        decision("reply", 60, reply="First answer"),
        decision("reply", 60, reply="Second answer"),
    )

    await asyncio.gather(
        gym.conversation_agent.handle_inbound(thread.id, "one", now=DAYTIME),
        gym.conversation_agent.handle_inbound(thread.id, "two", now=DAYTIME),
    )

    assert len(gym.db.conversations.get_decisions(thread.id)) == 2
    assert "[gym]: First answer" in mock_ollama.user_prompt(1)
    contents = [m.content for m in gym.db.conversations.get_thread(thread.id)]
    assert contents[-1] == "Second answer"


@pytest.mark.parametrize(
    ("level", "score", "action", "expected"),
    [
        (GymConstants.AutomationLevel.FULL_AUTO, 0, GymConstants.AgentAction.REPLY, True),
        (GymConstants.AutomationLevel.SMART, 60, GymConstants.AgentAction.REPLY, True),
        (GymConstants.AutomationLevel.SMART, 59, GymConstants.AgentAction.REPLY, False),
        (GymConstants.AutomationLevel.SMART, 10, GymConstants.AgentAction.CLOSE, True),
        (GymConstants.AutomationLevel.DRAFT_ONLY, 100, GymConstants.AgentAction.REPLY, False),
        (GymConstants.AutomationLevel.DRAFT_ONLY, 100, GymConstants.AgentAction.CLOSE, False),
    ],
)
def test_should_auto_dispatch(level, score, action, expected):
    assert should_auto_dispatch(level, score, action=action) is expected

