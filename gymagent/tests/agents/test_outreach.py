"""Tests for the outreach agent."""

import pytest

from gymagent.agents.outreach import clean_draft
from gymagent.constants import GymConstants
from gymagent.prompts import Prompt
from gymagent.tests.conftest import (
    DAYTIME,
    NIGHT,
    TEST_ACCOUNT,
    TEST_DESTINATION,
    TEST_MEMBER,
)


async def _start(gym, now=DAYTIME, **overrides):
    kwargs = {
        "account_id": TEST_ACCOUNT,
        "member_id": TEST_MEMBER,
        "destination": TEST_DESTINATION,
        "goal": "Card declined on the March payment, get billing updated",
        "task_type": "payment_failed",
        "member_name": "Sam",
        "now": now,
        **overrides,
    }
    return await gym.outreach_agent.start_thread(**kwargs)


@pytest.mark.asyncio
async def test_start_thread_sends_opening_message(gym, mock_ollama, channel):
    mock_ollama.set_responses('"Hey Sam — quick heads up, your card didn\'t go through."')

    result = await _start(gym)

    assert result is not None
    assert result.draft == "Hey Sam, quick heads up, your card didn't go through."
    assert result.dispatch.status == GymConstants.DispatchStatus.SENT
    assert channel.sent == [(TEST_DESTINATION, result.draft)]

    transcript = gym.db.conversations.get_thread(result.thread.id)
    assert [(m.role, m.content) for m in transcript] == [("outbound", result.draft)]

    system = mock_ollama.system_prompt()
    assert "# Payment Recovery" in system
    assert system.endswith(Prompt.DRAFTING_TASK)
    assert mock_ollama.user_prompt() == Prompt.DRAFTING_USER.format(
        goal="Card declined on the March payment, get billing updated", member="Sam"
    )


@pytest.mark.asyncio
async def test_start_thread_draft_only_waits_for_approval(gym, mock_ollama, channel):
    gym.db.accounts.upsert(TEST_ACCOUNT, "Iron Temple", "America/New_York", "draft_only")
    mock_ollama.set_responses("Hi Sam, your card on file was declined.")

    result = await _start(gym)

    assert result.dispatch.status == GymConstants.DispatchStatus.WITHHELD
    assert channel.sent == []
    assert gym.db.conversations.get_thread(result.thread.id) == []
    assert [m.id for m in gym.db.outbox.get_awaiting_approval(result.thread.id)] == [
        result.dispatch.outbox_id
    ]


@pytest.mark.asyncio
async def test_smart_accounts_send_outreach(gym, mock_ollama, channel):
    gym.db.accounts.upsert(TEST_ACCOUNT, "Iron Temple", "America/New_York", "smart")
    mock_ollama.set_responses("Hi Sam, your card on file was declined.")

    result = await _start(gym)

    assert result.dispatch.status == GymConstants.DispatchStatus.SENT


@pytest.mark.asyncio
async def test_start_thread_at_night_is_deferred(gym, mock_ollama, channel):
    mock_ollama.set_responses("Hi Sam, your card on file was declined.")

    result = await _start(gym, now=NIGHT)

    assert result.dispatch.status == GymConstants.DispatchStatus.DEFERRED
    assert channel.sent == []


@pytest.mark.asyncio
async def test_empty_draft_opens_no_thread(gym, mock_ollama, channel):
    mock_ollama.set_responses("   ")

    assert await _start(gym) is None
    assert gym.db.conversations.get_updated_since(DAYTIME.replace(year=2000)) == []
    assert channel.sent == []


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("  Hi Sam!  ", "Hi Sam!"),
        ('"Hi Sam!"', "Hi Sam!"),
        ("Hi Sam — we miss you", "Hi Sam, we miss you"),
        ("Hi Sam–we miss you", "Hi Sam, we miss you"),
        ("'", "'"),
    ],
)
def test_clean_draft(raw, expected):
    assert clean_draft(raw) == expected
