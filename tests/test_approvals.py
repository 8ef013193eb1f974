"""Tests for the request / approve / reject lifecycle."""

import asyncio
import json

import pytest

from supportbot.commands.playfab_commands import build_standings_embed
from supportbot.errors import (
    ConfirmationFailed,
    ExternalOperationFailed,
    InvalidDuration,
    MissingField,
    NotAuthorized,
    RequestNotFound,
)
from supportbot.models import AccountNote, ActionRecord, STATUS_EXECUTED, STATUS_REJECTED

# match the administrator list of the ``service`` fixture
ADMIN_ID = "100"
TESTER_ID = "200"
ACCOUNT = "ABCD1234ABCD1234"
STEAM64 = "76561199224604471"


def _history(service):
    return service.store.query_history(lambda entry: True)


@pytest.mark.asyncio
async def test_admin_ban_runs_immediately(service, playfab, publisher):
    result = await service.submit(ADMIN_ID, "ban", ACCOUNT.lower(), "cheating", "168", "yes")

    assert result.executed
    assert result.account_id == ACCOUNT
    assert playfab.calls == [("ban_user", ACCOUNT, "cheating", 168)]
    assert publisher.published == []
    assert service.store.list_pending() == []

    [record] = _history(service)
    assert record.status == STATUS_EXECUTED
    assert record.requested_by == record.approved_by == ADMIN_ID
    assert record.duration == "168"


@pytest.mark.asyncio
async def test_admin_ban_without_duration_is_permanent(service, playfab):
    result = await service.submit(ADMIN_ID, "ban", ACCOUNT, None, "", "YES")
    assert playfab.calls == [("ban_user", ACCOUNT, "No reason provided", 0)]
    assert "permanent" in result.message
    assert _history(service)[0].duration == "0"


@pytest.mark.asyncio
async def test_reset_request_queued_then_rejected(
    service, playfab, publisher, notifier, link_steam
):
    link_steam(STEAM64, ACCOUNT)
    result = await service.submit(
        TESTER_ID, "reset", f"https://steamcommunity.com/profiles/{STEAM64}", confirmation="YES"
    )

    assert not result.executed
    assert result.request_id in result.message
    [pending] = publisher.published
    assert pending.account_id == ACCOUNT
    assert pending.steam64 == STEAM64
    assert pending.reason is None and pending.duration is None
    assert service.store.get(result.request_id) is not None
    assert playfab.calls == [("lookup_accounts_by_steam_id", STEAM64)]

    record = await service.reject(ADMIN_ID, result.request_id, prompt="prompt-msg")

    assert record.status == STATUS_REJECTED
    assert record.requested_by == TESTER_ID
    assert record.approved_by == ADMIN_ID
    assert _history(service) == [record]
    assert service.store.get(result.request_id) is None
    assert len(notifier.sent) == 1
    assert notifier.sent[0][0] == TESTER_ID
    assert publisher.updates[0][0] == "prompt-msg"
    assert publisher.updates[0][2] is True
    # rejection never touches the backend
    assert all(call[0] == "lookup_accounts_by_steam_id" for call in playfab.calls)


@pytest.mark.asyncio
async def test_queued_ban_approved(service, playfab, notifier):
    result = await service.submit(TESTER_ID, "ban", ACCOUNT, "griefing", "3d", "YES")
    message = await service.approve(ADMIN_ID, result.request_id)

    assert ACCOUNT in message
    assert playfab.calls == [("ban_user", ACCOUNT, "griefing", 72)]
    [record] = _history(service)
    assert record.requested_by == TESTER_ID
    assert record.approved_by == ADMIN_ID
    assert service.store.list_pending() == []
    assert notifier.sent[0][0] == TESTER_ID


@pytest.mark.asyncio
async def test_approving_unknown_request(service, notifier):
    with pytest.raises(RequestNotFound):
        await service.approve(ADMIN_ID, "does-not-exist")
    assert _history(service) == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_second_approval_finds_nothing(service, playfab):
    result = await service.submit(TESTER_ID, "reset", ACCOUNT, confirmation="YES")
    await service.approve(ADMIN_ID, result.request_id)
    with pytest.raises(RequestNotFound):
        await service.approve(ADMIN_ID, result.request_id)
    assert playfab.calls.count(("delete_account_data_key", ACCOUNT, "Save")) == 1


@pytest.mark.asyncio
async def test_failed_confirmation_changes_nothing(service, playfab, playfab_store, publisher):
    await service.submit(TESTER_ID, "reset", ACCOUNT, confirmation="YES")
    assert playfab_store.flush() is True
    before = playfab_store.path.read_bytes()
    calls_before = list(playfab.calls)

    with pytest.raises(ConfirmationFailed):
        await service.submit(TESTER_ID, "mute", ACCOUNT, "spam", "2h", "no")

    assert playfab.calls == calls_before
    assert len(publisher.published) == 1
    assert not playfab_store.dirty
    assert playfab_store.path.read_bytes() == before


@pytest.mark.asyncio
async def test_non_admin_cannot_decide(service):
    result = await service.submit(TESTER_ID, "reset", ACCOUNT, confirmation="YES")
    with pytest.raises(NotAuthorized):
        await service.approve(TESTER_ID, result.request_id)
    with pytest.raises(NotAuthorized):
        await service.reject(TESTER_ID, result.request_id)
    assert service.store.get(result.request_id) is not None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reason,duration,missing",
    [(None, "2h", "reason"), ("spam", "", "duration")],
)
async def test_mute_requires_reason_and_duration(service, playfab, reason, duration, missing):
    with pytest.raises(MissingField) as excinfo:
        await service.submit(ADMIN_ID, "mute", ACCOUNT, reason, duration, "YES")
    assert excinfo.value.field_name == missing
    assert playfab.calls == []


@pytest.mark.asyncio
async def test_invalid_duration_is_rejected_before_lookup(service, playfab):
    with pytest.raises(InvalidDuration):
        await service.submit(ADMIN_ID, "ban", STEAM64, "x", "forever", "YES")
    assert playfab.calls == []


@pytest.mark.asyncio
async def test_admin_mute_merges_existing_blob(service, playfab):
    playfab.attributes[ACCOUNT] = {"Additional Data": json.dumps({"badge": "gold"})}
    await service.submit(ADMIN_ID, "mute", ACCOUNT, "spam", "90m", "YES")

    written = json.loads(playfab.attributes[ACCOUNT]["Additional Data"])
    assert written["badge"] == "gold"
    assert written["vivoxBan"] == {
        "reason": "spam",
        "expiresAt": "2025-07-26T16:00:00.000+00:00",
    }
    [record] = _history(service)
    assert record.expires_at == "2025-07-26T16:00:00.000+00:00"


@pytest.mark.asyncio
async def test_mute_with_unreadable_blob_starts_empty(service, playfab):
    playfab.attributes[ACCOUNT] = {"Additional Data": "not json"}
    await service.submit(ADMIN_ID, "mute", ACCOUNT, "spam", "1h", "YES")
    written = json.loads(playfab.attributes[ACCOUNT]["Additional Data"])
    assert list(written) == ["vivoxBan"]


@pytest.mark.asyncio
async def test_edit_and_approve_mute(service, playfab):
    result = await service.submit(TESTER_ID, "mute", ACCOUNT, "spam", "1h", "YES")
    assert service.store.get(result.request_id).expires_at == "2025-07-26T15:30:00.000+00:00"

    await service.edit_and_approve(ADMIN_ID, result.request_id, reason="", duration="2d")

    [record] = _history(service)
    assert record.reason == "spam"
    assert record.duration == "2d"
    assert record.expires_at == "2025-07-28T14:30:00.000+00:00"
    written = json.loads(playfab.attributes[ACCOUNT]["Additional Data"])
    assert written["vivoxBan"]["expiresAt"] == record.expires_at


@pytest.mark.asyncio
async def test_edit_with_bad_duration_keeps_request(service, playfab):
    result = await service.submit(TESTER_ID, "ban", ACCOUNT, "x", "1d", "YES")
    with pytest.raises(InvalidDuration):
        await service.edit_and_approve(ADMIN_ID, result.request_id, duration="1y")
    assert service.store.get(result.request_id).duration == "1d"
    assert playfab.calls == []
    # the request is free to be acted on again
    await service.approve(ADMIN_ID, result.request_id)
    assert playfab.calls == [("ban_user", ACCOUNT, "x", 24)]


@pytest.mark.asyncio
async def test_publish_failure_withdraws_request(service, publisher):
    publisher.fail = True
    with pytest.raises(RuntimeError):
        await service.submit(TESTER_ID, "reset", ACCOUNT, confirmation="YES")
    assert service.store.list_pending() == []
    assert _history(service) == []


@pytest.mark.asyncio
async def test_backend_failure_leaves_request_pending(service, playfab, notifier):
    result = await service.submit(TESTER_ID, "ban", ACCOUNT, "x", "1", "YES")
    playfab.fail_with = ExternalOperationFailed("BanUsers", 400, "InvalidParams")

    with pytest.raises(ExternalOperationFailed) as excinfo:
        await service.approve(ADMIN_ID, result.request_id)

    assert "InvalidParams" in str(excinfo.value)
    assert service.store.get(result.request_id) is not None
    assert _history(service) == []
    assert notifier.sent == []


def test_add_note_and_standings(service):
    with pytest.raises(ConfirmationFailed):
        service.add_note(ADMIN_ID, ACCOUNT, "Title", "Body", "nope")
    with pytest.raises(MissingField):
        service.add_note(ADMIN_ID, ACCOUNT, " ", "Body", "YES")

    for n in range(4):
        service.add_note(TESTER_ID, ACCOUNT, f"note {n}", "text", "YES")
    service.add_note(TESTER_ID, "OTHERACCOUNT0001", "elsewhere", "text", "YES")

    standings = service.account_standings(ACCOUNT)
    assert standings.note_count == 4
    assert [n.title for n in standings.notes] == ["note 3", "note 2", "note 1"]
    assert all(isinstance(n, AccountNote) for n in standings.notes)


@pytest.mark.asyncio
async def test_standings_list_executed_actions_newest_first(service):
    for hours in ("1", "2", "3", "4", "5", "6"):
        await service.submit(ADMIN_ID, "ban", ACCOUNT, "x", hours, "YES")
    queued = await service.submit(TESTER_ID, "reset", ACCOUNT, confirmation="YES")
    await service.reject(ADMIN_ID, queued.request_id)

    standings = service.account_standings(ACCOUNT)
    assert [b.duration for b in standings.bans] == ["6", "5", "4", "3", "2"]
    assert standings.resets == []
    assert standings.mutes == []
    assert all(isinstance(b, ActionRecord) for b in standings.bans)
    [rejected] = standings.rejected
    assert (rejected.type, rejected.requested_by, rejected.approved_by) == ("reset", TESTER_ID, ADMIN_ID)


@pytest.mark.asyncio
async def test_list_pending_for_requester(service):
    mine = await service.submit(TESTER_ID, "reset", ACCOUNT, confirmation="YES")
    await service.submit("300", "reset", ACCOUNT, confirmation="YES")
    assert [r.id for r in service.list_pending_for(TESTER_ID)] == [mine.request_id]


@pytest.mark.asyncio
async def test_admin_reset_runs_immediately(service, playfab):
    result = await service.submit(ADMIN_ID, "reset", ACCOUNT, confirmation="YES")

    assert result.executed
    assert "Save" in result.message
    assert playfab.calls == [("delete_account_data_key", ACCOUNT, "Save")]
    [record] = _history(service)
    assert (record.type, record.status, record.approved_by) == ("reset", STATUS_EXECUTED, ADMIN_ID)


@pytest.mark.asyncio
async def test_queued_reset_approved(service, playfab, notifier):
    result = await service.submit(TESTER_ID, "reset", ACCOUNT, confirmation="YES")
    message = await service.approve(ADMIN_ID, result.request_id, prompt="prompt-msg")

    assert "Save" in message
    assert playfab.calls == [("delete_account_data_key", ACCOUNT, "Save")]
    assert [r.status for r in _history(service)] == [STATUS_EXECUTED]
    assert service.store.get(result.request_id) is None
    assert [to for to, _ in notifier.sent] == [TESTER_ID]


@pytest.mark.asyncio
async def test_history_written_even_if_reply_text_fails(service, playfab, monkeypatch):
    result = await service.submit(TESTER_ID, "reset", ACCOUNT, confirmation="YES")

    def broken_message(key, default=None, **kwargs):
        if key.startswith("playfab.executed_"):
            raise RuntimeError("template trouble")
        return default or key

    monkeypatch.setattr("supportbot.approvals.get_message", broken_message)
    with pytest.raises(RuntimeError):
        await service.approve(ADMIN_ID, result.request_id)

    assert playfab.calls == [("delete_account_data_key", ACCOUNT, "Save")]
    [record] = _history(service)
    assert record.status == STATUS_EXECUTED
    assert record.approved_by == ADMIN_ID
    # a second approval must not repeat the reset
    assert service.store.get(result.request_id) is None


@pytest.mark.asyncio
async def test_concurrent_approvals_execute_once(service, playfab):
    result = await service.submit(TESTER_ID, "ban", ACCOUNT, "griefing", "1d", "YES")

    outcomes = await asyncio.gather(
        service.approve(ADMIN_ID, result.request_id),
        service.approve(ADMIN_ID, result.request_id),
        return_exceptions=True,
    )

    assert sum(isinstance(o, str) for o in outcomes) == 1
    assert sum(isinstance(o, RequestNotFound) for o in outcomes) == 1
    assert playfab.calls.count(("ban_user", ACCOUNT, "griefing", 24)) == 1
    assert len(_history(service)) == 1
    assert service.store.get(result.request_id) is None


@pytest.mark.asyncio
async def test_mute_beyond_the_calendar_is_invalid(service, playfab, publisher):
    with pytest.raises(InvalidDuration):
        await service.submit(TESTER_ID, "mute", ACCOUNT, "spam", "1000000w", "YES")
    assert playfab.calls == []
    assert publisher.published == []


@pytest.mark.asyncio
async def test_standings_embed_lists_rejections_separately(service):
    await service.submit(ADMIN_ID, "ban", ACCOUNT, "x", "2", "YES")
    queued = await service.submit(TESTER_ID, "mute", ACCOUNT, "spam", "1h", "YES")
    await service.reject(ADMIN_ID, queued.request_id)

    embed = build_standings_embed(service.account_standings(ACCOUNT))
    fields = {f.name: f.value for f in embed.fields}
    assert "mute" in fields["Rejected"]
    assert f"<@{TESTER_ID}>" in fields["Rejected"]
    assert "until" not in fields["Mutes"]
