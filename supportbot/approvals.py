"""Ban / mute / reset requests with administrator approval.

Administrators' requests run straight away. Everyone else's become a
PendingRequest that is published to the approval channel, where an
administrator approves, rejects or edits and approves it. Every outcome is
written to the account history.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from supportbot.durations import expiry_from, format_timestamp, to_hours, utc_now
from supportbot.errors import (
    ConfirmationFailed,
    ExternalOperationFailed,
    MissingField,
    NotAuthorized,
    RequestNotFound,
)
from supportbot.messaging import get_message
from supportbot.models import (
    ACTION_BAN,
    ACTION_MUTE,
    ACTION_RESET,
    ACTION_TYPES,
    AccountNote,
    AccountStandings,
    ActionRecord,
    PendingRequest,
    ResolvedPlayer,
    STATUS_EXECUTED,
    STATUS_REJECTED,
)

DEFAULT_BAN_REASON = "No reason provided"


@dataclass
class SubmissionResult:
    executed: bool
    message: str
    request_id: str
    account_id: str


class ApprovalService:
    """Runs the request / approve / reject / edit lifecycle.

    ``publisher`` needs ``async publish(pending)`` and
    ``async update_prompt(prompt, text, disable_actions)``; ``notifier`` needs
    ``async notify(user_id, text)``. Prompt updates and notifications are best
    effort and never undo a transition.
    """

    def __init__(
        self,
        store,
        playfab,
        resolver,
        publisher,
        notifier,
        admin_ids: Iterable[Any] = (),
        confirmation_word: str = "YES",
        mute_data_key: str = "Additional Data",
        mute_sub_key: str = "vivoxBan",
        save_data_key: str = "Save",
        clock: Callable = utc_now,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.store = store
        self.playfab = playfab
        self.resolver = resolver
        self.publisher = publisher
        self.notifier = notifier
        self.admin_ids: Set[str] = {str(a) for a in admin_ids if a}
        self.confirmation_word = confirmation_word
        self.mute_data_key = mute_data_key
        self.mute_sub_key = mute_sub_key
        self.save_data_key = save_data_key
        self.clock = clock
        # request ids an administrator is currently acting on
        self._in_flight: Set[str] = set()

    def is_admin(self, actor_id: Any) -> bool:
        return str(actor_id) in self.admin_ids

    def check_confirmation(self, confirmation: Optional[str]) -> None:
        if (confirmation or "").strip().upper() != self.confirmation_word.upper():
            raise ConfirmationFailed(self.confirmation_word)

    async def resolve(self, identifier: str) -> ResolvedPlayer:
        return await asyncio.to_thread(self.resolver.resolve, identifier)

    # --- requests ---

    async def submit(
        self,
        actor_id: str,
        action: str,
        identifier: str,
        reason: Optional[str] = None,
        duration: Optional[str] = None,
        confirmation: Optional[str] = None,
    ) -> SubmissionResult:
        """Validate, resolve and then either execute (administrator) or queue the request."""
        self.check_confirmation(confirmation)
        if action not in ACTION_TYPES:
            raise ValueError(f"Unknown PlayFab action '{action}'")

        reason = (reason or "").strip() or None
        duration = (duration or "").strip() or None
        expires_at = None

        if action == ACTION_MUTE:
            if not reason:
                raise MissingField("reason", "mute")
            if not duration:
                raise MissingField("duration", "mute")
            expires_at = format_timestamp(expiry_from(duration, self.clock()))
        elif action == ACTION_BAN:
            to_hours(duration)
            duration = duration or "0"
        else:
            reason = duration = None

        player = await self.resolve(identifier)
        actor_id = str(actor_id)
        request = PendingRequest(
            id=self.store.new_id(),
            type=action,
            account_id=player.account_id,
            requested_by=actor_id,
            requested_at=format_timestamp(self.clock()),
            reason=reason,
            duration=duration,
            expires_at=expires_at,
            steam64=player.steam64,
            vanity=player.vanity,
            input=identifier.strip(),
        )

        if self.is_admin(actor_id):
            result = await self._execute(request, approver_id=actor_id)
            self.logger.info(
                f"Administrator {actor_id} executed {action} on {player.account_id} directly."
            )
            return SubmissionResult(True, result, request.id, player.account_id)

        self.store.put(request)
        try:
            await self.publisher.publish(request)
        except Exception:
            self.store.delete(request.id)
            self.logger.error(
                f"Could not publish approval prompt for request {request.id}; request withdrawn.",
                exc_info=True,
            )
            raise
        self.logger.info(
            f"Queued {action} request {request.id} on {player.account_id} from {actor_id}."
        )
        return SubmissionResult(
            False,
            get_message(
                "playfab.queued",
                default="📝 Request queued for admin approval (ID: `{request_id}`).",
                request_id=request.id,
            ),
            request.id,
            player.account_id,
        )

    # --- administrator transitions ---

    def _begin(self, actor_id: str, request_id: str) -> PendingRequest:
        if not self.is_admin(actor_id):
            self.logger.warning(
                f"User {actor_id} tried to act on pending request {request_id} without admin rights."
            )
            raise NotAuthorized()
        pending = self.store.get(request_id)
        if pending is None or request_id in self._in_flight:
            raise RequestNotFound(request_id)
        self._in_flight.add(request_id)
        return pending

    async def approve(self, actor_id: str, request_id: str, prompt: Any = None) -> str:
        actor_id = str(actor_id)
        pending = self._begin(actor_id, request_id)
        try:
            result = await self._execute(pending, approver_id=actor_id)
        finally:
            self._in_flight.discard(request_id)

        self.logger.info(f"Request {request_id} approved by {actor_id}.")
        await self._after_transition(
            prompt,
            get_message(
                "playfab.prompt_approved",
                default="✅ Approved by <@{actor_id}>: {result}",
                actor_id=actor_id,
                result=result,
            ),
            pending,
            get_message(
                "playfab.dm_approved",
                default="✅ Your PlayFab request **{action}** for `{account_id}` was approved.",
                action=pending.type,
                account_id=pending.account_id,
            ),
        )
        return result

    async def reject(self, actor_id: str, request_id: str, prompt: Any = None) -> ActionRecord:
        actor_id = str(actor_id)
        pending = self._begin(actor_id, request_id)
        try:
            record = self._record(pending, actor_id, STATUS_REJECTED, pending.expires_at)
            self.store.append_history(record)
            self.store.delete(request_id)
        finally:
            self._in_flight.discard(request_id)

        self.logger.info(f"Request {request_id} rejected by {actor_id}.")
        await self._after_transition(
            prompt,
            get_message(
                "playfab.prompt_rejected",
                default="🛑 Rejected by <@{actor_id}>.",
                actor_id=actor_id,
            ),
            pending,
            get_message(
                "playfab.dm_rejected",
                default="🛑 Your PlayFab request **{action}** for `{account_id}` was rejected.",
                action=pending.type,
                account_id=pending.account_id,
            ),
        )
        return record

    async def edit_and_approve(
        self,
        actor_id: str,
        request_id: str,
        reason: Optional[str] = None,
        duration: Optional[str] = None,
        prompt: Any = None,
    ) -> str:
        """Blank fields keep the requested values. A new mute duration restarts the expiry clock."""
        actor_id = str(actor_id)
        pending = self._begin(actor_id, request_id)
        try:
            new_reason = (reason or "").strip()
            new_duration = (duration or "").strip()
            if pending.type != ACTION_RESET:
                if new_duration:
                    if pending.type == ACTION_MUTE:
                        pending.expires_at = format_timestamp(
                            expiry_from(new_duration, self.clock())
                        )
                    else:
                        to_hours(new_duration)
                    pending.duration = new_duration
                if new_reason:
                    pending.reason = new_reason
                self.store.put(pending)

            result = await self._execute(pending, approver_id=actor_id)
        finally:
            self._in_flight.discard(request_id)

        self.logger.info(f"Request {request_id} edited and approved by {actor_id}.")
        await self._after_transition(
            prompt,
            get_message(
                "playfab.prompt_edited",
                default="✅ Edited & approved by <@{actor_id}>: {result}",
                actor_id=actor_id,
                result=result,
            ),
            pending,
            get_message(
                "playfab.dm_edited",
                default="✅ Your PlayFab request **{action}** for `{account_id}` was approved (with edits).",
                action=pending.type,
                account_id=pending.account_id,
            ),
        )
        return result

    async def _after_transition(
        self, prompt: Any, prompt_text: str, pending: PendingRequest, dm_text: str
    ) -> None:
        if prompt is not None:
            try:
                await self.publisher.update_prompt(prompt, prompt_text, True)
            except Exception as e:
                self.logger.warning(f"Could not update approval prompt for {pending.id}: {e}")
        try:
            await self.notifier.notify(pending.requested_by, dm_text)
        except Exception as e:
            self.logger.warning(f"Could not notify requester {pending.requested_by}: {e}")

    # --- execution ---

    def _record(
        self, request: PendingRequest, approver_id: str, status: str, expires_at: Optional[str]
    ) -> ActionRecord:
        return ActionRecord(
            id=self.store.new_id(),
            type=request.type,
            account_id=request.account_id,
            requested_by=request.requested_by,
            approved_by=approver_id,
            status=status,
            executed_at=format_timestamp(self.clock()),
            reason=request.reason,
            duration=request.duration,
            expires_at=expires_at,
            steam64=request.steam64,
            vanity=request.vanity,
        )

    async def _execute(self, request: PendingRequest, approver_id: str) -> str:
        """Perform the backend call and append the executed history entry.

        Raises ExternalOperationFailed without touching history or the pending
        entry when the backend refuses. Once the backend call succeeds the
        history entry is written and any pending entry removed before anything
        else can fail.
        """
        if request.type not in ACTION_TYPES:
            raise ValueError(f"Unknown PlayFab action '{request.type}'")

        expires_at = await self._perform(request)
        self.store.append_history(
            self._record(request, approver_id, STATUS_EXECUTED, expires_at)
        )
        self.store.delete(request.id)
        return self._result_text(request, expires_at)

    async def _perform(self, request: PendingRequest) -> Optional[str]:
        """The backend side effect. Returns the mute expiry, None for other actions."""
        if request.type == ACTION_BAN:
            await asyncio.to_thread(
                self.playfab.ban_user,
                request.account_id,
                request.reason or DEFAULT_BAN_REASON,
                to_hours(request.duration),
            )
            return None

        if request.type == ACTION_MUTE:
            expires_at = request.expires_at or format_timestamp(
                expiry_from(request.duration or "0", self.clock())
            )
            blob = await asyncio.to_thread(self._read_mute_blob, request.account_id)
            blob[self.mute_sub_key] = {"reason": request.reason or "", "expiresAt": expires_at}
            await asyncio.to_thread(
                self.playfab.write_account_attribute,
                request.account_id,
                self.mute_data_key,
                json.dumps(blob),
            )
            return expires_at

        await asyncio.to_thread(
            self.playfab.delete_account_data_key, request.account_id, self.save_data_key
        )
        return None

    def _result_text(self, request: PendingRequest, expires_at: Optional[str]) -> str:
        if request.type == ACTION_BAN:
            hours = to_hours(request.duration)
            return get_message(
                "playfab.executed_ban",
                default="Banned **{account_id}** ({length}).",
                account_id=request.account_id,
                length=f"{hours}h" if hours else "permanent",
            )
        if request.type == ACTION_MUTE:
            return get_message(
                "playfab.executed_mute",
                default="Muted **{account_id}** until **{expires_at}**.",
                account_id=request.account_id,
                expires_at=expires_at,
            )
        return get_message(
            "playfab.executed_reset",
            default="Reset **{account_id}** (deleted key `{data_key}`).",
            account_id=request.account_id,
            data_key=self.save_data_key,
        )

    def _read_mute_blob(self, account_id: str) -> Dict[str, Any]:
        """Current read-only data blob; any read or decode problem counts as empty."""
        try:
            raw = self.playfab.read_account_attribute(account_id, self.mute_data_key)
        except ExternalOperationFailed as e:
            self.logger.warning(
                f"Reading '{self.mute_data_key}' for {account_id} failed ({e}); starting from an empty blob."
            )
            return {}
        if not raw:
            return {}
        try:
            blob = json.loads(raw)
        except ValueError:
            self.logger.warning(
                f"'{self.mute_data_key}' for {account_id} is not valid JSON; starting from an empty blob."
            )
            return {}
        return blob if isinstance(blob, dict) else {}

    # --- queries and notes ---

    def list_pending_for(self, actor_id: str) -> List[PendingRequest]:
        return self.store.list_pending_by_requester(str(actor_id))

    def account_standings(
        self, account_id: str, action_limit: int = 5, note_limit: int = 3
    ) -> AccountStandings:
        """Newest-first executed actions, rejected requests and notes for one account."""
        history = self.store.history_for_account(account_id)
        actions = [e for e in reversed(history) if isinstance(e, ActionRecord)]
        executed = [e for e in actions if e.status == STATUS_EXECUTED]

        def latest(action: str) -> List[ActionRecord]:
            return [e for e in executed if e.type == action][:action_limit]

        notes = [e for e in reversed(history) if isinstance(e, AccountNote)]
        return AccountStandings(
            account_id=account_id,
            bans=latest(ACTION_BAN),
            mutes=latest(ACTION_MUTE),
            resets=latest(ACTION_RESET),
            notes=notes[:note_limit],
            note_count=len(notes),
            rejected=[e for e in actions if e.status == STATUS_REJECTED][:action_limit],
        )

    def add_note(
        self,
        actor_id: str,
        account_id: str,
        title: str,
        text: str,
        confirmation: Optional[str] = None,
    ) -> AccountNote:
        self.check_confirmation(confirmation)
        title = (title or "").strip()
        text = (text or "").strip()
        if not title:
            raise MissingField("title", "note")
        if not text:
            raise MissingField("text", "note")
        note = AccountNote(
            id=self.store.new_id(),
            account_id=account_id,
            title=title,
            text=text,
            created_by=str(actor_id),
            created_at=format_timestamp(self.clock()),
        )
        self.store.append_history(note)
        self.logger.info(f"Note '{title}' added to {account_id} by {actor_id}.")
        return note
