"""PlayFab administration: the action panel, approval prompts and account standings.

Buttons carry their whole state in the custom_id (``pf:<action>[:<request id>]``
and ``pfacct:<action>:<account id>``) and are dispatched through
SupportBot.add_interaction_route, so panels and prompts survive restarts.
"""

import logging
from typing import List, Optional

import discord
from discord import app_commands

from supportbot.commands.auth import is_qa_member
from supportbot.commands.common import (
    SupportModal,
    disabled_view,
    make_command_error_handler,
    routed_button,
    routed_view,
    text_input,
)
from supportbot.config import get_id_value
from supportbot.durations import parse_timestamp
from supportbot.errors import NotAuthorized, RequestNotFound, SupportBotError
from supportbot.messaging import create_embed, get_message, send_ephemeral
from supportbot.models import (
    ACTION_BAN,
    ACTION_MUTE,
    ACTION_RESET,
    AccountStandings,
    PendingRequest,
)

logger = logging.getLogger(__name__)

IDENTIFIER_LABEL = "ID (PlayFabId/Steam64/URL)"
DURATION_LABEL = "Duration (hours or 90m/2h/3d/1w)"


def _when(timestamp: Optional[str]) -> str:
    """Render an ISO timestamp as a Discord timestamp tag."""
    if not timestamp:
        return "?"
    try:
        return discord.utils.format_dt(parse_timestamp(timestamp), style="f")
    except ValueError:
        return timestamp


def _require_operator(interaction: discord.Interaction) -> None:
    """Admins and QA staff may file requests; everyone else is refused."""
    if interaction.client.is_bot_admin(interaction.user.id) or is_qa_member(interaction.user):
        return
    raise NotAuthorized()


# --- approval prompts ---


def build_prompt_embed(pending: PendingRequest) -> discord.Embed:
    target = f"PFID: `{pending.account_id}`"
    if pending.steam64:
        target += f"\nSteam64: `{pending.steam64}`"
    if pending.vanity:
        target += f"\nVanity: `{pending.vanity}`"

    fields = [
        ("Requester", f"<@{pending.requested_by}>", True),
        ("When", _when(pending.requested_at), True),
        ("Target", target, False),
    ]
    if pending.reason:
        fields.append(("Reason", pending.reason, False))
    if pending.duration:
        fields.append(("Duration", pending.duration, False))
    if pending.expires_at:
        fields.append(("Expires", pending.expires_at, False))

    embed = create_embed(
        title_key="playfab.prompt_title",
        color_type="neutral",
        title_kwargs={"action": pending.type.upper()},
        footer_text=get_message(
            "playfab.prompt_footer", default="Request ID: {request_id}", request_id=pending.id
        ),
        fields=fields,
    )
    return embed


def build_prompt_view(request_id: str) -> discord.ui.View:
    return routed_view(
        routed_button(f"pf:approve:{request_id}", "Approve", discord.ButtonStyle.success, "✅"),
        routed_button(f"pf:edit:{request_id}", "Edit & Approve", discord.ButtonStyle.primary, "✏️"),
        routed_button(f"pf:reject:{request_id}", "Reject", discord.ButtonStyle.danger, "🛑"),
    )


class ApprovalChannelPublisher:
    """Posts approval prompts to playfab.approval_channel_id and updates them afterwards."""

    def __init__(self, bot: discord.Client):
        self.bot = bot
        self.logger = logging.getLogger(self.__class__.__name__)

    async def publish(self, pending: PendingRequest) -> discord.Message:
        channel_id = get_id_value("playfab.approval_channel_id")
        if not channel_id:
            raise SupportBotError(get_message("playfab.error_approval_channel_unset"))
        channel = await self.bot.resolve_channel(channel_id)
        if channel is None:
            raise SupportBotError(get_message("playfab.error_approval_channel_missing"))

        message = await channel.send(
            embed=build_prompt_embed(pending), view=build_prompt_view(pending.id)
        )
        self.logger.info(f"Approval prompt for {pending.id} posted in channel {channel_id}.")
        return message

    async def update_prompt(
        self, message: discord.Message, text: str, disable_actions: bool
    ) -> None:
        kwargs = {"content": text}
        if disable_actions:
            kwargs["view"] = disabled_view(message)
        await message.edit(**kwargs)


# --- modals ---


class PlayFabActionModal(SupportModal):
    """Ban / mute / reset form opened from the panel."""

    def __init__(self, action: str):
        titles = {
            ACTION_BAN: "PlayFab Ban",
            ACTION_MUTE: "Vivox Mute (PlayFab)",
            ACTION_RESET: "Reset Account (Delete Save)",
        }
        super().__init__(title=titles[action])
        self.action = action

        self.identifier = text_input(IDENTIFIER_LABEL, max_length=256)
        self.add_item(self.identifier)
        self.reason = self.duration = None
        if action in (ACTION_BAN, ACTION_MUTE):
            self.reason = text_input(
                "Reason",
                paragraph=True,
                placeholder="e.g. Cheating" if action == ACTION_BAN else "e.g. Inappropriate language",
            )
            self.duration = text_input(
                DURATION_LABEL,
                # blank ban duration = permanent
                required=action == ACTION_MUTE,
                placeholder="e.g. 168" if action == ACTION_BAN else "e.g. 7d",
            )
            self.add_item(self.reason)
            self.add_item(self.duration)
        self.confirm = text_input("Type YES to confirm")
        self.add_item(self.confirm)

    async def on_submit(self, interaction: discord.Interaction):
        cmd_logger = logger.getChild("pf-panel")
        cmd_logger.info(f"{self.action} request from {interaction.user} for '{self.identifier.value}'")
        await interaction.response.defer(ephemeral=True, thinking=True)

        result = await interaction.client.approvals.submit(
            actor_id=interaction.user.id,
            action=self.action,
            identifier=self.identifier.value,
            reason=self.reason.value if self.reason else None,
            duration=self.duration.value if self.duration else None,
            confirmation=self.confirm.value,
        )
        content = f"✅ {result.message}" if result.executed else result.message
        await interaction.followup.send(content, ephemeral=True)


class EditApproveModal(SupportModal):
    """Administrator edit of a pending request, approved on submit."""

    def __init__(self, pending: PendingRequest, prompt: Optional[discord.Message]):
        super().__init__(title=f"Edit & Approve: {pending.type}"[:45])
        self.request_id = pending.id
        self.prompt = prompt
        self.reason = self.duration = None
        if pending.type == ACTION_RESET:
            self.add_item(text_input("No editable fields for reset", required=False))
        else:
            self.reason = text_input("Reason", required=False, default=pending.reason)
            self.duration = text_input(DURATION_LABEL, required=False, default=pending.duration)
            self.add_item(self.reason)
            self.add_item(self.duration)

    async def on_submit(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True, thinking=True)
        await interaction.client.approvals.edit_and_approve(
            interaction.user.id,
            self.request_id,
            reason=self.reason.value if self.reason else None,
            duration=self.duration.value if self.duration else None,
            prompt=self.prompt,
        )
        await interaction.followup.send(
            get_message("playfab.edited_ack", default="Edited & approved."), ephemeral=True
        )


class AccountNoteModal(SupportModal, title="Add Account Note"):
    note_title = discord.ui.TextInput(label="Title", max_length=45)
    body = discord.ui.TextInput(label="Note", style=discord.TextStyle.paragraph)
    confirm = discord.ui.TextInput(label="Type YES to confirm", max_length=10)

    def __init__(self, account_id: str):
        super().__init__()
        self.account_id = account_id

    async def on_submit(self, interaction: discord.Interaction):
        approvals = interaction.client.approvals
        approvals.add_note(
            interaction.user.id,
            self.account_id,
            self.note_title.value,
            self.body.value,
            confirmation=self.confirm.value,
        )
        await interaction.response.send_message(
            embed=build_standings_embed(approvals.account_standings(self.account_id)),
            view=build_account_view(self.account_id),
            ephemeral=True,
        )


# --- account standings ---


def _lines(items: List[str]) -> str:
    return "\n".join(items) if items else "None"


def build_standings_embed(
    standings: AccountStandings,
    steam64: Optional[str] = None,
    vanity: Optional[str] = None,
) -> discord.Embed:
    description = f"**PlayFabId:** `{standings.account_id}`"
    if steam64:
        description += f"\n**Steam64:** `{steam64}`"
    if vanity:
        description += f"\n**Vanity:** `{vanity}`"

    bans = [
        f"• {b.duration or '0'}h — {b.reason or 'No reason'} ({_when(b.executed_at)})"
        for b in standings.bans
    ]
    mutes = [
        f"• until {m.expires_at or '?'} — {m.reason or 'No reason'} ({_when(m.executed_at)})"
        for m in standings.mutes
    ]
    resets = [f"• {_when(r.executed_at)}" for r in standings.resets]
    rejected = [
        f"• {r.type} by <@{r.requested_by}>, rejected by <@{r.approved_by}> ({_when(r.executed_at)})"
        for r in standings.rejected
    ]
    notes = [
        f"• **{n.title or '(untitled)'}** — {_when(n.created_at)} by <@{n.created_by}>"
        for n in standings.notes
    ]

    embed = create_embed(
        title_key="playfab.standings_title",
        color_type="info",
        fields=[
            ("Bans", _lines(bans), False),
            ("Mutes", _lines(mutes), False),
            ("Resets", _lines(resets), False),
            ("Rejected", _lines(rejected), False),
            (f"Notes ({standings.note_count})", _lines(notes), False),
        ],
    )
    embed.description = description
    return embed


def build_account_view(account_id: str) -> discord.ui.View:
    return routed_view(
        routed_button(f"pfacct:addnote:{account_id}", "Add Note", discord.ButtonStyle.primary, "📝"),
        routed_button(f"pfacct:refresh:{account_id}", "Refresh", discord.ButtonStyle.secondary, "🔄"),
    )


# --- component routes ---


async def handle_panel_interaction(interaction: discord.Interaction, parts: List[str]):
    """``pf:<ban|mute|reset|mine>`` from the panel, ``pf:<approve|edit|reject>:<id>`` from prompts."""
    bot = interaction.client
    action = parts[1] if len(parts) > 1 else ""
    route_logger = logger.getChild(f"pf.{action or 'unknown'}")

    if action in (ACTION_BAN, ACTION_MUTE, ACTION_RESET):
        _require_operator(interaction)
        await interaction.response.send_modal(PlayFabActionModal(action))
        return

    if action == "mine":
        mine = bot.approvals.list_pending_for(interaction.user.id)
        if not mine:
            await send_ephemeral(interaction, get_message("playfab.mine_empty"))
            return
        lines = [
            f"• **{r.type}** for `{r.account_id or r.input}` — id `{r.id}` • requested {_when(r.requested_at)}"
            for r in mine
        ]
        embed = create_embed(title_key="playfab.mine_title", color_type="neutral")
        embed.description = "\n".join(lines)[:4096]
        await interaction.response.send_message(embed=embed, ephemeral=True)
        return

    if len(parts) < 3:
        route_logger.warning(f"Malformed PlayFab custom_id: {':'.join(parts)}")
        return
    request_id = parts[2]

    if action == "approve":
        await interaction.response.defer(ephemeral=True, thinking=True)
        await bot.approvals.approve(interaction.user.id, request_id, prompt=interaction.message)
        await interaction.followup.send(
            get_message("playfab.approved_ack", default="Approved & executed."), ephemeral=True
        )
    elif action == "reject":
        await bot.approvals.reject(interaction.user.id, request_id, prompt=interaction.message)
        await send_ephemeral(interaction, get_message("playfab.rejected_ack", default="Rejected."))
    elif action == "edit":
        if not bot.is_bot_admin(interaction.user.id):
            raise NotAuthorized()
        pending = bot.playfab_store.get(request_id)
        if pending is None:
            raise RequestNotFound(request_id)
        await interaction.response.send_modal(EditApproveModal(pending, interaction.message))
    else:
        route_logger.warning(f"Unknown PlayFab action '{action}' from {interaction.user}")


async def handle_account_interaction(interaction: discord.Interaction, parts: List[str]):
    """``pfacct:<addnote|refresh>:<account id>``"""
    if len(parts) < 3:
        return
    _require_operator(interaction)
    action, account_id = parts[1], parts[2]

    if action == "addnote":
        await interaction.response.send_modal(AccountNoteModal(account_id))
    elif action == "refresh":
        standings = interaction.client.approvals.account_standings(account_id)
        await interaction.response.send_message(
            embed=build_standings_embed(standings),
            view=build_account_view(account_id),
            ephemeral=True,
        )


def setup_commands(bot):
    """Register the commands and component routes with the bot."""

    @bot.tree.command(
        name="pf-panel",
        description="Open the PlayFab admin panel (secure approvals for testers).",
    )
    async def pf_panel(interaction: discord.Interaction):
        cmd_logger = logger.getChild("pf-panel")
        cmd_logger.info(f"Panel requested by {interaction.user} in channel {interaction.channel_id}")
        _require_operator(interaction)

        security_key = (
            "playfab.panel_security_admin"
            if bot.is_bot_admin(interaction.user.id)
            else "playfab.panel_security_tester"
        )
        embed = create_embed(
            title_key="playfab.panel_title",
            description_key="playfab.panel_description",
            color_type="neutral",
            fields=[
                ("Security", get_message(security_key), False),
                ("Note", get_message("playfab.panel_note"), False),
            ],
        )
        view = routed_view(
            routed_button("pf:ban", "Ban", discord.ButtonStyle.danger, "🔨"),
            routed_button("pf:mute", "Mute (Vivox)", discord.ButtonStyle.primary, "🔇"),
            routed_button("pf:reset", "Reset Account", discord.ButtonStyle.secondary, "♻️"),
            routed_button("pf:mine", "My Requests", discord.ButtonStyle.secondary, "🗂"),
        )
        await interaction.response.send_message(embed=embed, view=view, ephemeral=True)

    pf_panel.error(make_command_error_handler("pf-panel"))

    @bot.tree.command(
        name="pf-account",
        description="Show PlayFab account standings (history & notes).",
    )
    @app_commands.rename(identifier="id")
    @app_commands.describe(identifier="PlayFabId, SteamID64, or Steam profile URL")
    async def pf_account(interaction: discord.Interaction, identifier: str):
        cmd_logger = logger.getChild("pf-account")
        cmd_logger.info(f"Standings for '{identifier}' requested by {interaction.user}")
        _require_operator(interaction)
        await interaction.response.defer(ephemeral=True, thinking=True)

        player = await bot.approvals.resolve(identifier)
        standings = bot.approvals.account_standings(player.account_id)
        await interaction.followup.send(
            embed=build_standings_embed(standings, player.steam64, player.vanity),
            view=build_account_view(player.account_id),
            ephemeral=True,
        )

    pf_account.error(make_command_error_handler("pf-account"))

    bot.add_interaction_route("pf", handle_panel_interaction)
    bot.add_interaction_route("pfacct", handle_account_interaction)
