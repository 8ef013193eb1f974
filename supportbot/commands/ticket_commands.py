"""Support tickets: the hub menu, ticket threads, QA controls and QA stats.

Ticket controls are routed by custom_id:

    hub:type                                  ticket type select on the hub
    ticket:<action>:<guild>:<thread>:<opener> controls inside the ticket thread
    remote:<action>:<guild>:<thread>:<opener> controls on the QA notification
    qa:mystats                                the stats panel button

``action`` is claim, assign, escalate or manage for buttons, and assignto or
act for the select menus they open.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import discord
from discord import app_commands

from supportbot.commands.auth import has_qa_role, is_bot_admin, is_qa_member, qa_role_id
from supportbot.commands.common import (
    SupportModal,
    make_command_error_handler,
    routed_button,
    routed_view,
    text_input,
)
from supportbot.config import get_id_value
from supportbot.errors import NotAuthorized, SupportBotError
from supportbot.messaging import create_embed, get_embed_color, get_message, send_ephemeral
from supportbot.models import AgentSummary

logger = logging.getLogger(__name__)

# Discord caps select menus at 25 options
MAX_SELECT_OPTIONS = 25
MAX_ACTIVE_LINKS = 10


@dataclass(frozen=True)
class TicketKind:
    key: str
    label: str
    emoji: str
    description: str
    color_type: str
    archive_minutes: int
    # (label, paragraph, placeholder)
    questions: Tuple[Tuple[str, bool, str], ...]


TICKET_KINDS = {
    kind.key: kind
    for kind in (
        TicketKind(
            "bug", "Bug Report", "🐛", "File a bug report", "info", 1440,
            (
                ("Short Title", False, "e.g. Game Crash"),
                ("Incident Overview", True, "e.g. While driving my game crashed..."),
                ("Steps To Reproduce bug", True, "e.g. Drive DOM3 into a wall..."),
                ("Expected Behavior", True, "e.g. I shouldn't have crashed..."),
                ("Did you read bug report guide?", False, "Yes/No"),
            ),
        ),
        TicketKind(
            "report", "Player Report", "🎮", "Report misconduct", "error", 60,
            (
                ("Display name of reported player?", False, "e.g. StormChaser42"),
                ("Where did this incident occur?", False, "e.g. Lobby #3"),
                ("When did this occur?", False, "e.g. 2025-07-26 14:30 UTC"),
                ("Which guidelines were broken?", True, "e.g. Harassment"),
                ("Describe the incident in depth", True, "e.g. Hate speech..."),
            ),
        ),
        TicketKind(
            "appeal", "Punishment Appeal", "⚖️", "Appeal a penalty", "warning", 60,
            (
                ("Your Steam ID?", False, "e.g. 76561199224604471"),
                ("When was punishment issued?", False, "e.g. 2025-07-20"),
                ("Time left on punishment?", False, "e.g. 2 days"),
                ("Why were you punished?", True, "e.g. Chat spam"),
                ("Why should you be unpunished?", True, "e.g. Mistake"),
            ),
        ),
        TicketKind(
            "other", "Other", "💬", "General support", "success", 60,
            (("Describe your issue", True, "e.g. Account help"),),
        ),
    )
}

MANAGE_OPTIONS = [
    ("Close Immediately", "close_now", "Close now with custom reason"),
    ("Warn for Missing Info", "warn_missing_info", "DM opener: will close in 24h if no info"),
    ("Warn for Inactivity", "warn_inactivity", "DM opener: will close in 24h if inactive"),
    ("Close – Resolved", "close_resolved", "Close ticket as resolved (adds reason)"),
    ("Close – Known Issue", "close_known", "Close as known issue (requires Trello link)"),
    ("Close – Missing Info (Guide)", "close_missing_info", "Post the guide message and close"),
]


def thread_link(guild_id, thread_id) -> str:
    return f"https://discord.com/channels/{guild_id}/{thread_id}"


@dataclass(frozen=True)
class TicketRef:
    """The ticket a control acts on, as carried in its custom_id."""

    guild_id: int
    thread_id: int
    opener_id: int

    def custom_id(self, prefix: str, action: str) -> str:
        return f"{prefix}:{action}:{self.guild_id}:{self.thread_id}:{self.opener_id}"

    @property
    def link(self) -> str:
        return thread_link(self.guild_id, self.thread_id)

    @classmethod
    def from_parts(cls, parts: List[str]) -> "TicketRef":
        try:
            return cls(int(parts[2]), int(parts[3]), int(parts[4]))
        except (IndexError, ValueError):
            raise SupportBotError(get_message("tickets.error_bad_control"))


def ticket_controls(ref: TicketRef) -> discord.ui.View:
    return routed_view(
        routed_button(ref.custom_id("ticket", "claim"), "Claim", discord.ButtonStyle.success),
        routed_button(ref.custom_id("ticket", "assign"), "Assign", discord.ButtonStyle.primary),
        routed_button(ref.custom_id("ticket", "escalate"), "Escalate", discord.ButtonStyle.secondary),
        routed_button(ref.custom_id("ticket", "manage"), "Manage Ticket", discord.ButtonStyle.danger),
    )


def remote_controls(ref: TicketRef) -> discord.ui.View:
    return routed_view(
        routed_button(ref.custom_id("remote", "claim"), "Claim", discord.ButtonStyle.success),
        routed_button(ref.custom_id("remote", "assign"), "Assign", discord.ButtonStyle.primary),
        routed_button(ref.custom_id("remote", "manage"), "Manage Ticket", discord.ButtonStyle.danger),
    )


def hub_view() -> discord.ui.View:
    select = discord.ui.Select(
        custom_id="hub:type",
        placeholder="Choose ticket type…",
        options=[
            discord.SelectOption(
                label=kind.label, value=kind.key, emoji=kind.emoji, description=kind.description
            )
            for kind in TICKET_KINDS.values()
        ],
    )
    return routed_view(select)


def _selected(interaction: discord.Interaction) -> Optional[str]:
    values = (interaction.data or {}).get("values") or []
    return values[0] if values else None


def claimed_view(message: discord.Message) -> Optional[discord.ui.View]:
    """The message's controls with an open Claim button switched to "Claimed", or None."""
    if not message.components:
        return None
    view = discord.ui.View.from_message(message, timeout=None)
    for item in view.children:
        if (
            isinstance(item, discord.ui.Button)
            and (item.custom_id or "").startswith("ticket:claim:")
            and not item.disabled
        ):
            item.disabled = True
            item.label = "Claimed"
            return view
    return None


async def mark_claimed(bot, thread: discord.Thread) -> None:
    """Disable the Claim button on the ticket summary. Best effort."""
    try:
        async for message in thread.history(limit=25):
            if message.author.id != bot.user.id:
                continue
            view = claimed_view(message)
            if view is not None:
                await message.edit(view=view)
                return
    except discord.HTTPException as e:
        logger.warning(f"Could not mark ticket {thread.id} as claimed: {e}")


async def _fetch_thread(bot, ref: TicketRef) -> discord.Thread:
    thread = await bot.resolve_channel(ref.thread_id)
    if not isinstance(thread, discord.Thread):
        raise SupportBotError(get_message("tickets.error_thread_missing"))
    return thread


async def post_to_thread(thread: discord.Thread, *args, **kwargs) -> None:
    try:
        await thread.send(*args, **kwargs)
    except discord.HTTPException as e:
        logger.warning(f"Could not post in ticket {thread.id}: {e}")


async def close_ticket(
    interaction: discord.Interaction, thread: discord.Thread, close_text: str
) -> None:
    """Post the closing text, log the closure, lock and archive, then credit the agents."""
    bot = interaction.client
    close_logger = logger.getChild("close")
    if not interaction.response.is_done():
        await interaction.response.defer(ephemeral=True, thinking=True)

    await post_to_thread(thread, close_text)
    await bot.log_to_channel(
        get_message(
            "tickets.log_closed",
            thread_name=thread.name,
            link=thread_link(thread.guild.id, thread.id),
            closer=interaction.user.mention,
        )
    )
    try:
        await thread.edit(locked=True, archived=True, reason="Closed by QA")
    except discord.HTTPException as e:
        close_logger.error(f"Could not lock/archive ticket {thread.id}: {e}")

    credited = bot.qa_stats.record_close(thread.id)
    close_logger.info(
        f"Ticket {thread.id} closed by {interaction.user}; credited {credited} agent(s)."
    )
    await interaction.followup.send(get_message("tickets.closed_ack"), ephemeral=True)


# --- modals ---


class TicketModal(SupportModal):
    """Ticket form for one TicketKind; opens the private thread on submit."""

    def __init__(self, kind: TicketKind):
        super().__init__(title=f"{kind.label} Form")
        self.kind = kind
        self.answers: List[Tuple[str, discord.ui.TextInput]] = []
        for label, paragraph, placeholder in kind.questions:
            field = text_input(label, paragraph=paragraph, placeholder=placeholder)
            self.answers.append((label, field))
            self.add_item(field)

    def summary_embed(self, user: discord.abc.User) -> discord.Embed:
        description = "\n\n".join(
            f"**{label}**\n```{field.value or ' '}```" for label, field in self.answers
        )
        embed = discord.Embed(
            title=f"{self.kind.emoji} {self.kind.label}",
            description=description[:4096],
            color=get_embed_color(self.kind.color_type),
            timestamp=discord.utils.utcnow(),
        )
        embed.set_footer(text=str(user))
        return embed

    async def on_submit(self, interaction: discord.Interaction):
        bot = interaction.client
        ticket_logger = logger.getChild(f"ticket.{self.kind.key}")
        support_channel = await bot.resolve_channel(get_id_value("discord.support_channel_id"))
        if not isinstance(support_channel, discord.TextChannel):
            raise SupportBotError(get_message("tickets.error_support_channel_missing"))

        await interaction.response.defer(ephemeral=True, thinking=True)
        thread = await support_channel.create_thread(
            name=f"ticket-{self.kind.key}-{interaction.user.name}"[:100],
            type=discord.ChannelType.private_thread,
            invitable=False,
            auto_archive_duration=self.kind.archive_minutes,
        )
        await thread.add_user(interaction.user)
        ticket_logger.info(f"Ticket thread {thread.id} opened by {interaction.user}")

        ref = TicketRef(thread.guild.id, thread.id, interaction.user.id)
        welcome_key = f"tickets.welcome_{self.kind.key}"
        if self.kind.key in ("bug", "report"):
            await thread.send(
                content=f"Hey {interaction.user.mention} 👋",
                embed=discord.Embed(description=get_message(welcome_key)),
            )
        await thread.send(embed=self.summary_embed(interaction.user), view=ticket_controls(ref))

        await self._notify_qa(bot, ref, interaction.user)
        await interaction.followup.send(
            get_message("tickets.created", thread=thread.mention), ephemeral=True
        )

    async def _notify_qa(self, bot, ref: TicketRef, opener: discord.abc.User) -> None:
        channel = await bot.resolve_channel(get_id_value("discord.qa_notify_channel_id"))
        if channel is None:
            return
        try:
            await channel.send(
                content=get_message(
                    "tickets.qa_notify",
                    type=self.kind.label,
                    opener=opener.mention,
                    link=ref.link,
                ),
                view=remote_controls(ref),
            )
        except discord.HTTPException as e:
            logger.error(f"QA notify failed for ticket {ref.thread_id}: {e}")


class EscalateModal(SupportModal, title="Escalate Ticket"):
    reason = discord.ui.TextInput(
        label="Reason for escalation",
        style=discord.TextStyle.paragraph,
        placeholder="Why are you escalating?",
    )

    def __init__(self, ref: TicketRef):
        super().__init__()
        self.ref = ref

    async def on_submit(self, interaction: discord.Interaction):
        bot = interaction.client
        await interaction.response.defer(ephemeral=True, thinking=True)
        guild = bot.get_guild(self.ref.guild_id) or interaction.guild
        role = guild.get_role(qa_role_id(guild, "lead")) if guild else None
        text = get_message(
            "tickets.escalated_dm",
            user=interaction.user.mention,
            link=self.ref.link,
            reason=self.reason.value,
        )
        sent = 0
        for lead in role.members if role else []:
            if await bot.notifier.notify(lead.id, text):
                sent += 1
        logger.getChild("escalate").info(
            f"Ticket {self.ref.thread_id} escalated by {interaction.user}; {sent} lead(s) notified."
        )
        await interaction.followup.send(get_message("tickets.escalated_ack"), ephemeral=True)


class CloseModal(SupportModal):
    """Reason / resolution / known-issue form shown before closing."""

    def __init__(self, action: str, ref: TicketRef):
        titles = {
            "close_now": "Close Ticket - Reason",
            "close_resolved": "Close – Resolved",
            "close_known": "Close – Known Issue",
        }
        super().__init__(title=titles[action])
        self.action = action
        self.ref = ref
        self.trello = None
        if action == "close_now":
            self.note = text_input("Reason for closing", paragraph=True, placeholder="Enter your reason here…")
        elif action == "close_resolved":
            self.note = text_input("Brief resolution note", paragraph=True, placeholder="Describe how this was resolved…")
        else:
            self.note = text_input("Short note", paragraph=True, placeholder="Why this maps to a known issue…")
            self.trello = text_input("Trello ticket link", placeholder="https://trello.com/c/…")
        self.add_item(self.note)
        if self.trello is not None:
            self.add_item(self.trello)

    def close_text(self, user: discord.abc.User) -> str:
        if self.action == "close_now":
            return get_message("tickets.close_now", user=user.mention, reason=self.note.value)
        if self.action == "close_resolved":
            return get_message("tickets.close_resolved", user=user.mention, note=self.note.value)
        return get_message(
            "tickets.close_known", opener=f"<@{self.ref.opener_id}>", trello=self.trello.value
        )

    async def on_submit(self, interaction: discord.Interaction):
        thread = await _fetch_thread(interaction.client, self.ref)
        await close_ticket(interaction, thread, self.close_text(interaction.user))


# --- component routes ---


def _require(interaction: discord.Interaction, *roles: str) -> None:
    if any(has_qa_role(interaction.user, which) for which in roles):
        return
    raise NotAuthorized()


async def handle_hub_interaction(interaction: discord.Interaction, parts: List[str]):
    kind = TICKET_KINDS.get(_selected(interaction) or "")
    if kind is None:
        return
    await interaction.response.send_modal(TicketModal(kind))


async def _claim(interaction: discord.Interaction, ref: TicketRef, remote: bool):
    bot = interaction.client
    _require(interaction, "tester", "lead")
    bot.qa_stats.record_claim(interaction.user.id, ref.thread_id)

    if remote:
        thread = await _fetch_thread(bot, ref)
        await mark_claimed(bot, thread)
        await post_to_thread(thread, get_message("tickets.claimed_remote", user=interaction.user.mention))
        await send_ephemeral(interaction, get_message("tickets.claimed_ack"))
        return

    view = claimed_view(interaction.message)
    if view is not None:
        await interaction.response.edit_message(view=view)
    else:
        await interaction.response.defer()
    await interaction.channel.send(get_message("tickets.claimed", user=interaction.user.mention))


async def _assign_menu(interaction: discord.Interaction, ref: TicketRef, remote: bool):
    if remote:
        _require(interaction, "lead", "tester")
    else:
        if not has_qa_role(interaction.user, "lead"):
            raise NotAuthorized(get_message("tickets.error_assign_lead_only"))

    guild = interaction.guild
    role = guild.get_role(qa_role_id(guild, "tester")) if guild else None
    members = [m for m in (role.members if role else []) if not m.bot][:MAX_SELECT_OPTIONS]
    if not members:
        await send_ephemeral(interaction, get_message("tickets.no_testers"))
        return

    select = discord.ui.Select(
        custom_id=ref.custom_id("ticket", "assignto"),
        placeholder="Assign to a QA tester…",
        options=[
            discord.SelectOption(label=m.display_name[:100], value=str(m.id), description=str(m)[:100])
            for m in members
        ],
    )
    await interaction.response.send_message(
        get_message("tickets.assign_prompt"), view=routed_view(select), ephemeral=True
    )


async def _assign_to(interaction: discord.Interaction, ref: TicketRef):
    bot = interaction.client
    assign_logger = logger.getChild("assign")
    value = _selected(interaction)
    if not value:
        return
    assignee_id = int(value)
    await interaction.response.defer(ephemeral=True)
    thread = await _fetch_thread(bot, ref)

    current = {m.id for m in await thread.fetch_members()}
    if assignee_id in current:
        await thread.remove_user(discord.Object(id=assignee_id))
        await post_to_thread(
            thread,
            get_message("tickets.unassigned", assignee=f"<@{assignee_id}>", user=interaction.user.mention),
        )
        assign_logger.info(f"{assignee_id} unassigned from {thread.id} by {interaction.user}")
        await interaction.followup.send(
            get_message("tickets.unassigned_ack", assignee=f"<@{assignee_id}>"), ephemeral=True
        )
        return

    await thread.add_user(discord.Object(id=assignee_id))
    bot.qa_stats.record_assign(assignee_id, ref.guild_id, ref.thread_id)
    await mark_claimed(bot, thread)
    embed = discord.Embed(
        description=get_message("tickets.assigned_embed", assignee=f"<@{assignee_id}>"),
        color=get_embed_color("info"),
        timestamp=discord.utils.utcnow(),
    )
    await post_to_thread(thread, embed=embed)
    await bot.notifier.notify(assignee_id, get_message("tickets.assigned_dm", link=ref.link))
    assign_logger.info(f"{assignee_id} assigned to {thread.id} by {interaction.user}")
    await interaction.followup.send(
        get_message("tickets.assigned_ack", assignee=f"<@{assignee_id}>"), ephemeral=True
    )


async def _manage_menu(interaction: discord.Interaction, ref: TicketRef):
    _require(interaction, "tester", "lead")
    select = discord.ui.Select(
        custom_id=ref.custom_id("ticket", "act"),
        placeholder="Select an action for this ticket...",
        options=[
            discord.SelectOption(label=label, value=value, description=description)
            for label, value, description in MANAGE_OPTIONS
        ],
    )
    await interaction.response.send_message(
        get_message("tickets.manage_prompt", link=ref.link), view=routed_view(select), ephemeral=True
    )


async def _warn(interaction: discord.Interaction, ref: TicketRef, action: str):
    bot = interaction.client
    thread = await _fetch_thread(bot, ref)
    which = "missing_info" if action == "warn_missing_info" else "inactivity"
    await bot.notifier.notify(
        ref.opener_id,
        get_message(f"tickets.warn_{which}_dm", opener=f"<@{ref.opener_id}>", link=ref.link),
    )
    embed = create_embed(
        title_key=f"tickets.warn_{which}_title",
        description_key=f"tickets.warn_{which}_text",
        color_type="warning",
        footer_text="",
        timestamp=discord.utils.utcnow(),
    )
    await post_to_thread(thread, embed=embed)
    await interaction.response.edit_message(content=get_message(f"tickets.warn_{which}_ack"))


async def _manage_action(interaction: discord.Interaction, ref: TicketRef):
    _require(interaction, "tester", "lead")
    action = _selected(interaction)
    if action in ("close_now", "close_resolved", "close_known"):
        await interaction.response.send_modal(CloseModal(action, ref))
    elif action in ("warn_missing_info", "warn_inactivity"):
        await _warn(interaction, ref, action)
    elif action == "close_missing_info":
        thread = await _fetch_thread(interaction.client, ref)
        await close_ticket(interaction, thread, get_message("tickets.missing_info_text"))


async def handle_ticket_interaction(interaction: discord.Interaction, parts: List[str]):
    """Controls in the ticket thread (``ticket:``) and on the QA notification (``remote:``)."""
    remote = parts[0] == "remote"
    action = parts[1] if len(parts) > 1 else ""
    ref = TicketRef.from_parts(parts)

    if action == "claim":
        await _claim(interaction, ref, remote)
    elif action == "assign":
        await _assign_menu(interaction, ref, remote)
    elif action == "assignto":
        await _assign_to(interaction, ref)
    elif action == "escalate":
        _require(interaction, "tester")
        await interaction.response.send_modal(EscalateModal(ref))
    elif action == "manage":
        await _manage_menu(interaction, ref)
    elif action == "act":
        await _manage_action(interaction, ref)
    else:
        logger.warning(f"Unknown ticket action '{action}' from {interaction.user}")


# --- QA stats ---


def build_stats_embed(user: discord.abc.User, summary: AgentSummary) -> discord.Embed:
    average = f"{round(summary.avg_response_ms / 1000)}s" if summary.avg_response_ms else "—"
    lines = [
        f"**Handled (assigned/claimed):** {summary.handled}",
        f"**Closed (credited):** {summary.closed}",
        f"**Avg first response:** {average}",
    ]
    if summary.active:
        links = [
            f"• {thread_link(context, tid)}" if context else f"• <#{tid}>"
            for tid, context in summary.active[:MAX_ACTIVE_LINKS]
        ]
        lines.append(f"**Active ({len(summary.active)}):**\n" + "\n".join(links))
    else:
        lines.append("**Active:** 0")

    embed = create_embed(
        title_key="qa.stats_title",
        color_type="neutral",
        title_kwargs={"user": str(user)},
        timestamp=discord.utils.utcnow(),
    )
    embed.description = "\n".join(lines)
    return embed


async def handle_qa_interaction(interaction: discord.Interaction, parts: List[str]):
    if len(parts) > 1 and parts[1] == "mystats":
        summary = interaction.client.qa_stats.summarize(interaction.user.id)
        await interaction.response.send_message(
            embed=build_stats_embed(interaction.user, summary), ephemeral=True
        )


def setup_commands(bot):
    """Register the commands and component routes with the bot."""

    @bot.tree.command(name="setup-support", description="Post the OUTBRK Support Hub")
    @is_bot_admin()
    async def setup_support(interaction: discord.Interaction):
        cmd_logger = logger.getChild("setup-support")
        cmd_logger.info(f"Support hub posted by {interaction.user} in {interaction.channel_id}")
        faq_channel_id = get_id_value("discord.faq_channel_id")
        embed = create_embed(
            title_key="tickets.hub_title",
            description_key="tickets.hub_description",
            color_type="success",
            description_kwargs={
                "faq_channel": f"<#{faq_channel_id}>" if faq_channel_id else "the FAQ"
            },
            fields=[
                (f"{kind.emoji} {kind.label.upper()}", get_message(f"tickets.hub_field_{kind.key}"), False)
                for kind in TICKET_KINDS.values()
            ],
            timestamp=discord.utils.utcnow(),
        )
        await interaction.response.send_message(embed=embed, view=hub_view())

    setup_support.error(make_command_error_handler("setup-support"))

    @bot.tree.command(name="qa-stats", description="Show QA performance stats (ephemeral)")
    @app_commands.describe(user="View another user (Lead QA only)")
    async def qa_stats(interaction: discord.Interaction, user: Optional[discord.Member] = None):
        cmd_logger = logger.getChild("qa-stats")
        target = user or interaction.user
        if target.id != interaction.user.id and not has_qa_role(interaction.user, "lead"):
            cmd_logger.warning(f"{interaction.user} tried to view stats of {target} without Lead QA.")
            raise NotAuthorized(get_message("qa.error_lead_only"))
        summary = bot.qa_stats.summarize(target.id)
        await interaction.response.send_message(
            embed=build_stats_embed(target, summary), ephemeral=True
        )

    qa_stats.error(make_command_error_handler("qa-stats"))

    @bot.tree.command(name="qa-stats-panel", description="Post a QA stats panel into this channel")
    async def qa_stats_panel(interaction: discord.Interaction):
        if not (bot.is_bot_admin(interaction.user.id) or is_qa_member(interaction.user)):
            raise NotAuthorized()
        embed = create_embed(
            title_key="qa.panel_title",
            description_key="qa.panel_description",
            color_type="info",
            timestamp=discord.utils.utcnow(),
        )
        view = routed_view(routed_button("qa:mystats", "My Stats", discord.ButtonStyle.primary))
        await interaction.response.send_message(embed=embed, view=view)

    qa_stats_panel.error(make_command_error_handler("qa-stats-panel"))

    bot.add_interaction_route("hub", handle_hub_interaction)
    bot.add_interaction_route("ticket", handle_ticket_interaction)
    bot.add_interaction_route("remote", handle_ticket_interaction)
    bot.add_interaction_route("qa", handle_qa_interaction)
