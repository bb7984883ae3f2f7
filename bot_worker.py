import asyncio
import logging
from typing import Iterable, Optional

import discord
from discord import app_commands

from bot_config import ConfigStore
from license_core import (
    Forbidden, KeyStore, LicenseError, check_key, generate_key, is_operator, revoke_key
)
from settings import Settings

logger = logging.getLogger(__name__)

TICKET_CLOSE_DELAY = 5
TICKET_TOPIC_PREFIX = "Ticket opener: "

# =========================
# ADMIN COMMAND REPLIES
# =========================
def _authorize(operators: Iterable[str], user_id) -> None:
    if not is_operator(user_id, operators):
        raise Forbidden()

def genkey_reply(store: KeyStore, operators: Iterable[str], user_id,
                 duration_class: str, prefix: str) -> str:
    try:
        _authorize(operators, user_id)
        key = generate_key(store, (duration_class or "").strip().lower(), prefix)
    except LicenseError as e:
        return f"❌ {e.message}"
    return f"✅ Key generated: `{key}`"

def checkkey_reply(store: KeyStore, operators: Iterable[str], user_id, key: str) -> str:
    try:
        _authorize(operators, user_id)
        status = check_key(store, key.strip())
    except LicenseError as e:
        return f"❌ {e.message}"
    return "\n".join([
        f"🔑 Key: `{status.key}`",
        f"Status: {status.status_text}",
        f"Expires: {status.expiry_text}",
    ])

def revokekey_reply(store: KeyStore, operators: Iterable[str], user_id, key: str) -> str:
    key = key.strip()
    try:
        _authorize(operators, user_id)
        revoke_key(store, key)
    except LicenseError as e:
        return f"❌ {e.message}"
    return f"❌ Key revoked: `{key}`"

@app_commands.command(name="genkey", description="Generate a new key")
@app_commands.rename(duration="type")
@app_commands.describe(duration="Key duration: day, week, month, year, lifetime")
async def genkey(interaction: discord.Interaction, duration: str):
    bot = interaction.client
    await interaction.response.send_message(
        genkey_reply(bot.key_store, bot.settings.admin_user_ids, interaction.user.id,
                     duration, bot.settings.key_prefix),
        ephemeral=True
    )

@app_commands.command(name="checkkey", description="Check key status")
@app_commands.describe(key="Key to check")
async def checkkey(interaction: discord.Interaction, key: str):
    bot = interaction.client
    await interaction.response.send_message(
        checkkey_reply(bot.key_store, bot.settings.admin_user_ids, interaction.user.id, key),
        ephemeral=True
    )

@app_commands.command(name="revokekey", description="Revoke a key")
@app_commands.describe(key="Key to revoke")
async def revokekey(interaction: discord.Interaction, key: str):
    bot = interaction.client
    await interaction.response.send_message(
        revokekey_reply(bot.key_store, bot.settings.admin_user_ids, interaction.user.id, key),
        ephemeral=True
    )

ADMIN_COMMANDS = (genkey, checkkey, revokekey)

# =========================
# EMBEDS
# =========================
def build_ticket_panel_embed() -> discord.Embed:
    return discord.Embed(
        title="Create a Ticket",
        description="Click the button below to open a private ticket for purchasing or support.",
        color=discord.Color(0x2ECC71),
    )

def build_ticket_embed(number: int, user) -> discord.Embed:
    embed = discord.Embed(
        title=f"Ticket #{number}",
        description=(
            f"Welcome, {user.mention}! An admin will be with you shortly.\n\n"
            "Please describe the product you wish to purchase or the issue you are facing."
        ),
        color=discord.Color(0x5865F2),
        timestamp=discord.utils.utcnow(),
    )
    embed.set_footer(text=f"Ticket created by {user}")
    return embed

def build_welcome_set_embed(channel) -> discord.Embed:
    return discord.Embed(
        description=f"✅ Welcome messages will now be sent to this channel ({channel.mention}).",
        color=discord.Color(0x3498DB),
    )

def build_welcome_embed(member) -> discord.Embed:
    embed = discord.Embed(
        title=f"Welcome to {member.guild.name}!",
        description=f"Hello {member.mention}, we're happy to have you here!",
        color=discord.Color(0xFEE75C),
        timestamp=discord.utils.utcnow(),
    )
    embed.set_thumbnail(url=member.display_avatar.url)
    return embed

# =========================
# TICKETS
# =========================
def ticket_channel_name(number: int) -> str:
    return f"ticket-{number}"

def ticket_topic(user_id) -> str:
    return f"{TICKET_TOPIC_PREFIX}{user_id}"

def find_open_ticket(channels, user_id):
    topic = ticket_topic(user_id)
    for channel in channels:
        if getattr(channel, "topic", None) == topic:
            return channel
    return None

async def _resolve_member(guild: discord.Guild, user_id: str) -> Optional[discord.Member]:
    member = guild.get_member(int(user_id))
    if member is not None:
        return member
    try:
        return await guild.fetch_member(int(user_id))
    except discord.HTTPException as e:
        logger.warning("Could not add operator %s to ticket: %s", user_id, e)
        return None

class TicketPanelView(discord.ui.View):
    def __init__(self):
        super().__init__(timeout=None)

    @discord.ui.button(label="Create Ticket", style=discord.ButtonStyle.success,
                       emoji="🎟️", custom_id="create_ticket")
    async def create_ticket(self, interaction: discord.Interaction, button: discord.ui.Button):
        bot = interaction.client
        guild = interaction.guild
        if guild is None:
            return await interaction.response.send_message("Tickets only work inside a server.", ephemeral=True)

        user_id = interaction.user.id
        existing = find_open_ticket(guild.text_channels, user_id)
        if existing is not None:
            return await interaction.response.send_message(
                f"You already have an open ticket: {existing.mention}", ephemeral=True
            )
        if user_id in bot.pending_tickets:
            return await interaction.response.send_message(
                "Your ticket is already being created.", ephemeral=True
            )

        # Claimed before the first await; released once the channel exists or creation failed.
        bot.pending_tickets.add(user_id)
        try:
            await _open_ticket(interaction, bot, guild)
        finally:
            bot.pending_tickets.discard(user_id)

async def _open_ticket(interaction: discord.Interaction, bot, guild: discord.Guild) -> None:
    await interaction.response.defer(ephemeral=True, thinking=True)

    # Taken before any further await so interleaved clicks never share a number.
    number = bot.config_store.take_ticket_number()

    access = discord.PermissionOverwrite(view_channel=True, send_messages=True, read_message_history=True)
    overwrites = {
        guild.default_role: discord.PermissionOverwrite(view_channel=False),
        interaction.user: access,
    }
    for admin_id in bot.settings.admin_user_ids:
        member = await _resolve_member(guild, admin_id)
        if member is not None:
            overwrites[member] = access

    try:
        channel = await guild.create_text_channel(
            ticket_channel_name(number),
            overwrites=overwrites,
            topic=ticket_topic(interaction.user.id),
            reason=f"Ticket #{number} opened by {interaction.user}",
        )
        await channel.send(
            content=f"{interaction.user.mention} <@{bot.settings.admin_user_ids[0]}>",
            embed=build_ticket_embed(number, interaction.user),
            view=CloseTicketView(),
        )
    except discord.HTTPException as e:
        logger.error("Failed to open ticket #%d for %s: %s", number, interaction.user, e)
        await interaction.followup.send("❌ Could not create your ticket.", ephemeral=True)
        return

    await interaction.followup.send(f"✅ Your ticket has been created: {channel.mention}", ephemeral=True)
    logger.info("Opened ticket #%d for %s", number, interaction.user)

class CloseTicketView(discord.ui.View):
    def __init__(self):
        super().__init__(timeout=None)

    @discord.ui.button(label="Close Ticket", style=discord.ButtonStyle.danger, custom_id="close_ticket")
    async def close_ticket(self, interaction: discord.Interaction, button: discord.ui.Button):
        if not interaction.permissions.manage_channels:
            return await interaction.response.send_message(
                "❌ You do not have permission to close this ticket.", ephemeral=True
            )
        await interaction.response.send_message(f"Closing this ticket in {TICKET_CLOSE_DELAY} seconds...")
        await asyncio.sleep(TICKET_CLOSE_DELAY)
        try:
            await interaction.channel.delete(reason=f"Ticket closed by {interaction.user}")
        except discord.HTTPException as e:
            logger.error("Failed to delete ticket channel %s: %s", interaction.channel, e)

# =========================
# WELCOME
# =========================
async def handle_member_join(config_store: ConfigStore, member) -> bool:
    channel_id = config_store.welcome_channel_id
    if not channel_id:
        return False

    channel = member.guild.get_channel(int(channel_id))
    if channel is None:
        # Channel was deleted since it was configured.
        config_store.clear_welcome_channel()
        logger.info("Welcome channel %s is gone; cleared setting", channel_id)
        return False

    await channel.send(embed=build_welcome_embed(member))
    return True

# =========================
# CLIENT
# =========================
def bot_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.guild_messages = True
    intents.message_content = True
    return intents

class Bot(discord.Client):
    def __init__(self, settings: Settings, key_store: KeyStore, config_store: ConfigStore):
        super().__init__(intents=bot_intents(), application_id=settings.client_id)
        self.settings = settings
        self.key_store = key_store
        self.config_store = config_store
        self.pending_tickets = set()
        self.tree = app_commands.CommandTree(self)
        for command in ADMIN_COMMANDS:
            self.tree.add_command(command)

    async def setup_hook(self):
        self.add_view(TicketPanelView())
        self.add_view(CloseTicketView())
        await self.register_commands()

    async def register_commands(self) -> None:
        logger.info("Registering slash commands...")
        try:
            if self.settings.guild_id:
                guild_obj = discord.Object(id=self.settings.guild_id)
                self.tree.copy_global_to(guild=guild_obj)
                synced = await self.tree.sync(guild=guild_obj)
            else:
                synced = await self.tree.sync()
        except discord.HTTPException as e:
            logger.error("Failed to register slash commands: %s", e)
            return
        logger.info("Slash commands registered: %s", ", ".join(c.name for c in synced))

    async def on_ready(self):
        logger.info("Bot ready as %s (%s)", self.user, self.user.id)

    async def on_message(self, message: discord.Message):
        if message.author.bot or message.guild is None:
            return
        if not is_operator(message.author.id, self.settings.admin_user_ids):
            return

        content = message.content.strip().lower()
        if content == "!ticket":
            await message.channel.send(embed=build_ticket_panel_embed(), view=TicketPanelView())
            try:
                await message.delete()
            except discord.HTTPException as e:
                logger.warning("Could not delete !ticket trigger message: %s", e)
        elif content == "!setwelcome":
            self.config_store.set_welcome_channel(message.channel.id)
            await message.channel.send(embed=build_welcome_set_embed(message.channel))

    async def on_member_join(self, member: discord.Member):
        await handle_member_join(self.config_store, member)

async def start_bot(bot: Bot, token: str):
    async with bot:
        await bot.start(token)
