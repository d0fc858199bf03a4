#!/usr/bin/env python3
"""Discord bot running NFT battle royale tournaments."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Coroutine, Sequence
from datetime import UTC, datetime
from io import BytesIO
from typing import Any, Final

import boto3
import discord
import requests
from discord import app_commands
from discord.abc import Messageable
from discord.app_commands import errors as app_errors
from openai import AsyncOpenAI

from battle_bot import (
    AmbiguousConstraintError,
    BattleStorage,
    BotConfig,
    Contestant,
    InvalidValueError,
    Lobby,
    LobbyRegistry,
    RegistrationEntry,
    SessionStore,
    TeamConfig,
    TournamentController,
    utc_now_iso,
)
from battle_bot.comic import GENRES, StoryGenerator
from battle_bot.content import OpenAIContentProvider
from battle_bot.interaction import Artifact, await_choice
from battle_bot.lobby import Session
from battle_bot.validation import (
    MAX_CAPACITY,
    MIN_CAPACITY,
    parse_bool_flag,
    parse_collection_aliases,
    parse_cooldown_hours,
    validate_wallet_address,
)
from battle_bot.wizard import (
    ChooseMode,
    ChooseTeamA,
    ChooseTeamB,
    ChooseVenue,
    ModeChosen,
    TeamChosen,
    VenueSubmitted,
    WizardComplete,
    WizardState,
    advance,
)
from bots.config import BattleBotEnvironment
from verifier_bot.eligibility import EligibilityVerifier
from verifier_bot.solana_api import (
    DEFAULT_HOWRARE_URL,
    DEFAULT_RPC_URL,
    HowRareAliasIndex,
    SolanaAssetIndex,
)

# ---------- Environment ----------
ENV: Final[BattleBotEnvironment] = BattleBotEnvironment.load(require=False)

MESSAGE_LIMIT: Final[int] = 2000
COOLDOWN_MESSAGE: Final = "⏳ You are on cooldown and have no tokens left. Check /battle credits."
MODE_LABELS: Final[dict[str, str]] = {
    "WALLET": "🔗 Wallet NFT",
    "WALLET_TEAMS": "⚔️ Team Battle (Wallet NFT)",
    "PROFILE_IMAGE": "👤 Profile Picture",
    "UPLOAD": "🖼️ Uploaded Image",
}

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
log = logging.getLogger("battle-bot")

# ---------- Discord Setup ----------
intents = discord.Intents.default()
intents.guilds = True

bot = discord.Client(intents=intents)
tree = app_commands.CommandTree(bot)

GUILD_OBJECT = discord.Object(id=ENV.guild_id) if ENV.guild_id is not None else None

battle_group = app_commands.Group(name="battle", description="Battle royale lobbies")
wallet_group = app_commands.Group(name="wallet", description="Manage your linked wallet")
comic_group = app_commands.Group(name="comic", description="Story comic generator")
admin_group = app_commands.Group(
    name="admin",
    description="Battle bot administration",
    default_permissions=discord.Permissions(administrator=True),
)
admin_user_group = app_commands.Group(
    name="user", description="Manage user credits", parent=admin_group
)

# ---------- AWS / Solana / OpenAI Clients ----------
dynamodb = boto3.resource("dynamodb", region_name=ENV.aws_region)
table = dynamodb.Table(ENV.table_name) if ENV.table_name else None
storage = BattleStorage(table)

http_session = requests.Session()
asset_index = SolanaAssetIndex(
    ENV.solana_rpc_url or DEFAULT_RPC_URL,
    session=http_session,
    supports_bulk=ENV.bulk_lookups,
)
alias_index = HowRareAliasIndex(ENV.howrare_api_url or DEFAULT_HOWRARE_URL, session=http_session)

sessions: SessionStore[Session] = SessionStore()
wizards: SessionStore[WizardState] = SessionStore()
verifiers: SessionStore[EligibilityVerifier] = SessionStore()
comics: SessionStore[StoryGenerator] = SessionStore()
background_tasks: set[asyncio.Task[Any]] = set()
rng = random.Random()

content_provider: OpenAIContentProvider | None = None


def ensure_provider() -> OpenAIContentProvider:
    global content_provider
    if content_provider is None:
        if not ENV.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY is not configured")
        content_provider = OpenAIContentProvider(
            AsyncOpenAI(api_key=ENV.openai_api_key),
            text_model=ENV.text_model,
            image_model=ENV.image_model,
        )
    return content_provider


def build_verifier(config: BotConfig) -> EligibilityVerifier:
    return EligibilityVerifier(
        asset_index,
        alias_index,
        aliases=config.configured_aliases(),
        known=config.collection_map,
        batch_size=ENV.verify_batch_size,
        batch_delay=ENV.verify_batch_delay,
    )


def verifier_for_guild(guild_id: int) -> EligibilityVerifier:
    verifier = verifiers.get(guild_id)
    if verifier is None:
        verifier = build_verifier(storage.get_config(guild_id))
        verifiers.put(guild_id, verifier)
    return verifier


def registry_for_guild(guild_id: int) -> LobbyRegistry:
    return LobbyRegistry(
        sessions,
        verifier=verifier_for_guild(guild_id),
        users=storage,
        rng=rng,
    )


def spawn(coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
    task = asyncio.create_task(coro)
    background_tasks.add(task)
    task.add_done_callback(background_tasks.discard)
    return task


# ---------- Formatting Helpers ----------


def now_ms() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)


def select_options(values: Sequence[str]) -> list[discord.SelectOption]:
    return [
        discord.SelectOption(label=value[:100], value=value[:100]) for value in values[:25]
    ]


def truncate_message(message: str, limit: int = MESSAGE_LIMIT) -> str:
    if len(message) <= limit:
        return message
    return message[: limit - 1] + "…"


def mode_label(mode: str, *, team_mode: bool = False) -> str:
    if team_mode:
        return MODE_LABELS["WALLET_TEAMS"]
    return MODE_LABELS.get(mode, mode)


def parse_mode_option(value: str) -> ModeChosen:
    if value == "WALLET_TEAMS":
        return ModeChosen(mode="WALLET", teams=True)
    return ModeChosen(mode=value)  # type: ignore[arg-type]


def team_alias_options(config: BotConfig) -> list[str]:
    options: list[str] = []
    if config.server_collection:
        options.append(config.server_collection)
    for alias in config.partner_collections:
        if alias not in options:
            options.append(alias)
    return options


def resolve_team_name(team_config: TeamConfig, raw: str | None) -> str | None:
    """Match ``A``/``B`` or a team name (case-insensitive)."""
    if raw is None or not raw.strip():
        return None
    value = raw.strip().lower()
    if value in ("a", "team a"):
        return team_config.team_a.name
    if value in ("b", "team b"):
        return team_config.team_b.name
    for team in team_config.teams():
        if team.name.lower() == value or team.alias.lower() == value:
            return team.name
    return None


def format_contestants(contestants: Sequence[Contestant], *, team_mode: bool = False) -> str:
    if not contestants:
        return "No fighters yet."
    lines = []
    for index, contestant in enumerate(contestants, start=1):
        suffix = f" [{contestant.team}]" if team_mode and contestant.team else ""
        lines.append(f"{index}. {contestant.display_name}{suffix}")
    return "\n".join(lines)


def build_lobby_embed(lobby: Lobby) -> discord.Embed:
    embed = discord.Embed(
        title="⚔️ Battle Royale Lobby",
        description=f"Arena: **{lobby.settings.arena}**",
        color=discord.Color.orange(),
    )
    embed.add_field(name="Host", value=f"<@{lobby.host_id}>", inline=True)
    embed.add_field(
        name="Mode", value=mode_label(lobby.mode, team_mode=lobby.team_mode), inline=True
    )
    embed.add_field(
        name="Players", value=f"{len(lobby.contestants)}/{lobby.capacity}", inline=True
    )
    embed.add_field(
        name="Style",
        value=f"{lobby.settings.genre} · {lobby.settings.style}",
        inline=True,
    )
    if lobby.team_config is not None:
        teams = "\n".join(
            f"**{team.name}** ({team.alias})" for team in lobby.team_config.teams()
        )
        embed.add_field(name="Teams", value=teams, inline=False)
    embed.add_field(
        name="Fighters",
        value=truncate_message(
            format_contestants(lobby.contestants, team_mode=lobby.team_mode), 1024
        ),
        inline=False,
    )
    embed.set_footer(text="Join with /battle join · Host starts with /battle start")
    return embed


def format_credits(user_tokens: int, last_generation: int, cooldown_ms: int, now: int) -> str:
    lines = [f"**Tokens:** {user_tokens}"]
    elapsed = now - last_generation
    if elapsed < cooldown_ms:
        remaining = -(-(cooldown_ms - elapsed) // (60 * 60 * 1000))
        lines.append(f"**Cooldown:** ⏳ Wait {remaining} more hours or spend a token.")
    else:
        lines.append("**Cooldown:** ✅ Ready to host or generate!")
    return "\n".join(lines)


def summarize_resolution(resolved: dict[str, list[str]], aliases: Sequence[str]) -> str:
    lines = []
    for alias in aliases:
        ids = resolved.get(alias)
        if ids:
            lines.append(f"✅ {alias} → {', '.join(ids)}")
        else:
            lines.append(f"⚠️ {alias} could not be resolved")
    return "\n".join(lines) if lines else "No collections configured; any NFT may fight."


def build_help_text() -> str:
    return (
        "**⚔️ Battle**\n"
        "`/battle create` - Start a new battle lobby (opens the setup wizard).\n"
        "`/battle join` - Join the lobby in this channel.\n"
        "`/battle start` - Start the battle (host only).\n"
        "`/battle reset` - Reset the lobby (host only).\n"
        "`/battle credits` - Check your hosting tokens and cooldown.\n\n"
        "**📖 Comic**\n"
        "`/comic create` - Generate a story comic starring your image.\n"
        "`/comic status` - Check your tokens and cooldown.\n\n"
        "**💳 Wallet**\n"
        "`/wallet check` - Check your linked wallet.\n"
        "`/wallet set` - Add or change your wallet address.\n\n"
        "**🛠️ Admin**\n"
        "`/admin setup` - Cooldown and collection settings.\n"
        "`/admin user reset <user>` - Reset a user's cooldown.\n"
        "`/admin user grant <user> <amount>` - Grant tokens."
    )


def ensure_guild(interaction: discord.Interaction) -> discord.Guild:
    guild = interaction.guild
    if guild is None:
        raise RuntimeError("This command can only be used in a server")
    return guild


async def send_ephemeral(interaction: discord.Interaction, message: str) -> None:
    if interaction.response.is_done():
        await interaction.followup.send(message, ephemeral=True)
    else:
        await interaction.response.send_message(message, ephemeral=True)


# ---------- Discord adapters ----------


class ChannelReporter:
    """Posts tournament updates and artifacts to a channel."""

    def __init__(self, channel: Messageable) -> None:
        self.channel = channel

    async def post_update(self, message: str, artifacts: Sequence[Artifact] = ()) -> None:
        files = [
            discord.File(BytesIO(artifact.data), filename=artifact.filename)
            for artifact in artifacts
        ]
        await self.channel.send(content=truncate_message(message), files=files)


class ChoiceView(discord.ui.View):
    def __init__(
        self,
        user_id: int,
        options: Sequence[str],
        *,
        timeout: float,
        placeholder: str = "Choose a collection",
    ) -> None:
        super().__init__(timeout=timeout)
        self.user_id = user_id
        self.selection: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self.select = discord.ui.Select(
            placeholder=placeholder,
            options=select_options(options),
        )
        self.select.callback = self._on_select
        self.add_item(self.select)

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        return interaction.user.id == self.user_id

    async def _on_select(self, interaction: discord.Interaction) -> None:
        value = self.select.values[0]
        if not self.selection.done():
            self.selection.set_result(value)
        await interaction.response.edit_message(content=f"Selected **{value}**.", view=None)
        self.stop()


class InteractionChoicePrompt:
    def __init__(
        self,
        interaction: discord.Interaction,
        message: str,
        *,
        placeholder: str = "Choose a collection",
    ) -> None:
        self.interaction = interaction
        self.message = message
        self.placeholder = placeholder

    async def present_choice(
        self, options: Sequence[str], timeout: float, default: str | None = None
    ) -> str:
        view = ChoiceView(
            self.interaction.user.id, options, timeout=timeout, placeholder=self.placeholder
        )
        await self.interaction.followup.send(self.message, view=view, ephemeral=True)
        fallback = default if default is not None else options[0]
        return await await_choice(view.selection, timeout, fallback)


# ---------- Setup wizard views ----------


def wizard_channel_ok(interaction: discord.Interaction) -> bool:
    return interaction.channel_id is not None and interaction.channel_id not in sessions


async def continue_wizard(interaction: discord.Interaction, state: WizardState) -> None:
    """Render the UI for ``state`` in response to ``interaction``."""
    guild = ensure_guild(interaction)
    if isinstance(state, ChooseTeamA | ChooseTeamB):
        options = team_alias_options(storage.get_config(guild.id))
        if isinstance(state, ChooseTeamB):
            options = [alias for alias in options if alias != state.team_a.alias]
        if not options:
            wizards.remove(interaction.user.id)
            await interaction.response.edit_message(
                content="Team battles need two collections. Ask an admin to run /admin setup.",
                view=None,
            )
            return
        label = "Team A" if isinstance(state, ChooseTeamA) else "Team B"
        await interaction.response.edit_message(
            content=f"Pick the collection for **{label}**:",
            view=TeamSelectView(interaction.user.id, options),
        )
        return
    if isinstance(state, ChooseVenue):
        await interaction.response.send_modal(VenueModal(state))
        return


class WizardView(discord.ui.View):
    def __init__(self, user_id: int) -> None:
        super().__init__(timeout=300)
        self.user_id = user_id

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user.id == self.user_id:
            return True
        await interaction.response.send_message(
            "Only the host may use this setup session.", ephemeral=True
        )
        return False

    async def on_timeout(self) -> None:  # pragma: no cover - UI timeout
        wizards.remove(self.user_id)

    async def apply(self, interaction: discord.Interaction, event: ModeChosen | TeamChosen) -> None:
        state = wizards.get(self.user_id)
        if state is None:
            await send_ephemeral(
                interaction, "This setup session expired. Run /battle create again."
            )
            return
        try:
            state = advance(state, event)
        except InvalidValueError as exc:
            await send_ephemeral(interaction, str(exc))
            return
        wizards.put(self.user_id, state)
        await continue_wizard(interaction, state)


class ModeSelectView(WizardView):
    def __init__(self, user_id: int) -> None:
        super().__init__(user_id)
        self.select = discord.ui.Select(
            placeholder="Select battle type",
            options=[
                discord.SelectOption(label=label, value=value)
                for value, label in MODE_LABELS.items()
            ],
        )
        self.select.callback = self._on_select
        self.add_item(self.select)

    async def _on_select(self, interaction: discord.Interaction) -> None:
        await self.apply(interaction, parse_mode_option(self.select.values[0]))


class TeamSelectView(WizardView):
    def __init__(self, user_id: int, aliases: Sequence[str]) -> None:
        super().__init__(user_id)
        self.select = discord.ui.Select(
            placeholder="Select a collection",
            options=select_options(aliases),
        )
        self.select.callback = self._on_select
        self.add_item(self.select)

    async def _on_select(self, interaction: discord.Interaction) -> None:
        await self.apply(interaction, TeamChosen(alias=self.select.values[0]))


class VenueModal(discord.ui.Modal):
    def __init__(self, state: ChooseVenue) -> None:
        super().__init__(title="Battle Setup")
        self.state = state
        self.arena_input = discord.ui.TextInput(
            label="Arena", placeholder="e.g. Neon Tokyo Rooftops", max_length=100
        )
        self.capacity_input = discord.ui.TextInput(
            label=f"Max Players ({MIN_CAPACITY}-{MAX_CAPACITY})", default="8", max_length=2
        )
        self.genre_input = discord.ui.TextInput(
            label="Genre", required=False, default="Action", max_length=50
        )
        self.style_input = discord.ui.TextInput(
            label="Art Style", required=False, default="Comic Book", max_length=50
        )
        self.add_item(self.arena_input)
        self.add_item(self.capacity_input)
        self.add_item(self.genre_input)
        self.add_item(self.style_input)
        self.wallet_input: discord.ui.TextInput | None = None
        if state.mode == "WALLET":
            self.wallet_input = discord.ui.TextInput(
                label="Your Solana Wallet (blank = linked wallet)",
                required=False,
                max_length=44,
            )
            self.add_item(self.wallet_input)

    async def on_submit(  # pragma: no cover - Discord wiring
        self, interaction: discord.Interaction
    ) -> None:
        event = VenueSubmitted(
            arena=self.arena_input.value,
            capacity=self.capacity_input.value,
            genre=self.genre_input.value or "",
            style=self.style_input.value or "",
            host_wallet=self.wallet_input.value if self.wallet_input else None,
        )
        try:
            state = advance(self.state, event)
        except InvalidValueError as exc:
            await interaction.response.send_message(str(exc), ephemeral=True)
            return
        wizards.remove(interaction.user.id)
        if not isinstance(state, WizardComplete):
            raise RuntimeError(f"Venue step ended in {type(state).__name__}")
        await open_lobby_from_setup(interaction, state)


async def open_lobby_from_setup(
    interaction: discord.Interaction, state: WizardComplete
) -> None:
    guild = ensure_guild(interaction)
    channel = interaction.channel
    channel_id = interaction.channel_id
    if channel is None or channel_id is None:
        await interaction.response.send_message("Run this in a text channel.", ephemeral=True)
        return
    await interaction.response.defer(thinking=True)
    setup = state.setup
    registry = registry_for_guild(guild.id)
    try:
        lobby = registry.create(
            channel_id,
            interaction.user.id,
            setup.capacity,
            setup.mode,
            setup.settings,
            setup.team_config,
        )
    except InvalidValueError as exc:
        await interaction.followup.send(f"❌ {exc}", ephemeral=True)
        return

    config = storage.get_config(guild.id)
    if not storage.can_claim_generation(
        interaction.user.id, cooldown_ms=config.cooldown_ms, now_ms=now_ms()
    ):
        registry.release(lobby)
        await interaction.followup.send(COOLDOWN_MESSAGE, ephemeral=True)
        return

    if setup.mode != "UPLOAD":
        entry = RegistrationEntry(
            user_id=interaction.user.id,
            display_name=interaction.user.display_name,
            avatar_url=interaction.user.display_avatar.url,
            wallet_address=setup.host_wallet,
        )
        prompt = InteractionChoicePrompt(
            interaction, "Multiple collections found! Pick the one you want to fight with:"
        )
        try:
            await registry.register_with_prompt(lobby, entry, prompt, timeout=ENV.choice_timeout)
        except InvalidValueError as exc:
            registry.release(lobby)
            await interaction.followup.send(f"❌ Failed to create lobby: {exc}", ephemeral=True)
            return

    # charged only once the host is registered
    allowed, _user = storage.claim_generation(
        interaction.user.id, cooldown_ms=config.cooldown_ms, now_ms=now_ms()
    )
    if not allowed:
        registry.release(lobby)
        await interaction.followup.send(COOLDOWN_MESSAGE, ephemeral=True)
        return
    await interaction.followup.send(
        content=f"Lobby opened by {interaction.user.mention}!",
        embed=build_lobby_embed(lobby),
    )


# ---------- Admin setup ----------


class AdminConfigModal(discord.ui.Modal):
    def __init__(self, config: BotConfig) -> None:
        super().__init__(title="Battle Bot Configuration")
        self.config = config
        self.cooldown_input = discord.ui.TextInput(
            label="Cooldown (Hours)", default=str(config.cooldown_ms // (60 * 60 * 1000))
        )
        self.server_input = discord.ui.TextInput(
            label="Server Collection (slug or address)",
            required=False,
            default=config.server_collection or "",
        )
        self.partners_input = discord.ui.TextInput(
            label="Partner Collections (comma separated)",
            required=False,
            style=discord.TextStyle.paragraph,
            default=", ".join(config.partner_collections),
        )
        self.enable_input = discord.ui.TextInput(
            label="Enable Partners (true/false)",
            default="true" if config.enable_partners else "false",
        )
        self.add_item(self.cooldown_input)
        self.add_item(self.server_input)
        self.add_item(self.partners_input)
        self.add_item(self.enable_input)

    async def on_submit(  # pragma: no cover - Discord wiring
        self, interaction: discord.Interaction
    ) -> None:
        try:
            hours = parse_cooldown_hours(self.cooldown_input.value)
        except InvalidValueError as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        config = await apply_admin_config(
            self.config,
            cooldown_hours=hours,
            server_raw=self.server_input.value or "",
            partners_raw=self.partners_input.value or "",
            enable_raw=self.enable_input.value or "",
            updated_by=interaction.user.id,
        )
        await interaction.followup.send(
            "✅ Configuration saved.\n"
            + summarize_resolution(config.collection_map, config.configured_aliases()),
            ephemeral=True,
        )


async def apply_admin_config(
    current: BotConfig,
    *,
    cooldown_hours: int,
    server_raw: str,
    partners_raw: str,
    enable_raw: str,
    updated_by: int,
) -> BotConfig:
    """Resolve the submitted aliases, persist the config and drop stale verifiers."""
    server = parse_collection_aliases(server_raw)
    config = BotConfig(
        guild_id=current.guild_id,
        cooldown_ms=cooldown_hours * 60 * 60 * 1000,
        server_collection=server[0] if server else None,
        partner_collections=parse_collection_aliases(partners_raw),
        enable_partners=parse_bool_flag(enable_raw),
        updated_by=updated_by,
        updated_at=utc_now_iso(),
    )
    verifier = build_verifier(config)
    resolved: dict[str, list[str]] = {}
    for alias in team_alias_options(config):
        ids = await verifier.resolve_alias(alias)
        if ids:
            resolved[alias] = sorted(ids)
    config.collection_map = resolved
    storage.save_config(config)
    verifiers.remove(config.guild_id)
    log.info("Guild %s configuration updated by %s", config.guild_id, updated_by)
    return config


# ---------- Battle commands ----------


@battle_group.command(name="create", description="Start a new battle lobby")
async def battle_create_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
) -> None:
    try:
        ensure_guild(interaction)
        storage.ensure_table()
    except RuntimeError as exc:
        await interaction.response.send_message(str(exc), ephemeral=True)
        return
    if not wizard_channel_ok(interaction):
        await interaction.response.send_message(
            "A lobby is already active in this channel!", ephemeral=True
        )
        return
    wizards.put(interaction.user.id, ChooseMode())
    await interaction.response.send_message(
        "**Battle Setup Wizard**\nSelect the battle type:",
        view=ModeSelectView(interaction.user.id),
        ephemeral=True,
    )


@app_commands.describe(
    image="Your fighter image (upload battles)",
    wallet="Solana wallet address (wallet battles; blank = linked wallet)",
    team="Team to join (A, B or the team name)",
)
@battle_group.command(name="join", description="Join the battle lobby in this channel")
async def battle_join_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
    image: discord.Attachment | None = None,
    wallet: str | None = None,
    team: str | None = None,
) -> None:
    try:
        guild = ensure_guild(interaction)
    except RuntimeError as exc:
        await interaction.response.send_message(str(exc), ephemeral=True)
        return
    registry = registry_for_guild(guild.id)
    try:
        lobby = registry.open_lobby(interaction.channel_id or 0)
    except InvalidValueError as exc:
        await interaction.response.send_message(str(exc), ephemeral=True)
        return

    upload_url = None
    if image is not None:
        if not (image.content_type or "").startswith("image/"):
            await interaction.response.send_message("Please upload an image file.", ephemeral=True)
            return
        upload_url = image.url
    team_name = None
    if lobby.team_config is not None:
        team_name = resolve_team_name(lobby.team_config, team)
        if team is not None and team_name is None:
            await interaction.response.send_message(
                f"Unknown team: {team}. Choose A or B.", ephemeral=True
            )
            return

    await interaction.response.defer(ephemeral=True, thinking=True)
    entry = RegistrationEntry(
        user_id=interaction.user.id,
        display_name=interaction.user.display_name,
        avatar_url=interaction.user.display_avatar.url,
        upload_url=upload_url,
        wallet_address=wallet,
        team=team_name,
    )
    prompt = InteractionChoicePrompt(
        interaction, "Multiple collections found! Pick the one you want to fight with:"
    )
    try:
        contestant = await registry.register_with_prompt(
            lobby, entry, prompt, timeout=ENV.choice_timeout
        )
    except (InvalidValueError, AmbiguousConstraintError) as exc:
        await interaction.followup.send(f"❌ {exc}", ephemeral=True)
        return
    if contestant.wallet_address:
        storage.update_user(contestant.user_id, wallet_address=contestant.wallet_address)
    await interaction.followup.send("✅ You're in!", ephemeral=True)
    if isinstance(interaction.channel, Messageable):
        team_note = f" for **{contestant.team}**" if contestant.team else ""
        await interaction.channel.send(
            content=f"**{contestant.display_name}** joined the battle{team_note}!",
            embed=build_lobby_embed(lobby),
        )


@battle_group.command(name="start", description="Start the battle (host only)")
async def battle_start_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
) -> None:
    try:
        guild = ensure_guild(interaction)
        provider = ensure_provider()
    except RuntimeError as exc:
        await interaction.response.send_message(str(exc), ephemeral=True)
        return
    channel = interaction.channel
    if not isinstance(channel, Messageable):
        await interaction.response.send_message("Run this in a text channel.", ephemeral=True)
        return
    registry = registry_for_guild(guild.id)
    try:
        lobby = registry.open_lobby(interaction.channel_id or 0)
        if lobby.host_id != interaction.user.id:
            raise InvalidValueError("Only the Host can start the battle.")
        controller = TournamentController.from_lobby(
            lobby,
            provider,
            reporter=ChannelReporter(channel),
            rng=rng,
            storage=storage,
            match_interval=ENV.match_interval,
            timeout=ENV.generation_timeout,
        )
        await registry.hand_off(lobby, controller)
    except InvalidValueError as exc:
        await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
        return
    await interaction.response.send_message(
        f"🔥 Starting the battle with {len(lobby.contestants)} fighters!"
    )
    spawn(run_tournament(lobby.channel_id, controller))


async def run_tournament(channel_id: int, controller: TournamentController) -> None:
    try:
        await controller.start()
    except InvalidValueError as exc:
        log.info("Tournament in channel %s did not run: %s", channel_id, exc)
    finally:
        sessions.remove(channel_id, controller)


@battle_group.command(name="reset", description="Reset the lobby (host only)")
async def battle_reset_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
) -> None:
    try:
        guild = ensure_guild(interaction)
        registry_for_guild(guild.id).discard(interaction.channel_id or 0, interaction.user.id)
    except (RuntimeError, InvalidValueError) as exc:
        await interaction.response.send_message(str(exc), ephemeral=True)
        return
    await interaction.response.send_message("🗑️ Lobby has been reset.")


@battle_group.command(name="credits", description="Check your hosting tokens and cooldown")
async def battle_credits_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
) -> None:
    try:
        guild = ensure_guild(interaction)
        storage.ensure_table()
    except RuntimeError as exc:
        await interaction.response.send_message(str(exc), ephemeral=True)
        return
    user = storage.get_user(interaction.user.id)
    config = storage.get_config(guild.id)
    message = format_credits(user.tokens, user.last_generation, config.cooldown_ms, now_ms())
    record = f"\n**Record:** {user.wins}W / {user.losses}L ({user.matches_played} fights)"
    await interaction.response.send_message(message + record, ephemeral=True)


@battle_group.command(name="help", description="Show available commands")
async def battle_help_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
) -> None:
    await interaction.response.send_message(build_help_text(), ephemeral=True)


# ---------- Comic commands ----------


@app_commands.describe(
    image="Your hero NFT or image",
    genre="Story genre",
    costar="Optional villain or co-star image",
)
@app_commands.choices(genre=[app_commands.Choice(name=name, value=name) for name in GENRES])
@comic_group.command(name="create", description="Generate a story comic starring your hero")
async def comic_create_command(
    interaction: discord.Interaction,
    image: discord.Attachment,
    genre: str,
    costar: discord.Attachment | None = None,
) -> None:
    try:
        guild = ensure_guild(interaction)
        provider = ensure_provider()
        storage.ensure_table()
    except RuntimeError as exc:
        await interaction.response.send_message(str(exc), ephemeral=True)
        return
    channel = interaction.channel
    if not isinstance(channel, Messageable):
        await interaction.response.send_message("Run this in a text channel.", ephemeral=True)
        return
    for attachment in (image, costar):
        if attachment is not None and not (attachment.content_type or "").startswith("image/"):
            await interaction.response.send_message("Please upload an image file.", ephemeral=True)
            return
    if interaction.user.id in comics:
        await interaction.response.send_message(
            "You already have a comic in progress.", ephemeral=True
        )
        return
    try:
        generator = StoryGenerator(
            provider,
            image.url,
            genre,
            costar_url=costar.url if costar is not None else None,
            reporter=ChannelReporter(channel),
            chooser=InteractionChoicePrompt(
                interaction, "🤔 What happens next?", placeholder="Choose the path"
            ),
            rng=rng,
            timeout=ENV.generation_timeout,
        )
    except InvalidValueError as exc:
        await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
        return

    config = storage.get_config(guild.id)
    allowed, _user = storage.claim_generation(
        interaction.user.id, cooldown_ms=config.cooldown_ms, now_ms=now_ms()
    )
    if not allowed:
        await interaction.response.send_message(COOLDOWN_MESSAGE, ephemeral=True)
        return
    comics.put(interaction.user.id, generator)
    await interaction.response.send_message(
        "⚡ **Initializing Infinite Heroes Generator...**\n"
        f"**Genre:** {genre}\n"
        f"**Co-Star:** {'Uploaded' if costar is not None else 'None'}\n\n"
        "*Generating the cover...*"
    )
    spawn(run_comic(interaction.user.id, generator))


async def run_comic(user_id: int, generator: StoryGenerator) -> None:
    try:
        await generator.run()
    finally:
        comics.remove(user_id, generator)


@comic_group.command(name="status", description="Check your tokens and cooldown")
async def comic_status_command(
    interaction: discord.Interaction,
) -> None:
    try:
        guild = ensure_guild(interaction)
        storage.ensure_table()
    except RuntimeError as exc:
        await interaction.response.send_message(str(exc), ephemeral=True)
        return
    user = storage.get_user(interaction.user.id)
    config = storage.get_config(guild.id)
    await interaction.response.send_message(
        format_credits(user.tokens, user.last_generation, config.cooldown_ms, now_ms()),
        ephemeral=True,
    )


# ---------- Wallet commands ----------


@wallet_group.command(name="check", description="Check your linked wallet")
async def wallet_check_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
) -> None:
    user = storage.get_user(interaction.user.id)
    if user.wallet_address:
        message = f"💳 Your linked wallet: `{user.wallet_address}`"
    else:
        message = "You have no wallet linked. Use /wallet set."
    await interaction.response.send_message(message, ephemeral=True)


@app_commands.describe(address="Solana wallet address")
@wallet_group.command(name="set", description="Add or change your wallet address")
async def wallet_set_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction, address: str
) -> None:
    try:
        wallet = validate_wallet_address(address)
    except InvalidValueError as exc:
        await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
        return
    storage.update_user(interaction.user.id, wallet_address=wallet)
    await interaction.response.send_message(f"✅ Wallet linked: `{wallet}`", ephemeral=True)


# ---------- Admin commands ----------


@admin_group.command(name="setup", description="Configure cooldown and collections")
async def admin_setup_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
) -> None:
    try:
        guild = ensure_guild(interaction)
        storage.ensure_table()
    except RuntimeError as exc:
        await interaction.response.send_message(str(exc), ephemeral=True)
        return
    await interaction.response.send_modal(AdminConfigModal(storage.get_config(guild.id)))


@app_commands.describe(target="User whose cooldown to reset")
@admin_user_group.command(name="reset", description="Reset a user's cooldown")
async def admin_user_reset_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction, target: discord.User
) -> None:
    storage.reset_cooldown(target.id)
    await interaction.response.send_message(f"✅ Cooldown reset for {target.mention}.")


@app_commands.describe(target="User to credit", amount="Number of tokens")
@admin_user_group.command(name="grant", description="Grant tokens to a user")
async def admin_user_grant_command(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction,
    target: discord.User,
    amount: app_commands.Range[int, 1, 1000],
) -> None:
    user = storage.grant_tokens(target.id, amount)
    await interaction.response.send_message(
        f"✅ Granted **{amount} tokens** to {target.mention}. New balance: {user.tokens}."
    )


@admin_group.error
async def admin_error_handler(  # pragma: no cover - Discord slash command wiring
    interaction: discord.Interaction, error: app_commands.AppCommandError
) -> None:
    if isinstance(error, app_errors.MissingPermissions | app_errors.CheckFailure):
        await send_ephemeral(interaction, "You need administrator permissions to run this.")
        return
    log.exception("Unhandled admin command error: %s", error)
    await send_ephemeral(interaction, "An unexpected error occurred.")


tree.add_command(battle_group, guild=GUILD_OBJECT)
tree.add_command(wallet_group, guild=GUILD_OBJECT)
tree.add_command(comic_group, guild=GUILD_OBJECT)
tree.add_command(admin_group, guild=GUILD_OBJECT)


# ---------- Lifecycle ----------
@bot.event
async def on_ready() -> None:  # pragma: no cover - Discord lifecycle hook
    if GUILD_OBJECT is not None:
        await tree.sync(guild=GUILD_OBJECT)
        log.info("Commands synced to guild %s", ENV.guild_id)
    else:
        await tree.sync()
        log.info("Commands synced globally")
    log.info("Battle bot ready as %s (%s)", bot.user, bot.user.id if bot.user else "?")


async def main() -> None:  # pragma: no cover - CLI entry point
    env = BattleBotEnvironment.load()
    try:
        async with bot:
            await bot.start(env.discord_token)  # type: ignore[arg-type]
    finally:
        http_session.close()


def run() -> None:  # pragma: no cover - console script
    asyncio.run(main())


if __name__ == "__main__":
    run()
