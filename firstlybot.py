import asyncio
import logging
from datetime import timedelta
import discord
from discord.ext import commands

from firstly_catalog import (
    BOOLEAN,
    CHANNEL,
    INTEGER,
    USER,
    command as catalog_command,
    help_lines,
    option_kwargs,
    permission_flags,
    prefix_help_lines,
)
from firstly_config import ConfigError, load_config
from firstly_features import (
    IN_PROGRESS,
    TIE,
    TTT_IDLE_TIMEOUT_SECONDS,
    FeatureError,
    add_quote,
    add_todo,
    author_limit_check,
    close_giveaway,
    complete_todo,
    create_poll,
    ensure_human_opponent,
    expire_game,
    find_emoji,
    get_snipe,
    give_karma,
    humanize,
    join_giveaway,
    karma_leaderboard,
    match_emojis,
    parse_duration,
    place_mark,
    play_rps,
    quote_pages,
    random_quote,
    record_deletion,
    record_vote,
    regionalize,
    render_todos,
    seconds_since,
    start_game,
    start_giveaway,
    winner_id,
)
from firstly_health import HealthProbe, start_health_server
from firstly_logging import configure_logging, guard_event_loop
from firstly_routing import (
    GiveawayEntry,
    InteractionRouter,
    PollVote,
    RpsThrow,
    SuggestionForm,
    TicTacToeMove,
    classify_interaction,
    modal_values,
    send_error_reply,
)
from firstly_store import EphemeralStore, Giveaway, Poll, TicTacToeGame, make_session_id

logger = logging.getLogger("firstlybot")


def interaction_log_context(interaction: discord.Interaction) -> dict[str, object]:
    kind = classify_interaction(interaction)
    return {
        "kind": kind.value if kind else None,
        "guild_id": getattr(interaction.guild, "id", None),
        "channel_id": getattr(interaction.channel, "id", None),
        "user_id": getattr(interaction.user, "id", None),
        "custom_id": (interaction.data or {}).get("custom_id"),
    }


# =========================
# CONFIG
# =========================
try:
    CONFIG = load_config()
except ConfigError as e:
    configure_logging()
    logger.critical("config_invalid error=%s", e)
    raise SystemExit(1) from e
configure_logging(CONFIG.log_level, CONFIG.log_dir)
PREFIX = "!"
CLEAN_MAX_AGE = timedelta(days=14)
COLOR_BLURPLE = 0x5865F2
COLOR_TEAL = 0x00AE86
COLOR_DARK = 0x2F3136
COLOR_GOLD = 0xFEE75C
COLOR_SUGGEST = 0xFFD166
COLOR_GREY = 0x99AAB5
RPS_LABELS = {"rock": "🪨 Rock", "paper": "📄 Paper", "scissors": "✂️ Scissors"}
# =========================
# DISCORD SETUP
# =========================
intents = discord.Intents.default()
intents.members = True  # member join dates for userinfo
intents.message_content = True  # needed for prefix commands and snipe
bot = commands.Bot(
    command_prefix=PREFIX,
    intents=intents,
    help_command=None,
    application_id=CONFIG.client_id,
    debug_guilds=[CONFIG.guild_id] if CONFIG.guild_id else None,
    auto_sync_commands=False,
)
store = EphemeralStore()
router = InteractionRouter()
health_probe = HealthProbe.for_client(bot)
health_runner = None
commands_registered = False
registration_failed = False

_OPTION_TYPES = {
    USER: discord.User,
    INTEGER: int,
    BOOLEAN: bool,
    CHANNEL: discord.abc.GuildChannel,
}


def catalog_option(command_name: str, option_name: str, subcommand: str | None = None, autocomplete=None) -> discord.Option:
    """Build the py-cord Option for a catalog entry."""
    spec = catalog_command(command_name)
    if subcommand:
        spec = spec.subcommand(subcommand)
    opt = spec.option(option_name)
    input_type = discord.TextChannel if opt.text_channels_only else _OPTION_TYPES.get(opt.type, str)
    return discord.Option(input_type, opt.description, **option_kwargs(opt, autocomplete))


def catalog_permissions(command_name: str):
    flags = permission_flags(command_name)
    if not flags:
        return lambda func: func
    return discord.default_permissions(**flags)


def describe(command_name: str, subcommand: str | None = None) -> str:
    spec = catalog_command(command_name)
    if subcommand:
        spec = spec.subcommand(subcommand)
    return spec.description


# =========================
# RENDERING
# =========================
def avatar_url(user: discord.abc.User) -> str:
    return user.display_avatar.replace(size=1024, format="png").url


def avatar_embed(user: discord.abc.User) -> discord.Embed:
    embed = discord.Embed(title=f"{user}'s Avatar")
    embed.set_image(url=avatar_url(user))
    return embed


def userinfo_embed(user: discord.abc.User, member: discord.Member | None) -> discord.Embed:
    joined = discord.utils.format_dt(member.joined_at, "R") if member and member.joined_at else "N/A"
    embed = discord.Embed(title="User Info", color=COLOR_TEAL)
    embed.set_thumbnail(url=user.display_avatar.url)
    embed.add_field(name="User", value=f"{user} ({user.id})", inline=False)
    embed.add_field(name="Created", value=discord.utils.format_dt(user.created_at, "R"), inline=False)
    embed.add_field(name="Joined", value=joined, inline=False)
    return embed


def server_embed(guild: discord.Guild) -> discord.Embed:
    embed = discord.Embed(title="Server Info", color=COLOR_DARK)
    if guild.icon:
        embed.set_thumbnail(url=guild.icon.url)
    embed.add_field(name="Name", value=guild.name, inline=True)
    embed.add_field(name="ID", value=str(guild.id), inline=True)
    embed.add_field(name="Members", value=str(guild.member_count), inline=True)
    return embed


def snipe_embed(channel_id: int) -> discord.Embed:
    record = get_snipe(store, channel_id)
    embed = discord.Embed(title="🕵️ Last Deleted Message", color=COLOR_GREY)
    embed.add_field(name="Author", value=record.author_tag, inline=False)
    embed.add_field(name="Content", value=record.content or "(no content)", inline=False)
    embed.set_footer(text=f"Deleted {seconds_since(record.deleted_at)}s ago")
    return embed


def poll_embed(poll: Poll) -> discord.Embed:
    embed = discord.Embed(
        title=f"📊 {poll.question}",
        description="Multiple votes allowed" if poll.multiple else "Single vote",
        color=COLOR_BLURPLE,
    )
    embed.set_footer(text=f"Total votes: {poll.total_votes}")
    return embed


def poll_view(poll_id: str, poll: Poll) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    for i, option in enumerate(poll.options):
        view.add_item(discord.ui.Button(
            label=f"{option.label} ({option.count})",
            style=discord.ButtonStyle.primary,
            custom_id=PollVote(poll_id, i).encode(),
        ))
    return view


def ttt_embed(game: TicTacToeGame, outcome: str = IN_PROGRESS, timed_out: bool = False) -> discord.Embed:
    x_id, o_id = game.players
    lines = [f"<@{x_id}> (X) vs <@{o_id}> (O)"]
    if timed_out:
        lines.append("Game timed out.")
    elif outcome == TIE:
        lines.append("Result: Tie!")
    elif outcome != IN_PROGRESS:
        lines.append(f"Winner: <@{winner_id(game, outcome)}>")
    else:
        lines.append(f"Turn: <@{game.current_player}>")
    return discord.Embed(title="Tic-Tac-Toe", description="\n".join(lines))


def ttt_view(game_id: str, board: list[str | None], disabled: bool = False) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    for i, mark in enumerate(board):
        if mark == "X":
            style = discord.ButtonStyle.danger
        elif mark == "O":
            style = discord.ButtonStyle.primary
        else:
            style = discord.ButtonStyle.secondary
        view.add_item(discord.ui.Button(
            label=mark or "\u200b",
            style=style,
            custom_id=TicTacToeMove(game_id, i).encode(),
            disabled=disabled or bool(mark),
            row=i // 3,
        ))
    return view


def giveaway_embed(giveaway: Giveaway) -> discord.Embed:
    return discord.Embed(
        title="🎉 Giveaway",
        description=(
            f"Prize: {giveaway.prize}\n"
            f"Ends: {discord.utils.format_dt(giveaway.ends_at, 'R')}\n"
            "Click Enter to join!"
        ),
        color=COLOR_GOLD,
    )


def suggestion_modal(channel_id: int) -> discord.ui.Modal:
    modal = discord.ui.Modal(title="Submit a Suggestion", custom_id=SuggestionForm(channel_id).encode())
    modal.add_item(discord.ui.InputText(
        label="Title", custom_id="suggest_title", style=discord.InputTextStyle.short, max_length=100, required=True,
    ))
    modal.add_item(discord.ui.InputText(
        label="Details", custom_id="suggest_details", style=discord.InputTextStyle.long, max_length=1000, required=True,
    ))
    return modal


def code_block(text: str) -> str:
    return f"```\n{text}\n```"


# =========================
# SESSION HELPERS
# =========================
def require_guild(ctx: discord.ApplicationContext) -> int:
    if ctx.guild_id is None:
        raise FeatureError("This command only works in a server.")
    return ctx.guild_id


async def resolve_channel(channel_id: int):
    channel = bot.get_channel(channel_id)
    if channel is None:
        channel = await bot.fetch_channel(channel_id)
    return channel


async def edit_session_message(channel_id: int | None, message_id: int | None, **fields):
    if channel_id is None or message_id is None:
        return
    try:
        channel = await resolve_channel(channel_id)
        await channel.get_partial_message(message_id).edit(**fields)
    except discord.HTTPException:
        logger.warning("session_message_edit_failed channel_id=%s message_id=%s", channel_id, message_id)


def bind_message(record, message: discord.Message):
    record.message_id = message.id
    record.channel_id = message.channel.id


async def deliver_reminder(channel_id: int, user_id: int, text: str):
    try:
        channel = await resolve_channel(channel_id)
        await channel.send(f"⏰ <@{user_id}> Reminder: {text}")
    except discord.HTTPException:
        logger.warning("reminder_delivery_failed channel_id=%s user_id=%s", channel_id, user_id)


async def finish_giveaway(giveaway_id: str):
    giveaway, winner = close_giveaway(store, giveaway_id)
    if giveaway is None:
        return
    description = (
        f"Winner: <@{winner}> — Prize: {giveaway.prize}" if winner else f"No entries. Prize: {giveaway.prize}"
    )
    result = discord.Embed(title="🎉 Giveaway Ended", description=description, color=COLOR_GOLD)
    await edit_session_message(giveaway.channel_id, giveaway.message_id, embed=result, view=None)


async def time_out_game(game_id: str):
    game = expire_game(store, game_id)
    if game is None:
        return
    await edit_session_message(
        game.channel_id,
        game.message_id,
        embed=ttt_embed(game, timed_out=True),
        view=ttt_view(game_id, game.board, disabled=True),
    )


async def fetch_member(guild: discord.Guild | None, user_id: int) -> discord.Member | None:
    if guild is None:
        return None
    member = guild.get_member(user_id)
    if member is not None:
        return member
    try:
        return await guild.fetch_member(user_id)
    except discord.HTTPException:
        return None


async def display_user(user_id: int) -> str:
    user = bot.get_user(user_id)
    if user is None:
        try:
            user = await bot.fetch_user(user_id)
        except discord.HTTPException:
            return str(user_id)
    return str(user)


# =========================
# ROUTER / ERRORS
# =========================
@bot.listen("on_interaction")
async def route_interaction(interaction: discord.Interaction):
    context = interaction_log_context(interaction)
    if context["kind"] is None:
        return
    logger.debug("interaction_received context=%r", context)
    await router.dispatch(interaction)


@bot.event
async def on_application_command_error(ctx: discord.ApplicationContext, error: discord.DiscordException):
    original = getattr(error, "original", error)
    if isinstance(original, FeatureError):
        await send_error_reply(ctx.interaction, original.message)
        return
    if isinstance(error, discord.CheckFailure):
        await send_error_reply(ctx.interaction, "You can't use this command here.")
        return
    logger.error(
        "command_failed name=%s context=%r",
        getattr(ctx.command, "qualified_name", None),
        interaction_log_context(ctx.interaction),
        exc_info=original,
    )
    await send_error_reply(ctx.interaction)


@bot.event
async def on_command_error(ctx: commands.Context, error: commands.CommandError):
    original = getattr(error, "original", error)
    if isinstance(error, commands.CommandNotFound):
        return
    if isinstance(original, FeatureError):
        content = original.message
    elif isinstance(error, commands.MissingPermissions):
        missing = ", ".join(p.replace("_", " ").title() for p in error.missing_permissions)
        content = f"You need the {missing} permission."
    elif isinstance(error, commands.MemberNotFound):
        content = "User not found in this server."
    elif isinstance(error, (commands.MissingRequiredArgument, commands.BadArgument)):
        content = f"Usage: {PREFIX}{ctx.command.qualified_name} {ctx.command.signature}".strip()
    elif isinstance(error, commands.NoPrivateMessage):
        return
    else:
        logger.error(
            "prefix_command_failed name=%s user_id=%s channel_id=%s",
            getattr(ctx.command, "qualified_name", None),
            ctx.author.id,
            ctx.channel.id,
            exc_info=original,
        )
        content = "An error occurred."
    try:
        await ctx.reply(content)
    except discord.HTTPException:
        logger.warning("prefix_error_reply_failed channel_id=%s", ctx.channel.id)


# =========================
# BUTTONS / MODALS
# =========================
@router.handles(PollVote)
async def on_poll_vote(interaction: discord.Interaction, payload: PollVote):
    poll = record_vote(store, payload.poll_id, interaction.user.id, payload.option)
    await interaction.response.edit_message(embed=poll_embed(poll), view=poll_view(payload.poll_id, poll))


@router.handles(TicTacToeMove)
async def on_ttt_move(interaction: discord.Interaction, payload: TicTacToeMove):
    game, outcome = place_mark(store, payload.game_id, interaction.user.id, payload.cell)
    finished = outcome != IN_PROGRESS
    await interaction.response.edit_message(
        embed=ttt_embed(game, outcome),
        view=ttt_view(payload.game_id, game.board, disabled=finished),
    )


@router.handles(RpsThrow)
async def on_rps_throw(interaction: discord.Interaction, payload: RpsThrow):
    result = play_rps(payload.challenger_id, payload.opponent_id, interaction.user.id, payload.choice)
    embed = discord.Embed(
        title="🪨📄✂️ Rock, Paper, Scissors",
        description=(
            f"<@{result.player_id}> chose {result.player_choice}; "
            f"<@{result.other_id}> chose {result.other_choice}. {result.verdict}"
        ),
        color=COLOR_TEAL,
    )
    await interaction.response.send_message(embed=embed)


@router.handles(GiveawayEntry)
async def on_giveaway_entry(interaction: discord.Interaction, payload: GiveawayEntry):
    join_giveaway(store, payload.giveaway_id, interaction.user.id)
    await interaction.response.send_message("You are entered! 🎟️", ephemeral=True)


@router.handles(SuggestionForm)
async def on_suggestion_submit(interaction: discord.Interaction, payload: SuggestionForm):
    channel = interaction.guild.get_channel(payload.channel_id) if interaction.guild else None
    if not isinstance(channel, discord.TextChannel):
        raise FeatureError("Target channel not found.")
    values = modal_values(interaction)
    embed = discord.Embed(title="💡 New Suggestion", color=COLOR_SUGGEST, timestamp=discord.utils.utcnow())
    embed.add_field(name="Title", value=values.get("suggest_title") or "-", inline=False)
    embed.add_field(name="Details", value=values.get("suggest_details") or "-", inline=False)
    embed.set_footer(text=f"From {interaction.user}")
    await channel.send(embed=embed)
    await interaction.response.send_message("Suggestion submitted!", ephemeral=True)


# =========================
# AUTOCOMPLETE
# =========================
async def emoji_autocomplete(ctx: discord.AutocompleteContext):
    guild = ctx.interaction.guild
    emojis = guild.emojis if guild else []
    return [discord.OptionChoice(name=f"{e} {e.name}", value=e.name) for e in match_emojis(emojis, ctx.value)]


# =========================
# COMMANDS (slash)
# =========================
@bot.slash_command(name="ping", description=describe("ping"))
async def ping(ctx: discord.ApplicationContext):
    await ctx.response.send_message("Pinging...")
    sent = await ctx.interaction.original_response()
    latency = int((sent.created_at - ctx.interaction.created_at).total_seconds() * 1000)
    await ctx.interaction.edit_original_response(content=f"Pong! 🏓 {latency}ms")


@bot.slash_command(name="help", description=describe("help"))
async def help_command(ctx: discord.ApplicationContext):
    embed = discord.Embed(title="Command Help", color=COLOR_BLURPLE, description="\n".join(help_lines()))
    await ctx.response.send_message(embed=embed, ephemeral=True)


@bot.slash_command(name="avatar", description=describe("avatar"))
async def avatar(ctx: discord.ApplicationContext, user: catalog_option("avatar", "user")):
    await ctx.response.send_message(embed=avatar_embed(user or ctx.user))


@bot.slash_command(name="userinfo", description=describe("userinfo"))
@discord.guild_only()
async def userinfo(ctx: discord.ApplicationContext, user: catalog_option("userinfo", "user")):
    target = user or ctx.user
    member = await fetch_member(ctx.guild, target.id)
    await ctx.response.send_message(embed=userinfo_embed(target, member))


@bot.slash_command(name="server", description=describe("server"))
@discord.guild_only()
async def server(ctx: discord.ApplicationContext):
    await ctx.response.send_message(embed=server_embed(ctx.guild))


@bot.slash_command(name="emojify", description=describe("emojify"))
async def emojify(ctx: discord.ApplicationContext, text: catalog_option("emojify", "text")):
    await ctx.response.send_message(regionalize(text))


@bot.slash_command(name="emoji", description=describe("emoji"))
@discord.guild_only()
async def emoji(ctx: discord.ApplicationContext, name: catalog_option("emoji", "name", autocomplete=emoji_autocomplete)):
    found = find_emoji(ctx.guild.emojis, name)
    if found is None:
        raise FeatureError("Emoji not found.")
    await ctx.response.send_message(f"{found}  :{found.name}:  ({found.id})")


@bot.slash_command(name="poll", description=describe("poll"))
@discord.guild_only()
async def poll(
    ctx: discord.ApplicationContext,
    question: catalog_option("poll", "question"),
    options: catalog_option("poll", "options"),
    multiple: catalog_option("poll", "multiple"),
):
    poll_id, created = create_poll(store, question, options, bool(multiple))
    await ctx.response.send_message(embed=poll_embed(created), view=poll_view(poll_id, created))
    message = await ctx.interaction.original_response()
    store.polls.update(poll_id, lambda p: bind_message(p, message))


@bot.slash_command(name="remind", description=describe("remind"))
async def remind(
    ctx: discord.ApplicationContext,
    duration: catalog_option("remind", "in"),
    message: catalog_option("remind", "message"),
):
    ms = parse_duration(duration)
    if not ms:
        raise FeatureError("Invalid duration. Try 10m, 1h30m, 2d.")
    await ctx.response.send_message(f"Reminder set for {humanize(ms)}.", ephemeral=True)
    reminder_id = make_session_id("rem")
    channel_id, user_id = ctx.channel_id, ctx.user.id
    store.timers.schedule(reminder_id, ms / 1000, lambda: deliver_reminder(channel_id, user_id, message))
    logger.info("reminder_scheduled reminder_id=%s user_id=%s delay_ms=%s", reminder_id, user_id, ms)


@bot.slash_command(name="clean", description=describe("clean"))
@catalog_permissions("clean")
@discord.guild_only()
async def clean(
    ctx: discord.ApplicationContext,
    amount: catalog_option("clean", "amount"),
    user: catalog_option("clean", "user"),
):
    perms = ctx.channel.permissions_for(ctx.author)
    if not all(getattr(perms, flag) for flag in permission_flags("clean")):
        raise FeatureError("Missing Manage Messages permission.")
    await ctx.defer(ephemeral=True)
    cutoff = discord.utils.utcnow() - CLEAN_MAX_AGE
    if user:
        deleted = await ctx.channel.purge(
            limit=100, check=author_limit_check(user.id, amount), after=cutoff, oldest_first=False,
        )
        await ctx.followup.send(f"Deleted {len(deleted)} messages from {user}.", ephemeral=True)
    else:
        await ctx.channel.purge(limit=amount, after=cutoff, oldest_first=False)
        await ctx.followup.send(f"Deleted up to {amount} messages.", ephemeral=True)
    logger.info("clean_done channel_id=%s amount=%s user_id=%s", ctx.channel_id, amount, getattr(user, "id", None))


@bot.slash_command(name="ttt", description=describe("ttt"))
@discord.guild_only()
async def ttt(ctx: discord.ApplicationContext, opponent: catalog_option("ttt", "opponent")):
    game_id, game = start_game(store, ctx.user.id, opponent.id, opponent.bot)
    await ctx.response.send_message(embed=ttt_embed(game), view=ttt_view(game_id, game.board))
    message = await ctx.interaction.original_response()
    if store.games.update(game_id, lambda g: bind_message(g, message)) is not None:
        store.timers.schedule(game_id, TTT_IDLE_TIMEOUT_SECONDS, lambda: time_out_game(game_id))


@bot.slash_command(name="rps", description=describe("rps"))
@discord.guild_only()
async def rps(ctx: discord.ApplicationContext, opponent: catalog_option("rps", "opponent")):
    ensure_human_opponent(ctx.user.id, opponent.id, opponent.bot)
    view = discord.ui.View(timeout=None)
    for choice, label in RPS_LABELS.items():
        view.add_item(discord.ui.Button(
            label=label,
            style=discord.ButtonStyle.secondary,
            custom_id=RpsThrow(ctx.user.id, opponent.id, choice).encode(),
        ))
    await ctx.response.send_message(
        f"{opponent.mention} choose your move against {ctx.user.mention}!", view=view
    )


@bot.slash_command(name="giveaway", description=describe("giveaway"))
@discord.guild_only()
async def giveaway(
    ctx: discord.ApplicationContext,
    duration: catalog_option("giveaway", "duration"),
    prize: catalog_option("giveaway", "prize"),
):
    ms = parse_duration(duration)
    if not ms:
        raise FeatureError("Invalid duration. Try 10m, 1h.")
    giveaway_id, created = start_giveaway(store, prize, ms)
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(
        label="Enter 🎉", style=discord.ButtonStyle.success, custom_id=GiveawayEntry(giveaway_id).encode(),
    ))
    await ctx.response.send_message(embed=giveaway_embed(created), view=view)
    message = await ctx.interaction.original_response()
    store.giveaways.update(giveaway_id, lambda g: bind_message(g, message))
    store.timers.schedule(giveaway_id, ms / 1000, lambda: finish_giveaway(giveaway_id))


quote_group = bot.create_group("quote", describe("quote"))


@quote_group.command(name="add", description=describe("quote", "add"))
async def quote_add(ctx: discord.ApplicationContext, text: catalog_option("quote", "text", "add")):
    number = add_quote(store, require_guild(ctx), text)
    await ctx.response.send_message(f"Added quote #{number}.", ephemeral=True)


@quote_group.command(name="random", description=describe("quote", "random"))
async def quote_random(ctx: discord.ApplicationContext):
    await ctx.response.send_message(f"“{random_quote(store, require_guild(ctx))}”")


@quote_group.command(name="list", description=describe("quote", "list"))
async def quote_list(ctx: discord.ApplicationContext):
    guild_id = require_guild(ctx)
    pages = quote_pages(store, guild_id)
    await ctx.defer(ephemeral=True)
    for page in pages:
        await ctx.channel.send(code_block(page.rstrip("\n")))
    await ctx.followup.send(f"Listed {len(store.quotes_for(guild_id))} quotes.", ephemeral=True)


todo_group = bot.create_group("todo", describe("todo"))


@todo_group.command(name="add", description=describe("todo", "add"))
async def todo_add(ctx: discord.ApplicationContext, text: catalog_option("todo", "text", "add")):
    number = add_todo(store, ctx.user.id, text)
    await ctx.response.send_message(f"Added TODO #{number}.", ephemeral=True)


@todo_group.command(name="list", description=describe("todo", "list"))
async def todo_list(ctx: discord.ApplicationContext):
    await ctx.response.send_message(code_block(render_todos(store, ctx.user.id)), ephemeral=True)


@todo_group.command(name="done", description=describe("todo", "done"))
async def todo_done(ctx: discord.ApplicationContext, index: catalog_option("todo", "index", "done")):
    complete_todo(store, ctx.user.id, index)
    await ctx.response.send_message(f"Marked #{index} done.", ephemeral=True)


karma_group = bot.create_group("karma", describe("karma"))


@karma_group.command(name="give", description=describe("karma", "give"))
async def karma_give(
    ctx: discord.ApplicationContext,
    user: catalog_option("karma", "user", "give"),
    amount: catalog_option("karma", "amount", "give"),
):
    points = amount or 1
    total = give_karma(store, require_guild(ctx), user.id, points)
    await ctx.response.send_message(f"Gave {points} karma to {user}. Total: {total}.")


@karma_group.command(name="leaderboard", description=describe("karma", "leaderboard"))
async def karma_board(ctx: discord.ApplicationContext):
    ranked = karma_leaderboard(store, require_guild(ctx))
    await ctx.defer()
    lines = []
    for position, (user_id, score) in enumerate(ranked, start=1):
        lines.append(f"{position}. {await display_user(user_id)} — {score}")
    await ctx.followup.send(code_block("\n".join(lines)))


@bot.slash_command(name="suggest", description=describe("suggest"))
@discord.guild_only()
async def suggest(ctx: discord.ApplicationContext, channel: catalog_option("suggest", "channel")):
    await ctx.send_modal(suggestion_modal(channel.id))


@bot.slash_command(name="snipe", description=describe("snipe"))
@discord.guild_only()
async def snipe(ctx: discord.ApplicationContext):
    await ctx.response.send_message(embed=snipe_embed(ctx.channel_id))


# =========================
# COMMANDS (context menus)
# =========================
@bot.user_command(name="Big Avatar")
async def big_avatar(ctx: discord.ApplicationContext, user: discord.User):
    await ctx.response.send_message(embed=avatar_embed(user))


@bot.message_command(name="Quote to thread")
@discord.guild_only()
async def quote_to_thread(ctx: discord.ApplicationContext, message: discord.Message):
    author_name = message.author.name if message.author else "Unknown"
    author_id = message.author.id if message.author else "unknown"
    thread = await ctx.channel.create_thread(
        name=f"Quote by {author_name}",
        auto_archive_duration=60,
        type=discord.ChannelType.public_thread,
    )
    await thread.send(f"> {message.content or '(no content)'}\n— <@{author_id}>")
    await ctx.response.send_message(f"Quoted to thread: {thread.mention}", ephemeral=True)


# =========================
# COMMANDS (prefix)
# =========================
@bot.command(name="ping")
async def ping_prefix(ctx: commands.Context):
    sent = await ctx.reply("Pinging...")
    latency = int((sent.created_at - ctx.message.created_at).total_seconds() * 1000)
    await ctx.reply(f"Pong! 🏓 {latency}ms")


@bot.command(name="help")
async def help_prefix(ctx: commands.Context):
    embed = discord.Embed(
        title=f"Command Help ({PREFIX} prefix)",
        color=COLOR_BLURPLE,
        description="\n".join(prefix_help_lines()),
    )
    await ctx.reply(embed=embed)


@bot.command(name="avatar")
async def avatar_prefix(ctx: commands.Context, user: discord.User = None):
    await ctx.reply(embed=avatar_embed(user or ctx.author))


@bot.command(name="userinfo")
async def userinfo_prefix(ctx: commands.Context, user: discord.User = None):
    target = user or ctx.author
    member = await fetch_member(ctx.guild, target.id)
    await ctx.reply(embed=userinfo_embed(target, member))


@bot.command(name="server")
async def server_prefix(ctx: commands.Context):
    await ctx.reply(embed=server_embed(ctx.guild))


@bot.command(name="emojify")
async def emojify_prefix(ctx: commands.Context, *, text: str = ""):
    if not text.strip():
        raise FeatureError("Provide text to emojify.")
    await ctx.reply(regionalize(text))


@bot.command(name="snipe")
async def snipe_prefix(ctx: commands.Context):
    await ctx.reply(embed=snipe_embed(ctx.channel.id))


@bot.command(name="kick")
@commands.has_permissions(kick_members=True)
async def kick_prefix(ctx: commands.Context, member: discord.Member, *, reason: str = "No reason provided"):
    try:
        await member.kick(reason=reason)
    except discord.HTTPException as e:
        await ctx.reply(f"❌ Could not kick {member}: {e.text or e}")
        return
    logger.info("member_kicked guild_id=%s user_id=%s by=%s", ctx.guild.id, member.id, ctx.author.id)
    await ctx.reply(f"✅ Kicked {member} — Reason: {reason}")


@bot.command(name="ban")
@commands.has_permissions(ban_members=True)
async def ban_prefix(ctx: commands.Context, user: discord.User, *, reason: str = "No reason provided"):
    try:
        await ctx.guild.ban(user, reason=reason)
    except discord.HTTPException as e:
        await ctx.reply(f"❌ Could not ban {user}: {e.text or e}")
        return
    logger.info("member_banned guild_id=%s user_id=%s by=%s", ctx.guild.id, user.id, ctx.author.id)
    await ctx.reply(f"✅ Banned {user} — Reason: {reason}")


# =========================
# MESSAGES / DELETIONS
# =========================
@bot.event
async def on_message(message: discord.Message):
    if message.author.bot or message.guild is None:
        return
    if not message.content.startswith(PREFIX):
        return
    await bot.process_commands(message)


@bot.event
async def on_raw_message_delete(payload: discord.RawMessageDeleteEvent):
    if payload.guild_id is None:
        return
    cached = payload.cached_message
    author_tag = str(cached.author) if cached and cached.author else None
    record_deletion(store, payload.channel_id, cached.content if cached else "", author_tag)
    logger.debug("snipe_recorded channel_id=%s cached=%s", payload.channel_id, cached is not None)


# =========================
# STARTUP
# =========================
async def register_commands():
    global commands_registered, registration_failed
    try:
        await bot.sync_commands()
    except Exception:
        registration_failed = True
        logger.exception("command_registration_failed scope=%s", CONFIG.scope)
        await bot.close()
        return
    commands_registered = True
    logger.info(
        "commands_registered count=%s scope=%s",
        len(bot.pending_application_commands),
        CONFIG.scope,
    )


@bot.event
async def on_connect():
    global health_runner
    guard_event_loop(asyncio.get_running_loop())
    if health_runner is None:
        try:
            health_runner = await start_health_server(health_probe, CONFIG.port)
        except OSError:
            logger.exception("http_server_start_failed port=%s", CONFIG.port)
    if not commands_registered:
        await register_commands()


@bot.event
async def on_ready():
    logger.info("bot_ready user=%s user_id=%s guilds=%s", bot.user, bot.user.id, len(bot.guilds))


def main():
    bot.run(CONFIG.token)
    if registration_failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
