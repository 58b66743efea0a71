from dataclasses import dataclass

STRING = "string"
INTEGER = "integer"
BOOLEAN = "boolean"
USER = "user"
CHANNEL = "channel"

SLASH = "slash"
USER_CONTEXT = "user"
MESSAGE_CONTEXT = "message"


@dataclass(frozen=True)
class OptionSpec:
    name: str
    description: str
    type: str = STRING
    required: bool = True
    min_value: int | None = None
    max_value: int | None = None
    autocomplete: bool = False
    text_channels_only: bool = False


@dataclass(frozen=True)
class CommandSpec:
    name: str
    description: str = ""
    kind: str = SLASH
    options: tuple[OptionSpec, ...] = ()
    subcommands: tuple["CommandSpec", ...] = ()
    permission: str | None = None
    category: str | None = None

    def option(self, name: str) -> OptionSpec:
        for opt in self.options:
            if opt.name == name:
                return opt
        raise KeyError(f"/{self.name} has no option {name!r}")

    def subcommand(self, name: str) -> "CommandSpec":
        for sub in self.subcommands:
            if sub.name == name:
                return sub
        raise KeyError(f"/{self.name} has no subcommand {name!r}")


_TARGET_USER = OptionSpec("user", "Target user", USER, required=False)
_OPPONENT = OptionSpec("opponent", "Opponent user", USER)

CATALOG: tuple[CommandSpec, ...] = (
    CommandSpec("ping", "Check latency", category="General"),
    CommandSpec("help", "Show command list", category="General"),
    CommandSpec("avatar", "Show user avatar", options=(_TARGET_USER,), category="General"),
    CommandSpec("userinfo", "Show user info", options=(_TARGET_USER,), category="General"),
    CommandSpec("server", "Show server info", category="General"),
    CommandSpec(
        "emojify", "Convert text to regional-indicator emoji",
        options=(OptionSpec("text", "Text to emojify"),),
        category="General",
    ),
    CommandSpec(
        "emoji", "Find an emoji by name (with autocomplete)",
        options=(OptionSpec("name", "Emoji name", autocomplete=True),),
        category="General",
    ),
    CommandSpec(
        "remind", "Set a reminder",
        options=(
            OptionSpec("in", "Duration (e.g., 10m, 1h30m, 2d)"),
            OptionSpec("message", "Reminder text"),
        ),
        category="Utility",
    ),
    CommandSpec(
        "clean", "Bulk delete messages",
        options=(
            OptionSpec("amount", "Number of messages (1-100)", INTEGER, min_value=1, max_value=100),
            OptionSpec("user", "Only this user", USER, required=False),
        ),
        permission="manage_messages",
        category="Utility",
    ),
    CommandSpec("snipe", "Show the last deleted message in this channel", category="Utility"),
    CommandSpec(
        "suggest", "Open a suggestion modal and send it to a channel",
        options=(OptionSpec("channel", "Target text channel", CHANNEL, text_channels_only=True),),
        category="Utility",
    ),
    CommandSpec(
        "poll", "Start a button poll",
        options=(
            OptionSpec("question", "Poll question"),
            OptionSpec("options", "Choices separated by ; (max 5)"),
            OptionSpec("multiple", "Allow multiple votes", BOOLEAN, required=False),
        ),
        category="Fun",
    ),
    CommandSpec("ttt", "Play Tic-Tac-Toe", options=(_OPPONENT,), category="Fun"),
    CommandSpec("rps", "Play Rock Paper Scissors", options=(_OPPONENT,), category="Fun"),
    CommandSpec(
        "giveaway", "Start a giveaway",
        options=(
            OptionSpec("duration", "e.g., 1h, 30m"),
            OptionSpec("prize", "Prize description"),
        ),
        category="Fun",
    ),
    CommandSpec(
        "quote", "Manage server quotes",
        subcommands=(
            CommandSpec("add", "Add a quote", options=(OptionSpec("text", "Quote text"),)),
            CommandSpec("random", "Show a random quote"),
            CommandSpec("list", "List quotes"),
        ),
        category="Social",
    ),
    CommandSpec(
        "todo", "Personal TODOs",
        subcommands=(
            CommandSpec("add", "Add item", options=(OptionSpec("text", "Task text"),)),
            CommandSpec("list", "List items"),
            CommandSpec(
                "done", "Mark done by number",
                options=(OptionSpec("index", "Number from /todo list", INTEGER, min_value=1),),
            ),
        ),
        category="Social",
    ),
    CommandSpec(
        "karma", "Give and view karma",
        subcommands=(
            CommandSpec(
                "give", "Give karma",
                options=(
                    OptionSpec("user", "Recipient", USER),
                    OptionSpec("amount", "Points (default 1)", INTEGER, required=False, min_value=1, max_value=100),
                ),
            ),
            CommandSpec("leaderboard", "Show top users"),
        ),
        category="Social",
    ),
    CommandSpec("Big Avatar", kind=USER_CONTEXT, category="Context"),
    CommandSpec("Quote to thread", kind=MESSAGE_CONTEXT, category="Context"),
)

PREFIX_HELP = (
    "!ping — latency check",
    "!avatar [@user] — show avatar",
    "!userinfo [@user] — user details",
    "!server — server info",
    "!emojify <text> — convert to regional emoji",
    "!snipe — last deleted message",
    "!kick @user [reason] — kick a user (requires permission)",
    "!ban @user [reason] — ban a user (requires permission)",
)


def command(name: str) -> CommandSpec:
    for spec in CATALOG:
        if spec.name == name:
            return spec
    raise KeyError(f"unknown command {name!r}")


def slash_names() -> list[str]:
    return [spec.name for spec in CATALOG if spec.kind == SLASH]


def help_lines() -> list[str]:
    grouped: dict[str, list[str]] = {}
    for spec in CATALOG:
        if spec.kind != SLASH:
            continue
        grouped.setdefault(spec.category or "Other", []).append(f"/{spec.name}")
    lines = [f"{category}: {', '.join(names)}" for category, names in grouped.items()]
    user_cmds = [spec.name for spec in CATALOG if spec.kind == USER_CONTEXT]
    message_cmds = [spec.name for spec in CATALOG if spec.kind == MESSAGE_CONTEXT]
    lines.append(
        "Context: "
        + ", ".join([f'user "{n}"' for n in user_cmds] + [f'message "{n}"' for n in message_cmds])
    )
    return lines


def prefix_help_lines() -> list[str]:
    return [*PREFIX_HELP, "Also available as slash commands: " + ", ".join(f"/{n}" for n in slash_names())]


def permission_flags(name: str) -> dict[str, bool]:
    """Default member permissions for a command, as keyword flags."""
    spec = command(name)
    return {spec.permission: True} if spec.permission else {}


def option_kwargs(opt: OptionSpec, autocomplete=None) -> dict[str, object]:
    """Keyword arguments for ``discord.Option`` built from a catalog option.

    An autocomplete callback must be supplied exactly when the catalog marks
    the option as autocompleted.
    """
    if opt.autocomplete != (autocomplete is not None):
        raise ValueError(f"option {opt.name!r} autocomplete mismatch with catalog")
    kwargs: dict[str, object] = {"name": opt.name, "required": opt.required}
    if not opt.required:
        kwargs["default"] = None
    if opt.min_value is not None:
        kwargs["min_value"] = opt.min_value
    if opt.max_value is not None:
        kwargs["max_value"] = opt.max_value
    if autocomplete is not None:
        kwargs["autocomplete"] = autocomplete
    return kwargs
