import enum
import logging
from dataclasses import dataclass, fields
from typing import Awaitable, Callable, ClassVar

import discord

from firstly_features import RPS_CHOICES, FeatureError

logger = logging.getLogger("firstlybot.routing")

ERROR_REPLY = "An error occurred."
BUTTON_COMPONENT_TYPE = 2


class EventKind(enum.Enum):
    SLASH_COMMAND = "slash_command"
    USER_COMMAND = "user_command"
    MESSAGE_COMMAND = "message_command"
    BUTTON = "button"
    MODAL_SUBMIT = "modal_submit"
    AUTOCOMPLETE = "autocomplete"
    TEXT_MESSAGE = "text_message"
    MESSAGE_DELETE = "message_delete"


_COMMAND_KINDS = {
    1: EventKind.SLASH_COMMAND,
    2: EventKind.USER_COMMAND,
    3: EventKind.MESSAGE_COMMAND,
}


def classify_interaction(interaction: discord.Interaction) -> EventKind | None:
    """Map an interaction onto exactly one EventKind, or None for kinds the bot ignores."""
    data = interaction.data or {}
    if interaction.type == discord.InteractionType.application_command:
        return _COMMAND_KINDS.get(data.get("type", 1))
    if interaction.type == discord.InteractionType.auto_complete:
        return EventKind.AUTOCOMPLETE
    if interaction.type == discord.InteractionType.modal_submit:
        return EventKind.MODAL_SUBMIT
    if interaction.type == discord.InteractionType.component:
        if data.get("component_type") == BUTTON_COMPONENT_TYPE:
            return EventKind.BUTTON
    return None


# =========================
# CUSTOM ID PAYLOADS
# =========================
class MalformedPayloadError(ValueError):
    pass


@dataclass(frozen=True)
class Payload:
    tag: ClassVar[str] = ""
    kind: ClassVar[EventKind] = EventKind.BUTTON

    def encode(self) -> str:
        return ":".join([self.tag, *(str(getattr(self, f.name)) for f in fields(self))])

    def validate(self):
        pass


@dataclass(frozen=True)
class PollVote(Payload):
    tag: ClassVar[str] = "poll"
    poll_id: str
    option: int

    def validate(self):
        if self.option < 0:
            raise MalformedPayloadError(f"negative poll option {self.option}")


@dataclass(frozen=True)
class TicTacToeMove(Payload):
    tag: ClassVar[str] = "ttt"
    game_id: str
    cell: int

    def validate(self):
        if not 0 <= self.cell < 9:
            raise MalformedPayloadError(f"cell {self.cell} is off the board")


@dataclass(frozen=True)
class RpsThrow(Payload):
    tag: ClassVar[str] = "rps"
    challenger_id: int
    opponent_id: int
    choice: str

    def validate(self):
        if self.choice not in RPS_CHOICES:
            raise MalformedPayloadError(f"unknown rps choice {self.choice!r}")


@dataclass(frozen=True)
class GiveawayEntry(Payload):
    tag: ClassVar[str] = "giveaway"
    giveaway_id: str


@dataclass(frozen=True)
class SuggestionForm(Payload):
    tag: ClassVar[str] = "suggest"
    kind: ClassVar[EventKind] = EventKind.MODAL_SUBMIT
    channel_id: int


PAYLOAD_TYPES: dict[str, type[Payload]] = {
    cls.tag: cls for cls in (PollVote, TicTacToeMove, RpsThrow, GiveawayEntry, SuggestionForm)
}


def parse_custom_id(custom_id: str | None) -> Payload | None:
    """Decode ``<feature>:<field>...`` into its payload type.

    Unknown feature tags return None. Known tags with the wrong field count or
    field types raise MalformedPayloadError.
    """
    if not custom_id:
        return None
    tag, _, rest = custom_id.partition(":")
    payload_type = PAYLOAD_TYPES.get(tag)
    if payload_type is None:
        return None
    payload_fields = fields(payload_type)
    parts = rest.split(":") if rest else []
    if len(parts) != len(payload_fields):
        raise MalformedPayloadError(f"{tag} expects {len(payload_fields)} fields, got {len(parts)}")
    values = {}
    for f, raw in zip(payload_fields, parts):
        if not raw:
            raise MalformedPayloadError(f"{tag}.{f.name} is empty")
        if f.type in (int, "int"):
            try:
                values[f.name] = int(raw)
            except ValueError as e:
                raise MalformedPayloadError(f"{tag}.{f.name} is not an integer: {raw!r}") from e
        else:
            values[f.name] = raw
    payload = payload_type(**values)
    payload.validate()
    return payload


def modal_values(interaction: discord.Interaction) -> dict[str, str]:
    values: dict[str, str] = {}
    for row in (interaction.data or {}).get("components", []):
        for component in row.get("components", []):
            if "custom_id" in component:
                values[component["custom_id"]] = component.get("value") or ""
    return values


# =========================
# ROUTER
# =========================
Handler = Callable[[discord.Interaction, Payload], Awaitable[None]]


async def send_error_reply(interaction: discord.Interaction, content: str = ERROR_REPLY):
    try:
        if interaction.response.is_done():
            await interaction.followup.send(content, ephemeral=True)
        else:
            await interaction.response.send_message(content, ephemeral=True)
    except discord.HTTPException:
        logger.warning("error_reply_failed interaction_id=%s", getattr(interaction, "id", None))


class InteractionRouter:
    """Routes button clicks and modal submissions to handlers by payload type."""

    def __init__(self):
        self._handlers: dict[type[Payload], Handler] = {}

    def handles(self, payload_type: type[Payload]) -> Callable[[Handler], Handler]:
        def decorator(func: Handler) -> Handler:
            if payload_type in self._handlers:
                raise ValueError(f"handler for {payload_type.__name__} already registered")
            self._handlers[payload_type] = func
            return func
        return decorator

    def handler_for(self, payload_type: type[Payload]) -> Handler | None:
        return self._handlers.get(payload_type)

    async def dispatch(self, interaction: discord.Interaction) -> bool:
        """Run the matching handler. Returns False when nothing handled the interaction."""
        kind = classify_interaction(interaction)
        if kind not in (EventKind.BUTTON, EventKind.MODAL_SUBMIT):
            return False
        custom_id = (interaction.data or {}).get("custom_id")
        try:
            payload = parse_custom_id(custom_id)
        except MalformedPayloadError as e:
            logger.warning("payload_rejected kind=%s custom_id=%r error=%s", kind.value, custom_id, e)
            return False
        if payload is None or payload.kind is not kind:
            return False
        handler = self._handlers.get(type(payload))
        if handler is None:
            return False
        try:
            await handler(interaction, payload)
        except FeatureError as e:
            await send_error_reply(interaction, e.message)
        except Exception:
            logger.exception(
                "interaction_handler_failed kind=%s payload=%r user_id=%s",
                kind.value,
                payload,
                getattr(interaction.user, "id", None),
            )
            await send_error_reply(interaction)
        return True
