from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from firstly_store import EphemeralStore


@pytest.fixture
def store():
    return EphemeralStore()


def make_interaction(
    custom_id: str | None = None,
    *,
    kind: discord.InteractionType = discord.InteractionType.component,
    data: dict | None = None,
    user_id: int = 100,
    responded: bool = False,
):
    """Minimal stand-in for discord.Interaction with awaitable reply methods."""
    payload = dict(data or {})
    if custom_id is not None:
        payload["custom_id"] = custom_id
    if kind == discord.InteractionType.component:
        payload.setdefault("component_type", 2)
    response = MagicMock()
    response.is_done = MagicMock(return_value=responded)
    response.send_message = AsyncMock()
    response.edit_message = AsyncMock()
    return SimpleNamespace(
        id=4242,
        type=kind,
        data=payload,
        user=SimpleNamespace(id=user_id),
        guild=None,
        channel=None,
        response=response,
        followup=SimpleNamespace(send=AsyncMock()),
    )


@pytest.fixture
def interaction_factory():
    return make_interaction
