"""Shared FastAPI dependencies."""

from fastapi import Header


async def get_actor_id(x_actor_id: str | None = Header(None)) -> str:
    """Actor id supplied by the identity layer in front of this service."""
    return x_actor_id or "system"
