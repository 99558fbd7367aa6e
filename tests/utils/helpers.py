"""Test helper functions."""

import asyncio

# Short debounce window so coalescing tests run quickly
TEST_DEBOUNCE_SECONDS = 0.05

# Long enough for a debounce window to elapse and its refetch to finish
SETTLE_SECONDS = TEST_DEBOUNCE_SECONDS * 3


async def drain(rounds: int = 10) -> None:
    """Let scheduled tasks run up to their next real suspension."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def settle() -> None:
    await asyncio.sleep(SETTLE_SECONDS)
