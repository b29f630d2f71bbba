"""Handlers package for packet logic.
Each module exposes async handler functions with signature:
    async def handle_xxx(server, session, packet)
"""

__all__ = ["player", "broadcast"]
