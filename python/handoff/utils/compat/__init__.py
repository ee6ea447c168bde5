from . import asyncio

__all__ = ["asyncio"]
