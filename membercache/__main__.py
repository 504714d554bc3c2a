#!/usr/bin/env python3
"""
Main entry point for the bot when run as a module.
Usage: python -m membercache
"""

import asyncio

if __name__ == "__main__":
    from .bot import run_bot

    asyncio.run(run_bot())
