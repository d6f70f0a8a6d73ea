#!/usr/bin/env python3
"""
List registered charities, favorites and the gifter leaderboard.
"""
import asyncio
import logging
import os

from giftzap_sdk import GiftZapClient, GiftZapConfig, StubLedgerClient, sort_charities, sort_favorites


async def main():
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "WARNING"))

    config = GiftZapConfig.from_env()
    # Reads need no signing key; pass the stub ledger to try this offline
    ledger = StubLedgerClient() if os.environ.get("GIFTZAP_OFFLINE") else None

    async with GiftZapClient.from_config(config, ledger=ledger) as client:
        print("Charities:")
        for charity in sort_charities(await client.load_charities()):
            print(f"  {charity.id:>3}  {charity.name}  [{charity.source}]")

        owner = os.environ.get("FAVORITES_OWNER")
        if owner:
            print(f"Favorites of {owner}:")
            for favorite in sort_favorites(await client.load_favorites(owner)):
                print(f"  {favorite.name}: {favorite.gift_count} gifts, {favorite.total_amount} total")

        print("Top gifters:")
        for gifter in await client.load_top_gifters():
            print(f"  {gifter.address}: {gifter.count}")


if __name__ == "__main__":
    asyncio.run(main())
