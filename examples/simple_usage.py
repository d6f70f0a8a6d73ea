#!/usr/bin/env python3
"""
Simple example of using the GiftZap SDK.
"""
import asyncio
import os

from giftzap_sdk import GiftZapClient, GiftZapConfig, TransactionFailed


async def main():
    """
    Demonstrate basic usage of the GiftZapClient.

    This example shows how to:
    1. Load configuration from GIFTZAP_* environment variables
    2. Send a gift (approving the token spend when needed)
    3. Share the redeem link and list your gifts
    """
    recipient = os.environ.get("GIFT_RECIPIENT")
    if not recipient:
        print("ERROR: GIFT_RECIPIENT environment variable is required")
        return

    config = GiftZapConfig.from_env()
    if not config.private_key:
        print("ERROR: GIFTZAP_PRIVATE_KEY environment variable is required")
        return
    if not config.token_address:
        print("ERROR: GIFTZAP_TOKEN_ADDRESS environment variable is required")
        return

    async with GiftZapClient.from_config(config, observer=lambda tx: print(f"  -> {tx.state.value}")) as client:
        print(f"Token balance: {await client.token_balance()}")
        try:
            tx = await client.send_gift(
                recipient,
                amount=10**18,
                gift_type="birthday",
                message="Happy birthday!",
            )
        except TransactionFailed as e:
            print(f"Gift not sent ({e.error_class.value}): {e}")
            return

        print(f"Gift sent in {tx.action_tx}")
        if tx.is_provisional:
            print(f"Gift id (unconfirmed): {tx.predicted_record_id}")
        else:
            print(f"Gift id: {tx.record_id}")
        if config.app_base_url:
            print(f"Redeem link: {client.redeem_url(tx)}")

        for gift in await client.fetch_user_gifts():
            direction = "sent" if gift.sender.lower() == client.ledger.account_address.lower() else "received"
            status = "redeemed" if gift.redeemed else "pending"
            print(f"#{gift.id}: {direction} {gift.amount} ({status})")


if __name__ == "__main__":
    asyncio.run(main())
