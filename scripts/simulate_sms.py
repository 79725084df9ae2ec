"""
Simulate an SMS conversation against a running LawnOps instance.

Sends each message through the Twilio inbound webhook, one MessageSid per
message, so the full intake flow (quote, slots, booking) can be exercised
locally. Requires ALLOW_UNSIGNED_WEBHOOKS=true outside production.

Usage:
    python scripts/simulate_sms.py
    python scripts/simulate_sms.py --to "+15125550100" "Hi, I need weekly mowing at 123 Oak St" "medium" "yes" "1"
    python scripts/simulate_sms.py --redeliver
"""
import argparse
import asyncio
import logging
import uuid

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"

DEFAULT_CONVERSATION = [
    "Hi, I need weekly mowing at 123 Oak St",
    "about a quarter acre",
    "yes",
    "2",
]


async def send_inbound(
    client: httpx.AsyncClient,
    from_phone: str,
    to_phone: str,
    body: str,
    message_sid: str,
) -> httpx.Response:
    """Post one inbound SMS in Twilio webhook format."""
    payload = {
        "From": from_phone,
        "To": to_phone,
        "Body": body,
        "MessageSid": message_sid,
        "NumMedia": "0",
    }
    resp = await client.post(
        f"{BASE_URL}/api/v1/webhook/twilio/sms",
        data=payload,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    logger.info("> %s", body)
    logger.info("< %s %s", resp.status_code, resp.text)
    return resp


async def main():
    parser = argparse.ArgumentParser(description="Simulate an inbound SMS conversation")
    parser.add_argument("messages", nargs="*", default=DEFAULT_CONVERSATION)
    parser.add_argument("--phone", default="+15125559876")
    parser.add_argument("--to", default="+15125550100", help="The business's SMS number")
    parser.add_argument(
        "--redeliver", action="store_true",
        help="Send every message twice with the same MessageSid (idempotency check)",
    )
    args = parser.parse_args()

    async with httpx.AsyncClient(timeout=30) as client:
        for text in args.messages:
            sid = f"SM{uuid.uuid4().hex}"
            await send_inbound(client, args.phone, args.to, text, sid)
            if args.redeliver:
                await send_inbound(client, args.phone, args.to, text, sid)


if __name__ == "__main__":
    asyncio.run(main())
