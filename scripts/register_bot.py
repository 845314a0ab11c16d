"""Register a bot with its gateway credentials through the admin API."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for bot registration."""

    parser = argparse.ArgumentParser(description="Register a bot with the payment service.")
    parser.add_argument("--api-url", default="http://localhost:3000")
    parser.add_argument("--admin-id", required=True, help="Value of ADMIN_TELEGRAM_ID")
    parser.add_argument("--name", required=True)
    parser.add_argument("--token", required=True, help="Telegram bot token")
    parser.add_argument("--gateway-api-key", required=True)
    parser.add_argument("--gateway-webhook-secret", required=True)
    parser.add_argument("--currency", action="append", dest="currencies", help="Repeat for each allowed currency")
    args = parser.parse_args()

    body = {
        "name": args.name,
        "token": args.token,
        "useGateway": {"apiKey": args.gateway_api_key, "webhookSecret": args.gateway_webhook_secret},
    }
    if args.currencies:
        body["allowedCurrencies"] = args.currencies

    resp = httpx.post(
        f"{args.api_url}/api/bots/register",
        headers={"x-admin-telegram-id": args.admin_id},
        json=body,
        timeout=10.0,
    )
    print(json.dumps(resp.json(), indent=2))
    resp.raise_for_status()


if __name__ == "__main__":
    main()
