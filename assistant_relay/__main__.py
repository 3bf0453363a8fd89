"""Run the relay: Discord bot plus the HTTP health / admin server."""

import asyncio
import sys

import uvicorn

from assistant_relay.adapters.discord_adapter import DiscordRelayBot
from assistant_relay.app import create_app
from assistant_relay.bootstrap import build_relay
from assistant_relay.config import CONFIG
from assistant_relay.logger import log


async def main():
    if not CONFIG["discord_bot_token"]:
        print("DISCORD_BOT_TOKEN not set!", file=sys.stderr)
        print("Create a bot at https://discord.com/developers/applications "
              "and export its token as DISCORD_BOT_TOKEN", file=sys.stderr)
        sys.exit(1)

    relay = build_relay(CONFIG)
    await relay.startup()

    bot = DiscordRelayBot(relay, allowed_user_id=CONFIG["discord_user_id"])
    server = uvicorn.Server(uvicorn.Config(
        create_app(relay), host="0.0.0.0", port=CONFIG["health_port"], log_level="warning",
    ))

    log("bot_starting", "Assistant relay starting", metadata={
        "user": CONFIG["discord_user_id"] or "ANY",
        "health_port": CONFIG["health_port"],
        "forum_mode": relay.registry.is_forum_mode(),
    })
    async with bot:
        await asyncio.gather(bot.start(CONFIG["discord_bot_token"]), server.serve())


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
