"""``pairchat-client``: join the queue from the command line and report progress.

Opens a data-channel-only peer connection (no camera or microphone) so two
headless clients, or one headless client and a browser, can pair up.
"""
from __future__ import annotations

import argparse
import asyncio

from ..constants import ICE_SERVERS, LOG_FILE, LOG_LEVEL, SERVER_URL
from ..logging_config import get_logger, setup_logging
from .negotiation import ROOM_STATES, NegotiationState
from .signaling import SignalingClient
from .transport import AiortcTransport

logger = get_logger("pairchat.client")


def _report(old: NegotiationState, new: NegotiationState) -> None:
    logger.info(f"State {old.value} -> {new.value}")


async def _print_chats(client: SignalingClient) -> None:
    while True:
        chat = await client.receive_chat()
        print(f"[{chat.timestamp:%H:%M:%S}] {chat.sender}: {chat.message}")


async def run(url: str, auto_next: bool, greeting: str) -> None:
    in_room = asyncio.Event()

    def on_state_change(old: NegotiationState, new: NegotiationState) -> None:
        _report(old, new)
        if new in ROOM_STATES:
            in_room.set()

    client = SignalingClient(
        url=url,
        transport_factory=AiortcTransport.factory(ice_servers=ICE_SERVERS),
        auto_requeue=auto_next,
        on_state_change=on_state_change,
    )
    runner = asyncio.create_task(client.run())
    printer = asyncio.create_task(_print_chats(client))
    try:
        participant_id = await client.wait_ready()
        logger.info(f"Connected as {participant_id}")
        await client.start()
        if greeting:
            # Chat is relayed by the server, so it works as soon as we are matched.
            matched = asyncio.create_task(in_room.wait())
            done, _ = await asyncio.wait({matched, runner}, return_when=asyncio.FIRST_COMPLETED)
            if matched in done:
                await client.send_chat(greeting)
            else:
                matched.cancel()
        await runner
    finally:
        await client.stop()
        printer.cancel()
        runner.cancel()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Headless pairchat participant.")
    parser.add_argument("--url", default=SERVER_URL, help="signaling websocket URL")
    parser.add_argument("--auto-next", action="store_true", help="rejoin the queue when the partner leaves")
    parser.add_argument("--say", default="", help="chat message to send once matched")
    parser.add_argument("--log-level", default=LOG_LEVEL)
    args = parser.parse_args(argv)

    setup_logging(log_level=args.log_level, log_file=LOG_FILE)
    try:
        asyncio.run(run(args.url, args.auto_next, args.say))
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == "__main__":
    main()
