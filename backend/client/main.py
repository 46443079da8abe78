"""
Headless command-line client.

Connects one LiveSession, optionally sends a text turn and/or streams a WAV
file as the microphone, prints received text, writes reply audio to a WAV,
and exits on turn completion, terminal failure or timeout.

Usage:
    live-client --text "Hello there" --out reply.wav
    live-client --wav question.wav --out reply.wav --timeout 60
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from dotenv import load_dotenv

from audio.file_producer import WavFileProducer
from audio.sinks import MemoryAudioSink, SoundFileSink
from config import AppConfig, ConfigError
from connection.state import ConnectionState
from observability import logger
from observability.logger import log_event
from session.dispatcher import TurnMarker, TurnSignal
from session.live_session import LiveSession
from session.loop_bridge import call_on_loop
from session.producers import ProducerKind


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="live-client",
        description="Stream text/audio to a live model session and capture the reply.",
    )
    parser.add_argument("--text", help="text turn to send once setup completes")
    parser.add_argument("--wav", help="16 kHz WAV file to stream as the microphone")
    parser.add_argument("--out", help="write reply audio (24 kHz PCM16) to this WAV file")
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="seconds to wait for setup and again for the reply (default: 30)",
    )
    return parser


async def run(args: argparse.Namespace, config: AppConfig) -> int:
    """Returns a process exit code."""
    loop = asyncio.get_running_loop()
    sink = SoundFileSink(args.out) if args.out else MemoryAudioSink()
    session = LiveSession(config=config, audio_sink=sink, loop=loop)

    ready = asyncio.Event()
    done = asyncio.Event()
    outcome: dict[str, str] = {}

    def _on_state(state: ConnectionState) -> None:
        if state is ConnectionState.SETUP_COMPLETE:
            call_on_loop(loop, ready.set)
        elif state is ConnectionState.FAILED:
            outcome.setdefault("result", "failed")
            call_on_loop(loop, ready.set)
            call_on_loop(loop, done.set)

    def _on_text(text: str) -> None:
        if text:
            print(text, flush=True)

    def _on_turn(signal: TurnSignal | None) -> None:
        if signal is not None and signal.marker is TurnMarker.TURN_COMPLETE:
            outcome.setdefault("result", "turn_complete")
            call_on_loop(loop, done.set)

    session.connection_state.subscribe(_on_state)
    session.last_text.subscribe(_on_text)
    session.turn_events.subscribe(_on_turn)

    if args.wav:
        session.register_producer(
            ProducerKind.MICROPHONE,
            lambda: WavFileProducer(args.wav),
        )

    session.connect()
    try:
        try:
            await asyncio.wait_for(ready.wait(), timeout=args.timeout)
        except asyncio.TimeoutError:
            outcome.setdefault("result", "setup_timeout")
            return 1

        if outcome.get("result") == "failed":
            return 1

        if args.text and not session.send_text(args.text):
            outcome.setdefault("result", "text_rejected")
            return 1
        if args.wav:
            session.set_producer_active(ProducerKind.MICROPHONE, True)

        try:
            await asyncio.wait_for(done.wait(), timeout=args.timeout)
        except asyncio.TimeoutError:
            outcome.setdefault("result", "reply_timeout")
            return 1

        return 0 if outcome.get("result") == "turn_complete" else 1

    finally:
        await session.aclose()
        if isinstance(sink, SoundFileSink):
            sink.close()
        log_event({
            "event_type": "CLIENT_DONE",
            "session_id": session.session_id,
            "result": outcome.get("result"),
            "status": session.status.value.summary(),
        })


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = AppConfig.load_from_env()
    except ConfigError as e:
        print(f"live-client: {e}", file=sys.stderr)
        return 2

    logger.configure(level=config.log_level, json_output=config.enable_json_logs)

    if not args.text and not args.wav:
        print("live-client: nothing to send (use --text and/or --wav)", file=sys.stderr)
        return 2

    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
