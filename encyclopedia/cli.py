"""
Text-mode chat from the terminal.

Usage:
    python -m encyclopedia [--provider gemini|groq|local] [--api-key KEY] [--model ID]
    python -m encyclopedia --ask "What is the capital of France?" [--file notes.md]

Commands inside the chat:
    /attach <path>      attach a file to the next message
    /provider <id> [key] switch provider
    /model <id>         switch local model
    /quit
"""

import argparse
import asyncio
import logging
import shlex
import sys
from typing import List, Optional

from encyclopedia.catalog import get_catalog
from encyclopedia.config import config
from encyclopedia.errors import ConfigurationError
from encyclopedia.logger import SessionLogger
from encyclopedia.orchestrator import ConversationOrchestrator
from encyclopedia.settings_store import JsonSettingsStore
from encyclopedia.types import InputMode, ProgressEvent, StructuredResponse


def render_response(response: StructuredResponse) -> str:
    lines = [response.text, ""]
    if response.sources:
        lines.append(f"Sources: {', '.join(response.sources)}")
    lines.append(f"Confidence: {response.confidence_score}%")
    if response.analysis is not None:
        lines.append(f"Intent: {response.analysis.intent} | Context: {response.analysis.context}")
    for rec in response.recommendations:
        lines.append(f"  - {rec.label} ({rec.score})")
    return "\n".join(lines).rstrip()


def _print_progress(event: ProgressEvent) -> None:
    percent = int(event.fraction * 100)
    end = "\n" if event.done else "\r"
    print(f"[{percent:3d}%] {event.stage}", end=end, flush=True)


def _print_retry(status: str) -> None:
    print(f"... {status}", flush=True)


def build_orchestrator() -> ConversationOrchestrator:
    store = JsonSettingsStore(config.settings_path)
    return ConversationOrchestrator(
        store,
        catalog=get_catalog(),
        on_retry_status=_print_retry,
        on_progress=_print_progress,
        session_logger=SessionLogger(),
        input_mode=InputMode.TEXT,
    )


async def _handle_command(orch: ConversationOrchestrator, line: str) -> bool:
    """Run a slash command. Returns False when the session should end."""
    parts = shlex.split(line[1:])
    if not parts:
        return True
    cmd, rest = parts[0].lower(), parts[1:]

    if cmd in ("quit", "exit"):
        return False
    if cmd == "attach" and rest:
        attachment = await orch.attach_file(rest[0])
        print(f"Attached {attachment.name}" if attachment else f"Could not read {rest[0]}")
    elif cmd == "provider" and rest:
        try:
            cfg = await orch.update_config(rest[0], credential=rest[1] if len(rest) > 1 else None)
        except ConfigurationError as e:
            print(e)
            return True
        print(f"Provider: {cfg.provider} ({cfg.model})")
    elif cmd == "model" and rest:
        cfg = await orch.update_config("local", model=rest[0])
        print(f"Local model: {cfg.model}")
    else:
        print(__doc__)
    return True


async def run_chat(args: argparse.Namespace) -> int:
    orch = build_orchestrator()
    if args.provider or args.api_key or args.model:
        await orch.update_config(
            args.provider or ("local" if args.model else orch.provider_config.provider),
            credential=args.api_key,
            model=args.model,
        )

    try:
        if args.ask:
            if args.file:
                await orch.attach_file(args.file)
            response = await orch.send(args.ask)
            if response is None:
                return 1
            print(render_response(response))
            return 0

        print(f"Agentic Encyclopedia - {orch.provider_config.provider} ({orch.provider_config.model})")
        print("Type /quit to exit.\n")
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            line = line.strip()
            if not line:
                continue
            if line.startswith("/"):
                if not await _handle_command(orch, line):
                    break
                continue
            response = await orch.send(line)
            if response is not None:
                print(render_response(response) + "\n")
        return 0
    finally:
        await orch.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Chat with the encyclopedia assistant")
    parser.add_argument("--provider", choices=get_catalog().provider_ids())
    parser.add_argument("--api-key", help="Credential for the selected cloud provider")
    parser.add_argument("--model", help="Local model id")
    parser.add_argument("--ask", help="Ask one question and exit")
    parser.add_argument("--file", help="Attach a file to --ask")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run_chat(args))


if __name__ == "__main__":
    sys.exit(main())
