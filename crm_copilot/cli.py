"""
Command-line entry point.

    crm-copilot                      interactive text chat
    crm-copilot --prompt "..."       one message, then exit
    crm-copilot --voice              duplex voice session (Ctrl+C to stop)
    crm-copilot --briefing --speak   catch-up briefing, read out loud
"""

import argparse
import asyncio
import logging
from datetime import datetime

from rich.panel import Panel

from crm_copilot.audio.devices import PyAudioOutputDevice
from crm_copilot.backends import PROVIDERS, build_briefing_backend, build_streaming_backend, build_text_backend
from crm_copilot.briefing import Briefing, BriefingService
from crm_copilot.config import COPILOT_PROVIDER, OUTPUT_SAMPLE_RATE
from crm_copilot.crm.service import InMemoryCompanyService, parse_date
from crm_copilot.errors import BackendBusyError, BriefingError, ConfigurationError
from crm_copilot.events import Topic, get_event_hub
from crm_copilot.log import console, log_panel, setup_logging
from crm_copilot.models import Role
from crm_copilot.navigation import Navigator
from crm_copilot.session import ConversationSession

EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CRM Copilot - voice and text assistant for the CRM pipeline.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--voice",
        action="store_true",
        help="Start a streaming voice session (microphone in, speech out)",
    )
    parser.add_argument(
        "--prompt",
        type=str,
        help="Send one text message and exit (overrides --voice).",
    )
    parser.add_argument(
        "--briefing",
        action="store_true",
        help="Print the catch-up briefing of recent CRM activity",
    )
    parser.add_argument(
        "--speak",
        action="store_true",
        help="With --briefing: read the briefing out loud",
    )
    parser.add_argument(
        "--last-login",
        type=str,
        help="With --briefing: ISO date of the previous login (default: one week back)",
    )
    parser.add_argument(
        "--provider",
        choices=PROVIDERS,
        default=COPILOT_PROVIDER if COPILOT_PROVIDER in PROVIDERS else "gemini",
        help="AI provider for chat and voice",
    )
    parser.add_argument(
        "--location",
        type=str,
        default="/",
        help="Page the assistant assumes the user is on (default: /)",
    )
    return parser


def _print_reply(message) -> None:
    if message is None:
        console.print("[dim](no reply)[/dim]")
        return
    style = "red" if message.is_error else "green"
    console.print(Panel(message.text or "", title="Copilot", border_style=style))


def _watch_events(logger: logging.Logger) -> list:
    hub = get_event_hub()
    return [
        hub.subscribe(Topic.ACTION_STARTED, lambda notice: console.print(f"[yellow]● {notice.label}[/yellow]")),
        hub.subscribe(Topic.LOCATION_CHANGED, lambda path: console.print(f"[cyan]→ {path}[/cyan]")),
        hub.subscribe(Topic.SESSION_STATE_CHANGED, lambda state: logger.info(f"Session state: {state.value}")),
    ]


def build_session(args, logger: logging.Logger, crm: InMemoryCompanyService) -> ConversationSession:
    hub = get_event_hub()
    navigator = Navigator(hub, location=args.location, logger=logger)
    streaming_backend = build_streaming_backend(args.provider, logger=logger) if args.voice and not args.prompt else None
    text_backend = None if streaming_backend else build_text_backend(args.provider, logger=logger)
    return ConversationSession(
        crm,
        streaming_backend=streaming_backend,
        text_backend=text_backend,
        hub=hub,
        navigator=navigator,
        logger=logger,
    )


async def run_prompt(session: ConversationSession, prompt: str) -> None:
    _print_reply(await session.send_text(prompt))


async def run_repl(session: ConversationSession) -> None:
    console.print("[dim]Type a message, or 'exit' to quit. '/reset' clears the conversation.[/dim]")
    while True:
        try:
            text = await asyncio.to_thread(input, "you> ")
        except EOFError:
            break
        text = text.strip()
        if not text:
            continue
        if text.lower() in EXIT_COMMANDS:
            break
        if text == "/reset":
            session.reset()
            console.print("[dim]Conversation cleared.[/dim]")
            continue
        with console.status("Thinking..."):
            message = await session.send_text(text)
        _print_reply(message)


async def run_voice(session: ConversationSession, logger: logging.Logger) -> int:
    if not await session.connect():
        log_panel(logger, f"Could not start voice session: {session.last_error}", title="Error", style="red", level="error")
        return 1
    log_panel(logger, "Listening... press Ctrl+C to stop.", title="Voice session", style="green")
    try:
        await session.wait_closed()
    finally:
        await session.disconnect()
    tool_messages = [m for m in session.transcript if m.role is Role.TOOL]
    logger.info(f"Voice session ended after {len(tool_messages)} tool calls")
    if session.last_error is not None:
        log_panel(logger, f"Session closed: {session.last_error}", title="Disconnected", style="yellow", level="warning")
    return 0


def render_briefing(briefing: Briefing) -> str:
    heading = "Context reminder" if briefing.context_mode else f"Last {briefing.days_away} days"
    lines = [f"[bold]{heading}[/bold]"]
    for title, items in (("Wins", briefing.wins), ("Urgent", briefing.urgent), ("General", briefing.general)):
        if items:
            lines.append(f"\n[bold]{title}[/bold]")
            lines.extend(f"  • {item}" for item in items)
    return "\n".join(lines)


async def play_samples(samples, logger: logging.Logger) -> None:
    device = PyAudioOutputDevice(sample_rate=OUTPUT_SAMPLE_RATE, logger=logger)
    await device.open()
    finished = asyncio.Event()
    try:
        device.play(samples, device.current_time, on_ended=finished.set)
        await finished.wait()
    finally:
        await device.close()


async def run_briefing(args, logger: logging.Logger, crm: InMemoryCompanyService) -> int:
    try:
        backend = build_briefing_backend(logger=logger)
    except ConfigurationError as exc:
        logger.warning(f"{exc}; using the offline briefing")
        backend = None
    service = BriefingService(crm, backend, logger=logger)
    last_login = parse_date(args.last_login) if args.last_login else None

    try:
        with console.status("Preparing briefing..."):
            briefing = await service.generate(last_login=last_login, now=datetime.now().astimezone())
        console.print(Panel(render_briefing(briefing), title="Briefing", border_style="magenta"))
        if args.speak:
            with console.status("Synthesizing speech..."):
                samples = await service.speak(briefing)
            await play_samples(samples, logger)
    except (BackendBusyError, BriefingError) as exc:
        log_panel(logger, exc.user_message, title="Briefing", style="red", level="error")
        return 1
    return 0


async def run(args, logger: logging.Logger) -> int:
    crm = InMemoryCompanyService(logger=logger)
    if args.briefing:
        return await run_briefing(args, logger, crm)

    subscriptions = _watch_events(logger)
    session = build_session(args, logger, crm)
    try:
        if args.prompt:
            await run_prompt(session, args.prompt)
        elif args.voice:
            return await run_voice(session, logger)
        else:
            await run_repl(session)
    finally:
        for subscription in subscriptions:
            subscription.unsubscribe()
    return 0


def main():
    """Main entry point."""
    args = build_parser().parse_args()

    logger = setup_logging()
    logger.info("=" * 60)
    logger.info("CRM Copilot")
    logger.info("=" * 60)
    mode = "briefing" if args.briefing else "prompt" if args.prompt else "voice" if args.voice else "chat"
    logger.info(f"Mode: {mode}, Provider: {args.provider}, Location: {args.location}")

    console.print(
        Panel(
            f"Mode: {mode}\nProvider: {args.provider}\nLocation: {args.location}",
            title="Launch Configuration",
            border_style="cyan",
        )
    )

    try:
        return asyncio.run(run(args, logger))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except ConfigurationError as exc:
        log_panel(logger, str(exc), title="Configuration", style="red", level="error")
        return 1
    except Exception as exc:
        logger.error(f"Fatal error: {exc}", exc_info=True)
        return 1

    logger.info("Copilot terminated")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
