"""Command-line client for tutor-rag chat sessions."""

import argparse
import asyncio
import sys
from collections.abc import Sequence
from typing import TextIO

from tutor_rag.application.dto.chat_dto import SendMessageRequest
from tutor_rag.application.use_cases.chat_service import EXPORT_FORMATS, ChatService
from tutor_rag.config.composition import Container
from tutor_rag.config.logging_config import configure_logging
from tutor_rag.domain.errors import DomainError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tutor-rag", description="Document-grounded tutor chat")
    sub = parser.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new-session", help="Create a chat session")
    new.add_argument("--user", required=True, help="Owner id")
    new.add_argument("--title")
    new.add_argument("--doc", action="append", default=[], help="Document id in scope (repeatable)")

    ask = sub.add_parser("ask", help="Send a message and stream the answer")
    ask.add_argument("session_id")
    ask.add_argument("message")
    ask.add_argument("--doc", action="append", default=None, help="Override retrieval scope")
    ask.add_argument("--no-context", action="store_true", help="Skip document retrieval")

    history = sub.add_parser("history", help="Print the messages of a session")
    history.add_argument("session_id")

    export = sub.add_parser("export", help="Export a session transcript")
    export.add_argument("session_id")
    export.add_argument("--format", choices=EXPORT_FORMATS, default="markdown")
    return parser


async def _ask(service: ChatService, args: argparse.Namespace, out: TextIO) -> int:
    req = SendMessageRequest(
        session_id=args.session_id,
        message=args.message,
        document_ids=args.doc,
        search_context=not args.no_context,
    )
    async for chunk in service.stream_message(req):
        if chunk.failed:
            print(f"\n[ERROR] {chunk.error}", file=out)
            return 1
        if not chunk.is_complete:
            out.write(chunk.content)
            out.flush()
            continue
        out.write("\n")
        for i, ref in enumerate(chunk.sources or (), 1):
            page = ref.page_number if ref.page_number is not None else "N/A"
            score = ref.relevance_score
            print(f"[{i}] {ref.document_title} (page {page}, score={score:.3f})", file=out)
        if chunk.confidence is not None:
            print(f"confidence: {chunk.confidence:.2f}", file=out)
    return 0


def run(
    argv: Sequence[str] | None = None,
    container: Container | None = None,
    out: TextIO | None = None,
) -> int:
    """Run one CLI command; returns the process exit code."""
    args = build_parser().parse_args(argv)
    container = container or Container()
    out = out or sys.stdout
    configure_logging(container.settings.log_level)
    service = container.get_chat_service()

    try:
        if args.command == "new-session":
            session = service.create_session(args.user, args.title, args.doc)
            print(session.id, file=out)
        elif args.command == "ask":
            return asyncio.run(_ask(service, args, out))
        elif args.command == "history":
            for msg in service.get_messages(args.session_id):
                stamp = f"{msg.created_at:%Y-%m-%d %H:%M}"
                print(f"[{stamp}] {msg.role.value}: {msg.content}", file=out)
        elif args.command == "export":
            print(service.export_session(args.session_id, args.format), file=out)
    except DomainError as err:
        print(f"[ERROR] {type(err).__name__}: {err}", file=out)
        return 1
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
