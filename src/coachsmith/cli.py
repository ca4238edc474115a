"""Command-line interface for CoachSmith."""

import argparse
import asyncio
import sys

from coachsmith.config import get_settings
from coachsmith.errors import CoachError
from coachsmith.logger import LoggerManager, get_logger

logger = get_logger(__name__)


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="coachsmith",
        description="CoachSmith - answers questions about your portfolio from your own data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the API
  coachsmith serve --port 8000

  # Print the schema description given to the model
  coachsmith schema

  # Ask one question from the terminal
  coachsmith ask --user user_123 "How many properties do I have?"
  coachsmith ask --user user_123 --page-context dashboard --stream "What should I focus on?"
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    sub.add_parser("schema", help="Print the schema description")

    ask = sub.add_parser("ask", help="Answer one question")
    ask.add_argument("question", help="Question text")
    ask.add_argument("--user", required=True, help="User id the data is scoped to")
    ask.add_argument("--page-context", default=None, help="Page label, e.g. dashboard or properties")
    ask.add_argument("--stream", action="store_true", help="Print the answer as it streams")

    return parser.parse_args(argv)


def _serve(args) -> int:
    import uvicorn

    uvicorn.run(
        "coachsmith.api.server:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


def _schema(_args) -> int:
    from coachsmith.schema_intelligence import YamlSchemaProvider

    print(YamlSchemaProvider(get_settings().schema_file).describe())
    return 0


async def _ask(args) -> int:
    from coachsmith.agents import CoachReplyStream
    from coachsmith.agents.models import Question
    from coachsmith.api.server import build_orchestrator

    orchestrator = build_orchestrator(get_settings())
    question = Question(
        user_id=args.user,
        text=args.question,
        page_context=args.page_context,
        streaming_requested=args.stream,
    )

    if args.stream:
        outcome = await orchestrator.open_answer_stream(question)
        if isinstance(outcome, CoachReplyStream):
            async for fragment in outcome:
                print(fragment, end="", flush=True)
            print()
            return 0
        reply = outcome
    else:
        reply = await orchestrator.answer(question)

    print(reply.reply)
    if reply.data_info is not None:
        print(f"\nSQL: {reply.data_info.sql_query or 'No SQL generated'}")
        print(f"Rows: {reply.data_info.result_count}")
    elif reply.cached:
        print("\n(cached)")
    return 0


def main(argv=None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)
    settings = get_settings()
    if args.command != "serve":
        LoggerManager().setup_logging(
            level=settings.log_level,
            log_dir=settings.log_dir,
            timezone=settings.log_timezone,
            app_name=settings.app_name,
        )

    try:
        if args.command == "serve":
            return _serve(args)
        if args.command == "schema":
            return _schema(args)
        return asyncio.run(_ask(args))
    except CoachError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(f"\n✗ Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
