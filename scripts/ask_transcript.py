#!/usr/bin/env python3
"""Ask a question about a transcript file from the command line.

Reads a ``[HH:MM:SS.mmm --> HH:MM:SS.mmm] text`` transcript, sends the query
through the transcript QA engine against a local Ollama server, and prints
the answer together with the evidence it was built from.

Usage:
  uv run python scripts/ask_transcript.py talk.txt "what happened 8:30 to 9:05"
  uv run python scripts/ask_transcript.py talk.txt "总结一下这个视频" --model qwen2.5:14b
  uv run python scripts/ask_transcript.py talk.txt "first third" --local-embeddings
  uv run python scripts/ask_transcript.py talk.txt --interactive
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import replace
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.theme import Theme

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "scripts"))

from transcript_qa import (  # noqa: E402
    AnswerResult,
    AnswerStatus,
    CompositeClient,
    OllamaClient,
    ParseError,
    QueryCancelled,
    answer_query_from_transcript,
    load_settings,
)
from transcript_qa.config import (  # noqa: E402
    DEFAULT_EMBED_MODEL,
    DEFAULT_LOCAL_EMBED_MODEL,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OLLAMA_URL,
    ENV_PREFIX,
    env_or_default,
)
from transcript_qa.transcript_utils import format_window  # noqa: E402

console = Console(
    theme=Theme(
        {
            "success": "green",
            "error": "bold red",
            "info": "cyan",
            "warning": "yellow",
        }
    )
)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )
    # keep HTTP connection chatter out of the answer output
    logging.getLogger("urllib3").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def print_result(result: AnswerResult, show_evidence: bool) -> None:
    style = "success" if result.status is AnswerStatus.ANSWERED else "warning"
    title = f"{result.status.value}  |  intent={result.intent.value}  |  source={result.source}"
    console.print(Panel(escape(result.content), title=title, border_style=style))

    if result.time_range is not None:
        window = format_window(result.time_range.start_seconds, result.time_range.end_seconds)
        console.print(f"  Window: {window}", style="info")
    if result.coverage is not None and result.coverage.is_partial:
        console.print("  Coverage: partial", style="warning")
    if result.warnings:
        console.print(f"  Parse warnings: {len(result.warnings)}", style="warning")

    if show_evidence and result.evidence:
        console.print(f"\n  Evidence ({len(result.evidence)}):", style="info")
        for item in result.evidence:
            console.print(
                f"    {escape(f'[{item.label}]')} {escape(item.segment.stamp)} "
                f"{escape(item.segment.text[:100])}  (score={item.score:.3f})",
                highlight=False,
            )


def run_cancellable(work, cancel_event: threading.Event, poll_interval: float = 0.25):
    """Run ``work()`` on a worker thread; Ctrl-C sets ``cancel_event``.

    The main thread only polls the future, so an interrupt lands here while
    the query is in flight and the engine stops at its next checkpoint.
    Whatever the worker ends with (a result, or QueryCancelled) is passed on.
    """
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(work)
        try:
            while True:
                try:
                    return future.result(timeout=poll_interval)
                except FutureTimeout:
                    continue
        except KeyboardInterrupt:
            cancel_event.set()
            console.print("  Cancelling...", style="warning")
        return future.result()


def ask(llm, query: str, transcript_text: str, settings, show_evidence: bool) -> bool:
    cancel_event = threading.Event()
    try:
        result = run_cancellable(
            lambda: answer_query_from_transcript(
                llm, query, transcript_text, settings=settings, cancel_event=cancel_event
            ),
            cancel_event,
        )
    except QueryCancelled:
        console.print("  Cancelled.", style="warning")
        return False
    print_result(result, show_evidence)
    return True


def interactive_mode(llm, transcript_text: str, settings, show_evidence: bool) -> None:
    """REPL loop for asking several questions about the same transcript."""
    console.print("\nInteractive mode (type 'quit' to exit)", style="info")
    while True:
        try:
            query = input("\n  Query> ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n  Bye!")
            break
        if not query or query.lower() in ("quit", "exit", "q"):
            console.print("  Bye!")
            break
        ask(llm, query, transcript_text, settings, show_evidence)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_client(args):
    ollama = OllamaClient(
        base_url=args.ollama_url,
        model=args.model,
        embed_model=args.embed_model,
    )
    if not args.local_embeddings:
        return ollama
    from transcript_qa.embeddings import SentenceTransformerEmbeddingClient

    return CompositeClient(ollama, SentenceTransformerEmbeddingClient(args.local_embed_model))


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Answer questions about a video from its timestamped transcript",
    )
    parser.add_argument("transcript", type=Path, help="Path to the transcript text file.")
    parser.add_argument("query", nargs="?", default=None, help="Question to ask.")
    parser.add_argument(
        "--model", default=env_or_default(ENV_PREFIX + "MODEL", DEFAULT_OLLAMA_MODEL),
        help=f"Ollama chat model (default: {DEFAULT_OLLAMA_MODEL}).",
    )
    parser.add_argument(
        "--embed-model", default=env_or_default(ENV_PREFIX + "EMBED_MODEL", DEFAULT_EMBED_MODEL),
        help=f"Ollama embedding model (default: {DEFAULT_EMBED_MODEL}).",
    )
    parser.add_argument(
        "--ollama-url", default=env_or_default("OLLAMA_URL", DEFAULT_OLLAMA_URL),
        help=f"Ollama server URL (default: {DEFAULT_OLLAMA_URL}).",
    )
    parser.add_argument(
        "--local-embeddings", action="store_true",
        help="Embed with sentence-transformers instead of Ollama.",
    )
    parser.add_argument(
        "--local-embed-model", default=DEFAULT_LOCAL_EMBED_MODEL,
        help=f"sentence-transformers model (default: {DEFAULT_LOCAL_EMBED_MODEL}).",
    )
    parser.add_argument(
        "--timeout", type=float, default=None,
        help="Override the generation timeout in seconds.",
    )
    parser.add_argument(
        "--interactive", action="store_true",
        help="Ask several questions in a REPL.",
    )
    parser.add_argument(
        "--no-evidence", action="store_true",
        help="Do not list the evidence lines under the answer.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    args = parser.parse_args()

    setup_logging(args.verbose)

    if not args.transcript.exists():
        console.print(f"ERROR: transcript not found: {args.transcript}", style="error")
        sys.exit(1)
    transcript_text = args.transcript.read_text(encoding="utf-8")

    settings = load_settings()
    if args.timeout is not None:
        settings = replace(settings, generation_timeout=args.timeout)

    llm = build_client(args)
    show_evidence = not args.no_evidence

    try:
        if args.interactive:
            interactive_mode(llm, transcript_text, settings, show_evidence)
            return
        if not args.query:
            parser.print_help()
            console.print("\nProvide a query, or use --interactive", style="warning")
            sys.exit(1)
        if not ask(llm, args.query, transcript_text, settings, show_evidence):
            sys.exit(130)
    except ParseError as exc:
        console.print(f"ERROR: {exc}", style="error")
        for warning in exc.warnings[:5]:
            console.print(f"  {warning}", style="warning")
        sys.exit(1)


if __name__ == "__main__":
    main()
