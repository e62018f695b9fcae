"""CLI entry point for the retrieval engine.

Usage:
    python -m flatrag ingest blog/pets/cats.txt blog/pets/dogs.txt
    python -m flatrag query pets "Are cats mammals?" --filter category=pets
    python -m flatrag query pets "Which posts are recent?" --filter="date>=2024-01-01" --raw
    python -m flatrag search pets "birds" --filter "tags in birds,wildlife"
    python -m flatrag list pets
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

from .config import Settings
from .engine import Engine, QueryResult
from .errors import FlatRAGError
from .filters import FILTER_FLAG, coerce_filters
from .log import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flatrag",
        description="Flat-file semantic retrieval "
                    "(ingest -> chunk -> embed -> search -> complete).",
    )
    parser.add_argument("--debug", action="store_true",
                        help="Log filtering, scoring and request details.")
    parser.add_argument("--env-file", default=None,
                        help="Path to a .env file with FLATRAG_* settings.")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Embed documents into their topic's chunk store.")
    ingest.add_argument("documents", nargs="+",
                        help="Text documents with optional YAML front matter.")
    ingest.add_argument("--topic", default=None,
                        help="Target topic (default: each document's parent directory).")

    for name, help_text in (("query", "Answer a question from a topic."),
                            ("search", "Show the scored chunks for a question.")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("topic")
        cmd.add_argument("question")
        cmd.add_argument(FILTER_FLAG, dest="filters", action="append", default=[],
                         metavar="EXPR", help="Metadata filter, e.g. category=pets (repeatable).")
        if name == "query":
            cmd.add_argument("--raw", action="store_true",
                             help="Print chunks, prompt and response as JSON.")

    listing = sub.add_parser("list", help="List the chunk-store files of a topic.")
    listing.add_argument("topic")
    return parser


async def run(args, settings: Settings) -> int:
    async with Engine(settings) as engine:
        if args.command == "ingest":
            paths = await engine.ingest_many(args.documents, topic=args.topic)
            for path in paths:
                print(f"Ingested -> {path}")
            return 0

        if args.command == "list":
            for path in engine.documents(args.topic):
                print(path)
            return 0

        filters = coerce_filters(args.filters)
        if args.command == "search":
            results = await engine.search(args.topic, args.question, filters)
            print(json.dumps([_summary(c) for c in results], indent=2, ensure_ascii=False))
            return 0

        result = await engine.query(args.topic, args.question, filters, raw=args.raw)
        if isinstance(result, QueryResult):
            out = result.to_dict()
            out["chunks"] = [_summary(c) for c in result.chunks]
            print(json.dumps(out, indent=2, ensure_ascii=False))
        else:
            print(result)
        return 0


def _summary(chunk) -> dict:
    # Embeddings are long and unreadable; leave them out of CLI output
    return {"text": chunk.text, "score": round(chunk.score, 4),
            "distance": round(chunk.distance, 4), "meta": chunk.meta}


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = Settings.from_env(
            env_file=Path(args.env_file) if args.env_file else None,
            debug=args.debug or None,
        )
        setup_logging(debug=settings.debug)
        return asyncio.run(run(args, settings))
    except (FlatRAGError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
