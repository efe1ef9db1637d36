"""Command line entry point: ``migrate``, ``search <query>`` and ``embed <text>``."""

from __future__ import annotations

import argparse
import contextlib
import logging
import sys
from typing import List, Optional, Sequence

from .config import Settings
from .embedding import build_embedding_client
from .errors import HybridRagError
from .main import hybrid_search, run_migration
from .migration import MigrationReport
from .records import RankedHit

logger = logging.getLogger(__name__)

_TEXT_WIDTH = 60


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hybrid-rag",
        description="Migrate documents into a vector index and run hybrid (vector + lexical) search.",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file with connection settings (default: ./.env).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("migrate", help="Embed all documents and rebuild the vector collection.")

    search = sub.add_parser("search", help="Hybrid search over the migrated collection.")
    search.add_argument("query", help="Free-text query.")
    search.add_argument(
        "--top-k",
        type=int,
        default=None,
        help="Number of results to show (default: HYBRID_TOP_K or 10).",
    )

    embed = sub.add_parser("embed", help="Embed a text and print the vector (diagnostic).")
    embed.add_argument("text", help="Text to embed.")
    embed.add_argument("--full", action="store_true", help="Print every value of the vector.")
    return parser


def _truncate(text: str, width: int) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[: width - 3] + "..."


def _fmt(value: Optional[float], rank: Optional[int]) -> str:
    if rank is None or value is None:
        return "-"
    return f"#{rank} {value:.4f}"


def _hit_text(hit: RankedHit) -> str:
    payload = hit.payload or {}
    for key in ("search_text", "doc_name", "text"):
        if payload.get(key):
            return payload[key]
    return ""


def format_hits(query: str, hits: Sequence[RankedHit]) -> List[str]:
    if not hits:
        return [f'No results found for "{query}".']
    header = f"| {'#':>3} | {'ID':<6} | {'Fused':<8} | {'Semantic':<14} | {'Lexical':<14} | {'Text':<{_TEXT_WIDTH}} |"
    separator = "-" * len(header)
    lines = [f'Top {len(hits)} results for "{query}":', separator, header, separator]
    for position, hit in enumerate(hits, start=1):
        lines.append(
            f"| {position:>3} | {hit.id:<6} | {hit.fused_score:<8.5f} "
            f"| {_fmt(hit.score_semantic, hit.rank_semantic):<14} "
            f"| {_fmt(hit.score_lexical, hit.rank_lexical):<14} "
            f"| {_truncate(_hit_text(hit), _TEXT_WIDTH):<{_TEXT_WIDTH}} |"
        )
    lines.append(separator)
    return lines


def format_report(report: MigrationReport) -> List[str]:
    lines = [
        "",
        f"Migration into {report.collection!r} done (dim={report.dim}).",
        f"  Documents found:    {report.found}",
        f"  Embedded:           {report.embedded}",
        f"  Skipped:            {report.skipped_count}",
        f"  Upserted:           {report.upserted} in {report.batches} batch(es)",
    ]
    for item in report.skipped:
        detail = f": {item.detail}" if item.detail else ""
        lines.append(f"    - id={item.id} {item.reason.value}{detail}")
    return lines


def _cmd_migrate(settings: Settings) -> int:
    print("=== Migration: documents -> vector index ===")
    report = run_migration(settings)
    print("\n".join(format_report(report)))
    return 0


def _cmd_search(settings: Settings, query: str, top_k: Optional[int]) -> int:
    hits = hybrid_search(settings, query, limit=top_k)
    print("\n".join(format_hits(query, hits)))
    return 0


def _cmd_embed(settings: Settings, text: str, full: bool) -> int:
    with contextlib.closing(build_embedding_client(settings)) as embedder:
        vector = embedder.embed(text)
    if vector.is_empty:
        print("No embedding returned.")
        return 1
    print(f"Vector dimension: {vector.dim}")
    print(f"First 10 values: [{', '.join(f'{v:.6f}' for v in vector.values[:10])}]")
    if full:
        print(f"Full vector: [{', '.join(f'{v:.6f}' for v in vector.values)}]")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        stream=sys.stdout,
    )
    try:
        settings = Settings.from_env(env_file=args.env_file)
        if args.command == "migrate":
            return _cmd_migrate(settings)
        if args.command == "search":
            return _cmd_search(settings, args.query, args.top_k)
        return _cmd_embed(settings, args.text, args.full)
    except HybridRagError as exc:
        logger.error("Error: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
