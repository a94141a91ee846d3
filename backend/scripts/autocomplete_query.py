"""Run address autocomplete queries from the command line.

Usage:
    python scripts/autocomplete_query.py "100 old santa" "100 old santa fe trl" [--district path/to/district.geojson]

Queries run one after another through a single engine, so later queries can
reuse places fetched for earlier ones, exactly like successive keystrokes.
With --preview-last the final query is only ranked against the places the
earlier queries fetched, which is what a keystroke preview shows.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional

from domain.models import Candidate
from services.autocomplete_engine import AutocompleteEngine
from services.district_boundary import load_default_boundary
from services.geocoding import NominatimSearchProvider
from settings import settings

logger = logging.getLogger("autocomplete_query")


def _format_candidate(rank: int, candidate: Candidate) -> str:
    distance = f"{candidate.distance_m / 1000:.1f} km" if candidate.distance_m is not None else "n/a"
    return f"  {rank}. {candidate.display_label}  [{candidate.containment.value}, {distance}]"


async def _run(queries: List[str], district_path: Optional[str], preview_last: bool = False) -> int:
    boundary = load_default_boundary(district_path, name=settings.DISTRICT_NAME)
    config = settings.autocomplete_config(containment=boundary)
    engine = AutocompleteEngine(NominatimSearchProvider(limit=config.remote_limit), config)

    for position, query in enumerate(queries, start=1):
        preview = engine.preview(query)
        if preview_last and position == len(queries):
            suggestions = preview.local_candidates
            source = "local preview"
        else:
            result = await engine.search(query, preview)
            suggestions = result.suggestions
            source = "remote+local" if result.used_remote else "local"
        logger.info("%r -> %d suggestions (%s)", preview.query, len(suggestions), source)
        for rank, candidate in enumerate(suggestions, start=1):
            logger.info(_format_candidate(rank, candidate))
    return 0


def main() -> int:
    if not logger.handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
    parser = argparse.ArgumentParser(description="Rank address suggestions for one or more queries.")
    parser.add_argument("queries", nargs="+", help="Partially typed addresses, searched in order.")
    parser.add_argument(
        "--district",
        default=settings.DISTRICT_GEOJSON_PATH,
        help="GeoJSON boundary used for the containment signal.",
    )
    parser.add_argument(
        "--preview-last",
        action="store_true",
        help="Rank the last query against places fetched by the earlier ones, without a lookup.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log cache and lookup decisions.")
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    try:
        return asyncio.run(_run(args.queries, args.district, args.preview_last))
    except Exception as exc:
        logger.error("Address search failed: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
