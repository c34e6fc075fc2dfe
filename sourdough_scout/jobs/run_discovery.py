"""CLI job to discover, verify and persist sourdough pizzerias for one city."""

import argparse
import logging
from typing import Optional, Sequence

from sourdough_scout.core.config import ConfigError, get_settings
from sourdough_scout.core.db import PostgresGateway, init_pool
from sourdough_scout.core.models import RunReport
from sourdough_scout.etl.queries import build_queries
from sourdough_scout.jobs.discover import build_pipeline

logger = logging.getLogger(__name__)


def run_discovery_job(
    *,
    city: str,
    state: Optional[str],
    neighborhoods: Sequence[str] = (),
    persist: bool = True,
) -> RunReport:
    settings = get_settings()
    if not settings.outscraper_api_key:
        raise ConfigError("OUTSCRAPER_API_KEY is required")

    queries = build_queries(city, state, neighborhoods=neighborhoods)

    gateway = None
    if persist:
        init_pool()
        gateway = PostgresGateway(city=city, state=state)
    else:
        logger.info("Persistence disabled; results will only be reported")

    pipeline = build_pipeline(settings, gateway=gateway)
    logger.info("Running discovery for %s %s with %d queries", city, state or "", len(queries))
    report = pipeline.run(queries)

    summary = report.summary()
    logger.info(
        "Completed run: discovered=%d verified=%d rejected=%d records=%d persisted=%d duration=%.1fs",
        summary["discovered"],
        summary["verified"],
        summary["rejected"],
        len(report.records),
        summary["persisted"],
        summary["duration_s"],
    )
    return report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Discover and verify sourdough pizzerias for a city")
    parser.add_argument("--city", dest="city", required=True, help="City to search, e.g. 'San Francisco'")
    parser.add_argument("--state", dest="state", help="State or region, e.g. 'CA'")
    parser.add_argument(
        "--neighborhood",
        dest="neighborhoods",
        action="append",
        default=[],
        help="Extra neighborhood to search (repeatable)",
    )
    parser.add_argument(
        "--no-persist",
        dest="persist",
        action="store_false",
        help="Report verified restaurants without writing them to the database",
    )
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    try:
        run_discovery_job(
            city=args.city,
            state=args.state,
            neighborhoods=args.neighborhoods,
            persist=args.persist,
        )
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    main()
