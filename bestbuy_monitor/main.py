from __future__ import annotations

import argparse
import logging
import time
from typing import Callable, FrozenSet, Optional, Sequence, Set

import requests

from . import bestbuy, config, notifier
from .utils import MonitorError, NotifyError, TransportError, get_http_session

logger = logging.getLogger(__name__)


def setup_logging(level_name: Optional[str] = None) -> None:
    level = getattr(logging, (level_name or config.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_watch_set(
    settings: config.Settings,
    session: Optional[requests.Session] = None,
) -> FrozenSet[str]:
    """Union the SKUs of every configured source. Resolver errors propagate."""
    skus: Set[str] = set()

    if settings.sku_ids:
        explicit = bestbuy.parse_sku_list(settings.sku_ids)
        logger.info("Tracking %d SKUs explicitly", len(explicit))
        skus.update(explicit)

    if settings.collection_id:
        collection = bestbuy.fetch_skus_from_collection(settings.collection_id, session=session)
        logger.info("Tracking %d SKUs via collection %s", len(collection), settings.collection_id)
        skus.update(collection)

    if settings.search_query:
        found = bestbuy.fetch_skus_from_search(settings.search_query, session=session)
        logger.info("Tracking %d SKUs via search query", len(found))
        skus.update(found)

    logger.info("Tracking %d unique SKUs", len(skus))
    return frozenset(skus)


class Monitor:
    """Owns the watch set and the poll timer.

    Ticks run back to back on a fixed schedule and never overlap.  When a
    tick overruns the interval the next one starts immediately and the
    schedule is re-anchored, so at most one tick is ever pending.
    """

    def __init__(
        self,
        watch_set: FrozenSet[str],
        token: str,
        *,
        interval_seconds: float = config.DEFAULT_POLL_INTERVAL_SECONDS,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.watch_set = frozenset(watch_set)
        self.token = token
        self.interval_seconds = interval_seconds
        self.session = session
        self._clock = clock
        self._sleep = sleep
        self._next_tick: Optional[float] = None
        self.last_tick_failed = False

    def run_tick(self) -> int:
        """Check availability once and push every available product.

        Returns the number of pushes sent.  ``last_tick_failed`` is set when
        the availability check or any SKU failed.
        """
        self.last_tick_failed = False
        logger.info("Checking availability of %d SKUs", len(self.watch_set))
        try:
            available = bestbuy.fetch_available_skus(sorted(self.watch_set), session=self.session)
        except MonitorError as e:
            logger.error("Availability check failed, skipping this tick: %s", e)
            self.last_tick_failed = True
            return 0

        if not available:
            logger.info("Nothing in stock this tick.")
            return 0

        logger.info("Resolving %d available products", len(available))
        sent = 0
        for i, sku in enumerate(available, 1):
            logger.info("%d/%d sku=%s", i, len(available), sku)
            try:
                product = bestbuy.fetch_product(sku, session=self.session)
                notifier.notify(product, self.token, session=self.session)
            except NotifyError as e:
                logger.error("Push service rejected notification for sku=%s: %s", sku, e)
                self.last_tick_failed = True
                continue
            except TransportError as e:
                logger.error("Network failure for sku=%s: %s", sku, e)
                self.last_tick_failed = True
                continue
            except MonitorError as e:
                logger.error("Failed to process sku=%s: %s", sku, e)
                self.last_tick_failed = True
                continue
            except Exception:
                logger.exception("Unexpected error processing sku=%s", sku)
                self.last_tick_failed = True
                continue
            sent += 1
        return sent

    def _wait_for_tick(self) -> None:
        if self._next_tick is None:
            self._next_tick = self._clock() + self.interval_seconds
        delay = self._next_tick - self._clock()
        if delay > 0:
            self._sleep(delay)

    def _schedule_next(self) -> None:
        self._next_tick += self.interval_seconds
        now = self._clock()
        if self._next_tick < now:
            logger.warning("Tick overran the %ss interval; next tick starts now.", self.interval_seconds)
            self._next_tick = now

    def run_forever(self, max_ticks: Optional[int] = None) -> None:
        """Tick every interval until interrupted (or ``max_ticks`` ran)."""
        logger.info(
            "Polling %d SKUs every %s seconds.", len(self.watch_set), self.interval_seconds
        )
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            self._wait_for_tick()
            try:
                self.run_tick()
            except Exception:
                logger.exception("Unexpected error during tick")
            ticks += 1
            self._schedule_next()

    def run_once(self) -> int:
        """Run a single tick and return a process exit code."""
        try:
            self.run_tick()
        except Exception:
            logger.exception("Unexpected error during tick")
            return 1
        return 1 if self.last_tick_failed else 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="bestbuy-monitor",
        description="Watch Best Buy Canada SKUs and push a notification when they are in stock.",
    )
    parser.add_argument("-t", "--token", default=None, help="Pushbullet API token (TOKEN)")
    parser.add_argument("--sku-ids", default=None, help="Comma separated list of SKUs to watch (SKU_IDS)")
    parser.add_argument("--collection-id", default=None, help="ID of collection to watch (COLLECTION_ID)")
    parser.add_argument("--search-query", default=None, help="Search result to watch (SEARCH_QUERY)")
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between availability checks (POLL_INTERVAL_SECONDS)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single check and exit (MODE=once)")
    parser.add_argument("--log-level", default=None, help="Logging level (LOG_LEVEL)")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Initialise and run the monitoring loop. Returns the exit code."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        settings = config.load_settings(
            token=args.token,
            sku_ids=args.sku_ids,
            collection_id=args.collection_id,
            search_query=args.search_query,
            poll_interval_seconds=args.interval,
            mode="once" if args.once else None,
        )
        config.validate(settings)
    except MonitorError as e:
        logger.error("Configuration error: %s", e)
        return 1

    session = get_http_session(config.USER_AGENT)
    try:
        try:
            watch_set = build_watch_set(settings, session=session)
        except MonitorError as e:
            logger.error("Getting SKUs failed: %s", e)
            return 1

        if not watch_set:
            logger.warning("No SKUs configured; set SKU_IDS, COLLECTION_ID or SEARCH_QUERY.")

        monitor = Monitor(
            watch_set,
            settings.token,
            interval_seconds=settings.poll_interval_seconds,
            session=session,
        )
        if settings.mode == "once":
            return monitor.run_once()
        else:
            monitor.run_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
    finally:
        session.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
