# run_poller.py
import argparse
import asyncio
import logging
import signal
import time

from dotenv import load_dotenv

import config
from connectors.defaults import build_default_registry
from repositories.trackers_repo import TrackerPollingStore
from services.notification_service import build_notifier
from services.poller import Poller

LOGGER = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    numeric = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _make_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Poll tracked titles for new chapters.")
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="logging level (default: %(default)s)")
    return parser


def build_poller(registry=None, store=None, notifier=None) -> Poller:
    registry = registry or build_default_registry()
    store = store or TrackerPollingStore()
    if notifier is None:
        notifier = build_notifier() if config.NOTIFY_ENABLED else None
    return Poller.from_config(store, registry, notifier)


def _install_signal_handlers(loop, poller, stopped: asyncio.Event) -> None:
    def _request_stop(signame):
        LOGGER.info("received %s, stopping poller", signame)
        poller.stop()
        stopped.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, _request_stop, signum.name)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops.
            signal.signal(signum, lambda *_args, name=signum.name: loop.call_soon_threadsafe(_request_stop, name))


async def _async_main(args, poller=None) -> int:
    poller = poller or build_poller()

    if args.once:
        summary = await poller.run_once()
        print(f"[poller] single cycle done: {summary.as_dict()}")
        return 1 if summary.failed else 0

    if not config.POLLING_ENABLED:
        print("[poller] POLLING_ENABLED is off, nothing to do.")
        return 0

    stopped = asyncio.Event()
    _install_signal_handlers(asyncio.get_running_loop(), poller, stopped)

    task = poller.start()
    await asyncio.wait(
        {task, asyncio.ensure_future(stopped.wait())},
        return_when=asyncio.FIRST_COMPLETED,
    )
    if not await poller.stop_wait(config.POLLER_STOP_WAIT_SECONDS):
        print("[poller] shutdown timed out, exiting with the current cycle unfinished.")
    return 0


def main() -> int:
    load_dotenv()
    parser = _make_arg_parser()
    args = parser.parse_args()
    _setup_logging(args.log_level)

    start_time = time.time()
    print("==========================================")
    print("   chapter poller starting")
    print("==========================================")
    exit_code = asyncio.run(_async_main(args))
    print(f"[poller] exited after {time.time() - start_time:.2f}s")
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
