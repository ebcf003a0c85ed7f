import argparse
import asyncio

import run_poller
from services.poller import CycleSummary


class FakePoller:
    def __init__(self, failed=0):
        self.failed = failed
        self.started = False
        self.stop_timeouts = []

    async def run_once(self):
        return CycleSummary(listed=1, checked=1 - self.failed, failed=self.failed)

    def start(self):
        self.started = True

        async def _forever():
            await asyncio.sleep(3600)

        return asyncio.get_running_loop().create_task(_forever())

    def stop(self):
        pass

    async def stop_wait(self, timeout):
        self.stop_timeouts.append(timeout)
        return True


def test_once_runs_single_cycle_and_reports_success():
    poller = FakePoller()

    exit_code = asyncio.run(run_poller._async_main(argparse.Namespace(once=True), poller=poller))

    assert exit_code == 0
    assert poller.started is False


def test_once_exit_code_reflects_failed_trackers():
    exit_code = asyncio.run(run_poller._async_main(argparse.Namespace(once=True), poller=FakePoller(failed=1)))

    assert exit_code == 1


def test_polling_disabled_does_not_start_loop(monkeypatch):
    monkeypatch.setattr(run_poller.config, "POLLING_ENABLED", False)
    poller = FakePoller()

    exit_code = asyncio.run(run_poller._async_main(argparse.Namespace(once=False), poller=poller))

    assert exit_code == 0
    assert poller.started is False


def test_arg_parser_defaults():
    args = run_poller._make_arg_parser().parse_args([])

    assert args.once is False
    assert args.log_level == run_poller.config.LOG_LEVEL
