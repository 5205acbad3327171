from gtest_runner.progress.interface import (
    DummyRunProgressListener, GlobalProgress, RunProgressListener,
    ShardProgress,
)
from gtest_runner.util import cli
import sys
from tqdm import tqdm
from typing import TextIO
from typing_extensions import override


def listener_for_verbosity(verbosity: int) -> RunProgressListener:
    """
    Returns the progress display appropriate for the specified verbosity:
    
    * 0 -- nothing
    * 1 -- a global progress bar
    * 2 -- a global progress bar plus one status line per shard
    * 3+ -- nothing, because every test's output is printed instead
    """
    if verbosity < 1 or verbosity > 2:
        return DummyRunProgressListener()
    return TqdmRunProgressListener(show_shards=(verbosity == 2))


class TqdmRunProgressListener(RunProgressListener):
    """
    Renders the progress of a run to the terminal with tqdm.
    """
    _OVERALL_FORMAT = '{desc} {percentage:3.0f}%|{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]'
    _SHARD_FORMAT = '{desc}'
    
    def __init__(self,
            *, show_shards: bool=True,
            file: TextIO | None=None,
            log_file: TextIO | None=None,
            ) -> None:
        """
        Arguments:
        * show_shards -- whether to show one status line per shard.
        * file -- where bars are drawn. Defaults to stderr.
        * log_file -- where lines passed to write() go. Defaults to stdout,
          alongside the attempt summary.
        """
        self._show_shards = show_shards
        self._file = file if file is not None else sys.stderr
        self._log_file = log_file
        self._overall_bar = None  # type: tqdm | None
        self._shard_bars = {}  # type: dict[int, tqdm]
    
    # === Discovery ===
    
    @override
    def discovering_tests(self, executable: str) -> None:
        """Called before an executable is asked to list its tests."""
        pass
    
    @override
    def did_discover_tests(self, num_tests: int) -> None:
        """Called after an executable listed `num_tests` tests."""
        pass
    
    # === Attempt ===
    
    @override
    def will_run_attempt(self, attempt: int, num_tests: int, jobs: int) -> None:
        """
        Called when `jobs` shards are about to run `num_tests` tests.
        
        `attempt` is 1 for the first attempt and increases with each retry
        of failed tests.
        """
        self._close_bars()
        desc = 'Running tests' if attempt == 1 else f'Retrying tests (attempt {attempt})'
        self._overall_bar = tqdm(
            total=num_tests,
            desc=desc,
            bar_format=self._OVERALL_FORMAT,
            position=0,
            leave=False,
            file=self._file,
            dynamic_ncols=True,
        )
        if self._show_shards:
            for shard in range(jobs):
                self._shard_bars[shard] = tqdm(
                    total=None,
                    desc=self._shard_desc(shard, 'starting', failed=False),
                    bar_format=self._SHARD_FORMAT,
                    position=1 + shard,
                    leave=False,
                    file=self._file,
                    dynamic_ncols=True,
                )
    
    @override
    def shard_progressed(self, progress: ShardProgress) -> None:
        """Called after a shard reported a test starting or printing output."""
        bar = self._shard_bars.get(progress.shard)
        if bar is None:
            return
        label = progress.current_testcase or 'waiting'
        bar.set_description_str(
            self._shard_desc(progress.shard, label, failed=progress.failed),
            refresh=False)
        bar.n = progress.num_events
        bar.refresh()
    
    @override
    def test_finished(self, progress: GlobalProgress) -> None:
        """Called after any shard reported a test as passed, failed, or aborted."""
        bar = self._overall_bar
        if bar is None:
            return
        if progress.num_failed > 0 and cli.use_colors():
            bar.colour = 'red'
        bar.n = progress.num_finished
        bar.refresh()
    
    @override
    def shard_finished(self, progress: ShardProgress) -> None:
        """
        Called once every record of a shard has been received and
        its process has exited.
        """
        bar = self._shard_bars.pop(progress.shard, None)
        if bar is not None:
            bar.close()
    
    @override
    def did_run_attempt(self) -> None:
        """Called after every shard of an attempt has finished."""
        self._close_bars()
    
    @override
    def write(self, message: str) -> None:
        # Clears the bars drawn on self._file, prints, then redraws them
        tqdm.write(message, file=self._log_file if self._log_file is not None else sys.stdout)
    
    # === Utility ===
    
    def _close_bars(self) -> None:
        for bar in self._shard_bars.values():
            bar.close()
        self._shard_bars.clear()
        if self._overall_bar is not None:
            self._overall_bar.close()
            self._overall_bar = None
    
    @staticmethod
    def _shard_desc(shard: int, label: str, *, failed: bool) -> str:
        desc = f'  [{shard}] {label}'
        if failed:
            return cli.colorize(cli.TERMINAL_FG_RED, desc)
        return desc
