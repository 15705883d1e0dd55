"""External tool lookup and execution.

Every piece of real work in shipyard is done by another program. This
module is the single place that starts those programs:

* :meth:`ToolRunner.resolve` -- find an executable on ``PATH`` (or accept an
  absolute path from the global config).
* :meth:`ToolRunner.run` -- run one finite pipeline stage, capture its
  output, and turn a non-zero exit, a timeout or a missing binary into the
  stage's :class:`~shipyard.exceptions.StageError` subclass.
* :meth:`ToolRunner.capture` -- run a read-only query (``cargo metadata``)
  and return its stdout, even during a dry run.
* :meth:`ToolRunner.serve` -- start a long-lived server process and block
  until it exits or the user interrupts it.

With ``dry_run`` enabled, stages are echoed instead of executed.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from shipyard.exceptions import BuildError, ServerError, StageError, ToolNotFoundError
from shipyard.exit_codes import EXIT_INTERRUPTED
from shipyard.output import command, error, get_output, info

logger = logging.getLogger(__name__)

_STDERR_TAIL = 20
_STDOUT_TAIL = 10


class ToolRunner:
    """Runs external tools for a single CLI invocation.

    Args:
        dry_run: Echo commands instead of running them.
        timeout: Seconds before a finite stage is killed, or ``None``.
        stream: Let child output go straight to the terminal instead of
            capturing it. Failures then carry no output tail.
    """

    def __init__(
        self,
        dry_run: bool = False,
        timeout: Optional[int] = None,
        stream: bool = False,
    ) -> None:
        self.dry_run = dry_run
        self.timeout = timeout
        self.stream = stream

    def resolve(self, tool: str, config_key: Optional[str] = None) -> str:
        """Return the absolute path of *tool*.

        Args:
            tool: Executable name or path, as configured.
            config_key: Dotted global-config key naming the tool, used in
                the error message.

        Raises:
            ToolNotFoundError: If *tool* is not executable and not on ``PATH``.
                During a dry run the bare name is returned instead.
        """
        found = shutil.which(tool)
        if found:
            logger.debug("Resolved %s -> %s", tool, found)
            return found
        if self.dry_run:
            logger.debug("Tool %s not found; continuing because of dry run", tool)
            return tool
        raise ToolNotFoundError(tool, config_key)

    def run(
        self,
        argv: Sequence[str],
        *,
        stage: str,
        error_cls: type[StageError] = BuildError,
        cwd: Optional[Path] = None,
    ) -> subprocess.CompletedProcess:
        """Run one finite stage and fail loudly if it does not succeed.

        Args:
            argv: Full command line; ``argv[0]`` should come from :meth:`resolve`.
            stage: Stage name reported on failure.
            error_cls: Exception type raised on failure.
            cwd: Working directory for the child process.

        Returns:
            The completed process. During a dry run a synthetic successful
            result with empty output is returned.

        Raises:
            StageError: (as *error_cls*) on non-zero exit, timeout, or when the
                executable disappears between lookup and launch.
        """
        argv = [str(a) for a in argv]
        cwd_str = str(cwd) if cwd is not None else None
        logger.debug("Running stage %s: %s (cwd=%s)", stage, argv, cwd_str)

        if self.dry_run:
            command(argv, cwd_str)
            return subprocess.CompletedProcess(argv, 0, "", "")

        if get_output().is_verbose:
            command(argv, cwd_str)

        try:
            result = subprocess.run(
                argv,
                cwd=cwd_str,
                capture_output=not self.stream,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise error_cls(
                f"{Path(argv[0]).name} timed out after {self.timeout} seconds",
                stage=stage,
            ) from exc
        except FileNotFoundError as exc:
            raise error_cls(f"Executable not found: {argv[0]}", stage=stage) from exc

        if result.returncode != 0:
            self._report_failure(result)
            raise error_cls(
                f"{Path(argv[0]).name} exited with status {result.returncode}",
                stage=stage,
            )
        return result

    def capture(
        self,
        argv: Sequence[str],
        *,
        stage: str,
        error_cls: type[StageError] = BuildError,
        cwd: Optional[Path] = None,
    ) -> str:
        """Run a read-only query and return its stdout.

        Queries run even during a dry run so later stages can still print
        accurate paths.
        """
        argv = [str(a) for a in argv]
        logger.debug("Querying %s: %s", stage, argv)
        try:
            result = subprocess.run(
                argv,
                cwd=str(cwd) if cwd is not None else None,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise error_cls(
                f"{Path(argv[0]).name} timed out after {self.timeout} seconds",
                stage=stage,
            ) from exc
        except FileNotFoundError as exc:
            raise error_cls(f"Executable not found: {argv[0]}", stage=stage) from exc

        if result.returncode != 0:
            self._report_failure(result)
            raise error_cls(
                f"{Path(argv[0]).name} exited with status {result.returncode}",
                stage=stage,
            )
        return result.stdout

    def serve(self, argv: Sequence[str], *, cwd: Optional[Path] = None) -> int:
        """Start a long-running server and wait for it.

        The server runs until it exits on its own or the user presses
        Ctrl-C, in which case it is terminated and
        :data:`~shipyard.exit_codes.EXIT_INTERRUPTED` is returned.

        Raises:
            ServerError: If the process cannot be started or exits with a
                non-zero status.
        """
        argv = [str(a) for a in argv]
        cwd_str = str(cwd) if cwd is not None else None
        logger.debug("Starting server: %s (cwd=%s)", argv, cwd_str)

        if self.dry_run:
            command(argv, cwd_str)
            return 0

        if get_output().is_verbose:
            command(argv, cwd_str)

        try:
            proc = subprocess.Popen(argv, cwd=cwd_str)
        except OSError as exc:
            raise ServerError(f"Could not start {Path(argv[0]).name}: {exc}") from exc

        try:
            returncode = proc.wait()
        except KeyboardInterrupt:
            info("Stopping server...")
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
            return EXIT_INTERRUPTED

        if returncode != 0:
            raise ServerError(f"Server exited with status {returncode}")
        return returncode

    @staticmethod
    def _report_failure(result: subprocess.CompletedProcess) -> None:
        """Show the tail of a failed child's output for diagnostics."""
        if result.stderr:
            for line in result.stderr.splitlines()[-_STDERR_TAIL:]:
                error(f"  {line}")
        if result.stdout:
            for line in result.stdout.splitlines()[-_STDOUT_TAIL:]:
                info(f"  {line}")
