"""Jenkins CLI executor.

Runs ``java -jar jenkins-cli.jar`` as a subprocess for every command:
- Server URL and one credential style per invocation
- Config payloads fed on stdin (no shell, no redirection)
- Timeout and cancellation kill the child process
"""
import asyncio
import logging
import re
import shlex
from typing import Optional

from .base import (
    Command,
    CommandExecutor,
    ExecutorError,
    ExecutorTimeout,
    ExecutorUnavailable,
    ServerConfig,
)
from ..utils.logging_config import timed

logger = logging.getLogger(__name__)

# CLI output meaning the controller was never reached
UNREACHABLE_PATTERNS = re.compile(
    r"java\.net\.ConnectException"
    r"|java\.net\.UnknownHostException"
    r"|java\.net\.NoRouteToHostException"
    r"|Connection refused"
    r"|No route to host",
)

# Java itself could not start the CLI
LAUNCH_FAILURE_PATTERNS = re.compile(
    r"Unable to access jarfile"
    r"|Error: Could not find or load main class",
)


class JenkinsCLI(CommandExecutor):
    """Executor backed by the Jenkins command line client."""

    def __init__(self, config: ServerConfig):
        self.config = config

    @property
    def target(self) -> str:
        return self.config.url

    def auth_args(self) -> list[str]:
        """Credential arguments, one style only.

        Precedence: key file, then username/password, then password file.
        """
        if self.config.key_file:
            return ["-i", self.config.key_file]

        password = self.config.get_password()
        if self.config.username and password:
            return ["-auth", f"{self.config.username}:{password}"]

        if self.config.password_file:
            return ["-auth", f"@{self.config.password_file}"]

        if self.config.username:
            logger.warning(
                f"Username {self.config.username} set without a password; "
                "running the CLI unauthenticated"
            )
        return []

    def build_invocation(self, command: Command) -> list[str]:
        """Full argv for a command."""
        argv = [self.config.java_binary()]
        if self.config.jvm_options:
            argv.extend(shlex.split(self.config.jvm_options))
        argv.extend(["-jar", str(self.config.cli_jar_path())])
        argv.extend(["-s", self.config.url])
        argv.extend(self.auth_args())
        argv.append(command.verb)
        argv.extend(command.args)
        return argv

    @timed("cli_command")
    async def run(
        self,
        command: Command,
        timeout: Optional[float] = None,
    ) -> tuple[bool, str]:
        """Run one CLI command and return (success, output)."""
        if timeout is None:
            timeout = self.config.timeout

        try:
            stdin_data = command.read_input()
        except OSError as e:
            raise ExecutorError(f"Cannot read input for '{command}': {e}") from e

        argv = self.build_invocation(command)
        logger.debug(f"Running '{command}' against {self.config.url}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if stdin_data is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.config.working_dir,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise ExecutorUnavailable(f"Cannot launch '{argv[0]}': {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(stdin_data), timeout=timeout
            )
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise ExecutorTimeout(f"'{command}' timed out after {timeout}s")
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")

        if proc.returncode != 0:
            output = f"{out}\n{err}".strip()
            logger.debug(f"Command '{command}' failed (exit {proc.returncode}): {output}")
            if LAUNCH_FAILURE_PATTERNS.search(err):
                raise ExecutorUnavailable(f"Jenkins CLI could not start: {err.strip()}")
            if UNREACHABLE_PATTERNS.search(err):
                raise ExecutorUnavailable(
                    f"Jenkins at {self.config.url} unreachable: {err.strip()}"
                )
            return False, output

        return True, out.strip()

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        """Kill a still-running child and reap it."""
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
