"""Base executor abstraction for the Jenkins command channel."""
import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class ExecutorError(Exception):
    """The command could not be run at all."""
    pass


class ExecutorUnavailable(ExecutorError):
    """The CLI binary is missing or the server is unreachable."""
    pass


class ExecutorTimeout(ExecutorError):
    """The command did not finish within its timeout."""
    pass


class CommandFailed(Exception):
    """The command ran but reported a logical failure."""

    def __init__(self, command: "Command", output: str):
        super().__init__(f"Command '{command}' failed: {output}")
        self.command = command
        self.output = output


@dataclass
class ServerConfig:
    """Connection settings for a Jenkins controller."""
    url: str
    username: Optional[str] = None
    password: Optional[str] = None
    password_env: str = "JENKINS_PASSWORD"
    password_file: Optional[str] = None
    key_file: Optional[str] = None
    jvm_options: Optional[str] = None
    java_home: Optional[str] = None
    working_dir: Optional[str] = None
    cli_jar: Optional[str] = None
    timeout: Optional[float] = None

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")

    def java_binary(self) -> str:
        """Java executable, from ``java_home`` when set."""
        if self.java_home:
            return str(Path(self.java_home) / "bin" / "java")
        return "java"

    def cli_jar_path(self) -> Path:
        """Location of jenkins-cli.jar."""
        if self.cli_jar:
            return Path(self.cli_jar).expanduser()
        base = Path(self.working_dir).expanduser() if self.working_dir else Path.cwd()
        return base / "jenkins-cli.jar"

    def cli_jar_url(self) -> str:
        return f"{self.url.rstrip('/')}/jnlpJars/jenkins-cli.jar"


@dataclass(frozen=True)
class Command:
    """One remote-management command handed to an executor verbatim."""
    verb: str
    args: tuple[str, ...] = ()
    config_path: Optional[str] = None
    payload: Optional[bytes] = field(default=None, repr=False, compare=False)
    mutating: bool = True

    @property
    def has_input(self) -> bool:
        return self.config_path is not None or self.payload is not None

    def read_input(self) -> Optional[bytes]:
        """Bytes to feed on stdin, if any."""
        if self.config_path is not None:
            return Path(self.config_path).expanduser().read_bytes()
        return self.payload

    def __str__(self) -> str:
        text = " ".join((self.verb,) + self.args)
        if self.config_path is not None:
            return f"{text} < {self.config_path}"
        if self.payload is not None:
            return f"{text} < (rendered config.xml)"
        return text


class CommandExecutor(ABC):
    """Runs single remote-management commands."""

    @property
    def target(self) -> str:
        """Identifier used in perf and audit logs."""
        return "N/A"

    @abstractmethod
    async def run(
        self,
        command: Command,
        timeout: Optional[float] = None,
    ) -> tuple[bool, str]:
        """Run a command.

        Returns:
            Tuple of (success, output). A non-zero exit is ``(False, output)``.

        Raises:
            ExecutorError: If the command could not be run at all
        """
        pass

    async def run_checked(
        self,
        command: Command,
        timeout: Optional[float] = None,
    ) -> str:
        """Run a command and raise ``CommandFailed`` on a logical failure."""
        success, output = await self.run(command, timeout=timeout)
        if not success:
            raise CommandFailed(command, output)
        return output
