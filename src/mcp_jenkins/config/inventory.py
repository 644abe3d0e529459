"""Resource inventory management from a YAML manifest."""
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from ..converge.errors import ParseError
from ..converge.parser import SECTIONS, ConfigParser
from ..converge.schema import DesiredState, ResourceKind
from ..jenkins.base import ServerConfig
from ..jenkins.cli import JenkinsCLI

logger = logging.getLogger(__name__)

CONFIG_ENV = "BUTLERCRAFT_CONFIG"

_SERVER_FIELDS = set(ServerConfig.__dataclass_fields__)


class ResourceInventory:
    """Manages the declared resources loaded from a YAML manifest.

    ```yaml
    server:
      url: http://jenkins.example.com:8080
      username: admin
      password_env: JENKINS_PASSWORD
    defaults:
      slave:
        remote_fs: /home/jenkins
    slaves:
      agent-1:
        labels: [linux, docker]
    jobs:
      build-x:
        config: jobs/build-x.xml
    ```
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()
        self._config: dict = {}
        self._resources: dict[tuple[ResourceKind, str], DesiredState] = {}
        self._server: Optional[ServerConfig] = None
        self._load_config()

    def _find_config(self) -> str:
        """Find the jenkins.yaml manifest."""
        env_path = os.environ.get(CONFIG_ENV)
        if env_path:
            return env_path

        search_paths = [
            Path.cwd() / "configs" / "jenkins.yaml",
            Path.cwd() / "jenkins.yaml",
            Path.home() / ".config" / "butlercraft" / "jenkins.yaml",
            Path("/etc/butlercraft/jenkins.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            "Could not find jenkins.yaml. Create one in ./configs/jenkins.yaml"
        )

    def _load_config(self) -> None:
        """Load the YAML manifest and parse every declaration."""
        with open(self.config_path) as f:
            self._config = yaml.safe_load(f) or {}

        if not isinstance(self._config, dict):
            raise ParseError(f"{self.config_path}: manifest must be a mapping")

        self._server = self._parse_server(self._config.get("server"))

        parser = ConfigParser(base_dir=str(Path(self.config_path).resolve().parent))
        for desired in parser.parse_sections(self._config, self._config.get("defaults")):
            key = (desired.kind, desired.name)
            if key in self._resources:
                logger.warning(f"Duplicate {desired.kind.value} '{desired.name}', last one wins")
            self._resources[key] = desired

        logger.debug(f"Loaded {len(self._resources)} resources from {self.config_path}")

    def _parse_server(self, section: Any) -> Optional[ServerConfig]:
        if section is None:
            return None
        if not isinstance(section, dict):
            raise ParseError("server section must be a mapping")

        unknown = set(section) - _SERVER_FIELDS
        if unknown:
            raise ParseError(f"Unknown server fields: {', '.join(sorted(unknown))}")
        if not section.get("url"):
            raise ParseError("Missing required field: server.url")

        return ServerConfig(**section)

    @property
    def server(self) -> ServerConfig:
        """Server settings from the manifest."""
        if self._server is None:
            raise KeyError(f"{self.config_path} has no server section")
        return self._server

    def get_executor(self) -> JenkinsCLI:
        """Create a CLI executor for the configured server."""
        return JenkinsCLI(self.server)

    def get_resources(
        self,
        kind: Optional[Any] = None,
        name: Optional[str] = None,
    ) -> list[DesiredState]:
        """Get declared resources, optionally filtered by kind and name."""
        if kind is not None:
            kind = ResourceKind(kind)
        return [
            desired
            for (res_kind, res_name), desired in self._resources.items()
            if (kind is None or res_kind == kind) and (name is None or res_name == name)
        ]

    def get_resource(self, kind: Any, name: str) -> DesiredState:
        """Get one declared resource."""
        key = (ResourceKind(kind), name)
        if key not in self._resources:
            raise KeyError(f"Unknown {key[0].value}: {name}")
        return self._resources[key]

    def get_resource_ids(self) -> list[str]:
        """Get all resources as ``kind/name``."""
        return [f"{kind.value}/{name}" for kind, name in self._resources]

    def get_section_counts(self) -> dict[str, int]:
        """Number of declared resources per manifest section."""
        return {
            section: len(self.get_resources(kind))
            for section, kind in SECTIONS.items()
        }
