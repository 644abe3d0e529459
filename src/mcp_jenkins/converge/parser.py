"""Parser for resource declarations.

Converts dict/YAML input to strongly-typed desired-state records.
"""
from pathlib import Path
from typing import Any, Optional

from . import validator
from .errors import InvalidConfig, ParseError
from .schema import (
    DESIRED_STATE_TYPES,
    Availability,
    AvailabilityType,
    CommandLauncher,
    DesiredState,
    JNLPLauncher,
    Launcher,
    LauncherType,
    ResourceKind,
    SSHLauncher,
)

# Manifest section -> resource kind
SECTIONS = {
    "slaves": ResourceKind.SLAVE,
    "jobs": ResourceKind.JOB,
    "nodes": ResourceKind.NODE,
}

_NODE_FIELDS = {
    "action", "description", "remote_fs", "mode", "launcher",
    "availability", "env", "config",
}

ALLOWED_FIELDS = {
    ResourceKind.NODE: _NODE_FIELDS,
    ResourceKind.SLAVE: _NODE_FIELDS | {"executors", "labels"},
    ResourceKind.JOB: {"action", "config"},
}


class ConfigParser:
    """Parse resource declarations from dict/YAML format."""

    def __init__(self, base_dir: Optional[str] = None):
        """
        Args:
            base_dir: Directory relative ``config`` paths resolve against
        """
        self.base_dir = Path(base_dir).expanduser() if base_dir else None

    def parse(
        self,
        kind: Any,
        name: Any,
        config: Optional[dict[str, Any]] = None,
    ) -> DesiredState:
        """
        Parse one resource declaration.

        Args:
            kind: Resource kind (``slave``, ``job``, ``node``)
            name: Resource name
            config: Attribute dict, may be None for all defaults

        Returns:
            Desired-state record for the kind

        Raises:
            ParseError: If the declaration is malformed
            InvalidConfig: If an attribute fails validation
        """
        try:
            kind = validator.enum_of(ResourceKind, kind, "kind")
        except InvalidConfig:
            raise ParseError(f"Unknown resource kind: {kind!r}", name=str(name))

        if not isinstance(name, str) or not name.strip():
            raise ParseError(f"Invalid {kind.value} name: {name!r}", kind=kind.value)

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ParseError(
                f"Declaration must be a mapping, got {type(config).__name__}",
                kind=kind.value,
                name=name,
            )

        unknown = set(config) - ALLOWED_FIELDS[kind]
        if unknown:
            raise ParseError(
                f"Unknown fields for {kind.value}: {', '.join(sorted(unknown))}",
                kind=kind.value,
                name=name,
            )

        fields = dict(config)
        if fields.get("config") is not None:
            fields["config"] = self._resolve_path(kind, name, fields["config"])

        if kind != ResourceKind.JOB:
            try:
                if "launcher" in fields:
                    fields["launcher"] = self._parse_launcher(fields["launcher"])
                if "availability" in fields:
                    fields["availability"] = self._parse_availability(fields["availability"])
            except ParseError as e:
                e.kind, e.name = kind.value, name
                raise

        return DESIRED_STATE_TYPES[kind](name=name, **fields)

    def parse_sections(
        self,
        manifest: dict[str, Any],
        defaults: Optional[dict[str, dict]] = None,
    ) -> list[DesiredState]:
        """
        Parse the ``slaves`` / ``jobs`` / ``nodes`` sections of a manifest.

        Args:
            manifest: Loaded manifest dict
            defaults: Per-kind attribute defaults, merged under each declaration

        Returns:
            Desired states in manifest order (slaves, then jobs, then nodes)
        """
        defaults = defaults or {}
        resources = []

        for section, kind in SECTIONS.items():
            declared = manifest.get(section) or {}
            if not isinstance(declared, dict):
                raise ParseError(f"Section '{section}' must be a mapping of name -> attributes")

            kind_defaults = defaults.get(kind.value) or {}
            for name, config in declared.items():
                if config is not None and not isinstance(config, dict):
                    raise ParseError(
                        f"Declaration must be a mapping, got {type(config).__name__}",
                        kind=kind.value,
                        name=str(name),
                    )
                merged = dict(kind_defaults)
                merged.update(config or {})
                resources.append(self.parse(kind, name, merged))

        return resources

    def _resolve_path(self, kind: ResourceKind, name: str, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ParseError(
                f"config must be a file path, got {value!r}",
                kind=kind.value,
                name=name,
            )
        path = Path(value).expanduser()
        if not path.is_absolute() and self.base_dir is not None:
            path = self.base_dir / path
        return str(path)

    def _parse_launcher(self, value: Any) -> Launcher:
        """
        Parse a launcher declaration.

        Examples:
            "jnlp" -> JNLPLauncher()
            {"type": "ssh", "host": "10.0.0.5"} -> SSHLauncher(host="10.0.0.5")
            {"type": "command", "command": "ssh a java -jar agent.jar"}
        """
        if isinstance(value, str):
            value = {"type": value}
        if not isinstance(value, dict):
            raise ParseError(f"Invalid launcher: {value!r}")

        options = dict(value)
        type_name = str(options.pop("type", LauncherType.JNLP.value)).lower()
        try:
            launcher_type = LauncherType(type_name)
        except ValueError:
            raise ParseError(
                f"Invalid launcher type: {type_name}. "
                f"Must be one of: {', '.join(t.value for t in LauncherType)}"
            )

        try:
            if launcher_type == LauncherType.JNLP:
                if options:
                    raise ParseError(f"jnlp launcher takes no options, got {sorted(options)}")
                return JNLPLauncher()
            if launcher_type == LauncherType.COMMAND:
                return CommandLauncher(**options)
            return SSHLauncher(**options)
        except TypeError as e:
            raise ParseError(f"Invalid {launcher_type.value} launcher options: {e}")

    def _parse_availability(self, value: Any) -> Availability:
        """Parse ``always`` / ``demand`` or a dict with the demand delays."""
        if isinstance(value, str):
            value = {"type": value}
        if not isinstance(value, dict):
            raise ParseError(f"Invalid availability: {value!r}")

        options = dict(value)
        kind = options.pop("type", AvailabilityType.ALWAYS.value)
        try:
            return Availability(kind=kind, **options)
        except TypeError as e:
            raise ParseError(f"Invalid availability options: {e}")
