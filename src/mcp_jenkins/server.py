"""MCP Server for declarative Jenkins management.

Converges Jenkins build agents, nodes, and jobs onto a YAML manifest through
the Jenkins CLI, with dry-run previews and an audit trail.

Tools exposed:
- list_resources: List declared resources from the manifest
- probe_resource: Show the live state of an agent, node, or job
- reconcile_resource: Converge one resource (or run an imperative action)
- apply_manifest: Converge every declared resource
- preview_manifest: Dry-run of apply_manifest with a readable summary
- recent_changes: Read the audit trail
- bootstrap_cli: Download jenkins-cli.jar from the server
"""
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
    Resource,
)
from pydantic import AnyUrl

from .config.inventory import ResourceInventory
from .converge import ConfigParser, Reconciler, summarize_results
from .converge.errors import ConvergeError
from .converge.schema import ActionKind, ResourceKind
from .jenkins.bootstrap import ensure_cli_jar
from .utils.logging_config import setup_logging, timed_section
from .utils.audit_log import setup_audit_logging, get_recent_changes

logger = logging.getLogger(__name__)

# Global inventory (initialized on first use)
inventory: Optional[ResourceInventory] = None


def get_inventory() -> ResourceInventory:
    """Get or load the manifest ($BUTLERCRAFT_CONFIG or the search paths)."""
    global inventory
    if inventory is None:
        inventory = ResourceInventory()
    return inventory


def get_reconciler(inv: ResourceInventory, timeout: Optional[float] = None) -> Reconciler:
    return Reconciler(
        inv.get_executor(),
        timeout=timeout if timeout is not None else inv.server.timeout,
    )


def _json(data) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(data, indent=2))]


# Create MCP server
server = Server("butlercraft")

_KIND_SCHEMA = {
    "type": "string",
    "enum": [k.value for k in ResourceKind],
    "description": "Resource kind",
}

_ACTION_SCHEMA = {
    "type": "string",
    "enum": [a.value for a in ActionKind if a != ActionKind.NONE],
    "description": "Intent override (create/update/delete converge; the others always run)",
}


# === TOOLS ===

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="list_resources",
            description="List agents, nodes, and jobs declared in the manifest",
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": _KIND_SCHEMA,
                },
                "required": []
            }
        ),
        Tool(
            name="probe_resource",
            description="Read the live state of an agent, node, or job from Jenkins",
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": _KIND_SCHEMA,
                    "name": {
                        "type": "string",
                        "description": "Object name (e.g., 'agent-1', 'build-x')"
                    },
                    "include_raw": {
                        "type": "boolean",
                        "description": "Include the raw config.xml",
                        "default": False
                    }
                },
                "required": ["kind", "name"]
            }
        ),
        Tool(
            name="reconcile_resource",
            description=(
                "Converge one resource onto its declared state. Absent objects are "
                "created, present ones updated, delete is a no-op when already absent. "
                "Use dry_run=true to preview."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": _KIND_SCHEMA,
                    "name": {
                        "type": "string",
                        "description": "Resource name"
                    },
                    "action": _ACTION_SCHEMA,
                    "declaration": {
                        "type": "object",
                        "description": (
                            "Attributes for a resource not in the manifest "
                            "(same format as a manifest entry)"
                        )
                    },
                    "dry_run": {
                        "type": "boolean",
                        "description": "Report the decision without changing anything",
                        "default": False
                    },
                    "timeout": {
                        "type": "number",
                        "description": "Per-command timeout in seconds"
                    }
                },
                "required": ["kind", "name"]
            }
        ),
        Tool(
            name="apply_manifest",
            description="Converge every declared resource (optionally filtered)",
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": _KIND_SCHEMA,
                    "name": {
                        "type": "string",
                        "description": "Only resources with this name"
                    },
                    "dry_run": {
                        "type": "boolean",
                        "default": False
                    },
                    "max_concurrency": {
                        "type": "integer",
                        "description": "Concurrent passes",
                        "default": 1
                    }
                },
                "required": []
            }
        ),
        Tool(
            name="preview_manifest",
            description="Dry-run the manifest and return a readable summary of what would change",
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": _KIND_SCHEMA,
                    "name": {
                        "type": "string",
                        "description": "Only resources with this name"
                    }
                },
                "required": []
            }
        ),
        Tool(
            name="recent_changes",
            description="Get recent convergence decisions from the audit trail",
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": _KIND_SCHEMA,
                    "name": {
                        "type": "string",
                        "description": "Filter by resource name"
                    },
                    "action": {
                        "type": "string",
                        "description": "Filter by action"
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of records",
                        "default": 20
                    }
                },
                "required": []
            }
        ),
        Tool(
            name="bootstrap_cli",
            description="Download jenkins-cli.jar from the configured server if missing",
            inputSchema={
                "type": "object",
                "properties": {
                    "force": {
                        "type": "boolean",
                        "description": "Download even if the jar exists",
                        "default": False
                    }
                },
                "required": []
            }
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    target = f"{arguments.get('kind', '*')}/{arguments.get('name', '*')}"

    async with timed_section(f"tool:{name}", target=target):
        try:
            if name == "recent_changes":
                return await handle_recent_changes(
                    arguments.get("kind"),
                    arguments.get("name"),
                    arguments.get("action"),
                    arguments.get("limit", 20)
                )

            inv = get_inventory()

            if name == "list_resources":
                return await handle_list_resources(inv, arguments.get("kind"))

            elif name == "probe_resource":
                return await handle_probe_resource(
                    inv,
                    arguments["kind"],
                    arguments["name"],
                    arguments.get("include_raw", False)
                )

            elif name == "reconcile_resource":
                return await handle_reconcile_resource(inv, arguments)

            elif name == "apply_manifest":
                return await handle_apply_manifest(
                    inv,
                    arguments.get("kind"),
                    arguments.get("name"),
                    arguments.get("dry_run", False),
                    arguments.get("max_concurrency", 1)
                )

            elif name == "preview_manifest":
                return await handle_preview_manifest(
                    inv,
                    arguments.get("kind"),
                    arguments.get("name")
                )

            elif name == "bootstrap_cli":
                return await handle_bootstrap_cli(inv, arguments.get("force", False))

            else:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

        except ConvergeError as e:
            logger.warning(f"Tool {name} rejected: {e}")
            return _json({"success": False, "error": e.to_dict()})

        except Exception as e:
            logger.exception(f"Tool {name} failed")
            return [TextContent(type="text", text=f"Error: {str(e)}")]


# === TOOL HANDLERS ===

async def handle_list_resources(
    inv: ResourceInventory,
    kind: Optional[str] = None
) -> list[TextContent]:
    """List declared resources."""
    resources = []
    for desired in inv.get_resources(kind=kind):
        resources.append({
            "kind": desired.kind.value,
            "name": desired.name,
            "action": desired.action.value,
            "config": desired.config,
        })

    return _json({
        "server": inv.server.url,
        "resources": resources,
    })


async def handle_probe_resource(
    inv: ResourceInventory,
    kind: str,
    name: str,
    include_raw: bool = False
) -> list[TextContent]:
    """Probe the live state of one object."""
    current = await get_reconciler(inv).probe(ResourceKind(kind), name)

    data = current.to_dict()
    if include_raw:
        data["raw"] = current.raw
    return _json(data)


async def handle_reconcile_resource(inv: ResourceInventory, args: dict) -> list[TextContent]:
    """
    Converge one resource.

    The resource comes from the manifest unless ``declaration`` is given.
    """
    kind = ResourceKind(args["kind"])
    name = args["name"]

    declaration = args.get("declaration")
    if declaration is not None:
        parser = ConfigParser(base_dir=str(Path(inv.config_path).resolve().parent))
        desired = parser.parse(kind, name, declaration)
    else:
        desired = inv.get_resource(kind, name)

    reconciler = get_reconciler(inv, args.get("timeout"))
    result = await reconciler.reconcile(
        desired,
        dry_run=args.get("dry_run", False),
        action=args.get("action"),
    )
    return _json(result.to_dict())


async def handle_apply_manifest(
    inv: ResourceInventory,
    kind: Optional[str],
    name: Optional[str],
    dry_run: bool,
    max_concurrency: int = 1
) -> list[TextContent]:
    """
    Converge every declared resource.

    Each resource gets its own pass. Failures do not stop the others.
    """
    resources = inv.get_resources(kind=kind, name=name)
    results = await get_reconciler(inv).reconcile_all(
        resources,
        dry_run=dry_run,
        max_concurrency=max_concurrency,
    )

    return _json({
        "success": all(r.success for r in results),
        "dry_run": dry_run,
        "total": len(results),
        "changed": sum(1 for r in results if r.changed),
        "failed": sum(1 for r in results if not r.success),
        "results": [r.to_dict() for r in results],
    })


async def handle_preview_manifest(
    inv: ResourceInventory,
    kind: Optional[str],
    name: Optional[str]
) -> list[TextContent]:
    """Readable dry-run summary."""
    resources = inv.get_resources(kind=kind, name=name)
    results = await get_reconciler(inv).reconcile_all(resources, dry_run=True)
    return [TextContent(type="text", text=summarize_results(results))]


async def handle_recent_changes(
    kind: Optional[str] = None,
    name: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 20
) -> list[TextContent]:
    """Get recent decisions from the audit log."""
    records = get_recent_changes(kind=kind, name=name, action=action, limit=limit)

    formatted_records = []
    for r in records:
        formatted_records.append({
            "timestamp": r.timestamp,
            "kind": r.kind,
            "name": r.name,
            "action": r.action,
            "user": r.user,
            "dry_run": r.dry_run,
            "success": r.success,
            "command": r.command,
            "drift": r.drift,
            "error": r.error,
        })

    return _json({
        "total_records": len(formatted_records),
        "filters": {
            "kind": kind,
            "name": name,
            "action": action,
            "limit": limit,
        },
        "records": formatted_records,
    })


async def handle_bootstrap_cli(inv: ResourceInventory, force: bool) -> list[TextContent]:
    """Fetch jenkins-cli.jar."""
    path = await ensure_cli_jar(inv.server, force=force)
    return _json({"success": True, "cli_jar": str(path)})


# === RESOURCES ===

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    inv = get_inventory()
    resources = []

    for desired in inv.get_resources():
        resources.append(Resource(
            uri=AnyUrl(f"jenkins://{desired.kind.value}/{desired.name}"),
            name=f"{desired.kind.value} {desired.name}",
            description=f"Live state of {desired.kind.value} '{desired.name}'",
            mimeType="application/json",
        ))

    return resources


@server.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource."""
    # Parse URI: jenkins://kind/name
    uri_str = str(uri)
    if uri_str.startswith("jenkins://"):
        parts = uri_str[10:].split("/", 1)
        if len(parts) == 2 and parts[0] in {k.value for k in ResourceKind}:
            inv = get_inventory()
            result = await handle_probe_resource(inv, parts[0], parts[1])
            return result[0].text

    return json.dumps({"error": f"Unknown resource: {uri}"})


def main():
    """Run the MCP server."""
    setup_audit_logging()
    # stdout carries the MCP protocol
    setup_logging()

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
