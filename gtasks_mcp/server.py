import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import click
import mcp.types as types
from dotenv import load_dotenv
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from pydantic import AnyUrl

from . import __version__
from .actions import RESOURCE_URI_PREFIX, TaskResources, format_task_details
from .dispatcher import Dispatcher, ToolInvocation
from .errors import AuthorizationError, ConfigurationError, PersistenceError, ToolExecutionError
from .oauth import AuthManager
from .settings import GTasksSettings
from .task_api import TasksAPI

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def create_server(dispatcher: Dispatcher, resources: TaskResources) -> Server:
    """
    Create the MCP server.

    Tools are routed through the dispatcher; every task is also exposed as a
    ``gtasks:///<task id>`` resource.

    Args:
        dispatcher: Routes tool calls to actions and API endpoints
        resources: Lists and reads task resources
    """
    server: Server = Server("gtasks-mcp", version=__version__)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [types.Tool(**tool) for tool in dispatcher.list_tools()]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[types.TextContent]:
        response = await dispatcher.handle(ToolInvocation(name, dict(arguments or {})))
        if response.is_error:
            # The MCP server turns this into an isError result carrying our text
            raise ToolExecutionError(response.text)
        return [types.TextContent(type="text", text=response.text)]

    async def list_resources(request: types.ListResourcesRequest) -> types.ServerResult:
        cursor = request.params.cursor if request.params is not None else None
        tasks, next_cursor = await resources.list(cursor)
        logger.info(f"Listing {len(tasks)} task resources")
        listed = [
            types.Resource(
                uri=AnyUrl(f"{RESOURCE_URI_PREFIX}{task['id']}"),
                mimeType="text/plain",
                name=task.get("title") or task["id"],
            )
            for task in tasks
            if task.get("id")
        ]
        return types.ServerResult(
            types.ListResourcesResult(resources=listed, nextCursor=next_cursor)
        )

    # Registered on the request directly: the decorator form drops the cursor
    server.request_handlers[types.ListResourcesRequest] = list_resources

    @server.read_resource()
    async def read_resource(uri: AnyUrl) -> list[ReadResourceContents]:
        task = await resources.read(str(uri))
        return [ReadResourceContents(content=format_task_details(task), mime_type="text/plain")]

    return server


async def run_server(settings: GTasksSettings) -> None:
    """Load credentials and serve MCP over stdio until the host disconnects."""
    auth = AuthManager(settings)
    auth.load_stored_credentials()

    api = TasksAPI(
        auth.access_token,
        base_url=settings.api_base_url,
        timeout=settings.request_timeout,
    )
    dispatcher = Dispatcher(auth, api)
    server = create_server(dispatcher, TaskResources(api, dispatcher.executor))

    logger.info("=" * 60)
    logger.info(f"Google Tasks MCP server {__version__} starting on stdio")
    logger.info(f"Credentials file: {settings.credentials_path}")
    logger.info(f"OAuth key file: {settings.oauth_keys_path}")
    logger.info("=" * 60)

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await api.aclose()
        logger.info("Server stopped")


async def authenticate_and_save(settings: GTasksSettings) -> None:
    auth = AuthManager(settings)
    auth.configure()
    await auth.authorize_interactively()


def configure_logging(level: str) -> None:
    # stdout carries the MCP protocol, so logs go to stderr
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, stream=sys.stderr)


@click.group(invoke_without_command=True)
@click.option(
    "--credentials",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Credential file. Defaults to GTASKS_CREDENTIALS_PATH or .gtasks-server-credentials.json",
)
@click.option(
    "--keys",
    type=click.Path(dir_okay=False, path_type=Path),
    help="OAuth client key file. Defaults to GTASKS_OAUTH_KEYS_PATH or gcp-oauth.keys.json",
)
@click.option("--log-level", help="Logging level. Defaults to GTASKS_LOG_LEVEL or INFO")
@click.version_option(__version__)
@click.pass_context
def main(
    ctx: click.Context,
    credentials: Path | None = None,
    keys: Path | None = None,
    log_level: str | None = None,
) -> None:
    """
    Google Tasks MCP server.

    Runs the stdio server when no command is given.
    """
    load_dotenv()

    overrides: dict[str, Any] = {}
    if credentials is not None:
        overrides["credentials_path"] = credentials
    if keys is not None:
        overrides["oauth_keys_path"] = keys
    if log_level is not None:
        overrides["log_level"] = log_level
    settings = GTasksSettings().model_copy(update=overrides)

    configure_logging(settings.log_level)
    ctx.obj = settings

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)


@main.command()
@click.pass_obj
def serve(settings: GTasksSettings) -> None:
    """Serve MCP over stdio."""
    try:
        asyncio.run(run_server(settings))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        logger.error("Run 'gtasks-mcp auth' once the OAuth key file is in place")
        sys.exit(1)


@main.command()
@click.pass_obj
def auth(settings: GTasksSettings) -> None:
    """Run the browser OAuth flow and save credentials."""
    logger.info("Launching auth flow...")
    try:
        asyncio.run(authenticate_and_save(settings))
    except (ConfigurationError, AuthorizationError, PersistenceError) as e:
        logger.error(f"Authorization failed: {e}")
        sys.exit(1)
    click.echo(f"Credentials saved to {settings.credentials_path}. You can now run the server.")


if __name__ == "__main__":
    main()
