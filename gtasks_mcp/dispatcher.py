"""
Routing of tool invocations to curated actions and raw API endpoints.

Resolution order: the synthetic ``reauthorize`` tool, then the curated
actions, then the raw endpoint registry. Required parameters are checked
before anything touches the network.
"""

import json
import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field, is_dataclass
from typing import Any

from .actions import ACTIONS, ActionDefinition
from .endpoints import REGISTRY, EndpointDefinition, resolve
from .errors import ToolNotFoundError, ValidationError
from .oauth import AuthManager
from .retry import AuthRetryExecutor
from .task_api import TasksAPI

logger = logging.getLogger(__name__)

REAUTHORIZE_TOOL = "reauthorize"
REAUTHORIZE_MESSAGE = "Reauthorization complete. New credentials have been saved and loaded."


@dataclass
class ToolInvocation:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResponse:
    text: str
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"content": [{"type": "text", "text": self.text}], "isError": self.is_error}


def format_result(result: Any) -> str:
    """Render an operation result as text.

    The ``data`` payload is used when the result has one, the raw result
    otherwise. Strings pass through untouched.
    """
    payload = getattr(result, "data", None)
    if payload is None:
        payload = result
    if isinstance(payload, str):
        return payload
    if is_dataclass(payload) and not isinstance(payload, type):
        payload = asdict(payload)
    return json.dumps(payload, indent=2, default=str)


def validate_arguments(tool: str, required: Iterable[str], arguments: dict[str, Any]) -> None:
    for param in required:
        if arguments.get(param) is None:
            raise ValidationError(
                f"Missing required parameter '{param}' for tool '{tool}'",
                tool=tool,
                param=param,
            )


class Dispatcher:
    def __init__(
        self,
        auth: AuthManager,
        api: TasksAPI,
        executor: AuthRetryExecutor | None = None,
    ):
        self.auth = auth
        self.api = api
        self.executor = executor or AuthRetryExecutor(auth)

    def list_tools(self) -> list[dict[str, Any]]:
        """Discovery entries: ``{"name", "description", "inputSchema"}``."""
        tools = [
            {
                "name": action.name,
                "description": action.description,
                "inputSchema": dict(action.input_schema),
            }
            for action in ACTIONS.values()
        ]
        tools.extend(
            {
                "name": endpoint.name,
                "description": endpoint.description,
                "inputSchema": endpoint.input_schema(),
            }
            for endpoint in REGISTRY.values()
        )
        tools.append(
            {
                "name": REAUTHORIZE_TOOL,
                "description": "Re-run the Google OAuth flow and reload credentials",
                "inputSchema": {"type": "object", "properties": {}},
            }
        )
        return tools

    async def call(self, name: str, arguments: dict[str, Any] | None = None) -> str:
        """Run a tool and return its text output. Errors propagate."""
        arguments = dict(arguments or {})

        if name == REAUTHORIZE_TOOL:
            return await self._reauthorize()

        action = ACTIONS.get(name)
        if action is not None:
            return await self._call_action(action, arguments)

        endpoint = resolve(name)
        if endpoint is not None:
            return await self._call_endpoint(endpoint, arguments)

        raise ToolNotFoundError(name)

    async def handle(self, invocation: ToolInvocation) -> ToolResponse:
        """Run a tool, reporting any failure except an unknown name as text."""
        logger.info(f"=== {invocation.name} called ===")
        try:
            text = await self.call(invocation.name, invocation.arguments)
        except ToolNotFoundError:
            logger.error(f"Unknown tool requested: {invocation.name}")
            raise
        except Exception as e:
            logger.error(f"Exception in {invocation.name}: {e}", exc_info=True)
            return ToolResponse(text=f"Error: {e}", is_error=True)
        return ToolResponse(text=text)

    async def _reauthorize(self) -> str:
        await self.auth.authorize_interactively()
        return REAUTHORIZE_MESSAGE

    async def _call_action(self, action: ActionDefinition, arguments: dict[str, Any]) -> str:
        validate_arguments(action.name, action.required_params, arguments)
        return await action.handler(self.api, self.executor, arguments)

    async def _call_endpoint(self, endpoint: EndpointDefinition, arguments: dict[str, Any]) -> str:
        validate_arguments(endpoint.name, sorted(endpoint.required_params), arguments)

        body = arguments.pop("body", None) if endpoint.uses_body else None
        params = {k: v for k, v in arguments.items() if v is not None}

        result = await self.executor.run(lambda: endpoint.invoke(self.api, params, body))
        return format_result(result)
