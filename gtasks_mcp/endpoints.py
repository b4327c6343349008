"""
Declarative table of the Google Tasks API operations exposed as tools.

Each ``Operation`` is one remote call. Its ``EndpointDefinition`` says which
arguments are mandatory, whether the call takes a ``body`` payload, and how
to invoke it on a ``TasksAPI``. The table is fixed at import time.
"""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from .task_api import ApiResponse, TasksAPI

Invoke = Callable[[TasksAPI, dict[str, Any], Any], Awaitable[ApiResponse]]


class Operation(str, Enum):
    TASKLISTS_LIST = "tasklists.list"
    TASKLISTS_GET = "tasklists.get"
    TASKLISTS_INSERT = "tasklists.insert"
    TASKLISTS_UPDATE = "tasklists.update"
    TASKLISTS_PATCH = "tasklists.patch"
    TASKLISTS_DELETE = "tasklists.delete"
    TASKS_LIST = "tasks.list"
    TASKS_GET = "tasks.get"
    TASKS_INSERT = "tasks.insert"
    TASKS_UPDATE = "tasks.update"
    TASKS_PATCH = "tasks.patch"
    TASKS_DELETE = "tasks.delete"
    TASKS_CLEAR = "tasks.clear"
    TASKS_MOVE = "tasks.move"

    @property
    def tool_name(self) -> str:
        """Flat tool identifier, e.g. ``tasks.list`` -> ``tasks_list``."""
        return self.value.replace(".", "_")


@dataclass(frozen=True)
class EndpointDefinition:
    operation: Operation
    description: str
    invoke: Invoke
    required_params: frozenset[str] = frozenset()
    properties: Mapping[str, Mapping[str, Any]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    uses_body: bool = False

    @property
    def name(self) -> str:
        return self.operation.tool_name

    def input_schema(self) -> dict[str, Any]:
        properties = {name: dict(spec) for name, spec in self.properties.items()}
        if self.uses_body:
            properties["body"] = {"type": "object", "description": "Request body"}
        return {
            "type": "object",
            "properties": properties,
            "required": sorted(self.required_params),
        }


def _string(description: str) -> Mapping[str, Any]:
    return MappingProxyType({"type": "string", "description": description})


def _integer(description: str) -> Mapping[str, Any]:
    return MappingProxyType({"type": "integer", "description": description})


def _boolean(description: str) -> Mapping[str, Any]:
    return MappingProxyType({"type": "boolean", "description": description})


TASKLIST = _string("Task list ID")
TASK = _string("Task ID")
PAGING = {
    "maxResults": _integer("Maximum number of results per page"),
    "pageToken": _string("Token of the page to return"),
}


def _props(**props: Mapping[str, Any]) -> Mapping[str, Mapping[str, Any]]:
    return MappingProxyType(props)


_DEFINITIONS = (
    EndpointDefinition(
        Operation.TASKLISTS_LIST,
        "List all of the authenticated user's task lists",
        lambda api, params, body: api.tasklists.list(params),
        properties=_props(**PAGING),
    ),
    EndpointDefinition(
        Operation.TASKLISTS_GET,
        "Get a task list",
        lambda api, params, body: api.tasklists.get(params),
        required_params=frozenset({"tasklist"}),
        properties=_props(tasklist=TASKLIST),
    ),
    EndpointDefinition(
        Operation.TASKLISTS_INSERT,
        "Create a task list",
        lambda api, params, body: api.tasklists.insert(params, body),
        required_params=frozenset({"body"}),
        uses_body=True,
    ),
    EndpointDefinition(
        Operation.TASKLISTS_UPDATE,
        "Replace a task list",
        lambda api, params, body: api.tasklists.update(params, body),
        required_params=frozenset({"tasklist", "body"}),
        properties=_props(tasklist=TASKLIST),
        uses_body=True,
    ),
    EndpointDefinition(
        Operation.TASKLISTS_PATCH,
        "Partially update a task list",
        lambda api, params, body: api.tasklists.patch(params, body),
        required_params=frozenset({"tasklist", "body"}),
        properties=_props(tasklist=TASKLIST),
        uses_body=True,
    ),
    EndpointDefinition(
        Operation.TASKLISTS_DELETE,
        "Delete a task list",
        lambda api, params, body: api.tasklists.delete(params),
        required_params=frozenset({"tasklist"}),
        properties=_props(tasklist=TASKLIST),
    ),
    EndpointDefinition(
        Operation.TASKS_LIST,
        "List the tasks in a task list",
        lambda api, params, body: api.tasks.list(params),
        required_params=frozenset({"tasklist"}),
        properties=_props(
            tasklist=TASKLIST,
            showCompleted=_boolean("Include completed tasks"),
            showHidden=_boolean("Include hidden tasks"),
            showDeleted=_boolean("Include deleted tasks"),
            dueMin=_string("Lower bound for due date (RFC 3339)"),
            dueMax=_string("Upper bound for due date (RFC 3339)"),
            updatedMin=_string("Lower bound for last modification time (RFC 3339)"),
            **PAGING,
        ),
    ),
    EndpointDefinition(
        Operation.TASKS_GET,
        "Get a task",
        lambda api, params, body: api.tasks.get(params),
        required_params=frozenset({"tasklist", "task"}),
        properties=_props(tasklist=TASKLIST, task=TASK),
    ),
    EndpointDefinition(
        Operation.TASKS_INSERT,
        "Create a task",
        lambda api, params, body: api.tasks.insert(params, body),
        required_params=frozenset({"tasklist", "body"}),
        properties=_props(
            tasklist=TASKLIST,
            parent=_string("Parent task ID"),
            previous=_string("Previous sibling task ID"),
        ),
        uses_body=True,
    ),
    EndpointDefinition(
        Operation.TASKS_UPDATE,
        "Replace a task",
        lambda api, params, body: api.tasks.update(params, body),
        required_params=frozenset({"tasklist", "task", "body"}),
        properties=_props(tasklist=TASKLIST, task=TASK),
        uses_body=True,
    ),
    EndpointDefinition(
        Operation.TASKS_PATCH,
        "Partially update a task",
        lambda api, params, body: api.tasks.patch(params, body),
        required_params=frozenset({"tasklist", "task", "body"}),
        properties=_props(tasklist=TASKLIST, task=TASK),
        uses_body=True,
    ),
    EndpointDefinition(
        Operation.TASKS_DELETE,
        "Delete a task",
        lambda api, params, body: api.tasks.delete(params),
        required_params=frozenset({"tasklist", "task"}),
        properties=_props(tasklist=TASKLIST, task=TASK),
    ),
    EndpointDefinition(
        Operation.TASKS_CLEAR,
        "Clear all completed tasks from a task list",
        lambda api, params, body: api.tasks.clear(params),
        required_params=frozenset({"tasklist"}),
        properties=_props(tasklist=TASKLIST),
    ),
    EndpointDefinition(
        Operation.TASKS_MOVE,
        "Move a task to another position or task list",
        lambda api, params, body: api.tasks.move(params),
        required_params=frozenset({"tasklist", "task"}),
        properties=_props(
            tasklist=TASKLIST,
            task=TASK,
            parent=_string("New parent task ID"),
            previous=_string("New previous sibling task ID"),
            destinationTasklist=_string("Destination task list ID"),
        ),
    ),
)

REGISTRY: Mapping[Operation, EndpointDefinition] = MappingProxyType(
    {definition.operation: definition for definition in _DEFINITIONS}
)

_BY_TOOL_NAME: Mapping[str, Operation] = MappingProxyType(
    {operation.tool_name: operation for operation in Operation}
)


def resolve(tool_name: str) -> EndpointDefinition | None:
    """Look up the endpoint for a flat tool name."""
    operation = _BY_TOOL_NAME.get(tool_name)
    return REGISTRY[operation] if operation is not None else None
