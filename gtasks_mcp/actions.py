"""
Task-centric tools and resources built on top of the raw Tasks API.

These are the friendlier tools an agent normally reaches for (``search``,
``create``, ``move``, ...). They shape arguments, make one or more remote
calls through the ``AuthRetryExecutor`` and render the outcome as text.
"""

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

import httpx

from .errors import TasksApiError, is_auth_error
from .retry import AuthRetryExecutor
from .task_api import ApiResponse, TasksAPI

logger = logging.getLogger(__name__)

MAX_TASK_RESULTS = 100
RESOURCE_PAGE_SIZE = 10
DEFAULT_TASK_LIST = "@default"
RESOURCE_URI_PREFIX = "gtasks:///"

TaskFilters = dict[str, Any]


def _normalize_for_comparison(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.lower()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value).lower()
    if isinstance(value, list):
        return " ".join(_normalize_for_comparison(entry) for entry in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":")).lower()
    return str(value).lower()


def _matches_filters(task: dict[str, Any], filters: TaskFilters | None) -> bool:
    if not filters:
        return True
    for field, expected in filters.items():
        if field not in task:
            return False
        if _normalize_for_comparison(task[field]) != _normalize_for_comparison(expected):
            return False
    return True


def _matches_status(task: dict[str, Any], status: str | None) -> bool:
    return not status or task.get("status") == status


def _sanitize_filters(filters: Any) -> TaskFilters | None:
    if not isinstance(filters, dict):
        return None
    valid = {k: v for k, v in filters.items() if v is not None}
    return valid or None


def _items(response: ApiResponse) -> list[dict[str, Any]]:
    data = response.data
    if not isinstance(data, dict):
        return []
    return [item for item in data.get("items") or [] if isinstance(item, dict)]


def _without_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def format_task(task: dict[str, Any]) -> str:
    return (
        f"{task.get('title')}\n (Due: {task.get('due') or 'Not set'})"
        f" - Notes: {task.get('notes')}"
        f" - ID: {task.get('id')}"
        f" - Status: {task.get('status')}"
        f" - URI: {task.get('selfLink')}"
        f" - Hidden: {task.get('hidden')}"
        f" - Parent: {task.get('parent')}"
        f" - Deleted?: {task.get('deleted')}"
        f" - Completed Date: {task.get('completed')}"
        f" - Position: {task.get('position')}"
        f" - Updated Date: {task.get('updated')}"
        f" - ETag: {task.get('etag')}"
        f" - Links: {task.get('links')}"
        f" - Kind: {task.get('kind')}"
    )


def format_task_details(task: dict[str, Any]) -> str:
    """Multi-line rendering used for resource reads."""
    return "\n".join(
        [
            f"Title: {task.get('title') or 'No title'}",
            f"Status: {task.get('status') or 'Unknown'}",
            f"Due: {task.get('due') or 'Not set'}",
            f"Notes: {task.get('notes') or 'No notes'}",
            f"Hidden: {task.get('hidden') or 'Unknown'}",
            f"Parent: {task.get('parent') or 'Unknown'}",
            f"Deleted?: {task.get('deleted') or 'Unknown'}",
            f"Completed Date: {task.get('completed') or 'Unknown'}",
            f"Position: {task.get('position') or 'Unknown'}",
            f"ETag: {task.get('etag') or 'Unknown'}",
            f"Links: {task.get('links') or 'Unknown'}",
            f"Kind: {task.get('kind') or 'Unknown'}",
            f"Updated: {task.get('updated') or 'Unknown'}",
        ]
    )


def format_task_list(task_list: dict[str, Any]) -> str:
    return (
        f"{task_list.get('title')} (ID: {task_list.get('id')})"
        f" - Updated: {task_list.get('updated') or 'Unknown'}"
    )


class TaskActions:
    def __init__(self, api: TasksAPI, executor: AuthRetryExecutor):
        self.api = api
        self.run = executor.run

    async def _list(
        self,
        show_completed: bool = False,
        show_hidden: bool = False,
        task_list_id: str | None = None,
        status: str | None = None,
        filters: TaskFilters | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch tasks from one list, or from every list when none is given.

        A list whose fetch fails is logged and skipped so the others still
        come back.
        """
        base_params: dict[str, Any] = {"maxResults": MAX_TASK_RESULTS}
        if show_completed or status == "completed":
            base_params["showCompleted"] = True
        if show_hidden:
            base_params["showHidden"] = True

        def keep(task: dict[str, Any]) -> bool:
            return _matches_status(task, status) and _matches_filters(task, filters)

        if task_list_id:
            params = {"tasklist": task_list_id, **base_params}
            try:
                response = await self.run(lambda: self.api.tasks.list(params))
            except (TasksApiError, httpx.HTTPError) as e:
                logger.error(f"Error fetching tasks for list {task_list_id}: {e}")
                return []
            return [task for task in _items(response) if keep(task)]

        lists_response = await self.run(
            lambda: self.api.tasklists.list({"maxResults": MAX_TASK_RESULTS})
        )

        all_tasks: list[dict[str, Any]] = []
        for task_list in _items(lists_response):
            list_id = task_list.get("id")
            if not list_id:
                continue
            params = {"tasklist": list_id, **base_params}
            try:
                response = await self.run(lambda: self.api.tasks.list(params))
            except (TasksApiError, httpx.HTTPError) as e:
                logger.error(f"Error fetching tasks for list {list_id}: {e}")
                continue
            all_tasks.extend(task for task in _items(response) if keep(task))
        return all_tasks

    async def _list_from_arguments(self, args: dict[str, Any]) -> list[dict[str, Any]]:
        filters = _sanitize_filters(args.get("filters"))
        hidden_filter = filters.get("hidden") if filters else None
        show_hidden = bool(args.get("showHidden")) or hidden_filter in (True, "true")
        status = args.get("status") or (filters.get("status") if filters else None)
        if filters:
            filters = {k: v for k, v in filters.items() if k != "status"} or None

        return await self._list(
            show_completed=bool(args.get("showCompleted")),
            show_hidden=show_hidden,
            task_list_id=args.get("taskListId"),
            status=status,
            filters=filters,
        )

    async def list(self, args: dict[str, Any]) -> str:
        tasks = await self._list_from_arguments(args)
        listing = "\n".join(format_task(task) for task in tasks)
        return f"Found {len(tasks)} tasks:\n{listing}"

    async def search(self, args: dict[str, Any]) -> str:
        query = str(args["query"]).lower()
        tasks = await self._list_from_arguments(args)
        matches = [
            task
            for task in tasks
            if query in (task.get("title") or "").lower()
            or query in (task.get("notes") or "").lower()
        ]
        listing = "\n".join(format_task(task) for task in matches)
        return f"Found {len(matches)} matching tasks:\n{listing}"

    async def create(self, args: dict[str, Any]) -> str:
        task_list_id = args.get("taskListId") or DEFAULT_TASK_LIST
        body = _without_none(
            {"title": args["title"], "notes": args.get("notes"), "due": args.get("due")}
        )
        response = await self.run(
            lambda: self.api.tasks.insert({"tasklist": task_list_id}, body)
        )
        return f"Task created: {(response.data or {}).get('title')}"

    async def update(self, args: dict[str, Any]) -> str:
        task_list_id = args.get("taskListId") or DEFAULT_TASK_LIST
        task_id = args["id"]
        params = {"tasklist": task_list_id, "task": task_id}

        existing_response = await self.run(lambda: self.api.tasks.get(params))
        existing = existing_response.data or {}

        status = args.get("status")
        completed = existing.get("completed")
        if status == "completed" and existing.get("status") != "completed":
            completed = (
                datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
            )
        elif status == "needsAction" and existing.get("status") == "completed":
            completed = None

        def pick(field: str) -> Any:
            value = args.get(field)
            return value if value is not None else existing.get(field)

        body = _without_none(
            {
                "id": task_id,
                "title": pick("title"),
                "notes": pick("notes"),
                "status": pick("status"),
                "due": pick("due"),
                "links": pick("links"),
                "completed": completed,
                "etag": existing.get("etag"),
                "kind": existing.get("kind"),
                "selfLink": existing.get("selfLink"),
                "parent": existing.get("parent"),
                "position": existing.get("position"),
                "hidden": existing.get("hidden"),
                "deleted": existing.get("deleted"),
                "updated": existing.get("updated"),
            }
        )

        response = await self.run(lambda: self.api.tasks.update(params, body))
        return f"Task updated: {(response.data or {}).get('title')}"

    async def delete(self, args: dict[str, Any]) -> str:
        task_list_id = args.get("taskListId") or DEFAULT_TASK_LIST
        task_id = args["id"]
        await self.run(
            lambda: self.api.tasks.delete({"tasklist": task_list_id, "task": task_id})
        )
        return f"Task {task_id} deleted"

    async def clear(self, args: dict[str, Any]) -> str:
        task_list_id = args.get("taskListId") or DEFAULT_TASK_LIST
        await self.run(lambda: self.api.tasks.clear({"tasklist": task_list_id}))
        return f"Tasks from tasklist {task_list_id} cleared"

    async def move(self, args: dict[str, Any]) -> str:
        source = args["sourceTaskListId"]
        destination = args["destinationTaskListId"]
        task_id = args["taskId"]

        source_response = await self.run(
            lambda: self.api.tasks.get({"tasklist": source, "task": task_id})
        )
        source_task = source_response.data or {}

        copy = _without_none(
            {
                "title": source_task.get("title"),
                "notes": source_task.get("notes"),
                "due": source_task.get("due"),
                "status": source_task.get("status"),
            }
        )
        destination_response = await self.run(
            lambda: self.api.tasks.insert({"tasklist": destination}, copy)
        )
        await self.run(lambda: self.api.tasks.delete({"tasklist": source, "task": task_id}))

        new_id = (destination_response.data or {}).get("id")
        return (
            f'Task "{source_task.get("title")}" moved from {source} to {destination}. '
            f"New task ID: {new_id}"
        )


class TaskListActions:
    def __init__(self, api: TasksAPI, executor: AuthRetryExecutor):
        self.api = api
        self.run = executor.run

    async def list(self, args: dict[str, Any]) -> str:
        response = await self.run(
            lambda: self.api.tasklists.list({"maxResults": MAX_TASK_RESULTS})
        )
        task_lists = _items(response)
        listing = "\n".join(format_task_list(task_list) for task_list in task_lists)
        return f"Found {len(task_lists)} task lists:\n{listing}"

    async def create(self, args: dict[str, Any]) -> str:
        response = await self.run(
            lambda: self.api.tasklists.insert({}, {"title": args["title"]})
        )
        data = response.data or {}
        return f"Task list created: {data.get('title')} (ID: {data.get('id')})"

    async def update(self, args: dict[str, Any]) -> str:
        task_list_id = args["id"]
        body = {"id": task_list_id, "title": args["title"]}
        response = await self.run(
            lambda: self.api.tasklists.update({"tasklist": task_list_id}, body)
        )
        data = response.data or {}
        return f"Task list updated: {data.get('title')} (ID: {data.get('id')})"

    async def delete(self, args: dict[str, Any]) -> str:
        task_list_id = args["id"]
        await self.run(lambda: self.api.tasklists.delete({"tasklist": task_list_id}))
        return f"Task list {task_list_id} deleted"

    async def get(self, args: dict[str, Any]) -> str:
        task_list_id = args["id"]
        response = await self.run(lambda: self.api.tasklists.get({"tasklist": task_list_id}))
        return f"Task list details:\n{format_task_list(response.data or {})}"


class TaskResources:
    """Backs the ``gtasks:///<task id>`` MCP resources."""

    def __init__(self, api: TasksAPI, executor: AuthRetryExecutor):
        self.api = api
        self.run = executor.run

    async def list(self, cursor: str | None = None) -> tuple[list[dict[str, Any]], str | None]:
        """Return one page of tasks from every list, plus the cursor for the next page.

        The cursor is passed to each list as its ``pageToken``. The returned
        cursor is the last ``nextPageToken`` any list reported, or None.
        """
        lists_response = await self.run(
            lambda: self.api.tasklists.list({"maxResults": MAX_TASK_RESULTS})
        )
        all_tasks: list[dict[str, Any]] = []
        next_cursor = None
        for task_list in _items(lists_response):
            list_id = task_list.get("id")
            if not list_id:
                continue
            params: dict[str, Any] = {"tasklist": list_id, "maxResults": RESOURCE_PAGE_SIZE}
            if cursor:
                params["pageToken"] = cursor
            response = await self.run(lambda: self.api.tasks.list(params))
            all_tasks.extend(_items(response))
            if isinstance(response.data, dict) and response.data.get("nextPageToken"):
                next_cursor = response.data["nextPageToken"]
        return all_tasks, next_cursor

    async def read(self, uri: str) -> dict[str, Any]:
        task_id = uri.removeprefix(RESOURCE_URI_PREFIX)
        lists_response = await self.run(
            lambda: self.api.tasklists.list({"maxResults": MAX_TASK_RESULTS})
        )
        for task_list in _items(lists_response):
            list_id = task_list.get("id")
            if not list_id:
                continue
            params = {"tasklist": list_id, "task": task_id}
            try:
                response = await self.run(lambda: self.api.tasks.get(params))
            except TasksApiError as e:
                if is_auth_error(e):
                    raise
                # Not in this list, try the next one
                continue
            if isinstance(response.data, dict):
                return response.data

        raise TasksApiError(f"Task not found: {task_id}", http_status=404, code="NOT_FOUND")


@dataclass(frozen=True)
class ActionDefinition:
    """A curated tool: its discovery schema and the coroutine that runs it."""

    name: str
    description: str
    input_schema: Mapping[str, Any]
    handler: Callable[[TasksAPI, AuthRetryExecutor, dict[str, Any]], Awaitable[str]]

    @property
    def required_params(self) -> tuple[str, ...]:
        return tuple(self.input_schema.get("required", ()))


_LIST_PROPERTIES = {
    "showCompleted": {"type": "boolean", "description": "Include completed tasks in results"},
    "showHidden": {"type": "boolean", "description": "Include hidden tasks in results"},
    "taskListId": {"type": "string", "description": "Only look in this task list"},
    "status": {
        "type": "string",
        "enum": ["needsAction", "completed"],
        "description": "Only return tasks with this status",
    },
    "filters": {
        "type": "object",
        "description": "Field/value pairs a task must match (case-insensitive)",
    },
}


def _schema(properties: dict[str, Any], required: list[str] | None = None) -> Mapping[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return MappingProxyType(schema)


_ACTIONS = (
    ActionDefinition(
        "search",
        "Search for a task in Google Tasks",
        _schema(
            {"query": {"type": "string", "description": "Search query"}, **_LIST_PROPERTIES},
            ["query"],
        ),
        lambda api, executor, args: TaskActions(api, executor).search(args),
    ),
    ActionDefinition(
        "list",
        "List all tasks in Google Tasks",
        _schema(dict(_LIST_PROPERTIES)),
        lambda api, executor, args: TaskActions(api, executor).list(args),
    ),
    ActionDefinition(
        "create",
        "Create a new task in Google Tasks",
        _schema(
            {
                "taskListId": {"type": "string", "description": "Task list ID"},
                "title": {"type": "string", "description": "Task title"},
                "notes": {"type": "string", "description": "Task notes"},
                "due": {"type": "string", "description": "Due date (RFC 3339)"},
            },
            ["title"],
        ),
        lambda api, executor, args: TaskActions(api, executor).create(args),
    ),
    ActionDefinition(
        "update",
        "Update a task in Google Tasks",
        _schema(
            {
                "taskListId": {"type": "string", "description": "Task list ID"},
                "id": {"type": "string", "description": "Task ID"},
                "title": {"type": "string", "description": "Task title"},
                "notes": {"type": "string", "description": "Task notes"},
                "status": {
                    "type": "string",
                    "enum": ["needsAction", "completed"],
                    "description": "Task status (needsAction or completed)",
                },
                "due": {"type": "string", "description": "Due date (RFC 3339)"},
                "links": {
                    "type": "array",
                    "description": "Task links",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string", "description": "Link type"},
                            "description": {"type": "string", "description": "Link description"},
                            "link": {"type": "string", "description": "URL link"},
                        },
                    },
                },
            },
            ["id"],
        ),
        lambda api, executor, args: TaskActions(api, executor).update(args),
    ),
    ActionDefinition(
        "delete",
        "Delete a task in Google Tasks",
        _schema(
            {
                "taskListId": {"type": "string", "description": "Task list ID"},
                "id": {"type": "string", "description": "Task ID"},
            },
            ["id"],
        ),
        lambda api, executor, args: TaskActions(api, executor).delete(args),
    ),
    ActionDefinition(
        "clear",
        "Clear completed tasks from a Google Tasks task list",
        _schema(
            {"taskListId": {"type": "string", "description": "Task list ID"}},
            ["taskListId"],
        ),
        lambda api, executor, args: TaskActions(api, executor).clear(args),
    ),
    ActionDefinition(
        "move",
        "Move a task from one task list to another in Google Tasks",
        _schema(
            {
                "sourceTaskListId": {"type": "string", "description": "Source task list ID"},
                "destinationTaskListId": {
                    "type": "string",
                    "description": "Destination task list ID",
                },
                "taskId": {"type": "string", "description": "Task ID to move"},
            },
            ["sourceTaskListId", "destinationTaskListId", "taskId"],
        ),
        lambda api, executor, args: TaskActions(api, executor).move(args),
    ),
    ActionDefinition(
        "list-tasklists",
        "List all task lists in Google Tasks",
        _schema({}),
        lambda api, executor, args: TaskListActions(api, executor).list(args),
    ),
    ActionDefinition(
        "create-tasklist",
        "Create a new task list in Google Tasks",
        _schema({"title": {"type": "string", "description": "Task list title"}}, ["title"]),
        lambda api, executor, args: TaskListActions(api, executor).create(args),
    ),
    ActionDefinition(
        "update-tasklist",
        "Update a task list in Google Tasks",
        _schema(
            {
                "id": {"type": "string", "description": "Task list ID"},
                "title": {"type": "string", "description": "Task list title"},
            },
            ["id", "title"],
        ),
        lambda api, executor, args: TaskListActions(api, executor).update(args),
    ),
    ActionDefinition(
        "delete-tasklist",
        "Delete a task list in Google Tasks",
        _schema({"id": {"type": "string", "description": "Task list ID"}}, ["id"]),
        lambda api, executor, args: TaskListActions(api, executor).delete(args),
    ),
    ActionDefinition(
        "get-tasklist",
        "Get details of a specific task list in Google Tasks",
        _schema({"id": {"type": "string", "description": "Task list ID"}}, ["id"]),
        lambda api, executor, args: TaskListActions(api, executor).get(args),
    ),
)

ACTIONS: Mapping[str, ActionDefinition] = MappingProxyType(
    {action.name: action for action in _ACTIONS}
)
