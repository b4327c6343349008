"""Google Tasks MCP Server Package.

MCP server exposing the Google Tasks API, with OAuth credential refresh and
re-authorization handled transparently.
"""

__version__ = "0.1.0"

from gtasks_mcp.credentials import Credential, CredentialStore
from gtasks_mcp.dispatcher import Dispatcher, ToolInvocation, ToolResponse
from gtasks_mcp.endpoints import REGISTRY, Operation
from gtasks_mcp.oauth import AuthManager
from gtasks_mcp.retry import AuthRetryExecutor
from gtasks_mcp.settings import GTasksSettings
from gtasks_mcp.task_api import ApiResponse, TasksAPI

__all__ = [
    "ApiResponse",
    "AuthManager",
    "AuthRetryExecutor",
    "Credential",
    "CredentialStore",
    "Dispatcher",
    "GTasksSettings",
    "Operation",
    "REGISTRY",
    "TasksAPI",
    "ToolInvocation",
    "ToolResponse",
]
