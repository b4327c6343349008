"""Runtime settings for the Google Tasks MCP server."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

TASKS_SCOPE = "https://www.googleapis.com/auth/tasks"


class GTasksSettings(BaseSettings):
    """
    Settings for the Google Tasks MCP server.

    Every field can be overridden with a ``GTASKS_`` prefixed environment
    variable (e.g. ``GTASKS_CREDENTIALS_PATH``).
    """

    model_config = SettingsConfigDict(env_prefix="GTASKS_")

    # Files
    credentials_path: Path = Path(".gtasks-server-credentials.json")
    oauth_keys_path: Path = Path("gcp-oauth.keys.json")

    # Google endpoints
    scopes: list[str] = [TASKS_SCOPE]
    api_base_url: str = "https://tasks.googleapis.com/tasks/v1"
    auth_uri: str = "https://accounts.google.com/o/oauth2/v2/auth"
    token_uri: str = "https://oauth2.googleapis.com/token"

    # Timeouts (seconds)
    request_timeout: float = 30.0
    auth_timeout: float = 300.0

    # Used when the redirect URI in the key file carries no port
    default_auth_port: int = 3000

    log_level: str = "INFO"
