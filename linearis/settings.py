"""Settings resolution with token precedence chain and named workspace profiles."""

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_PATH = Path.home() / ".config" / "linearis" / "config.toml"
TOKEN_FILE = Path.home() / ".linear_api_token"

DEFAULT_ENDPOINT = "https://api.linear.app/graphql"


class LinearisSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LINEARIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_workspace: str | None = None  # profile name
    api_token: SecretStr | None = None
    default_team: str | None = None  # key, name or ID used when --team is omitted
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = 30.0
    page_size: int = 50  # max candidates fetched per lookup filter


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/linearis/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def _list_profiles(config: Mapping) -> list[str]:
    # tomlkit Table implements MutableMapping but not dict, so check Mapping
    return [k for k, v in config.items() if isinstance(v, Mapping)]


def _read_token_file() -> str | None:
    if not TOKEN_FILE.exists():
        return None
    return TOKEN_FILE.read_text().strip() or None


def get_settings(api_token: str | None = None, workspace: str | None = None) -> LinearisSettings:
    """Resolve the active workspace profile and return fully populated settings.

    Profile precedence: --workspace, LINEARIS_WORKSPACE, default_workspace in the
    config file, then the first profile defined there.

    Token precedence (highest to lowest):
    1. api_token argument (--api-token CLI flag)
    2. LINEAR_API_TOKEN env var
    3. ~/.linear_api_token file
    4. api_token in the active profile
    5. LINEARIS_API_TOKEN env var / .env
    """
    toml_config = _load_toml()

    active = (
        workspace
        or os.environ.get("LINEARIS_WORKSPACE")
        or toml_config.get("default_workspace")
        or ((_profiles := _list_profiles(toml_config)) and _profiles[0] or None)
    )

    profile_defaults: dict = {}
    if active:
        if active in toml_config and isinstance(toml_config[active], Mapping):
            profile_defaults = dict(toml_config[active])
        elif active not in toml_config:
            profiles = _list_profiles(toml_config)
            typer.echo(f"Profile '{active}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}", err=True)
            raise typer.Exit(1)

    settings = LinearisSettings(**profile_defaults)

    token = api_token or os.environ.get("LINEAR_API_TOKEN") or _read_token_file()
    if token:
        settings = settings.model_copy(update={"api_token": SecretStr(token)})

    if not settings.api_token:
        typer.echo(
            "No API token found. Use --api-token, LINEAR_API_TOKEN env var, ~/.linear_api_token file, "
            f"or api_token in the [{active or 'profile'}] section of {CONFIG_PATH}",
            err=True,
        )
        raise typer.Exit(1)

    return settings
