from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError


@dataclass
class DatabaseConfig:
    backend: str
    path: str | None = None
    attach: dict[str, str] = field(default_factory=dict)
    host: str | None = None
    http_path: str | None = None
    warehouse_id: str | None = None
    catalog: str | None = None


@dataclass
class OAuthConfig:
    client_id: str
    client_secret: str
    token_url: str
    scope: str | None = None


@dataclass
class ApiToken:
    token: str
    identity: str


@dataclass
class AuthConfig:
    tokens: list[ApiToken]
    oauth: OAuthConfig | None = None


@dataclass
class AccessConfig:
    allowed_schemas: list[str] = field(default_factory=list)
    excluded_schemas: list[str] = field(default_factory=list)
    excluded_tables: list[str] = field(default_factory=list)


@dataclass
class LimitsConfig:
    default_page_size: int = 100
    max_page_size: int = 1000
    query_timeout_seconds: int = 60
    max_concurrent_queries: int = 5


@dataclass
class CatalogConfig:
    eager_discovery: bool = False


@dataclass
class ServerConfig:
    cors_origins: list[str] = field(default_factory=list)
    mcp_enabled: bool = True


@dataclass
class ObservabilityConfig:
    log_level: str = "info"
    propagate_request_ids: bool = True


@dataclass
class AppConfig:
    database: DatabaseConfig
    auth: AuthConfig
    access: AccessConfig = field(default_factory=AccessConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)


_BACKENDS = {"sqlite", "databricks"}

# Hard ceiling on rows per page; max_page_size may lower it but not raise it.
PAGE_SIZE_CAP = 1000

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _resolve_env(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        expanded = os.path.expandvars(value)
        if expanded.startswith("${") and expanded.endswith("}"):
            key = expanded[2:-1]
            if key not in env:
                raise ConfigError(f"Environment variable {key} is required but not set")
            return env[key]
        return expanded
    if isinstance(value, list):
        return [_resolve_env(v, env) for v in value]
    if isinstance(value, dict):
        return {k: _resolve_env(v, env) for k, v in value.items()}
    return value


def _validate_positive(value: int, field_name: str) -> int:
    if value <= 0:
        raise ConfigError(f"{field_name} must be greater than 0")
    return value


def _validate_positive_or_unlimited(value: int, field_name: str) -> int:
    if value == -1:
        return value
    if value <= 0:
        raise ConfigError(f"{field_name} must be greater than 0 or -1 for no limit")
    return value


def _bool(raw: Mapping[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key, default)
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"{key} must be true or false, got {value!r}")


def _string_list(raw: Mapping[str, Any], key: str) -> list[str]:
    values = raw.get(key) or []
    if not isinstance(values, list):
        raise ConfigError(f"{key} must be a list")
    return [str(v) for v in values]


def _database(raw: Mapping[str, Any]) -> DatabaseConfig:
    backend = str(raw.get("backend", "sqlite")).lower()
    if backend not in _BACKENDS:
        raise ConfigError(f"Unsupported database backend: {backend}")

    attach = raw.get("attach") or {}
    if not isinstance(attach, dict):
        raise ConfigError("database.attach must map schema aliases to files")

    database = DatabaseConfig(
        backend=backend,
        path=raw.get("path"),
        attach={str(k): str(v) for k, v in attach.items()},
        host=raw.get("host"),
        http_path=raw.get("http_path"),
        warehouse_id=raw.get("warehouse_id"),
        catalog=raw.get("catalog"),
    )
    if backend == "sqlite" and not database.path:
        raise ConfigError("database.path is required for the sqlite backend")
    if backend == "databricks" and not (
        database.host and database.http_path and database.warehouse_id and database.catalog
    ):
        raise ConfigError(
            "Databricks host, http_path, warehouse_id, and catalog are required"
        )
    return database


def _auth(raw: Mapping[str, Any], backend: str) -> AuthConfig:
    tokens = []
    for entry in raw.get("tokens") or []:
        try:
            tokens.append(ApiToken(token=str(entry["token"]), identity=str(entry["identity"])))
        except (KeyError, TypeError) as exc:
            raise ConfigError("Each auth token needs a token and an identity") from exc
    if not tokens or not all(t.token for t in tokens):
        raise ConfigError("At least one non-empty API token must be configured")

    oauth = None
    oauth_raw = raw.get("oauth")
    if oauth_raw:
        try:
            oauth = OAuthConfig(
                client_id=oauth_raw["client_id"],
                client_secret=oauth_raw["client_secret"],
                token_url=oauth_raw["token_url"],
                scope=oauth_raw.get("scope"),
            )
        except KeyError as exc:
            raise ConfigError(f"Missing OAuth setting: {exc.args[0]}") from exc
        if not oauth.client_id or not oauth.client_secret or not oauth.token_url:
            raise ConfigError("OAuth client_id, client_secret, and token_url are required")
    if backend == "databricks" and oauth is None:
        raise ConfigError("auth.oauth is required for the databricks backend")
    return AuthConfig(tokens=tokens, oauth=oauth)


def load_config(path: str | Path, env: Mapping[str, str] | None = None) -> AppConfig:
    env = os.environ if env is None else env
    raw = yaml.safe_load(Path(path).read_text()) or {}
    resolved = _resolve_env(raw, env)

    try:
        database_raw = resolved["database"]
        auth_raw = resolved["auth"]
    except KeyError as exc:
        raise ConfigError(f"Missing config section: {exc.args[0]}") from exc
    access_raw = resolved.get("access") or {}
    limits_raw = resolved.get("limits") or {}
    catalog_raw = resolved.get("catalog") or {}
    server_raw = resolved.get("server") or {}
    observability_raw = resolved.get("observability") or {}

    database = _database(database_raw)
    auth = _auth(auth_raw, database.backend)

    access = AccessConfig(
        allowed_schemas=_string_list(access_raw, "allowed_schemas"),
        excluded_schemas=_string_list(access_raw, "excluded_schemas"),
        excluded_tables=_string_list(access_raw, "excluded_tables"),
    )

    limits = LimitsConfig(
        default_page_size=_validate_positive(
            int(limits_raw.get("default_page_size", 100)), "default_page_size"
        ),
        max_page_size=_validate_positive(
            int(limits_raw.get("max_page_size", PAGE_SIZE_CAP)), "max_page_size"
        ),
        query_timeout_seconds=_validate_positive_or_unlimited(
            int(limits_raw.get("query_timeout_seconds", 60)), "query_timeout_seconds"
        ),
        max_concurrent_queries=_validate_positive(
            int(limits_raw.get("max_concurrent_queries", 5)), "max_concurrent_queries"
        ),
    )
    if limits.max_page_size > PAGE_SIZE_CAP:
        raise ConfigError(f"max_page_size cannot exceed {PAGE_SIZE_CAP}")
    if limits.default_page_size > limits.max_page_size:
        raise ConfigError("default_page_size cannot exceed max_page_size")

    catalog = CatalogConfig(eager_discovery=_bool(catalog_raw, "eager_discovery", False))
    server = ServerConfig(
        cors_origins=_string_list(server_raw, "cors_origins"),
        mcp_enabled=_bool(server_raw, "mcp_enabled", True),
    )
    observability = ObservabilityConfig(
        log_level=str(observability_raw.get("log_level", "info")),
        propagate_request_ids=_bool(observability_raw, "propagate_request_ids", True),
    )

    return AppConfig(
        database=database,
        auth=auth,
        access=access,
        limits=limits,
        catalog=catalog,
        server=server,
        observability=observability,
    )
