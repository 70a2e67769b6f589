"""
Configuration loading for fieldcompare.

The configuration is a YAML document with a top-level `comparator` key:

    comparator:
      batch_size: 1000
      batch_threshold: 5000
      parallel: true
      thread_pool_size: 8
      connections:
        - name: legacy
          url: postgresql://app@legacy-db:5432/crm
          password_env: LEGACY_DB_PASSWORD
        - name: warehouse
          dialect: sqlserver
          host: dw.internal
          database: dw
          vault_path: secret/fieldcompare/warehouse
      rules:
        - name: customer_email
          source_table: {connection: legacy, table: customers, schema: public}
          target_table: {connection: warehouse, table: dim_customer, schema: dbo}
          key_field: customer_id
          compare_field: email
          predicate: "deleted = 0"

The document is validated against CONFIG_SCHEMA, then cross-checked
(unique names, known connections, valid identifiers). Every problem is
raised as ConfigurationError before any rule runs.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl, unquote, urlsplit

import jsonschema
import yaml

from .errors import ConfigurationError, RuleNotFoundError
from .models import ComparisonRule, TableRef
from .sql.dialect import Dialect
from .sql.safety import validate_identifier

logger = logging.getLogger(__name__)

ENV_PREFIX = "FIELDCOMPARE_"

_TABLE_SCHEMA = {
    "type": "object",
    "required": ["connection", "table"],
    "properties": {
        "connection": {"type": "string", "minLength": 1},
        "table": {"type": "string", "minLength": 1},
        "schema": {"type": ["string", "null"]},
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA = {
    "type": "object",
    "required": ["comparator"],
    "properties": {
        "comparator": {
            "type": "object",
            "required": ["connections", "rules"],
            "properties": {
                "batch_size": {"type": "integer", "minimum": 1},
                "batch_threshold": {"type": "integer", "minimum": 0},
                "parallel": {"type": "boolean"},
                "thread_pool_size": {"type": "integer", "minimum": 1},
                "rule_timeout": {"type": ["number", "null"], "exclusiveMinimum": 0},
                "validate_schema": {"type": "boolean"},
                "max_retries": {"type": "integer", "minimum": 0},
                "retry_base_delay": {"type": "number", "minimum": 0},
                "connections": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["name"],
                        "properties": {
                            "name": {"type": "string", "minLength": 1},
                            "url": {"type": "string"},
                            "dialect": {"enum": [d.value for d in Dialect]},
                            "host": {"type": "string"},
                            "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                            "database": {"type": "string"},
                            "user": {"type": "string"},
                            "username": {"type": "string"},
                            "password": {"type": "string"},
                            "password_env": {"type": "string"},
                            "vault_path": {"type": "string"},
                            "connection_string": {"type": "string"},
                            "dsn": {"type": "string"},
                            "driver": {"type": "string"},
                            "min_pool_size": {"type": "integer", "minimum": 0},
                            "max_pool_size": {"type": "integer", "minimum": 1},
                            "options": {"type": "object"},
                        },
                        "additionalProperties": False,
                    },
                },
                "rules": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": [
                            "name", "source_table", "target_table",
                            "key_field", "compare_field",
                        ],
                        "properties": {
                            "name": {"type": "string", "minLength": 1},
                            "description": {"type": "string"},
                            "source_table": _TABLE_SCHEMA,
                            "target_table": _TABLE_SCHEMA,
                            "key_field": {"type": "string", "minLength": 1},
                            "compare_field": {"type": "string", "minLength": 1},
                            "predicate": {"type": ["string", "null"]},
                            "enabled": {"type": "boolean"},
                        },
                        "additionalProperties": False,
                    },
                },
            },
            "additionalProperties": False,
        },
    },
}


@dataclass(frozen=True)
class ComparatorSettings:
    """Engine-wide settings."""

    batch_size: int = 1000
    batch_threshold: int | None = None
    parallel: bool = True
    thread_pool_size: int = 10
    rule_timeout: float | None = None
    validate_schema: bool = False
    max_retries: int = 3
    retry_base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.thread_pool_size < 1:
            raise ConfigurationError(
                f"thread_pool_size must be >= 1, got {self.thread_pool_size}"
            )
        if self.batch_threshold is None:
            object.__setattr__(self, "batch_threshold", self.batch_size)
        elif self.batch_threshold < 0:
            raise ConfigurationError(
                f"batch_threshold must be >= 0, got {self.batch_threshold}"
            )
        if self.rule_timeout is not None and self.rule_timeout <= 0:
            raise ConfigurationError(f"rule_timeout must be > 0, got {self.rule_timeout}")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {self.max_retries}")


@dataclass(frozen=True)
class ConnectionConfig:
    """
    How to reach one named database.

    Credentials are resolved lazily (see resolve_credentials) so that loading a
    configuration never needs the secret store.
    """

    name: str
    dialect: Dialect
    host: str | None = None
    port: int | None = None
    database: str | None = None
    user: str | None = None
    password: str | None = field(default=None, repr=False)
    password_env: str | None = None
    vault_path: str | None = None
    connection_string: str | None = field(default=None, repr=False)
    dsn: str | None = None
    driver: str | None = None
    min_pool_size: int = 1
    max_pool_size: int = 10
    options: dict[str, Any] = field(default_factory=dict)

    def resolve_credentials(self) -> tuple[str | None, str | None]:
        """
        Resolve the password from, in order: inline value, environment
        variable, Vault. Vault may also supply the user name.

        Returns:
            (user, password)

        Raises:
            ConfigurationError: If a named environment variable is unset or
                the Vault secret cannot be read
        """
        if self.password is not None:
            return self.user, self.password

        if self.password_env:
            value = os.getenv(self.password_env)
            if value is None:
                raise ConfigurationError(
                    f"Connection '{self.name}': environment variable "
                    f"{self.password_env} is not set"
                )
            return self.user, value

        if self.vault_path:
            from .utils.vault_client import VaultClient

            try:
                secret = VaultClient().get_connection_credentials(self.vault_path)
            except Exception as e:
                raise ConfigurationError(
                    f"Connection '{self.name}': cannot read Vault secret "
                    f"{self.vault_path}: {e}"
                ) from e
            return self.user or secret["username"], secret["password"]

        return self.user, None


@dataclass
class ComparatorConfig:
    """A validated configuration: settings, named connections and rules."""

    settings: ComparatorSettings
    connections: dict[str, ConnectionConfig]
    rules: list[ComparisonRule]

    def get_rule(self, name: str) -> ComparisonRule:
        """
        Raises:
            RuleNotFoundError: If no rule has this name
        """
        for rule in self.rules:
            if rule.name == name:
                return rule
        raise RuleNotFoundError(name)

    def has_rule(self, name: str) -> bool:
        return any(rule.name == name for rule in self.rules)

    def enabled_rules(self) -> list[ComparisonRule]:
        return [rule for rule in self.rules if rule.enabled]

    def with_settings(self, **changes: Any) -> "ComparatorConfig":
        """Copy with some settings replaced (command-line overrides)."""
        return ComparatorConfig(
            settings=replace(self.settings, **changes),
            connections=self.connections,
            rules=self.rules,
        )


def parse_connection_url(url: str) -> dict[str, Any]:
    """
    Split a connection URL into dialect and connection fields.

    Accepts `scheme://[user[:password]@]host[:port][/database][?k=v]`, the
    same with a `jdbc:` prefix, JDBC SQL Server style `;databaseName=...`
    properties and Oracle thin `oracle:thin:@host:port/service` DSNs.
    """
    raw = url.strip()
    body = raw[len("jdbc:"):] if raw.lower().startswith("jdbc:") else raw
    dialect = Dialect.infer(body)

    if dialect == Dialect.ORACLE and ":@" in body:
        return {"dialect": dialect, "dsn": body.split(":@", 1)[1].lstrip("/")}

    props = {}
    if ";" in body:
        body, _, tail = body.partition(";")
        for item in tail.split(";"):
            key, sep, value = item.partition("=")
            if sep:
                props[key.strip().lower()] = value.strip()

    parts = urlsplit(body)
    if not parts.hostname:
        raise ConfigurationError(f"Cannot parse connection url: {url!r}")

    result: dict[str, Any] = {
        "dialect": dialect,
        "host": parts.hostname,
        "port": parts.port,
        "database": unquote(parts.path.lstrip("/")) or props.get("databasename")
        or props.get("database"),
    }
    if parts.username:
        result["user"] = unquote(parts.username)
    elif props.get("user"):
        result["user"] = props["user"]
    if parts.password:
        result["password"] = unquote(parts.password)
    elif props.get("password"):
        result["password"] = props["password"]

    query = dict(parse_qsl(parts.query))
    if query:
        result["options"] = query
    return result


def _build_connection(entry: dict[str, Any]) -> ConnectionConfig:
    name = entry["name"]
    values: dict[str, Any] = {}

    if entry.get("url"):
        values.update(parse_connection_url(entry["url"]))

    for key in ("host", "port", "database", "password", "password_env", "vault_path",
                "connection_string", "dsn", "driver"):
        if entry.get(key) is not None:
            values[key] = entry[key]
    user = entry.get("user") or entry.get("username")
    if user:
        values["user"] = user

    if entry.get("dialect"):
        dialect = Dialect(entry["dialect"])
    elif values.get("dialect") and values["dialect"] != Dialect.UNKNOWN:
        dialect = values["dialect"]
    else:
        dialect = Dialect.infer(entry.get("driver") or entry.get("connection_string"))
    values["dialect"] = dialect

    if dialect == Dialect.UNKNOWN:
        logger.warning(
            f"Connection '{name}': dialect could not be determined, "
            "falling back to LIMIT/OFFSET pagination"
        )

    options = dict(values.pop("options", {}))
    options.update(entry.get("options") or {})

    min_size = entry.get("min_pool_size", 1)
    max_size = entry.get("max_pool_size", 10)
    if min_size > max_size:
        raise ConfigurationError(
            f"Connection '{name}': min_pool_size {min_size} exceeds max_pool_size {max_size}"
        )

    return ConnectionConfig(
        name=name,
        min_pool_size=min_size,
        max_pool_size=max_size,
        options=options,
        **values,
    )


def _build_table(rule_name: str, side: str, entry: dict[str, Any]) -> TableRef:
    table = TableRef(
        connection_name=entry["connection"],
        table_name=entry["table"],
        schema=entry.get("schema") or None,
    )
    try:
        validate_identifier(table.table_name)
        if table.schema:
            validate_identifier(table.schema)
    except ValueError as e:
        raise ConfigurationError(f"Rule '{rule_name}' {side}: {e}") from e
    return table


def _build_rule(entry: dict[str, Any]) -> ComparisonRule:
    name = entry["name"]
    rule = ComparisonRule(
        name=name,
        description=entry.get("description", ""),
        source_table=_build_table(name, "source_table", entry["source_table"]),
        target_table=_build_table(name, "target_table", entry["target_table"]),
        key_field=entry["key_field"],
        compare_field=entry["compare_field"],
        predicate=entry.get("predicate"),
        enabled=entry.get("enabled", True),
    )
    try:
        validate_identifier(rule.key_field)
        validate_identifier(rule.compare_field)
    except ValueError as e:
        raise ConfigurationError(f"Rule '{name}': {e}") from e
    return rule


def apply_env_overrides(
    values: dict[str, Any], environ: dict[str, str] | None = None
) -> dict[str, Any]:
    """
    Overlay FIELDCOMPARE_* environment variables onto raw settings values.

    Recognized: BATCH_SIZE, BATCH_THRESHOLD, PARALLEL, THREAD_POOL_SIZE,
    RULE_TIMEOUT, MAX_RETRIES.
    """
    environ = os.environ if environ is None else environ
    converters = {
        "batch_size": int,
        "batch_threshold": int,
        "parallel": lambda v: v.strip().lower() in ("true", "1", "yes"),
        "thread_pool_size": int,
        "rule_timeout": float,
        "max_retries": int,
    }

    result = dict(values)
    for key, convert in converters.items():
        raw = environ.get(ENV_PREFIX + key.upper())
        if raw is None:
            continue
        try:
            result[key] = convert(raw)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid value for {ENV_PREFIX}{key.upper()}: {raw!r}"
            ) from e
        logger.info(f"Setting {key} overridden from environment: {result[key]}")
    return result


def parse_config(document: Any, apply_env: bool = True) -> ComparatorConfig:
    """
    Build a ComparatorConfig from an already-parsed document.

    Raises:
        ConfigurationError: On schema violations or failed cross-checks
    """
    try:
        jsonschema.validate(instance=document, schema=CONFIG_SCHEMA)
    except jsonschema.exceptions.ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigurationError(f"Invalid configuration at {location}: {e.message}") from e

    section = document["comparator"]

    connections: dict[str, ConnectionConfig] = {}
    for entry in section["connections"]:
        if entry["name"] in connections:
            raise ConfigurationError(f"Duplicate connection name: {entry['name']}")
        connections[entry["name"]] = _build_connection(entry)

    rules: list[ComparisonRule] = []
    seen_rules: set[str] = set()
    for entry in section["rules"]:
        rule = _build_rule(entry)
        if rule.name in seen_rules:
            raise ConfigurationError(f"Duplicate rule name: {rule.name}")
        seen_rules.add(rule.name)

        for table in (rule.source_table, rule.target_table):
            if table.connection_name not in connections:
                raise ConfigurationError(
                    f"Rule '{rule.name}' references unknown connection "
                    f"'{table.connection_name}'"
                )
        rules.append(rule)

    setting_keys = (
        "batch_size", "batch_threshold", "parallel", "thread_pool_size",
        "rule_timeout", "validate_schema", "max_retries", "retry_base_delay",
    )
    values = {key: section[key] for key in setting_keys if key in section}
    if apply_env:
        values = apply_env_overrides(values)
    settings = ComparatorSettings(**values)

    logger.info(
        f"Loaded configuration: {len(connections)} connections, {len(rules)} rules "
        f"({sum(r.enabled for r in rules)} enabled)"
    )
    return ComparatorConfig(settings=settings, connections=connections, rules=rules)


def load_config(path: str | Path, apply_env: bool = True) -> ComparatorConfig:
    """
    Read and validate a YAML configuration file.

    Raises:
        ConfigurationError: If the file is missing, not YAML, or invalid
    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            document = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Configuration file {path} is not valid YAML: {e}") from e

    return parse_config(document, apply_env=apply_env)
