# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Configuration for the marketplace bot.

Configuration is loaded from a YAML file.  The default location follows
the XDG Base Directory Specification:

    ``$XDG_CONFIG_HOME/bazaar/bazaar.yaml``
    (typically ``~/.config/bazaar/bazaar.yaml``)

``!env`` tags resolve values from environment variables, after ``.env``
files have been loaded (see ``bazaar.dotenv_loader``).  Example::

    slack:
      bot_token: !env SLACK_BOT_TOKEN
      app_token: !env SLACK_APP_TOKEN
      staff:
        - workspace_admins: true
    channels:
      listings: !env LISTINGS_CHANNEL_ID
      create: !env CREATE_CHANNEL_ID
      audit: !env AUDIT_CHANNEL_ID
    lifecycle:
      archive_after_days: 7
      delete_after_days: 30
      bump_cooldown_hours: 24
      sweep_interval_minutes: 60
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, overload

import yaml
from platformdirs import user_config_path, user_state_path

from bazaar.dotenv_loader import load_dotenv_once
from bazaar.logging import SecretFilter


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "bazaar"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})

_HOUR = 60 * 60
_DAY = 24 * _HOUR


def get_config_path() -> Path:
    """Return the default config file path (``~/.config/bazaar/bazaar.yaml``)."""
    return user_config_path(_APP_NAME) / "bazaar.yaml"


def get_dotenv_path() -> Path:
    """Return the ``.env`` path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


def get_state_dir() -> Path:
    """Return the default state directory (``~/.local/state/bazaar``)."""
    return user_state_path(_APP_NAME)


class ConfigError(Exception):
    """Base exception for configuration errors."""


# ---------------------------------------------------------------------------
# YAML tag placeholders
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)  # type: ignore[arg-type]
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


# ---------------------------------------------------------------------------
# Value resolution
# ---------------------------------------------------------------------------


def _coerce_bool(value: object) -> bool:
    """Coerce a value to bool, handling string representations."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise ConfigError(f"Cannot convert {value!r} to bool")


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None if the value is None, or the env var is unset or empty.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name) or None
    if value is None:
        return None
    return str(value)


_MISSING = object()


@overload
def _resolve[T](value: object, coerce: type[T], *, default: T) -> T: ...


@overload
def _resolve[T](value: object, coerce: type[T], *, required: str) -> T: ...


@overload
def _resolve[T](value: object, coerce: type[T]) -> T | None: ...


def _resolve(
    value: object,
    coerce: type[Any],
    *,
    default: object = _MISSING,
    required: str = "",
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (``_EnvVar``, None, or a literal).
        coerce: Target type (``str``, ``int``, ``bool``, ``Path``).
        default: Default when the value is absent.
        required: Human-readable field name.  When set, a missing value
            raises ``ConfigError``.

    Returns:
        The resolved, coerced value, or None when optional and absent.

    Raises:
        ConfigError: If a required value is missing or coercion fails.
    """
    if not isinstance(value, _EnvVar) and value is not None:
        if coerce is bool:
            return _coerce_bool(value)
        if isinstance(value, coerce) and not isinstance(value, bool):
            return value

    resolved = _raw_resolve(value)

    if resolved is None:
        if required:
            if isinstance(value, _EnvVar):
                raise ConfigError(
                    f"Required config '{required}': environment variable "
                    f"'{value.var_name}' is not set"
                )
            raise ConfigError(f"Required config '{required}' is missing")
        if default is not _MISSING:
            return default
        return None

    if coerce is bool:
        return _coerce_bool(resolved)
    if coerce is Path:
        return Path(resolved).expanduser()
    try:
        return coerce(resolved)
    except ValueError as e:
        raise ConfigError(
            f"Cannot convert {resolved!r} to {coerce.__name__}"
        ) from e


def _section(raw: dict, key: str) -> dict:
    """Return a mapping sub-section of the config, empty if absent."""
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a YAML mapping")
    return value


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------


_VALID_STAFF_RULE_KEYS = frozenset({"workspace_admins", "user_group", "user_id"})


@dataclass(frozen=True)
class SlackConfig:
    """Slack connection settings.

    Attributes:
        bot_token: Bot token (xoxb-...) for API calls.
        app_token: App-level token (xapp-...) for Socket Mode.
        staff: Staff rules.  Each rule is a dict with exactly one key:
            ``workspace_admins`` (bool), ``user_group`` (str), or
            ``user_id`` (str).
    """

    bot_token: str
    app_token: str
    staff: list[dict[str, str | bool]] = field(
        default_factory=lambda: [{"workspace_admins": True}]
    )

    def __post_init__(self) -> None:
        """Register tokens for log redaction and validate staff rules.

        Raises:
            ConfigError: If configuration is invalid.
        """
        SecretFilter.register_secret(self.bot_token)
        SecretFilter.register_secret(self.app_token)
        if not self.staff:
            raise ConfigError("At least one staff rule is required")
        _validate_staff_rules(self.staff)


def _validate_staff_rules(rules: list[dict[str, str | bool]]) -> None:
    """Check that each staff rule is a single-key dict with a valid value."""
    for i, rule in enumerate(rules):
        if not isinstance(rule, dict) or len(rule) != 1:
            raise ConfigError(
                f"Staff rule {i}: must be a dict with exactly one key"
            )
        key = next(iter(rule))
        if key not in _VALID_STAFF_RULE_KEYS:
            raise ConfigError(
                f"Staff rule {i}: unknown key '{key}', "
                f"expected one of {sorted(_VALID_STAFF_RULE_KEYS)}"
            )
        value = rule[key]
        if key == "workspace_admins":
            if not isinstance(value, bool):
                raise ConfigError(
                    f"Staff rule {i}: workspace_admins must be a bool"
                )
        elif not isinstance(value, str) or not value:
            raise ConfigError(
                f"Staff rule {i}: {key} must be a non-empty string"
            )


@dataclass(frozen=True)
class LifecycleConfig:
    """Listing lifecycle thresholds.

    Attributes:
        archive_after_days: Inactivity before an active listing is
            auto-archived.
        delete_after_days: Time spent archived (or sold) before the
            listing is auto-deleted.
        bump_cooldown_hours: Minimum time between bumps by anyone other
            than the author.
        sweep_interval_minutes: Period of the background sweep.
    """

    archive_after_days: int = 7
    delete_after_days: int = 30
    bump_cooldown_hours: int = 24
    sweep_interval_minutes: int = 60

    def __post_init__(self) -> None:
        for name in (
            "archive_after_days",
            "delete_after_days",
            "sweep_interval_minutes",
        ):
            if getattr(self, name) < 1:
                raise ConfigError(
                    f"{name} must be >= 1: {getattr(self, name)}"
                )
        if self.bump_cooldown_hours < 0:
            raise ConfigError(
                f"bump_cooldown_hours must be >= 0: {self.bump_cooldown_hours}"
            )

    @property
    def archive_after_seconds(self) -> float:
        return float(self.archive_after_days * _DAY)

    @property
    def delete_after_seconds(self) -> float:
        return float(self.delete_after_days * _DAY)

    @property
    def bump_cooldown_seconds(self) -> float:
        return float(self.bump_cooldown_hours * _HOUR)

    @property
    def sweep_interval_seconds(self) -> float:
        return float(self.sweep_interval_minutes * 60)


@dataclass(frozen=True)
class BotConfig:
    """Complete bot configuration.

    Attributes:
        slack: Slack connection settings.
        listings_channel_id: Channel that hosts listing threads.
        create_channel_id: Channel holding the persistent "Create
            Listing" button.
        audit_channel_id: Optional channel for the audit log.
        lifecycle: Archive/delete/bump thresholds.
        state_dir: Directory for the listing store.
    """

    slack: SlackConfig
    listings_channel_id: str
    create_channel_id: str
    audit_channel_id: str | None = None
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    state_dir: Path = field(default_factory=get_state_dir)

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "BotConfig":
        """Load configuration from a YAML file.

        ``.env`` files are loaded first so ``!env`` tags can see them.

        Args:
            config_path: Path to the YAML file.  Defaults to
                ``~/.config/bazaar/bazaar.yaml`` (XDG).

        Returns:
            BotConfig instance.

        Raises:
            ConfigError: If the file is missing or values are invalid.
        """
        load_dotenv_once()

        if config_path is None:
            config_path = get_config_path()

        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            try:
                raw = yaml.load(f, Loader=_make_loader())
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        config = cls._from_raw(raw)
        logger.info(
            "Config loaded: listings=%s archive=%dd delete=%dd cooldown=%dh",
            config.listings_channel_id,
            config.lifecycle.archive_after_days,
            config.lifecycle.delete_after_days,
            config.lifecycle.bump_cooldown_hours,
        )
        return config

    @classmethod
    def _from_raw(cls, raw: dict) -> "BotConfig":
        """Build config from parsed (but unresolved) YAML dict."""
        slack_raw = _section(raw, "slack")
        channels = _section(raw, "channels")
        lifecycle_raw = _section(raw, "lifecycle")

        staff_raw = slack_raw.get("staff")
        if staff_raw is None:
            staff: list[dict[str, str | bool]] = [{"workspace_admins": True}]
        elif isinstance(staff_raw, list):
            staff = [_resolve_rule(rule) for rule in staff_raw]
        else:
            raise ConfigError("'slack.staff' must be a list of rules")

        slack = SlackConfig(
            bot_token=_resolve(
                slack_raw.get("bot_token"), str, required="slack.bot_token"
            ),
            app_token=_resolve(
                slack_raw.get("app_token"), str, required="slack.app_token"
            ),
            staff=staff,
        )

        lifecycle = LifecycleConfig(
            archive_after_days=_resolve(
                lifecycle_raw.get("archive_after_days"), int, default=7
            ),
            delete_after_days=_resolve(
                lifecycle_raw.get("delete_after_days"), int, default=30
            ),
            bump_cooldown_hours=_resolve(
                lifecycle_raw.get("bump_cooldown_hours"), int, default=24
            ),
            sweep_interval_minutes=_resolve(
                lifecycle_raw.get("sweep_interval_minutes"), int, default=60
            ),
        )

        return cls(
            slack=slack,
            listings_channel_id=_resolve(
                channels.get("listings"), str, required="channels.listings"
            ),
            create_channel_id=_resolve(
                channels.get("create"), str, required="channels.create"
            ),
            audit_channel_id=_resolve(channels.get("audit"), str),
            lifecycle=lifecycle,
            state_dir=_resolve(
                raw.get("state_dir"), Path, default=get_state_dir()
            ),
        )


def _resolve_rule(rule: object) -> dict[str, str | bool]:
    """Resolve ``!env`` tags inside a single staff rule."""
    if not isinstance(rule, dict) or len(rule) != 1:
        # Let SlackConfig produce the indexed error message.
        return rule  # type: ignore[return-value]
    key, value = next(iter(rule.items()))
    if key == "workspace_admins":
        return {key: _resolve(value, bool, default=False)}
    return {key: _resolve(value, str, default="")}
