"""Configuration management with XDG paths, atomic writes, and credential sources.

This module handles the persistent configuration of the
``attach-credentials`` CLI:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.attach-credentials/`` on macOS and Windows. See
  :func:`get_config_dir` and :func:`get_data_dir`.
* **Settings** -- a single :class:`~attach_credentials.models.Settings`
  JSON file listing providers and the identity store location. Its path
  can be overridden with the ``ATTACH_CREDENTIALS_CONFIG`` environment
  variable.
* **Credential resolution** -- :func:`resolve_credential` reads client
  secrets from env vars, files, or interactive prompts.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so a crash never leaves a half-written identity store
behind.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Optional

from attach_credentials.exceptions import ConfigError
from attach_credentials.models import Settings

_APP_NAME = "attach-credentials"
_CONFIG_FILENAME = "config.json"
_STORE_FILENAME = "identities.json"
CONFIG_ENV_VAR = "ATTACH_CREDENTIALS_CONFIG"
STORE_ENV_VAR = "ATTACH_CREDENTIALS_STORE"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform follows the XDG Base Directory layout (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/attach-credentials/`` (default
    ``~/.config/attach-credentials/``). On macOS/Windows:
    ``~/.attach-credentials/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory holding the default identity store.

    On Linux/BSD: ``$XDG_DATA_HOME/attach-credentials/`` (default
    ``~/.local/share/attach-credentials/``). On macOS/Windows:
    ``~/.attach-credentials/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. When *mode* is
    given the permissions are applied before any content is written, so
    secrets are never world-readable, even momentarily.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Settings ---


def settings_path(override: Optional[str] = None) -> Path:
    """Path to the settings file: *override* > ``$ATTACH_CREDENTIALS_CONFIG`` > default."""
    if override:
        return Path(override).expanduser()
    env_value = os.environ.get(CONFIG_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser()
    return get_config_dir() / _CONFIG_FILENAME


def load_settings(path: Optional[str] = None) -> Settings:
    """Load the CLI settings.

    Returns:
        The deserialised :class:`~attach_credentials.models.Settings`. If
        the file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    resolved = settings_path(path)
    if not resolved.is_file():
        return Settings()
    try:
        text = resolved.read_text(encoding="utf-8")
        return Settings.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid settings at {resolved}: {exc}") from exc


def save_settings(settings: Settings, path: Optional[str] = None) -> None:
    """Persist the settings atomically to disk."""
    data = settings.model_dump(mode="json")
    atomic_write(settings_path(path), json.dumps(data, indent=2) + "\n")


def store_path(settings: Settings) -> Path:
    """Resolve the identity store file: ``$ATTACH_CREDENTIALS_STORE`` > settings > data dir."""
    env_value = os.environ.get(STORE_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser()
    if settings.store_path:
        return Path(settings.store_path).expanduser()
    return get_data_dir() / _STORE_FILENAME


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a secret from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts user interactively (requires a TTY)

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Enter credential: ")

    raise ConfigError(f"Unknown credential source format: {source}")
