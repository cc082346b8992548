"""Persistent user settings in a small SQLite key/value table."""

from __future__ import annotations

import logging
import os
import sqlite3
import tempfile
from contextlib import closing
from pathlib import Path
from typing import TYPE_CHECKING

import click

from nitrokit.commands.translation_sync import (
    DEFAULT_DELAY_SECONDS,
    DEFAULT_MESSAGES_DIR,
    DEFAULT_MODEL,
    DEFAULT_SOURCE_FILE,
    TranslationConfig,
)
from nitrokit.reporters.terminal import reporter

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

logger = logging.getLogger(__name__)

APP_NAME = "nitrokit"
DB_FILENAME = "nitrokit.db"

KEY_API_KEY = "gemini_api_key"
KEY_MODEL = "gemini_model"
KEY_DELAY = "translation_delay_seconds"
KEY_MESSAGES_DIR = "messages_dir"
KEY_SOURCE_FILE = "source_file"
KNOWN_KEYS = (KEY_API_KEY, KEY_MODEL, KEY_DELAY, KEY_MESSAGES_DIR, KEY_SOURCE_FILE)

GEMINI_MODELS = {"1": "gemini-1.5-flash", "2": "gemini-1.5-pro"}
MAX_DELAY_SECONDS = 60
_MASK_VISIBLE_CHARS = 8

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS config (
        id         INTEGER PRIMARY KEY,
        key        TEXT UNIQUE NOT NULL,
        value      TEXT NOT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
"""
_UPSERT = """
    INSERT INTO config (key, value) VALUES (?, ?)
    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
"""


class ConfigStoreError(Exception):
    """Raised when the settings database cannot be opened or written."""


def _is_writable_dir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    return os.access(path, os.W_OK)


def config_dir_candidates() -> list[Path]:
    """Where settings may live, in order of preference."""
    candidates = [Path.home() / ".config" / APP_NAME]
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        candidates.append(Path(xdg) / APP_NAME)
    candidates.append(Path.cwd() / f".{APP_NAME}")
    candidates.append(Path(tempfile.gettempdir()) / APP_NAME)
    return candidates


def get_config_dir(candidates: Sequence[Path] | None = None) -> Path:
    """First writable directory among *candidates*.

    Raises:
        ConfigStoreError: If none is writable.
    """
    for path in candidates or config_dir_candidates():
        if _is_writable_dir(path):
            return path
        logger.debug("Config dir not writable: %s", path)
    raise ConfigStoreError("No writable configuration directory found")


def mask_secret(value: str | None) -> str:
    """First eight characters followed by ``***``."""
    if not value:
        return "Not set"
    return f"{value[:_MASK_VISIBLE_CHARS]}***"


class ConfigStore:
    """Key/value settings backed by ``nitrokit.db``."""

    def __init__(self, config_dir: Path | None = None) -> None:
        self.config_dir = config_dir or get_config_dir()
        self.db_path = self.config_dir / DB_FILENAME
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
        except (OSError, sqlite3.Error) as exc:
            raise ConfigStoreError(f"Cannot open {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    def _execute(self, sql: str, params: tuple[str, ...] = ()) -> list[sqlite3.Row]:
        try:
            with closing(self._connect()) as conn, conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise ConfigStoreError(f"Config database error: {exc}") from exc

    def _init_db(self) -> None:
        self._execute(_SCHEMA)

    # ── CRUD ─────────────────────────────────────────────────────

    def get(self, key: str, default: str | None = None) -> str | None:
        rows = self._execute("SELECT value FROM config WHERE key = ?", (key,))
        return rows[0]["value"] if rows else default

    def set(self, key: str, value: str) -> None:
        """Insert or overwrite *key*."""
        self._execute(_UPSERT, (key, value))
        logger.debug("Stored %s", key)

    def delete(self, key: str) -> bool:
        """Remove *key*; returns True if it existed."""
        existed = self.get(key) is not None
        self._execute("DELETE FROM config WHERE key = ?", (key,))
        return existed

    def all(self) -> dict[str, str]:
        rows = self._execute("SELECT key, value FROM config ORDER BY key")
        return {row["key"]: row["value"] for row in rows}

    def count(self) -> int:
        return int(self._execute("SELECT COUNT(*) AS count FROM config")[0]["count"])

    def reset(self) -> None:
        """Delete every stored setting."""
        self._execute("DELETE FROM config")

    def is_first_run(self) -> bool:
        return self.count() == 0

    def __iter__(self) -> Iterator[str]:
        return iter(self.all())

    # ── Translation settings ─────────────────────────────────────

    def load_translation_config(self) -> TranslationConfig:
        """Stored translation settings; ``GEMINI_API_KEY`` fills a missing key."""
        delay_text = self.get(KEY_DELAY)
        try:
            delay = float(delay_text) if delay_text is not None else DEFAULT_DELAY_SECONDS
        except ValueError:
            logger.warning("Ignoring invalid %s: %r", KEY_DELAY, delay_text)
            delay = DEFAULT_DELAY_SECONDS
        return TranslationConfig(
            api_key=self.get(KEY_API_KEY) or os.environ.get("GEMINI_API_KEY", ""),
            model=self.get(KEY_MODEL) or DEFAULT_MODEL,
            delay_seconds=delay,
            messages_dir=self.get(KEY_MESSAGES_DIR) or DEFAULT_MESSAGES_DIR,
            source_file=self.get(KEY_SOURCE_FILE) or DEFAULT_SOURCE_FILE,
        )

    def save_translation_config(self, config: TranslationConfig) -> None:
        if config.api_key:
            self.set(KEY_API_KEY, config.api_key)
        self.set(KEY_MODEL, config.model)
        self.set(KEY_DELAY, f"{config.delay_seconds:g}")
        self.set(KEY_MESSAGES_DIR, config.messages_dir)
        self.set(KEY_SOURCE_FILE, config.source_file)

    def show(self) -> None:
        """Print the translation settings with the API key masked."""
        config = self.load_translation_config()
        reporter.print_key_value_table(
            "Current Configuration",
            {
                "Gemini API Key": mask_secret(config.api_key),
                "Gemini Model": config.model,
                "Translation Delay": f"{config.delay_seconds:g}s",
                "Messages Directory": config.messages_dir,
                "Source File": config.source_file,
                "Config Location": str(self.db_path),
            },
        )

    def interactive_setup(self) -> TranslationConfig | None:
        """Prompt for every translation setting and save them.

        Returns None when no API key is available.
        """
        reporter.print_banner("Nitrokit Configuration", "Translation sync settings")
        config = self.load_translation_config()

        api_key = prompt_api_key(self.get(KEY_API_KEY))
        if not api_key:
            reporter.print_error("API key is required for translation sync")
            return None
        config.api_key = api_key
        config.model = prompt_model(config.model)
        config.delay_seconds = prompt_delay(config.delay_seconds)
        config.messages_dir = prompt_messages_dir(config.messages_dir)
        config.source_file = prompt_source_file(config.source_file)

        try:
            self.save_translation_config(config)
        except ConfigStoreError as exc:
            reporter.print_warning(f"Could not save configuration: {exc}")
            reporter.print_info("The settings apply to this session only.")
            return config
        reporter.print_success("Configuration saved")
        reporter.print_info(f"Stored in: {self.config_dir}")
        return config


# ── Prompts ──────────────────────────────────────────────────────


def prompt_api_key(current: str | None) -> str | None:
    env_key = os.environ.get("GEMINI_API_KEY")
    if env_key:
        reporter.print_success("Using GEMINI_API_KEY from environment")
        return env_key

    label = f"Gemini API key [current: {mask_secret(current)}]" if current else "Gemini API key"
    answer = click.prompt(label, default="", show_default=False, hide_input=True).strip()
    if not answer and current:
        reporter.print_success("Keeping current API key")
        return current
    return answer or None


def prompt_model(current: str) -> str:
    reporter.console.print("\n[yellow]Available Gemini models:[/yellow]")
    reporter.console.print("  1. gemini-1.5-flash [dim](fast, cost-effective)[/dim]")
    reporter.console.print("  2. gemini-1.5-pro [dim](more accurate, slower)[/dim]")
    answer = click.prompt(f"Model [current: {current}]", default="", show_default=False).strip()
    if not answer:
        return current
    if answer in GEMINI_MODELS:
        return GEMINI_MODELS[answer]
    if answer.startswith("gemini"):
        return answer
    reporter.print_warning("Invalid model, keeping current")
    return current


def prompt_delay(current: float) -> float:
    answer = click.prompt(
        f"Delay between API calls in seconds [current: {current:g}]",
        default="",
        show_default=False,
    ).strip()
    if not answer:
        return current
    try:
        delay = int(answer)
    except ValueError:
        reporter.print_warning("Invalid number, keeping current value")
        return current
    if delay < 0 or delay > MAX_DELAY_SECONDS:
        reporter.print_warning(
            f"Delay must be 0-{MAX_DELAY_SECONDS} seconds, keeping current value"
        )
        return current
    return float(delay)


def prompt_messages_dir(current: str) -> str:
    answer = click.prompt(
        f"Messages directory [current: {current}]", default="", show_default=False
    ).strip()
    if not answer:
        return current
    if Path(answer).is_absolute():
        reporter.print_warning("Relative paths are recommended")
    return answer


def prompt_source_file(current: str) -> str:
    answer = click.prompt(
        f"Source file name [current: {current}]", default="", show_default=False
    ).strip()
    if not answer:
        return current
    if not answer.endswith(".json"):
        reporter.print_warning("Source file should have a .json extension")
    return answer
