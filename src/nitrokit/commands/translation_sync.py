"""i18n sync: fill missing keys in language JSON files with Gemini translations."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
import httpx

from nitrokit.reporters.terminal import reporter

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-1.5-flash"
DEFAULT_MESSAGES_DIR = "messages"
DEFAULT_SOURCE_FILE = "source.json"
DEFAULT_DELAY_SECONDS = 2.0
DEFAULT_TARGET_LANGUAGES = ("tr", "es", "fr", "de", "it")
BATCH_SIZE = 10

_HTTP_TIMEOUT_SECONDS = 60.0
_SEPARATOR = "||"
_GENERATION_CONFIG: dict[str, Any] = {
    "temperature": 0.3,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 2048,
}
_PROMPT_TEMPLATE = (
    "Translate the following key-value pairs to {language}. Keep the exact format with || "
    "separator and preserve any HTML tags, placeholders like {{appName}}, {{min}}, {{max}}, "
    "etc. Only translate the text content, not the keys or placeholders:\n\n{batch}"
)

# code -> (name, flag)
LANGUAGES: dict[str, tuple[str, str]] = {
    "tr": ("Turkish", "🇹🇷"),
    "en": ("English", "🇺🇸"),
    "es": ("Spanish", "🇪🇸"),
    "fr": ("French", "🇫🇷"),
    "de": ("German", "🇩🇪"),
    "it": ("Italian", "🇮🇹"),
    "pt": ("Portuguese", "🇵🇹"),
    "ru": ("Russian", "🇷🇺"),
    "ja": ("Japanese", "🇯🇵"),
    "ko": ("Korean", "🇰🇷"),
    "zh": ("Chinese", "🇨🇳"),
    "ar": ("Arabic", "🇸🇦"),
    "hi": ("Hindi", "🇮🇳"),
    "nl": ("Dutch", "🇳🇱"),
    "sv": ("Swedish", "🇸🇪"),
    "no": ("Norwegian", "🇳🇴"),
    "da": ("Danish", "🇩🇰"),
    "fi": ("Finnish", "🇫🇮"),
    "pl": ("Polish", "🇵🇱"),
    "cs": ("Czech", "🇨🇿"),
    "hu": ("Hungarian", "🇭🇺"),
    "ro": ("Romanian", "🇷🇴"),
    "bg": ("Bulgarian", "🇧🇬"),
    "hr": ("Croatian", "🇭🇷"),
    "sk": ("Slovak", "🇸🇰"),
    "sl": ("Slovenian", "🇸🇮"),
    "et": ("Estonian", "🇪🇪"),
    "lv": ("Latvian", "🇱🇻"),
    "lt": ("Lithuanian", "🇱🇹"),
    "uk": ("Ukrainian", "🇺🇦"),
    "he": ("Hebrew", "🇮🇱"),
    "th": ("Thai", "🇹🇭"),
    "vi": ("Vietnamese", "🇻🇳"),
    "id": ("Indonesian", "🇮🇩"),
    "ms": ("Malay", "🇲🇾"),
    "az": ("Azerbaijani", "🇦🇿"),
    "bs": ("Bosnian", "🇧🇦"),
    "ur": ("Urdu", "🇵🇰"),
    "uz": ("Uzbek", "🇺🇿"),
}


class TranslationError(Exception):
    """Raised for a missing source file, unreadable JSON or a failed API call."""


@dataclass
class TranslationConfig:
    """Settings for a sync run, usually loaded from the config store."""

    api_key: str
    """Gemini API key."""

    model: str = DEFAULT_MODEL
    """Gemini model name."""

    delay_seconds: float = DEFAULT_DELAY_SECONDS
    """Pause between languages."""

    messages_dir: str = DEFAULT_MESSAGES_DIR
    """Directory holding ``<code>.json`` files, relative to the project root."""

    source_file: str = DEFAULT_SOURCE_FILE
    """Source-language file inside ``messages_dir``."""


@dataclass(frozen=True)
class Language:
    """A target language."""

    code: str
    name: str
    flag: str

    @classmethod
    def from_code(cls, code: str) -> Language:
        name, flag = LANGUAGES.get(code, (code, "🌍"))
        return cls(code=code, name=name, flag=flag)

    @property
    def display(self) -> str:
        return f"{self.flag} {self.name} ({self.code})"


@dataclass
class SyncSummary:
    """Per-language results of a sync run."""

    translated: dict[str, int] = field(default_factory=dict)
    """Language code -> number of keys written."""

    failed: dict[str, str] = field(default_factory=dict)
    """Language code -> error message."""

    @property
    def total_translated(self) -> int:
        return sum(self.translated.values())


# ── Key utilities ────────────────────────────────────────────────


def extract_all_paths(data: dict[str, Any], prefix: str = "") -> list[str]:
    """Dotted paths of every leaf (non-object) value, in document order."""
    paths: list[str] = []
    for key, value in data.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            paths.extend(extract_all_paths(value, path))
        else:
            paths.append(path)
    return paths


def get_nested_value(data: dict[str, Any], path: str) -> Any | None:
    """Value at dotted *path*, or None if any segment is missing."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def set_nested_value(data: dict[str, Any], path: str, value: Any) -> None:
    """Set dotted *path*, creating (or replacing non-object) intermediates."""
    parts = path.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def find_missing_paths(source: dict[str, Any], target: dict[str, Any]) -> list[str]:
    """Leaf paths of *source* that *target* lacks."""
    return [p for p in extract_all_paths(source) if get_nested_value(target, p) is None]


def chunked(items: Sequence[str], size: int) -> Iterator[list[str]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def build_translation_batch(source: dict[str, Any], paths: Sequence[str]) -> str:
    """``path||text`` lines for the given source paths."""
    return "".join(f"{path}{_SEPARATOR}{get_nested_value(source, path)}\n" for path in paths)


def parse_translation_response(text: str, requested: Sequence[str]) -> dict[str, str]:
    """Map requested paths to translated text; unknown paths and blanks are dropped."""
    wanted = set(requested)
    translations: dict[str, str] = {}
    for line in text.splitlines():
        if _SEPARATOR not in line:
            continue
        path, value = line.split(_SEPARATOR, 1)
        path = path.strip().strip("`")
        value = value.strip()
        if path in wanted and value:
            translations[path] = value
    return translations


def read_json_file(path: Path) -> dict[str, Any]:
    """Load a JSON object from *path*.

    Raises:
        TranslationError: If the file is unreadable or not a JSON object.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise TranslationError(f"Could not read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TranslationError(f"{path} must contain a JSON object")
    return data


def write_json_file(path: Path, data: dict[str, Any]) -> None:
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


# ── Gemini ───────────────────────────────────────────────────────


class GeminiClient:
    """Minimal async client for the Gemini ``generateContent`` endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        *,
        timeout: float = _HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise TranslationError("Gemini API key is not configured")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{GEMINI_API_BASE}/models/{self.model}:generateContent"

    async def generate(self, prompt: str) -> str:
        """Send *prompt* and return the first candidate's text.

        Raises:
            TranslationError: On transport errors, non-2xx responses or an
                unexpected response shape.
        """
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": _GENERATION_CONFIG,
        }
        logger.debug("POST %s (%d chars)", self.endpoint, len(prompt))
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.endpoint, params={"key": self.api_key}, json=payload
                )
        except httpx.HTTPError as exc:
            raise TranslationError(f"Gemini request failed: {exc}") from exc

        if not response.is_success:
            raise TranslationError(f"Gemini API error: {response.text}")

        try:
            data = response.json()
            return str(data["candidates"][0]["content"]["parts"][0]["text"])
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise TranslationError("Unexpected Gemini response format") from exc

    async def translate_batch(self, batch: str, language: Language) -> str:
        return await self.generate(_PROMPT_TEMPLATE.format(language=language.name, batch=batch))


# ── Sync ─────────────────────────────────────────────────────────


class TranslationSync:
    """Brings every ``<code>.json`` in the messages directory up to date with the source."""

    def __init__(
        self,
        root: Path,
        config: TranslationConfig,
        client: GeminiClient | None = None,
        *,
        interactive: bool = True,
    ) -> None:
        self.root = root
        self.config = config
        self.client = client or GeminiClient(config.api_key, config.model)
        self.interactive = interactive

    @property
    def messages_dir(self) -> Path:
        return self.root / self.config.messages_dir

    @property
    def source_path(self) -> Path:
        return self.messages_dir / self.config.source_file

    def load_source(self) -> dict[str, Any]:
        if not self.source_path.is_file():
            raise TranslationError(f"Source file not found: {self.source_path}")
        return read_json_file(self.source_path)

    def discover_language_files(self) -> list[Language]:
        """Languages with an existing JSON file, sorted by code.

        Raises:
            TranslationError: If the messages directory is missing.
        """
        if not self.messages_dir.is_dir():
            raise TranslationError(f"Messages directory does not exist: {self.messages_dir}")
        codes = sorted(
            p.stem for p in self.messages_dir.glob("*.json") if p.name != self.config.source_file
        )
        return [Language.from_code(code) for code in codes]

    def get_target_languages(self, existing: list[Language]) -> list[Language]:
        """Existing languages plus any the user adds; defaults when there are none."""
        if not existing:
            defaults = [Language.from_code(code) for code in DEFAULT_TARGET_LANGUAGES]
            reporter.print_info(
                "No language files found, using defaults: "
                + ", ".join(lang.display for lang in defaults)
            )
            return defaults

        languages = list(existing)
        if self.interactive and click.confirm(
            "Would you like to add new languages?", default=False
        ):
            answer = click.prompt(
                "Language codes (comma-separated, e.g. pt,ja)", default="", show_default=False
            )
            known = {lang.code for lang in languages}
            for code in (c.strip().lower() for c in answer.split(",")):
                if code and code not in known:
                    known.add(code)
                    languages.append(Language.from_code(code))
        return languages

    async def process_language(self, language: Language, source: dict[str, Any]) -> int:
        """Translate the keys *language* is missing and save its file.

        Returns:
            Number of keys written.

        Raises:
            TranslationError: If the target file is unreadable or the API fails.
        """
        path = self.messages_dir / f"{language.code}.json"
        target = read_json_file(path) if path.exists() else {}

        missing = find_missing_paths(source, target)
        if not missing:
            reporter.print_success(f"{language.display} is up to date")
            return 0

        reporter.print_step(f"{language.display}: {len(missing)} missing keys")
        written = 0
        text_paths = []
        for p in missing:
            value = get_nested_value(source, p)
            if isinstance(value, str):
                text_paths.append(p)
            else:
                set_nested_value(target, p, value)
                written += 1

        for batch_paths in chunked(text_paths, BATCH_SIZE):
            response = await self.client.translate_batch(
                build_translation_batch(source, batch_paths), language
            )
            translations = parse_translation_response(response, batch_paths)
            for p, value in translations.items():
                set_nested_value(target, p, value)
            written += len(translations)
            skipped = len(batch_paths) - len(translations)
            if skipped:
                reporter.print_warning(f"{skipped} keys came back untranslated")

        if written:
            write_json_file(path, target)
            reporter.print_success(f"{language.display}: wrote {written} keys to {path.name}")
        return written

    async def run(self) -> SyncSummary:
        """Process every target language, pausing between them."""
        if not self.messages_dir.exists():
            reporter.print_info(f"Creating messages directory: {self.messages_dir}")
            self.messages_dir.mkdir(parents=True)
        source = self.load_source()
        languages = self.get_target_languages(self.discover_language_files())
        reporter.print_info(
            f"Source: {self.source_path} ({len(extract_all_paths(source))} keys), "
            f"model: {self.config.model}"
        )

        summary = SyncSummary()
        for index, language in enumerate(languages):
            if index and self.config.delay_seconds > 0:
                await asyncio.sleep(self.config.delay_seconds)
            try:
                summary.translated[language.code] = await self.process_language(language, source)
            except TranslationError as exc:
                summary.failed[language.code] = str(exc)
                reporter.print_error(f"{language.display}: {exc}")

        print_sync_summary(summary)
        return summary


def print_sync_summary(summary: SyncSummary) -> None:
    reporter.console.print()
    if summary.failed:
        reporter.print_warning(
            f"Translated {summary.total_translated} keys; "
            f"{len(summary.failed)} languages failed: {', '.join(summary.failed)}"
        )
    else:
        reporter.print_success(
            f"Translated {summary.total_translated} keys across {len(summary.translated)} languages"
        )
