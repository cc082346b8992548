"""Tests for Gemini-backed translation sync."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from unittest import mock

import httpx
import pytest

from nitrokit.commands.translation_sync import (
    BATCH_SIZE,
    GEMINI_API_BASE,
    LANGUAGES,
    GeminiClient,
    Language,
    TranslationConfig,
    TranslationError,
    TranslationSync,
    build_translation_batch,
    chunked,
    extract_all_paths,
    find_missing_paths,
    get_nested_value,
    parse_translation_response,
    read_json_file,
    set_nested_value,
)

if TYPE_CHECKING:
    from pathlib import Path

_SOURCE = {
    "app": {"title": "Nitrokit", "tagline": "Ship faster"},
    "auth": {"login": "Log in", "logout": "Log out"},
    "limits": {"max": 5},
}


class FakeClient:
    """Echoes each batch line back with a language prefix."""

    def __init__(self, *, drop: set[str] | None = None, fail_for: str | None = None) -> None:
        self.drop = drop or set()
        self.fail_for = fail_for
        self.batches: list[tuple[str, str]] = []

    async def translate_batch(self, batch: str, language: Language) -> str:
        self.batches.append((batch, language.code))
        if language.code == self.fail_for:
            raise TranslationError("Gemini API error: quota exceeded")
        lines = []
        for line in batch.splitlines():
            path, value = line.split("||", 1)
            if path not in self.drop:
                lines.append(f"{path}||[{language.code}] {value}")
        return "\n".join(lines)


def _write(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def _sync(
    root: Path, client: FakeClient, *, interactive: bool = False, **config: Any
) -> TranslationSync:
    cfg = TranslationConfig(api_key="test-key", delay_seconds=0, **config)
    return TranslationSync(root, cfg, client, interactive=interactive)  # type: ignore[arg-type]


# ── Path helpers ───────────────────────────────────────────────────


def test_extract_all_paths() -> None:
    assert extract_all_paths(_SOURCE) == [
        "app.title",
        "app.tagline",
        "auth.login",
        "auth.logout",
        "limits.max",
    ]


def test_get_and_set_nested_value() -> None:
    data: dict[str, Any] = {"a": {"b": "x"}, "c": "leaf"}

    assert get_nested_value(data, "a.b") == "x"
    assert get_nested_value(data, "a.missing") is None
    assert get_nested_value(data, "c.d") is None

    set_nested_value(data, "a.e.f", "new")
    set_nested_value(data, "c.d", "replaced")

    assert data == {"a": {"b": "x", "e": {"f": "new"}}, "c": {"d": "replaced"}}


def test_find_missing_paths() -> None:
    target = {"app": {"title": "Nitrokit"}, "auth": "not an object"}

    assert find_missing_paths(_SOURCE, target) == [
        "app.tagline",
        "auth.login",
        "auth.logout",
        "limits.max",
    ]


def _nested_document(depth: int) -> dict[str, Any]:
    """A document nested *depth* levels deep with a mix of leaf types."""
    leaves: list[Any] = ["text", 42, 1.5, True, ["a", "b"], None]
    doc: dict[str, Any] = {"leaf": leaves[(depth - 1) % len(leaves)]}
    for level in range(depth - 1, 0, -1):
        doc = {f"level{level}": doc, "sibling": leaves[level % len(leaves)], "label": "x"}
    return doc


@pytest.mark.parametrize("depth", [1, 2, 3, 4, 5, 6])
def test_paths_rebuild_document(depth: int) -> None:
    original = _nested_document(depth)
    paths = extract_all_paths(original)

    rebuilt: dict[str, Any] = {}
    for path in paths:
        set_nested_value(rebuilt, path, get_nested_value(original, path))

    assert rebuilt == original
    assert extract_all_paths(rebuilt) == paths
    assert max(path.count(".") for path in paths) == depth - 1


def test_chunked() -> None:
    assert list(chunked(["a", "b", "c"], 2)) == [["a", "b"], ["c"]]
    assert list(chunked([], 10)) == []


def test_build_and_parse_batch() -> None:
    batch = build_translation_batch(_SOURCE, ["app.title", "auth.login"])
    assert batch == "app.title||Nitrokit\nauth.login||Log in\n"

    response = (
        "Here you go:\n"
        "`app.title`||Nitrokit\n"
        "auth.login||  Giriş yap \n"
        "unexpected.key||nope\n"
        "auth.logout||\n"
    )
    assert parse_translation_response(response, ["app.title", "auth.login", "auth.logout"]) == {
        "app.title": "Nitrokit",
        "auth.login": "Giriş yap",
    }


def test_read_json_file_errors(tmp_path: Path) -> None:
    (tmp_path / "bad.json").write_text("{oops")
    (tmp_path / "list.json").write_text("[]")
    (tmp_path / "latin1.json").write_bytes(b'{"a": "\xff\xfe"}')

    with pytest.raises(TranslationError, match="Could not read"):
        read_json_file(tmp_path / "bad.json")
    with pytest.raises(TranslationError, match="must contain a JSON object"):
        read_json_file(tmp_path / "list.json")
    with pytest.raises(TranslationError, match="Could not read"):
        read_json_file(tmp_path / "latin1.json")


def test_language_from_code() -> None:
    assert len(LANGUAGES) == 39
    tr = Language.from_code("tr")
    assert tr.name == "Turkish"
    assert tr.display == "🇹🇷 Turkish (tr)"

    unknown = Language.from_code("xx")
    assert unknown.name == "xx"
    assert unknown.flag == "🌍"


# ── GeminiClient ───────────────────────────────────────────────────


def test_client_requires_api_key() -> None:
    with pytest.raises(TranslationError, match="API key is not configured"):
        GeminiClient("")


async def test_client_generate_success() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.url.params["key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"candidates": [{"content": {"parts": [{"text": "a||b"}]}}]}
        )

    client = GeminiClient("k123", "gemini-test", transport=httpx.MockTransport(handler))
    text = await client.translate_batch("a||x\n", Language.from_code("de"))

    assert text == "a||b"
    assert seen["path"] == "/v1beta/models/gemini-test:generateContent"
    assert seen["key"] == "k123"
    assert client.endpoint.startswith(GEMINI_API_BASE)
    prompt = seen["body"]["contents"][0]["parts"][0]["text"]
    assert "German" in prompt
    assert "a||x" in prompt
    assert seen["body"]["generationConfig"]["temperature"] == 0.3


async def test_client_api_error() -> None:
    transport = httpx.MockTransport(lambda _: httpx.Response(429, text="quota exceeded"))
    client = GeminiClient("k", transport=transport)

    with pytest.raises(TranslationError, match="Gemini API error: quota exceeded"):
        await client.generate("hi")


async def test_client_unexpected_shape() -> None:
    transport = httpx.MockTransport(lambda _: httpx.Response(200, json={"candidates": []}))
    client = GeminiClient("k", transport=transport)

    with pytest.raises(TranslationError, match="Unexpected Gemini response format"):
        await client.generate("hi")


async def test_client_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    client = GeminiClient("k", transport=httpx.MockTransport(handler))

    with pytest.raises(TranslationError, match="Gemini request failed"):
        await client.generate("hi")


# ── TranslationSync ────────────────────────────────────────────────


async def test_sync_fills_missing_keys(tmp_path: Path) -> None:
    messages = tmp_path / "messages"
    _write(messages / "source.json", _SOURCE)
    _write(messages / "tr.json", {"app": {"title": "Nitrokit", "tagline": "Daha hızlı"}})
    _write(messages / "de.json", _SOURCE)
    client = FakeClient()

    summary = await _sync(tmp_path, client).run()

    assert summary.translated == {"de": 0, "tr": 3}
    assert summary.failed == {}
    tr = json.loads((messages / "tr.json").read_text(encoding="utf-8"))
    assert tr["app"]["tagline"] == "Daha hızlı"
    assert tr["auth"] == {"login": "[tr] Log in", "logout": "[tr] Log out"}
    assert tr["limits"]["max"] == 5
    assert [code for _, code in client.batches] == ["tr"]


async def test_sync_uses_default_languages(tmp_path: Path) -> None:
    _write(tmp_path / "messages" / "source.json", {"hello": "Hello"})

    summary = await _sync(tmp_path, FakeClient()).run()

    assert sorted(summary.translated) == ["de", "es", "fr", "it", "tr"]
    assert (tmp_path / "messages" / "fr.json").exists()


async def test_sync_batches_large_sources(tmp_path: Path) -> None:
    source = {f"k{i}": f"value {i}" for i in range(BATCH_SIZE + 3)}
    _write(tmp_path / "messages" / "source.json", source)
    _write(tmp_path / "messages" / "es.json", {})
    client = FakeClient()

    summary = await _sync(tmp_path, client).run()

    assert summary.translated == {"es": BATCH_SIZE + 3}
    assert len(client.batches) == 2


async def test_sync_records_failures_and_untranslated(tmp_path: Path) -> None:
    messages = tmp_path / "messages"
    _write(messages / "source.json", _SOURCE)
    _write(messages / "fr.json", {})
    _write(messages / "it.json", {})
    client = FakeClient(drop={"auth.logout"}, fail_for="it")

    summary = await _sync(tmp_path, client).run()

    assert summary.failed == {"it": "Gemini API error: quota exceeded"}
    assert summary.translated == {"fr": 4}
    fr = json.loads((messages / "fr.json").read_text(encoding="utf-8"))
    assert "logout" not in fr["auth"]
    assert json.loads((messages / "it.json").read_text()) == {}


async def test_sync_skips_undecodable_language_file(tmp_path: Path) -> None:
    messages = tmp_path / "messages"
    _write(messages / "source.json", {"hello": "Hello"})
    (messages / "de.json").write_bytes(b'{"hello": "\xff\xfe"}')
    _write(messages / "fr.json", {})

    summary = await _sync(tmp_path, FakeClient()).run()

    assert list(summary.failed) == ["de"]
    assert summary.translated == {"fr": 1}
    assert json.loads((messages / "fr.json").read_text(encoding="utf-8")) == {
        "hello": "[fr] Hello"
    }


async def test_sync_custom_paths(tmp_path: Path) -> None:
    _write(tmp_path / "locales" / "en.json", {"hi": "Hi"})
    _write(tmp_path / "locales" / "ja.json", {})

    summary = await _sync(
        tmp_path, FakeClient(), messages_dir="locales", source_file="en.json"
    ).run()

    assert summary.translated == {"ja": 1}


async def test_missing_messages_dir_is_created(tmp_path: Path) -> None:
    sync = _sync(tmp_path, FakeClient())

    with pytest.raises(TranslationError, match="Source file not found"):
        await sync.run()

    assert (tmp_path / "messages").is_dir()


def test_discover_requires_directory(tmp_path: Path) -> None:
    with pytest.raises(TranslationError, match="Messages directory does not exist"):
        _sync(tmp_path, FakeClient()).discover_language_files()


def test_interactive_add_languages(tmp_path: Path) -> None:
    sync = _sync(tmp_path, FakeClient(), interactive=True)
    existing = [Language.from_code("tr")]

    with (
        mock.patch("nitrokit.commands.translation_sync.click.confirm", return_value=True),
        mock.patch(
            "nitrokit.commands.translation_sync.click.prompt", return_value="PT, tr, ja,,"
        ),
    ):
        languages = sync.get_target_languages(existing)

    assert [lang.code for lang in languages] == ["tr", "pt", "ja"]


def test_non_interactive_does_not_prompt(tmp_path: Path) -> None:
    sync = _sync(tmp_path, FakeClient())

    with mock.patch("nitrokit.commands.translation_sync.click.confirm") as confirm:
        languages = sync.get_target_languages([Language.from_code("es")])

    confirm.assert_not_called()
    assert [lang.code for lang in languages] == ["es"]


def test_default_client_requires_key(tmp_path: Path) -> None:
    with pytest.raises(TranslationError, match="API key"):
        TranslationSync(tmp_path, TranslationConfig(api_key=""))
