"""Release creation: bump the version, tag, push and publish a GitHub release."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from nitrokit.commands.release_notes import ReleaseNotesGenerator, is_prerelease
from nitrokit.commands.version_management import (
    BUMP_TYPES,
    bump_version,
    determine_bump_type,
    get_current_version,
    is_valid_version,
)
from nitrokit.config import ReleaseConfig
from nitrokit.detectors.project import FrameworkType, detect_framework, read_json_safe
from nitrokit.reporters.terminal import reporter
from nitrokit.utils.git import (
    GitHubAPI,
    GitHubAPIError,
    GitOperationError,
    ReleaseParams,
    add_files,
    commit,
    create_annotated_tag,
    get_current_branch,
    get_remote_url,
    get_repo_root,
    is_git_repository,
    is_working_tree_clean,
    parse_github_url,
    push,
    push_tag,
    tag_exists,
)
from nitrokit.utils.subprocess_runner import SubprocessError, run_subprocess

logger = logging.getLogger(__name__)

_TASK_TIMEOUT = 900.0
_CARGO_PACKAGE_VERSION_RE = re.compile(
    r'(\[package\][^\[]*?^version\s*=\s*")[^"]*(")', re.MULTILINE | re.DOTALL
)
_NODE_FRAMEWORKS = frozenset(
    {
        FrameworkType.NEXTJS,
        FrameworkType.ANGULAR,
        FrameworkType.NODEJS,
        FrameworkType.REACT,
        FrameworkType.VUE,
    }
)


class ReleaseError(Exception):
    """Raised when a release precondition or step fails."""


@dataclass
class ProjectConfig:
    """What the release process needs to know about the project."""

    framework: FrameworkType
    """Detected framework."""

    package_manager: str | None = None
    """npm, yarn, pnpm, cargo or composer."""

    has_tests: bool = False
    has_build: bool = False
    has_lint: bool = False

    version_file: str = ""
    """Manifest holding the version (package.json, Cargo.toml, composer.json)."""


@dataclass
class ReleaseTask:
    """A framework command run before tagging."""

    name: str
    command: list[str]


@dataclass
class ReleaseResult:
    """What create_release produced."""

    tag: str
    commit_sha: str | None = None
    release_url: str | None = None
    notes: str = ""
    warnings: list[str] = field(default_factory=list)


def _write_json(path: Path, data: dict[str, Any]) -> None:
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


class ReleaseManager:
    """Creates releases for the git repository at ``repo_path``."""

    def __init__(
        self, repo_path: Path | str | None = None, config: ReleaseConfig | None = None
    ) -> None:
        path = Path(repo_path) if repo_path else Path.cwd()
        if not is_git_repository(path):
            raise ReleaseError(
                f"Not a git repository: {path}. Initialize one with 'git init' first."
            )
        self.repo_path = get_repo_root(path)
        try:
            self.current_branch = get_current_branch(self.repo_path)
        except GitOperationError:
            self.current_branch = "HEAD"
        self.config = config or ReleaseConfig()
        self.project_config = self.detect_project_config(self.repo_path)

    # ── Detection ────────────────────────────────────────────────

    @staticmethod
    def detect_package_manager(root: Path) -> str | None:
        """Node package manager from lock files; npm for a bare package.json."""
        for lock_file, name in (
            ("pnpm-lock.yaml", "pnpm"),
            ("yarn.lock", "yarn"),
            ("package-lock.json", "npm"),
        ):
            if (root / lock_file).exists():
                return name
        if (root / "package.json").exists():
            return "npm"
        return None

    @staticmethod
    def get_package_scripts(root: Path) -> dict[str, str]:
        """``scripts`` from package.json (empty when missing)."""
        scripts = read_json_safe(root / "package.json").get("scripts")
        if not isinstance(scripts, dict):
            return {}
        return {str(k): str(v) for k, v in scripts.items()}

    @classmethod
    def detect_project_config(cls, root: Path) -> ProjectConfig:
        """Build the ProjectConfig for *root*."""
        framework = detect_framework(root)

        if framework is FrameworkType.RUST:
            return ProjectConfig(
                framework=framework,
                package_manager="cargo",
                has_tests=True,
                has_build=True,
                version_file="Cargo.toml",
            )

        if framework is FrameworkType.LARAVEL:
            return ProjectConfig(
                framework=framework,
                package_manager="composer",
                has_tests=(root / "phpunit.xml").exists() or (root / "tests").is_dir(),
                has_build=True,
                version_file="composer.json",
            )

        if framework in _NODE_FRAMEWORKS:
            scripts = cls.get_package_scripts(root)
            return ProjectConfig(
                framework=framework,
                package_manager=cls.detect_package_manager(root),
                has_tests=any(name == "test" or name.startswith("test:") for name in scripts),
                has_build="build" in scripts,
                has_lint="lint" in scripts,
                version_file="package.json",
            )

        version_file = "composer.json" if (root / "composer.json").exists() else ""
        return ProjectConfig(framework=framework, version_file=version_file)

    def has_package_script(self, name: str) -> bool:
        """True if package.json defines script *name*."""
        return name in self.get_package_scripts(self.repo_path)

    # ── Preconditions ────────────────────────────────────────────

    @staticmethod
    def validate_version(version: str) -> str:
        """Return the normalized ``vX.Y.Z[-pre]`` tag.

        Raises:
            ReleaseError: If *version* is not a semantic version.
        """
        if not version or not is_valid_version(version):
            raise ReleaseError(
                f"Version must be in format vX.Y.Z or vX.Y.Z-prerelease (got: {version!r})"
            )
        return version if version.startswith("v") else f"v{version}"

    def check_tag_exists(self, tag: str) -> None:
        """Raises ReleaseError if *tag* already exists."""
        if tag_exists(self.repo_path, tag):
            raise ReleaseError(f"Tag {tag} already exists")

    def check_working_directory_clean(self) -> None:
        """Raises ReleaseError if the work tree has uncommitted changes."""
        if not is_working_tree_clean(self.repo_path):
            raise ReleaseError(
                "Working directory has uncommitted changes. Commit or stash them first."
            )

    @staticmethod
    def is_prerelease_version(tag: str) -> bool:
        """True for alpha, beta, rc, pre and snapshot tags."""
        return is_prerelease(tag)

    @staticmethod
    def normalize_github_url(url: str) -> str:
        """Reduce an https or ssh GitHub URL to ``owner/repo``.

        Raises:
            ReleaseError: If *url* is not a GitHub repository URL.
        """
        owner, repo = parse_github_url(url)
        if not owner or not repo:
            raise ReleaseError(f"Not a GitHub repository URL: {url}")
        return f"{owner}/{repo}"

    # ── Version files ────────────────────────────────────────────

    def update_package_version(self, version: str) -> Path:
        """Set ``version`` in package.json."""
        return self._update_json_version("package.json", version)

    def update_composer_version(self, version: str) -> Path:
        """Set ``version`` in composer.json."""
        return self._update_json_version("composer.json", version)

    def _update_json_version(self, filename: str, version: str) -> Path:
        path = self.repo_path / filename
        if not path.is_file():
            raise ReleaseError(f"{filename} not found")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ReleaseError(f"Invalid {filename}: {exc}") from exc
        data["version"] = version.removeprefix("v")
        _write_json(path, data)
        logger.info("Updated %s to %s", filename, data["version"])
        return path

    def update_cargo_version(self, version: str) -> Path:
        """Set the ``[package]`` version in Cargo.toml."""
        path = self.repo_path / "Cargo.toml"
        if not path.is_file():
            raise ReleaseError("Cargo.toml not found")
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ReleaseError(f"Could not read Cargo.toml: {exc}") from exc
        updated, count = _CARGO_PACKAGE_VERSION_RE.subn(
            lambda m: f"{m.group(1)}{version.removeprefix('v')}{m.group(2)}", text, count=1
        )
        if count == 0:
            raise ReleaseError("No [package] version found in Cargo.toml")
        path.write_text(updated, encoding="utf-8")
        logger.info("Updated Cargo.toml to %s", version.removeprefix("v"))
        return path

    def update_version_file(self, version: str) -> Path | None:
        """Write *version* into whichever manifest the project uses."""
        version_file = self.project_config.version_file
        if version_file == "package.json":
            return self.update_package_version(version)
        if version_file == "Cargo.toml":
            return self.update_cargo_version(version)
        if version_file == "composer.json":
            return self.update_composer_version(version)
        return None

    # ── Framework tasks ──────────────────────────────────────────

    def framework_tasks(self) -> list[ReleaseTask]:
        """Lint, test and build commands for the detected framework."""
        cfg = self.project_config
        tasks: list[ReleaseTask] = []
        if cfg.framework in _NODE_FRAMEWORKS:
            pm = cfg.package_manager or "npm"
            if cfg.has_lint:
                tasks.append(ReleaseTask("Lint", [pm, "run", "lint"]))
            if cfg.has_tests and self.has_package_script("test"):
                tasks.append(ReleaseTask("Tests", [pm, "test"]))
            if cfg.has_build:
                tasks.append(ReleaseTask("Build", [pm, "run", "build"]))
        elif cfg.framework is FrameworkType.RUST:
            tasks.append(ReleaseTask("Tests", ["cargo", "test"]))
            tasks.append(ReleaseTask("Build", ["cargo", "build", "--release"]))
        elif cfg.framework is FrameworkType.LARAVEL:
            if cfg.has_tests:
                tasks.append(ReleaseTask("Tests", ["php", "artisan", "test"]))
            tasks.append(
                ReleaseTask("Build", ["composer", "install", "--no-dev", "--optimize-autoloader"])
            )
        return tasks

    async def run_framework_tasks(self, version: str) -> list[Path]:
        """Update the version file, then run lint/test/build.

        A missing tool is a warning. A failing task restores the version
        file to its previous contents and raises ReleaseError.

        Returns:
            Files modified for the release.
        """
        version_file = self.project_config.version_file
        original_path = self.repo_path / version_file if version_file else None
        original = (
            original_path.read_bytes() if original_path and original_path.is_file() else None
        )

        changed: list[Path] = []
        updated = self.update_version_file(version)
        if updated is not None:
            reporter.print_success(f"Updated {updated.name} to {version.removeprefix('v')}")
            changed.append(updated)

        if not self.config.run_framework_tasks:
            return changed

        try:
            await self._run_tasks()
        except ReleaseError:
            if original_path is not None and original is not None:
                original_path.write_bytes(original)
                logger.info("Restored %s after failed release task", original_path.name)
            raise
        return changed

    async def _run_tasks(self) -> None:
        for task in self.framework_tasks():
            reporter.print_step(f"{task.name}: {' '.join(task.command)}")
            try:
                result = await run_subprocess(
                    task.command, cwd=self.repo_path, timeout=_TASK_TIMEOUT
                )
            except SubprocessError as exc:
                reporter.print_warning(f"Skipping {task.name.lower()}: {exc}")
                continue
            if not result.success:
                raise ReleaseError(f"{task.name} failed:\n{result.output}")
            reporter.print_success(f"{task.name} passed")

    # ── Release ──────────────────────────────────────────────────

    def create_github_release(self, tag: str, body: str) -> str:
        """Publish a GitHub release for *tag* and return its URL.

        Raises:
            ReleaseError: If the remote is not on GitHub.
            GitHubAPIError: If no token is configured or the API call fails.
        """
        remote_url = get_remote_url(self.repo_path, self.config.remote)
        owner, repo = self.normalize_github_url(remote_url).split("/", 1)
        api = GitHubAPI()
        response = api.create_release(
            ReleaseParams(
                owner=owner,
                repo=repo,
                tag=tag,
                name=f"Release {tag}",
                body=body,
                prerelease=self.is_prerelease_version(tag),
            )
        )
        return str(response.get("html_url", ""))

    def _push(self, tag: str, result: ReleaseResult) -> None:
        remote = self.config.remote
        try:
            push(self.repo_path, remote)
            push_tag(self.repo_path, tag, remote)
            reporter.print_success(f"Pushed commits and {tag} to {remote}")
        except GitOperationError as exc:
            message = f"Could not push to {remote}: {exc}"
            reporter.print_warning(message)
            result.warnings.append(message)

    def _publish(self, tag: str, result: ReleaseResult) -> None:
        try:
            _, result.notes = ReleaseNotesGenerator(self.repo_path, self.config.remote).render(tag)
        except GitOperationError as exc:
            message = f"Could not generate release notes: {exc}"
            reporter.print_warning(message)
            result.warnings.append(message)
            result.notes = f"Release {tag}"

        if not self.config.create_github_release:
            return
        try:
            result.release_url = self.create_github_release(tag, result.notes)
            reporter.print_success(f"GitHub release created: {result.release_url}")
        except (GitHubAPIError, GitOperationError, ReleaseError) as exc:
            message = f"GitHub release skipped: {exc}"
            reporter.print_warning(message)
            result.warnings.append(message)

    async def create_release(self, version: str, message: str | None = None) -> ReleaseResult:
        """Validate, bump, tag, push and publish *version*.

        Raises:
            ReleaseError: If a precondition fails or a framework task fails.
        """
        tag = self.validate_version(version)
        self.check_tag_exists(tag)
        self.check_working_directory_clean()

        result = ReleaseResult(tag=tag)
        changed = await self.run_framework_tasks(tag)

        try:
            if changed and not is_working_tree_clean(self.repo_path):
                add_files(self.repo_path, [str(p.relative_to(self.repo_path)) for p in changed])
                result.commit_sha = commit(
                    self.repo_path, f"bump: version {tag.removeprefix('v')}"
                )
                reporter.print_success(f"Committed version bump ({result.commit_sha[:8]})")
            create_annotated_tag(self.repo_path, tag, message or f"Release {tag}")
        except GitOperationError as exc:
            raise ReleaseError(str(exc)) from exc
        reporter.print_success(f"Created tag {tag}")

        self._push(tag, result)
        self._publish(tag, result)
        return result

    async def bump_and_release(self, bump_type: str, message: str | None = None) -> ReleaseResult:
        """Bump the current version by *bump_type* and release it."""
        current = get_current_version(self.repo_path)
        try:
            new_version = bump_version(current, bump_type)
        except ValueError as exc:
            raise ReleaseError(str(exc)) from exc
        reporter.print_info(f"Bumping version from {current} to {new_version}")
        return await self.create_release(f"v{new_version}", message)

    async def release_from_argument(
        self, target: str, message: str | None = None
    ) -> ReleaseResult:
        """Release from ``major``/``minor``/``patch`` or an explicit version."""
        if target.strip().lower() in BUMP_TYPES:
            return await self.bump_and_release(target.strip().lower(), message)
        tag = self.validate_version(target)
        try:
            determine_bump_type(tag, get_current_version(self.repo_path))
        except ValueError as exc:
            raise ReleaseError(str(exc)) from exc
        return await self.create_release(tag, message)
