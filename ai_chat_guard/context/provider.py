"""
Workspace context gathering.

Default ContextProvider: reads the project directory, its git state, project
specs (``specs/<name>/{requirements,design,tasks}.md``) and documentation.
Every sub-field is best effort; a failing source is logged and left empty.
"""

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import List, Optional

from ai_chat_guard.core.types import ChatContext, GitInfo, SpecInfo, SpecPhase

LOGGER = logging.getLogger(__name__)

MAX_WORKSPACE_FILES = 50
RECENT_COMMIT_COUNT = 5
SPEC_FILE_LIMIT = 2000
DOC_FILE_LIMIT = 1500
TRUNCATION_SUFFIX = "\n\n... [truncated]"
SECTION_SEPARATOR = "\n\n---\n\n"

# Most advanced phase first
_PHASE_FILES = [
    (SpecPhase.TASKS, "tasks.md"),
    (SpecPhase.DESIGN, "design.md"),
    (SpecPhase.REQUIREMENTS, "requirements.md"),
]

_SPEC_KEYWORDS = (
    "spec", "specification", "requirements", "design", "tasks",
    "feature", "implementation", "plan", "workflow",
)

# (label, pattern) in display order; matched against the root-relative path
_DOC_PATTERNS = [
    ("README", re.compile(r"^README\.(md|txt)$", re.IGNORECASE)),
    ("API", re.compile(r"^API\.(md|txt)$", re.IGNORECASE)),
    ("GUIDE", re.compile(r"^docs/[^/]+\.(md|txt)$", re.IGNORECASE)),
    ("CHANGELOG", re.compile(r"^CHANGELOG\.(md|txt)$", re.IGNORECASE)),
]


def truncate_at_break(content: str, max_length: int) -> str:
    """Clip ``content`` to ``max_length``, preferring a line or sentence end.

    A break point is used only if it falls in the last 20% of the window.
    """
    if len(content) <= max_length:
        return content

    clipped = content[:max_length]
    break_point = max(clipped.rfind("\n"), clipped.rfind("."))
    if break_point > max_length * 0.8:
        return content[:break_point + 1] + TRUNCATION_SUFFIX
    return clipped + TRUNCATION_SUFFIX


def is_spec_related(query: str) -> bool:
    lowered = query.lower()
    return any(keyword in lowered for keyword in _SPEC_KEYWORDS)


class WorkspaceContextProvider:
    """Context provider rooted at a project directory."""

    def __init__(
        self,
        root: str = ".",
        active_file: Optional[str] = None,
        selected_text: Optional[str] = None,
        specs_dir: str = "specs",
        git_executable: str = "git",
        max_workspace_files: int = MAX_WORKSPACE_FILES
    ):
        """Initialize the provider.

        Args:
            root: Project directory
            active_file: File open in the editor, as supplied by the caller
            selected_text: Current selection, as supplied by the caller
            specs_dir: Spec directory, relative to ``root``
            git_executable: Name or path of the git binary
            max_workspace_files: Cap on listed workspace files
        """
        self.root = Path(root)
        self.active_file = active_file
        self.selected_text = selected_text
        self.specs_dir = self.root / specs_dir
        self.git_executable = git_executable
        self.max_workspace_files = max_workspace_files

    async def get_current_context(self) -> ChatContext:
        workspace_files: Optional[List[str]] = None
        try:
            workspace_files = await asyncio.to_thread(self.list_workspace_files)
        except OSError as e:
            LOGGER.warning("Could not list workspace files: %s", e)

        git_status = await self.get_git_info()

        spec_context: Optional[SpecInfo] = None
        try:
            spec_context = await asyncio.to_thread(self.find_active_spec)
        except OSError as e:
            LOGGER.debug("Spec context unavailable: %s", e)

        return ChatContext(
            active_file=self.active_file,
            selected_text=self.selected_text,
            workspace_files=workspace_files,
            git_status=git_status,
            spec_context=spec_context,
        )

    async def get_relevant_context(self, query: str) -> str:
        """Project context for a query.

        Spec context is included only for spec-related queries; documentation
        context is always included when any exists.

        Returns:
            Sections joined by ``---`` separators, or "" if nothing was found
        """
        return await asyncio.to_thread(self._build_relevant_context, query)

    def list_workspace_files(self) -> List[str]:
        """Root-relative file paths, hidden directories and files skipped."""
        files: List[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(name for name in dirnames if not name.startswith("."))
            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                files.append(Path(dirpath, filename).relative_to(self.root).as_posix())
                if len(files) >= self.max_workspace_files:
                    return files
        return files

    async def get_git_info(self) -> Optional[GitInfo]:
        """Branch, dirty flag and recent commits, or None outside a git checkout."""
        try:
            branch = await self._git("rev-parse", "--abbrev-ref", "HEAD")
            status = await self._git("status", "--porcelain")
            log = await self._git("log", f"-{RECENT_COMMIT_COUNT}", "--pretty=format:%h %s")
        except (OSError, RuntimeError) as e:
            LOGGER.debug("Git context unavailable: %s", e)
            return None

        return GitInfo(
            branch=branch.strip(),
            has_changes=bool(status.strip()),
            recent_commits=[line for line in log.splitlines() if line.strip()],
        )

    def find_active_spec(self) -> Optional[SpecInfo]:
        """The most recently modified spec, with its phase and context."""
        if not self.specs_dir.is_dir():
            return None

        spec_dirs = [path for path in self.specs_dir.iterdir() if path.is_dir()]
        if not spec_dirs:
            return None

        active = max(spec_dirs, key=lambda path: path.stat().st_mtime)
        return SpecInfo(
            current_spec=active.name,
            phase=self.detect_spec_phase(active),
            context=self.build_spec_context(active.name),
        )

    def detect_spec_phase(self, spec_dir: Path) -> Optional[SpecPhase]:
        for phase, filename in _PHASE_FILES:
            if (spec_dir / filename).is_file():
                return phase
        return None

    def build_spec_context(self, spec_name: str) -> str:
        spec_dir = self.specs_dir / spec_name
        sections = [f"# Spec Context: {spec_name}", ""]
        found = False

        for phase, filename in reversed(_PHASE_FILES):
            path = spec_dir / filename
            if not path.is_file():
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                LOGGER.warning("Could not read spec file %s: %s", path, e)
                continue
            found = True
            sections.extend([
                f"## {phase.value.upper()}",
                f"*From: {path.relative_to(self.root).as_posix()}*",
                "",
                truncate_at_break(content, SPEC_FILE_LIMIT),
                "",
            ])

        if not found:
            return f"No spec files found for {spec_name}"
        return "\n".join(sections)

    def build_documentation_context(self) -> str:
        """Documentation context, or "" when the project has no docs."""
        candidates = [self.root / name for name in os.listdir(self.root)]
        docs_dir = self.root / "docs"
        if docs_dir.is_dir():
            candidates.extend(sorted(docs_dir.iterdir()))

        matched = []
        for path in candidates:
            if not path.is_file():
                continue
            relative = path.relative_to(self.root).as_posix()
            for order, (label, pattern) in enumerate(_DOC_PATTERNS):
                if pattern.match(relative):
                    matched.append((order, relative, label, path))
                    break

        sections = []
        for _, relative, label, path in sorted(matched):
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                LOGGER.warning("Could not read documentation file %s: %s", path, e)
                continue
            sections.extend([f"## {label}: {relative}", "", truncate_at_break(content, DOC_FILE_LIMIT), ""])

        if not sections:
            return ""
        return "\n".join(["# Documentation Context", ""] + sections)

    def _build_relevant_context(self, query: str) -> str:
        sections = []

        if is_spec_related(query):
            spec = self.find_active_spec()
            if spec is not None and spec.context:
                sections.append(spec.context)

        docs = self.build_documentation_context()
        if docs:
            sections.append(docs)

        return SECTION_SEPARATOR.join(sections)

    async def _git(self, *args: str) -> str:
        process = await asyncio.create_subprocess_exec(
            self.git_executable, *args,
            cwd=str(self.root),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise RuntimeError(
                f"git {' '.join(args)} failed: {stderr.decode('utf-8', 'replace').strip()}"
            )
        return stdout.decode("utf-8", "replace")
