"""File-backed store for configuration artifacts."""

from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
from pathlib import Path
import json
import shutil
from loguru import logger

from .frontmatter import parse_front_matter


SKILL_DOCUMENT = "SKILL.md"
ARTIFACT_SUFFIX = ".md"
SETTINGS_DOCUMENT = "settings.json"


@dataclass
class Artifact:
    """Parsed text artifact."""
    path: Path
    front_matter: Dict[str, str] = field(default_factory=dict)
    body: str = ""


class ConfigArtifactStore:
    """Reads and writes artifacts below ``<project>/<config_dir>``.

    Layout::

        skills/<slug>/SKILL.md
        agents/<slug>.md
        commands/<slug>.md
        settings.json

    Lookups of missing artifacts return None or empty defaults instead of
    raising. Other I/O errors propagate to the caller.
    """

    def __init__(self, project_root: Path, config_dir: str = ".claude"):
        """Initialize the store.

        Args:
            project_root: Project directory
            config_dir: Name of the configuration directory inside the project
        """
        self.project_root = Path(project_root)
        self.root = self.project_root / config_dir

    @property
    def skills_dir(self) -> Path:
        return self.root / "skills"

    @property
    def agents_dir(self) -> Path:
        return self.root / "agents"

    @property
    def commands_dir(self) -> Path:
        return self.root / "commands"

    @property
    def settings_path(self) -> Path:
        return self.root / SETTINGS_DOCUMENT

    def skill_dir(self, slug: str) -> Path:
        return self.skills_dir / slug

    def skill_document(self, slug: str) -> Path:
        return self.skill_dir(slug) / SKILL_DOCUMENT

    def agent_document(self, slug: str) -> Path:
        return self.agents_dir / f"{slug}{ARTIFACT_SUFFIX}"

    def command_document(self, slug: str) -> Path:
        return self.commands_dir / f"{slug}{ARTIFACT_SUFFIX}"

    def read_text(self, path: Path) -> Optional[str]:
        """Read a text artifact, None if it does not exist."""
        try:
            return Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def read_artifact(self, path: Path) -> Optional[Artifact]:
        """Read and parse an artifact, None if it does not exist."""
        content = self.read_text(path)
        if content is None:
            return None
        front_matter, body = parse_front_matter(content)
        return Artifact(path=Path(path), front_matter=front_matter, body=body)

    def write_text(self, path: Path, content: str) -> Path:
        """Write an artifact, creating parent directories as needed."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.debug(f"[STORE] Wrote {path} ({len(content)} chars)")
        return path

    def remove_file(self, path: Path) -> bool:
        """Delete a file artifact. Returns False if it was already gone."""
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"[STORE] Removed {path}")
        return True

    def remove_tree(self, path: Path) -> bool:
        """Recursively delete a directory artifact. Returns False if it was already gone."""
        path = Path(path)
        if not path.exists():
            return False
        shutil.rmtree(path)
        logger.debug(f"[STORE] Removed directory {path}")
        return True

    def read_settings(self) -> Dict[str, Any]:
        """Load the shared settings document.

        Returns:
            Settings mapping, empty when the document is missing or malformed
        """
        content = self.read_text(self.settings_path)
        if content is None:
            return {}
        try:
            settings = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning(f"[STORE] Malformed {self.settings_path}: {e}")
            return {}
        if not isinstance(settings, dict):
            logger.warning(f"[STORE] Ignoring non-object settings document {self.settings_path}")
            return {}
        return settings

    def write_settings(self, settings: Dict[str, Any]) -> Path:
        """Write the shared settings document."""
        return self.write_text(self.settings_path, json.dumps(settings, indent=2, ensure_ascii=False))

    def list_skill_dirs(self) -> List[Path]:
        """Skill directories, sorted by name."""
        if not self.skills_dir.is_dir():
            return []
        return sorted(p for p in self.skills_dir.iterdir() if p.is_dir())

    def list_agent_documents(self) -> List[Path]:
        """Agent documents, sorted by name."""
        return self._list_documents(self.agents_dir)

    def list_command_documents(self) -> List[Path]:
        """Command documents, sorted by name."""
        return self._list_documents(self.commands_dir)

    def _list_documents(self, directory: Path) -> List[Path]:
        if not directory.is_dir():
            return []
        return sorted(
            p for p in directory.iterdir()
            if p.is_file() and p.suffix == ARTIFACT_SUFFIX
        )
