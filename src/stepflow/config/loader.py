"""Reconstruction of graph nodes from configuration artifacts."""

from typing import List
from pathlib import Path
from loguru import logger

from ..graph.models import Node, NodeKind, DEFAULT_HOOK_MATCHER
from .frontmatter import parse_list
from .store import ConfigArtifactStore, ARTIFACT_SUFFIX


# Ids carrying these prefixes are owned by the filesystem
FILESYSTEM_PREFIXES = ("skill-", "agent-", "command-", "hook-")


class ConfigLoader:
    """Scans the artifact store and rebuilds the nodes it describes."""

    def __init__(self, store: ConfigArtifactStore):
        """Initialize the loader.

        Args:
            store: Artifact store to scan
        """
        self.store = store

    def load(self) -> List[Node]:
        """Load every skill, agent, command and hook node.

        Returns:
            Nodes in the order skills, agents, commands, hooks
        """
        nodes = self.load_skills() + self.load_agents() + self.load_commands() + self.load_hooks()
        logger.info(f"[LOADER] Loaded {len(nodes)} nodes from {self.store.root}")
        return nodes

    def load_skills(self) -> List[Node]:
        skills = []
        for skill_dir in self.store.list_skill_dirs():
            try:
                artifact = self.store.read_artifact(self.store.skill_document(skill_dir.name))
            except (OSError, ValueError) as e:
                logger.warning(f"[LOADER] Skipping skill '{skill_dir.name}': {e}")
                continue
            if artifact is None:
                logger.debug(f"[LOADER] Skipping '{skill_dir.name}': no skill document")
                continue

            fm = artifact.front_matter
            skills.append(Node(
                id=f"skill-{skill_dir.name}",
                kind=NodeKind.SKILL,
                label=fm.get("label") or fm.get("name") or skill_dir.name,
                description=fm.get("description", ""),
                skill_id=skill_dir.name,
                upstream=parse_list(fm.get("upstream")),
                downstream=parse_list(fm.get("downstream")),
            ))
        return skills

    def load_agents(self) -> List[Node]:
        agents = []
        for path in self.store.list_agent_documents():
            name = _stem(path)
            try:
                artifact = self.store.read_artifact(path)
            except (OSError, ValueError) as e:
                logger.warning(f"[LOADER] Skipping agent '{name}': {e}")
                continue
            if artifact is None:
                continue

            fm = artifact.front_matter
            agents.append(Node(
                id=f"agent-{name}",
                kind=NodeKind.AGENT,
                label=fm.get("label") or fm.get("name") or name,
                description=fm.get("description", ""),
                tools=parse_list(fm.get("tools")),
                model=fm.get("model") or None,
                skills=parse_list(fm.get("skills")),
                system_prompt=artifact.body,
            ))
        return agents

    def load_commands(self) -> List[Node]:
        commands = []
        for path in self.store.list_command_documents():
            name = _stem(path)
            try:
                artifact = self.store.read_artifact(path)
            except (OSError, ValueError) as e:
                logger.warning(f"[LOADER] Skipping command '{name}': {e}")
                continue
            if artifact is None:
                continue

            commands.append(Node(
                id=f"command-{name}",
                kind=NodeKind.COMMAND,
                label=name,
                description=artifact.front_matter.get("description", ""),
                command_name=name,
            ))
        return commands

    def load_hooks(self) -> List[Node]:
        """Load hook entries from the shared settings document."""
        hooks_config = self.store.read_settings().get("hooks")
        if not isinstance(hooks_config, dict):
            return []

        hooks = []
        for event, entries in hooks_config.items():
            if not isinstance(entries, list):
                logger.warning(f"[LOADER] Ignoring hooks for '{event}': expected a list")
                continue

            for index, entry in enumerate(entries):
                if not isinstance(entry, dict):
                    logger.warning(f"[LOADER] Skipping malformed hook {event}[{index}]")
                    continue

                matcher = entry.get("matcher") or DEFAULT_HOOK_MATCHER
                actions = entry.get("hooks") or []
                first = actions[0] if isinstance(actions, list) and actions else {}
                command = first.get("command", "") if isinstance(first, dict) else ""

                hooks.append(Node(
                    id=f"hook-{event}-{index}",
                    kind=NodeKind.HOOK,
                    label=f"{event} Hook",
                    description=f"Matcher: {matcher}",
                    hook_event=event,
                    hook_matcher=matcher,
                    hook_command=command,
                ))
        return hooks


def _stem(path: Path) -> str:
    return path.name[:-len(ARTIFACT_SUFFIX)]


def is_filesystem_node(node_id: str) -> bool:
    """Whether a node id was synthesized by the loader."""
    return node_id.startswith(FILESYSTEM_PREFIXES)


def merge_loaded_nodes(live_nodes: List[Node], loaded_nodes: List[Node]) -> List[Node]:
    """Merge freshly loaded nodes into a live graph.

    Filesystem-owned nodes that are no longer on disk are dropped. Nodes
    authored only in memory are always kept. Newly discovered nodes are
    appended after the existing ones.

    Args:
        live_nodes: Nodes of the current session
        loaded_nodes: Result of ConfigLoader.load()

    Returns:
        Merged node list
    """
    loaded_ids = {node.id for node in loaded_nodes}

    kept = [
        node for node in live_nodes
        if not is_filesystem_node(node.id) or node.id in loaded_ids
    ]
    kept_ids = {node.id for node in kept}
    added = [node for node in loaded_nodes if node.id not in kept_ids]

    dropped = len(live_nodes) - len(kept)
    logger.info(f"[LOADER] Merge: kept {len(kept)}, dropped {dropped}, added {len(added)}")
    return kept + added
