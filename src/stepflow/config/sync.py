"""Synchronization of graph mutations to configuration artifacts."""

from typing import Dict, List, Optional, Tuple
from pathlib import Path
from loguru import logger

from ..exceptions import InvalidSlugError, StepflowError
from ..graph.models import Node, Edge, NodeKind, SyncResult, is_valid_slug
from .frontmatter import (
    format_list,
    parse_front_matter,
    render_document,
    replace_body,
    update_front_matter,
)
from .store import ConfigArtifactStore


DEFAULT_HOOK_COMMAND = 'echo "Hook triggered"'

# (node holding the list, list attribute, slug to add or remove)
ReferenceUpdate = Tuple[Node, str, str]


class GraphSyncEngine:
    """Keeps on-disk artifacts consistent with graph edits.

    Every public operation handles a single mutation and reports its outcome
    as a SyncResult. Writes across several artifacts are independent: a
    failure on one side of an edge does not roll back the other side.
    """

    def __init__(self, store: ConfigArtifactStore):
        """Initialize the sync engine.

        Args:
            store: Artifact store to write to
        """
        self.store = store

    def sync_node(self, node: Node) -> SyncResult:
        """Create or update the artifact that represents a node.

        Args:
            node: Node to synchronize

        Returns:
            SyncResult with the artifact path on success
        """
        if node.kind in (NodeKind.INPUT, NodeKind.OUTPUT):
            return SyncResult(success=True)

        handlers = {
            NodeKind.SKILL: self._sync_skill,
            NodeKind.AGENT: self._sync_agent,
            NodeKind.COMMAND: self._sync_command,
            NodeKind.HOOK: self._sync_hook,
        }

        try:
            path = handlers[node.kind](node)
        except (OSError, ValueError, StepflowError) as e:
            logger.error(f"[SYNC] Failed to sync {node.kind.value} '{node.id}': {e}")
            return SyncResult(success=False, error=str(e))

        logger.info(f"[SYNC] Synced {node.kind.value} '{node.label}' -> {path}")
        return SyncResult(success=True, path=str(path), updated=[str(path)])

    def delete_node(self, node: Node, all_nodes: Optional[List[Node]] = None) -> SyncResult:
        """Delete a node's artifact after removing every reference to it.

        The node's own artifact is kept when the reference cleanup fails, so no
        forward reference can outlive the artifact it points to.

        Args:
            node: Node being deleted
            all_nodes: Current nodes of the graph

        Returns:
            SyncResult
        """
        updated: List[str] = []

        if all_nodes:
            cleanup = self.remove_references_to_node(
                node.slug, node.kind, all_nodes, exclude_id=node.id
            )
            updated.extend(cleanup.updated)
            if not cleanup.success:
                logger.error(f"[SYNC] Keeping artifact of '{node.id}', reference cleanup failed")
                return SyncResult(
                    success=False,
                    error=f"Reference cleanup failed: {cleanup.error}",
                    updated=updated
                )

        try:
            path = self._delete_artifact(node)
        except (OSError, ValueError) as e:
            logger.error(f"[SYNC] Failed to delete artifact of '{node.id}': {e}")
            return SyncResult(success=False, error=str(e), updated=updated)

        if path is not None:
            logger.info(f"[SYNC] Deleted {node.kind.value} '{node.label}' ({path})")
        return SyncResult(success=True, path=str(path) if path else None, updated=updated)

    def remove_references_to_node(
        self,
        deleted_slug: str,
        deleted_kind: NodeKind,
        all_nodes: List[Node],
        exclude_id: Optional[str] = None
    ) -> SyncResult:
        """Remove a slug from every reference list and re-sync changed nodes.

        Args:
            deleted_slug: Slug of the node being deleted
            deleted_kind: Kind of the node being deleted
            all_nodes: Nodes to scan
            exclude_id: Id of the deleted node itself

        Returns:
            SyncResult, failed if any re-sync failed
        """
        if NodeKind(deleted_kind) not in (NodeKind.AGENT, NodeKind.SKILL) or not deleted_slug:
            return SyncResult(success=True)

        errors: List[str] = []
        updated: List[str] = []

        for related in all_nodes:
            if related.id == exclude_id:
                continue

            changed = False
            previous = (list(related.skills), list(related.upstream), list(related.downstream))
            if related.kind == NodeKind.AGENT:
                if deleted_slug in related.skills:
                    related.skills = [s for s in related.skills if s != deleted_slug]
                    changed = True
            elif related.kind == NodeKind.SKILL:
                if deleted_slug in related.upstream:
                    related.upstream = [s for s in related.upstream if s != deleted_slug]
                    changed = True
                if deleted_slug in related.downstream:
                    related.downstream = [s for s in related.downstream if s != deleted_slug]
                    changed = True

            if changed:
                logger.debug(f"[SYNC] Dropping reference '{deleted_slug}' from '{related.id}'")
                result = self.sync_node(related)
                if not result.success:
                    related.skills, related.upstream, related.downstream = previous
                self._collect(result, errors, updated)

        return self._combined(errors, updated)

    def sync_edge(self, edge: Edge, nodes: List[Node]) -> SyncResult:
        """Record a new connection in the reference lists of both endpoints.

        Args:
            edge: New edge
            nodes: Current nodes of the graph

        Returns:
            SyncResult, failed if an endpoint is missing or a write failed
        """
        source, target = self._endpoints(edge, nodes)
        if source is None or target is None:
            return SyncResult(success=False, error="Source or target node not found")
        return self._apply(self._reference_updates(source, target), add=True)

    def remove_edge(self, edge: Edge, nodes: List[Node]) -> SyncResult:
        """Remove a connection from the reference lists of both endpoints.

        Args:
            edge: Removed edge
            nodes: Current nodes of the graph

        Returns:
            SyncResult, successful when an endpoint no longer exists
        """
        source, target = self._endpoints(edge, nodes)
        if source is None or target is None:
            return SyncResult(success=True)
        return self._apply(self._reference_updates(source, target), add=False)

    # ===== Edges =====

    @staticmethod
    def _endpoints(edge: Edge, nodes: List[Node]) -> Tuple[Optional[Node], Optional[Node]]:
        by_id: Dict[str, Node] = {node.id: node for node in nodes}
        return by_id.get(edge.source), by_id.get(edge.target)

    @staticmethod
    def _reference_updates(source: Node, target: Node) -> List[ReferenceUpdate]:
        """Reference list fields implied by the kinds of an edge's endpoints."""
        pairing = (source.kind, target.kind)

        if pairing == (NodeKind.AGENT, NodeKind.SKILL):
            return [(source, "skills", target.slug), (target, "upstream", source.slug)]
        if pairing == (NodeKind.SKILL, NodeKind.SKILL):
            return [(source, "downstream", target.slug), (target, "upstream", source.slug)]
        if pairing == (NodeKind.SKILL, NodeKind.AGENT):
            return [(target, "skills", source.slug), (source, "downstream", target.slug)]
        if pairing == (NodeKind.AGENT, NodeKind.AGENT):
            return [(source, "skills", target.slug)]
        return []

    def _apply(self, updates: List[ReferenceUpdate], add: bool) -> SyncResult:
        errors: List[str] = []
        updated: List[str] = []

        for owner, field_name, slug in updates:
            if not is_valid_slug(slug):
                errors.append(f"Invalid reference slug {slug!r} for '{owner.id}'")
                continue

            current = list(getattr(owner, field_name))
            if add == (slug in current):
                continue  # Already in the requested state

            if add:
                setattr(owner, field_name, current + [slug])
            else:
                setattr(owner, field_name, [s for s in current if s != slug])

            result = self.sync_node(owner)
            if not result.success:
                # Keep memory in line with disk so a retry writes again
                setattr(owner, field_name, current)
            self._collect(result, errors, updated)

        return self._combined(errors, updated)

    @staticmethod
    def _collect(result: SyncResult, errors: List[str], updated: List[str]) -> None:
        if result.success:
            updated.extend(result.updated)
        else:
            errors.append(result.error or "Unknown error")

    @staticmethod
    def _combined(errors: List[str], updated: List[str]) -> SyncResult:
        if errors:
            return SyncResult(success=False, error="; ".join(errors), updated=updated)
        return SyncResult(success=True, updated=updated)

    # ===== Artifacts =====

    @staticmethod
    def _require_slug(node: Node) -> str:
        slug = node.slug
        if not is_valid_slug(slug):
            raise InvalidSlugError(node.id, node.label)
        return slug

    @staticmethod
    def _display_label(node: Node, slug: str) -> Optional[str]:
        """Label key, only needed when the label cannot be recovered from the slug."""
        if not node.label or node.label == slug:
            return None
        return node.label

    def _sync_skill(self, node: Node) -> Path:
        slug = self._require_slug(node)
        path = self.store.skill_document(slug)

        front_matter = {
            "name": slug,
            "label": self._display_label(node, slug),
            "description": node.description or node.label,
            "upstream": format_list(node.upstream),
            "downstream": format_list(node.downstream),
        }

        existing = self.store.read_text(path)
        if existing is None:
            content = render_document(front_matter, node.content or self._skill_template(node))
        else:
            content = update_front_matter(existing, front_matter)
            if node.content:
                content = replace_body(content, node.content)

        if content != existing:
            self.store.write_text(path, content)
        return path

    def _sync_agent(self, node: Node) -> Path:
        slug = self._require_slug(node)
        path = self.store.agent_document(slug)

        existing = self.store.read_text(path)
        existing_front_matter = parse_front_matter(existing)[0] if existing is not None else {}

        front_matter = {
            "name": slug,
            "label": self._display_label(node, slug),
            "description": (
                node.description or existing_front_matter.get("description") or node.label
            ),
        }
        if node.tools:
            front_matter["tools"] = format_list(node.tools)
        if node.model:
            front_matter["model"] = node.model
        front_matter["skills"] = format_list(node.skills)

        if existing is None:
            body = node.system_prompt or f"You are {node.label}.\n\n{node.description or ''}"
            content = render_document(front_matter, body)
        else:
            content = update_front_matter(existing, front_matter)
            if node.system_prompt:
                content = replace_body(content, node.system_prompt)

        if content != existing:
            self.store.write_text(path, content)
        return path

    def _sync_command(self, node: Node) -> Path:
        slug = self._require_slug(node)
        path = self.store.command_document(slug)
        description = node.description or node.label

        existing = self.store.read_text(path)
        if node.command_content:
            content = node.command_content
        elif existing is None:
            body = f"{node.description or 'Describe what this command does.'}\n\n$ARGUMENTS"
            content = render_document({"description": description}, body)
        else:
            content = update_front_matter(existing, {"description": description})

        if content != existing:
            self.store.write_text(path, content)
        return path

    def _sync_hook(self, node: Node) -> Path:
        settings = self.store.read_settings()

        hooks = settings.get("hooks")
        if not isinstance(hooks, dict):
            hooks = {}
            settings["hooks"] = hooks

        entries = hooks.get(node.event)
        if not isinstance(entries, list):
            entries = []
            hooks[node.event] = entries

        entry = {
            "matcher": node.matcher,
            "hooks": [
                {"type": "command", "command": node.hook_command or DEFAULT_HOOK_COMMAND}
            ],
        }

        index = next(
            (i for i, e in enumerate(entries)
             if isinstance(e, dict) and e.get("matcher", "*") == node.matcher),
            None
        )
        if index is None:
            entries.append(entry)
        else:
            entries[index] = entry

        return self.store.write_settings(settings)

    def _delete_artifact(self, node: Node) -> Optional[Path]:
        """Remove the node's own artifact. Missing artifacts are not an error."""
        if node.kind == NodeKind.HOOK:
            return self.store.settings_path if self._remove_hook(node) else None

        slug = node.slug
        if node.kind in (NodeKind.INPUT, NodeKind.OUTPUT) or not is_valid_slug(slug):
            return None

        if node.kind == NodeKind.SKILL:
            path = self.store.skill_dir(slug)
            removed = self.store.remove_tree(path)
        elif node.kind == NodeKind.AGENT:
            path = self.store.agent_document(slug)
            removed = self.store.remove_file(path)
        else:
            path = self.store.command_document(slug)
            removed = self.store.remove_file(path)

        return path if removed else None

    def _remove_hook(self, node: Node) -> bool:
        settings = self.store.read_settings()
        hooks = settings.get("hooks")
        if not isinstance(hooks, dict):
            return False

        entries = hooks.get(node.event)
        if not isinstance(entries, list):
            return False

        remaining = [
            e for e in entries
            if not (isinstance(e, dict) and e.get("matcher", "*") == node.matcher)
        ]
        if len(remaining) == len(entries):
            return False

        if remaining:
            hooks[node.event] = remaining
        else:
            del hooks[node.event]
        self.store.write_settings(settings)
        return True

    @staticmethod
    def _skill_template(node: Node) -> str:
        return (
            f"# {node.label}\n\n"
            "## When to use\n"
            "This skill is used when:\n"
            f"- {node.description or 'Describe when this skill applies'}\n\n"
            "## How to use\n\n"
            "```bash\n"
            "# Describe how to run this skill\n"
            "```"
        )
