"""Executors for the built-in node kinds."""

from typing import List, Optional, Union
from pathlib import Path
from datetime import datetime
from loguru import logger

from ..graph.models import NodeKind, ExecutionResult, FileRef, is_valid_run_id
from .generator import ContentGenerator
from .registry import ExecutorRegistry, NodeContext


SUMMARY_DOCUMENT = "result-summary.md"
ARGUMENTS_PLACEHOLDER = "$ARGUMENTS"
DEFAULT_SYSTEM_PROMPT = "You are an AI assistant. Carry out the given task as well as you can."
NO_PREVIOUS_RESULTS = "(none)"


class BuiltinExecutors:
    """Executors for input, agent, skill, command, hook and output nodes."""

    def __init__(self, generator: ContentGenerator, output_dir: Union[str, Path] = "output"):
        """Initialize the executors.

        Args:
            generator: Backend used by agent and skill nodes
            output_dir: Directory receiving one sub-directory of files per run
        """
        self.generator = generator
        self.output_dir = Path(output_dir)

    def register(self, registry: ExecutorRegistry) -> ExecutorRegistry:
        return (
            registry
            .register(NodeKind.INPUT, self.execute_input)
            .register(NodeKind.AGENT, self.execute_agent)
            .register(NodeKind.SKILL, self.execute_skill)
            .register(NodeKind.COMMAND, self.execute_command)
            .register(NodeKind.HOOK, self.execute_hook)
            .register(NodeKind.OUTPUT, self.execute_output)
        )

    def run_dir(self, run_id: str) -> Path:
        """Output directory of a run, always a direct child of output_dir.

        Raises:
            ValueError: If the run id is not a plain directory name
        """
        if not is_valid_run_id(run_id):
            raise ValueError(f"Invalid run id: {run_id!r}")
        return self.output_dir / run_id

    def execute_input(self, context: NodeContext) -> ExecutionResult:
        """Run-time value for the node, else its stored value."""
        node = context.node
        return context.success(context.inputs.get(node.id) or node.value or "")

    async def execute_agent(self, context: NodeContext) -> ExecutionResult:
        node = context.node
        context.report_progress(20)

        system = node.system_prompt or DEFAULT_SYSTEM_PROMPT
        prompt = (
            f"## Task\n{node.description or 'Carry out the task.'}\n\n"
            f"## Previous results\n{context.input_text or NO_PREVIOUS_RESULTS}\n\n"
            "Complete the task based on the above and return the result."
        )

        context.log(f"Calling agent '{node.label}'", level="debug")
        context.report_progress(40)
        try:
            output = await self.generator.generate(prompt, system=system, model=node.model)
        except Exception as e:
            logger.exception(f"[EXECUTORS] Agent '{node.label}' failed: {e}")
            context.log(f"Agent error: {e}", level="error")
            return context.failure(str(e) or type(e).__name__)

        context.report_progress(80)
        return context.success(output)

    async def execute_skill(self, context: NodeContext) -> ExecutionResult:
        node = context.node
        prompt = (
            f"Skill: {node.label}\n"
            f"Description: {node.description or ''}\n\n"
            f"## Previous results\n{context.input_text or NO_PREVIOUS_RESULTS}\n\n"
            f"## Skill content\n{node.content or 'Carry out the task.'}\n\n"
            "Complete the task based on the above and return the result."
        )

        context.report_progress(50)
        try:
            output = await self.generator.generate(prompt)
        except Exception as e:
            logger.exception(f"[EXECUTORS] Skill '{node.label}' failed: {e}")
            context.log(f"Skill error: {e}", level="error")
            return context.failure(str(e) or type(e).__name__)

        return context.success(output)

    def execute_command(self, context: NodeContext) -> ExecutionResult:
        """Expand the command body with the upstream text."""
        body = context.node.command_content
        if body is None:
            return context.success(context.input_text)
        return context.success(body.replace(ARGUMENTS_PLACEHOLDER, context.input_text))

    def execute_hook(self, context: NodeContext) -> ExecutionResult:
        # Hooks only configure the host tool
        return context.success(context.input_text)

    def execute_output(self, context: NodeContext) -> ExecutionResult:
        """Write a summary of the run and list every produced file."""
        context.log("Collecting and saving final results")
        files: List[FileRef] = context.results.artifacts()

        try:
            summary_path = self.run_dir(context.run_id) / SUMMARY_DOCUMENT
        except ValueError as e:
            context.log(str(e), level="error")
            return context.failure(str(e))

        listing = "\n".join(f"- **{ref.name}**: `{ref.path}`" for ref in files) or "None"
        summary = (
            "# Workflow result\n\n"
            f"## Generated content\n\n{context.input_text}\n\n"
            f"## Generated files\n{listing}\n\n"
            "---\n"
            f"Generated at: {datetime.now().isoformat(timespec='seconds')}\n"
        )

        try:
            summary_path.parent.mkdir(parents=True, exist_ok=True)
            summary_path.write_text(summary, encoding="utf-8")
        except OSError as e:
            logger.warning(f"[EXECUTORS] Could not write {summary_path}: {e}")
            return context.success(context.input_text, files)

        summary_ref = FileRef(path=str(summary_path), type="markdown", name="Result summary")
        return context.success(summary, [summary_ref] + files)


def default_registry(
    generator: ContentGenerator,
    output_dir: Union[str, Path] = "output",
    registry: Optional[ExecutorRegistry] = None
) -> ExecutorRegistry:
    """Registry with the built-in executors for every node kind.

    Args:
        generator: Backend used by agent and skill nodes
        output_dir: Directory receiving per-run output files
        registry: Registry to fill (a new one if None)

    Returns:
        The filled registry
    """
    return BuiltinExecutors(generator, output_dir).register(registry or ExecutorRegistry())
