"""Context scouting: pick the files relevant to a request before the main call."""

from typing import Optional

from pydantic import BaseModel, Field, ValidationError
from rich.console import Console

from turnwright.cancellation import CancellationToken, OperationCancelled
from turnwright.collaborators import FileSystem, ModelClient
from turnwright.constants import SCOUT_MAX_TOKENS
from turnwright.system_prompt import project_structure
from turnwright.utils.json_extract import extract_json_object
from turnwright.utils.paths import normalize_path

console = Console()

SCOUT_PROMPT = """You are the "Scout" for a software engineering team.
Your goal is to identify which files from the project structure are relevant to the user's request.
Environment: {environment}
{knowledge}{context}{structure}
USER REQUEST: "{message}"

INSTRUCTIONS:
1. Analyze the user request and the project structure.
2. Identify files that likely need to be read, modified, or analyzed to fulfill the request.
3. Look for direct mentions (e.g., "fix App.jsx") and indirect dependencies (e.g., "fix the header" -> Header.jsx, Header.css).
4. Return a JSON object with an array of "files".

EXAMPLE OUTPUT:
{{"files": ["src/components/Header.jsx", "src/styles/header.css"]}}

If no specific files are relevant (e.g., a general question), return an empty array.

RESPONSE (JSON ONLY):"""


class ScoutResult(BaseModel):
    files: list[str] = Field(default_factory=list)


class ContextScout:
    """Asks the model which files to preload for a request."""

    def __init__(self, llm: ModelClient):
        self.llm = llm

    async def scout(
        self,
        message: str,
        workspace: FileSystem,
        knowledge_summary: str = "",
        user_context: str = "",
        environment: str = "web",
        cancel: Optional[CancellationToken] = None,
    ) -> ScoutResult:
        """Identify relevant files from the project structure alone.

        Failures degrade to an empty result; cancellation propagates.

        Args:
            message: User's request
            workspace: File-system collaborator
            knowledge_summary: Conversation knowledge summary
            user_context: Active and pinned file hints
            environment: Conversation environment tag
            cancel: Cancellation token for this turn

        Returns:
            ScoutResult
        """
        prompt = SCOUT_PROMPT.format(
            environment=environment,
            knowledge=(
                f"\n--- PROJECT KNOWLEDGE (Long-term Memory) ---\n{knowledge_summary}\n"
                if knowledge_summary else ""
            ),
            context=f"\n--- CURRENT CONTEXT ---\n{user_context}\n" if user_context else "",
            structure=project_structure(workspace),
            message=message,
        )

        try:
            completion = await self.llm.complete(
                [{"role": "user", "content": prompt}],
                max_tokens=SCOUT_MAX_TOKENS,
                temperature=0.0,
                cancel=cancel,
            )
        except OperationCancelled:
            raise
        except Exception as e:
            console.print(f"[dim]Scout skipped: {e}[/dim]")
            return ScoutResult()

        extracted = extract_json_object(completion.text)
        if not extracted.ok:
            return ScoutResult()
        try:
            return ScoutResult.model_validate(extracted.value)
        except ValidationError:
            return ScoutResult()

    def build_context(self, result: ScoutResult, workspace: FileSystem) -> str:
        """Concatenate the contents of scouted files that exist.

        Args:
            result: Scout result
            workspace: File-system collaborator

        Returns:
            Context block, empty when nothing matched
        """
        nodes = workspace.nodes()
        blocks = []
        seen = set()
        for raw in result.files:
            key = normalize_path(raw)
            node = nodes.get(key)
            if node is None or node.is_folder or key in seen:
                continue
            content = workspace.read_content(key)
            if content is None:
                continue
            seen.add(key)
            blocks.append(f"--- {key} ---\n{content}")
        return "\n\n".join(blocks)
