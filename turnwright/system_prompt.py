"""System prompt assembly for the executor loop."""

from typing import Optional

from turnwright.collaborators import FileSystem
from turnwright.constants import ENVIRONMENTS
from turnwright.multi_file import Active, TaskState

CORE_IDENTITY = """You are turnwright, a highly skilled software engineer assistant specializing in code-related tasks (explaining, refactoring, generating, debugging). Be concise, professional, and extremely helpful."""

DECISION_PROTOCOL = """## DECISION PROTOCOL

Every request follows 4 steps: [UNDERSTAND] -> [GATHER] -> [EXECUTE] -> [RESPOND]

### Step 1: UNDERSTAND
| Type | Keywords | Next Step |
|------|----------|-----------|
| Explanation | "what is", "how does", "explain" | [RESPOND] |
| Analysis | "analyze", "show", "list" | [GATHER] -> [RESPOND] |
| Modification | "add", "change", "remove" | [GATHER] -> [EXECUTE] |
| Creation | "create", "generate", "new" | [GATHER] -> [EXECUTE] |
| Refactoring | "refactor", "move", "restructure" | [GATHER] -> [EXECUTE] |

### Step 2: GATHER (if needed)
Read ALL required files BEFORE modifying them:
- Use `read_file` with `paths: ["file1.js", "file2.js"]` (batch mode)
- If scope is unclear, call `list_files` first

### Step 3: EXECUTE (write operations)
Use `start_multi_file` for ANY file modification (1+ files):
1. Write a #[plan-description] explaining WHAT changes in EACH file and WHY
2. List ALL `plan.files_to_modify`, ordered by dependencies
3. Send `first_file` immediately
4. Use `continue_multi_file` for the following files (the system prompts you)

### Step 4: RESPOND
Use `text_response` for explanations, analysis and answers.
Never mix an explanation and a file action in the same response."""

RESPONSE_FORMAT = """## RESPONSE FORMAT

Every response MUST contain exactly one #[json-data] section with a compact,
single-line JSON object. Long text goes in the other sections:

#[plan-description]
Detailed plan explaining the changes...
#[end-plan-description]

#[json-data]
{"action":"start_multi_file","plan":{"files_to_modify":["src/a.js"]},"first_file":{"action":"create_file","file":{"path":"src/a.js"},"tags":{"primary":["..."]}}}
#[end-json-data]

#[file-message]
Reasoning for the current file...
#[end-file-message]

#[content-file]
// Complete file content
#[end-content-file]

Section usage:
- `text_response`: json-data only, e.g. {"action":"text_response","text_response":"Your answer"}
- `tool_call`: json-data only
- `start_multi_file`: all sections
- `continue_multi_file`: json-data, file-message and content-file

## AVAILABLE ACTIONS

**list_files**: {"action":"tool_call","tool_call":{"function_name":"list_files","args":{}}}
**read_file**: {"action":"tool_call","tool_call":{"function_name":"read_file","args":{"paths":["App.jsx","utils.js"]}}}
**create_file / update_file / delete_file**: only inside `first_file` or `next_file`.
`update_file` OVERWRITES the entire file, so always send the complete content.
**run_test**: {"action":"run_test","file":{"path":"tests/test_utils.py"}} or {"action":"run_test","file":{"path":"__all__"}}

## METADATA TAGGING
Every create_file/update_file includes a `tags` object next to `action` and `file`:
{"primary":["main-purpose"],"technical":["library"],"domain":["area"],"patterns":["pattern"]}

## GOLDEN RULES
- If uncertain about ANY reference, `read_file` FIRST.
- Every file named in the plan description MUST be in `files_to_modify`.
- On a [SYSTEM-ERROR] message, correct your previous response immediately."""


def project_structure(workspace: FileSystem) -> str:
    """Project file list with tags, as shown to the model."""
    return "\n# 📁 PROJECT STRUCTURE\n" + "\n".join(workspace.structure_lines()) + "\n"


def multi_file_status(state: TaskState) -> str:
    """Status block telling the model which file to send next.

    Args:
        state: Current multi-file task state

    Returns:
        Prompt section, empty when no task is active
    """
    if not isinstance(state, Active):
        return ""

    total = len(state.all_files)
    current = len(state.completed) + 1
    next_file = state.next_file
    after = ", ".join(state.remaining[1:]) or "None (task complete)"

    return f"""
### ⚠️ MULTI-FILE TASK IN PROGRESS

| Element | Value |
|---------|-------|
| Plan | {state.description} |
| Progress | {state.progress} |
| Next File | `{next_file or "(none)"}` |

### 🚨 REQUIRED ACTION

**If more files remain, your next response MUST be:**
#[json-data]
{{"action":"continue_multi_file","next_file":{{"action":"[create_file|update_file|delete_file]","file":{{"path":"{next_file}"}}}}}}
#[end-json-data]
#[file-message]
Processing file {current}/{total}.
#[end-file-message]
#[content-file]
// Complete code for {next_file}
#[end-content-file]

**If all files are done:**
#[json-data]
{{"action":"continue_multi_file","next_file":{{"action":"noop","file":{{"path":""}},"is_last_file":true}}}}
#[end-json-data]

**Remaining after this:** {after}

Do not stop for confirmation, skip files or change the plan order.
"""


class SystemPromptBuilder:
    """Builds the system prompt for each loop iteration."""

    def __init__(self, custom_prompt: str = ""):
        """Initialize system prompt builder.

        Args:
            custom_prompt: Optional user-supplied instructions
        """
        self.custom_prompt = custom_prompt

    def build(
        self,
        workspace: FileSystem,
        environment: str,
        task_state: TaskState,
        user_context: str = "",
        active_file: Optional[str] = None,
    ) -> str:
        """Assemble the full system prompt.

        Args:
            workspace: File-system collaborator
            environment: Conversation environment tag
            task_state: Multi-file task state
            user_context: Pinned and scouted file contents
            active_file: Rendered active file block

        Returns:
            System prompt text
        """
        parts = [CORE_IDENTITY]

        if self.custom_prompt.strip():
            parts.append(f"--- CUSTOM USER PROMPT ---\n{self.custom_prompt.strip()}\n---")

        rules = ENVIRONMENTS.get(environment, {}).get("rules", "")
        if rules:
            parts.append(rules)

        parts.append(project_structure(workspace))

        if user_context.strip():
            parts.append(f"--- USER-PROVIDED CONTEXT ---\n{user_context}\n---")

        if active_file:
            parts.append(active_file)

        parts.append(DECISION_PROTOCOL)
        parts.append(RESPONSE_FORMAT)

        status = multi_file_status(task_state)
        if status:
            parts.append(status)

        return "\n\n".join(parts)
