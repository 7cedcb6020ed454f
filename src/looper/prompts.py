"""Build the instructions sent to the coding agent."""

from __future__ import annotations

SOURCE_DOC_NAMES = (
    "PROJECT.md",
    "PROJECT_SPEC.md",
    "SPECS.md",
    "SPECIFICATION.md",
    "README.md",
    "DESIGN.md",
    "IDEA.md",
)


def _doc_list() -> str:
    return ", ".join(SOURCE_DOC_NAMES)


def build_bootstrap_prompt(todo_ref: str, schema_ref: str) -> str:
    return f"""Initialize a task backlog for this project.

Rules:
- Read the current directory to understand the project.
- Search for markdown source docs like {_doc_list()}, etc.
- Create "{todo_ref}" using the schema in "{schema_ref}".
- Populate source_files with the relative paths (from project root) of the source docs you found. If none, set source_files to [].
- Add as many actionable tasks as are needed to fully implement the project.
- Assign each task priority (1 is highest).
- Set all task statuses to "todo".
- Do not modify code or other files.
- Use jq if helpful.
- Do not ask for confirmation.

Return a brief summary of what you created.
"""


def build_repair_prompt(todo_ref: str, schema_ref: str, errors: list[str]) -> str:
    problems = "\n".join(f"- {err}" for err in errors[:20]) or "- (unknown)"
    return f"""Fix "{todo_ref}" to match the schema in "{schema_ref}".

Validation problems:
{problems}

Rules:
- Preserve existing tasks and their intent.
- Ensure source_files exists; if missing, add relevant source docs ({_doc_list()}). Use relative paths and [] if none.
- Do not change code or other files.
- Use jq if helpful.
- Keep JSON formatted with 2-space indentation.
- Do not ask for confirmation.

Return a brief summary of what you changed.
"""


def build_iteration_prompt(todo: str, schema_ref: str) -> str:
    return f"""You are running in a deterministic task loop with fresh context each run.

Goal: complete exactly one task from "{todo}" per iteration.

Rules:
- Read "{todo}" and follow the schema in "{schema_ref}".
- Read every file listed in source_files and treat them as ground truth for task selection and implementation.
- If any task has status "doing", continue that task. If multiple, pick the lowest id.
- Otherwise pick the highest priority task with status "todo". If none, pick the highest priority "blocked" task and attempt to unblock it.
- If multiple tasks share priority, pick the lowest id.
- Set the chosen task status to "doing" before making changes.
- Implement the task fully and keep scope tight.
- If blocked, set status to "blocked" and add clear blocker notes. Do not commit partial work.
- If completed, set status to "done", update updated_at, and record relevant files in files[] if helpful.
- Use jq for task file edits when practical.
- Commit completed work with Conventional Commits (type(scope): summary). One commit per task.
- Do not amend or rewrite history.
- If no code changes are needed, skip commit and note the reason in the task details.
- Do not ask for confirmation.

Return only a JSON object:
{{"task_id":"T123","status":"done","summary":"...","files":["..."],"blockers":[]}}
If no task was executed, use status "skipped" and task_id null.
"""
