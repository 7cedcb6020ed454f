DEFAULT_TODO_FILE = "to-do.json"
CONFIG_DIR_NAME = ".looper"
CONFIG_FILE = "config.yaml"
SUMMARY_SCHEMA_FILE = "summary.schema.json"
DEFAULT_LOG_ROOT = "~/.looper"

DEFAULT_MAX_ITERATIONS = 50
DEFAULT_AGENT_BIN = "codex"
DEFAULT_MODEL = "gpt-5.2-codex"
DEFAULT_REASONING_EFFORT = "xhigh"
FOLLOW_POLL_SECONDS = 1.0
STOP_POLL_SECONDS = 0.2

TASK_STATUS_TODO = "todo"
TASK_STATUS_DOING = "doing"
TASK_STATUS_BLOCKED = "blocked"
TASK_STATUS_DONE = "done"
TASK_STATUSES = (
    TASK_STATUS_TODO,
    TASK_STATUS_DOING,
    TASK_STATUS_BLOCKED,
    TASK_STATUS_DONE,
)

SUMMARY_STATUS_SKIPPED = "skipped"

RAW_EVENT_TYPE = "looper.raw"

# Display caps for rendered log lines.
PROGRESS_MAX_CHARS = 120
SUMMARY_MAX_CHARS = 120
TAIL_AGENT_MAX_CHARS = 240
TAIL_REASONING_MAX_CHARS = 200
TAIL_COMMAND_MAX_CHARS = 160
TRUNCATION_MARKER = "..."

EXIT_INTERRUPTED = 130
