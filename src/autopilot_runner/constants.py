AUTO_DIR = ".claude/auto"
BACKLOG_FILE = "prd.json"
PROGRESS_FILE = "progress.md"
PROMPT_FILE = "prompt.md"
DISCOVERY_PROMPT_FILE = "discovery-prompt.md"
CONFIG_FILE = "config.yaml"
SCHEMA_VERSION = "1.0"

DEFAULT_MAX_ITERATIONS = 50
DEFAULT_PILOT_ITERATIONS = 30
DEFAULT_DISCOVER_INTERVAL = 5
DEFAULT_MAX_DISCOVERY_TASKS = 10
DEFAULT_PAUSE_SECONDS = 2
DEFAULT_MAX_CONSECUTIVE_FAILURES = 3
DEFAULT_MAX_EMPTY_DISCOVERIES = 3  # Empty discoveries tolerated once nothing is pending

DEFAULT_SANDBOX_IMAGE = "node:lts"
DOCKER_CONTAINER_MOUNT = "/workspace"
DEFAULT_DOCKER_SANDBOX_AGENT = "claude"
SANDBOX_CHECK_TIMEOUT_SECONDS = 5

PAUSE_SECONDS_ENV = "PAUSE_SECONDS"
MAX_CONSECUTIVE_FAILURES_ENV = "MAX_CONSECUTIVE_FAILURES"

# Only forwarded into containers when set on the host
AI_TOOL_ENV_VARS = (
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "AMP_API_KEY",
    "AI_TOOL",
    PAUSE_SECONDS_ENV,
    MAX_CONSECUTIVE_FAILURES_ENV,
    "TERM",
)

QUALITY_CHECKS_BY_MARKER = (
    ("go.mod", ["go test ./...", "go vet ./...", "go build ./..."]),
    ("package.json", ["npm test", "npm run lint", "npm run build"]),
    ("Cargo.toml", ["cargo test", "cargo clippy", "cargo build"]),
    ("pyproject.toml", ["pytest", "ruff check ."]),
    ("requirements.txt", ["pytest", "ruff check ."]),
)
