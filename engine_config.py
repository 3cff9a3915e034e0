"""
Configuration settings for the workflow execution engine.

Every value can be overridden through the environment variable named in the
comment above it.
"""

import os


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Browser engines a workflow may ask for via the "browserType" property.
# Unrecognized hints fall back to DEFAULT_BROWSER_ENGINE.
BROWSER_ENGINES = ("chromium", "firefox", "webkit")

# WORKFLOW_BROWSER_ENGINE
DEFAULT_BROWSER_ENGINE = os.environ.get("WORKFLOW_BROWSER_ENGINE", "chromium")

# Browser headless mode (WORKFLOW_HEADLESS)
# False = browser window visible so an operator can watch and inspect a run
# True = browser runs in background
HEADLESS = _env_bool("WORKFLOW_HEADLESS", False)

# Extra launch arguments for chromium
BROWSER_ARGS = [
    "--disable-dev-shm-usage",
    "--start-maximized",
]

# Timeout in milliseconds applied to every browser call (WORKFLOW_ACTION_TIMEOUT_MS)
ACTION_TIMEOUT_MS = int(os.environ.get("WORKFLOW_ACTION_TIMEOUT_MS", "60000"))

# Load state page.goto() waits for (WORKFLOW_WAIT_UNTIL)
NAVIGATION_WAIT_UNTIL = os.environ.get("WORKFLOW_WAIT_UNTIL", "domcontentloaded")

# Close the run's browser when the run finishes (WORKFLOW_TERMINATE_ON_FINISH)
# Off by default: the browser stays open so the final state can be inspected.
TERMINATE_ON_FINISH = _env_bool("WORKFLOW_TERMINATE_ON_FINISH", False)

# Seconds a finished run stays in memory before eviction (WORKFLOW_RUN_RETENTION)
# None or 0 = never evict
RUN_RETENTION_SECONDS = int(os.environ.get("WORKFLOW_RUN_RETENTION", "3600")) or None

# Directory where finished runs are archived as JSON (WORKFLOW_RUN_ARCHIVE_DIR)
# Empty = no archive
RUN_ARCHIVE_DIR = os.environ.get("WORKFLOW_RUN_ARCHIVE_DIR", "")

# HTTP server binding (WORKFLOW_API_HOST / WORKFLOW_API_PORT)
API_HOST = os.environ.get("WORKFLOW_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("WORKFLOW_API_PORT", "3001"))
