"""
Application constants
"""

# Motion API
MOTION_TASKS_ENDPOINT = "/tasks"
MOTION_USER_ENDPOINT = "/users/me"
MOTION_WORKSPACES_ENDPOINT = "/workspaces"
MOTION_OPTIMIZE_ENDPOINT = "/schedule/optimize"
MOTION_API_KEY_HEADER = "X-API-Key"

# Task defaults
TASK_DEFAULT_CATEGORY = "Work"
TASK_DEFAULT_DURATION = 60  # minutes
TASK_UNTITLED = "Untitled Task"
LOCAL_ID_PREFIX = "local-"

# Retry configuration (idempotent verbs only)
MAX_RETRIES = 3
RETRY_DELAY = 1  # seconds, doubled on every attempt
RETRY_MAX_DELAY = 8  # seconds
IDEMPOTENT_METHODS = frozenset({"GET", "PUT", "PATCH", "DELETE"})

# Operation log
OPERATION_RETENTION_MINUTES = 60
SYNC_SUMMARY_WINDOW_MINUTES = 5
SYNC_SUMMARY_RECENT_LIMIT = 10
OPERATION_LOG_MAX_ENTRIES = 500

# Time blocking
OVERLAP_POLICIES = ("displace", "reject", "allow")
PRIORITY_COLORS = {
    "urgent": "red",
    "high": "orange",
    "medium": "yellow",
    "low": "green",
}

# Logging
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
