"""
Application-wide constants.
"""

# Table names in the remote store
TABLE_TASKS = "tasks"
TABLE_RULES = "rules"
TABLE_REWARDS = "rewards"
TABLE_PUNISHMENTS = "punishments"
TABLE_PUNISHMENT_HISTORY = "punishment_history"
TABLE_RULE_VIOLATIONS = "rule_violations"
TABLE_TASK_COMPLETION_HISTORY = "task_completion_history"
TABLE_PROFILES = "profiles"

# Query cache keys
TASKS_QUERY_KEY = ("tasks",)
RULES_QUERY_KEY = ("rules",)
REWARDS_QUERY_KEY = ("rewards",)
PUNISHMENTS_QUERY_KEY = ("punishments",)
PUNISHMENT_HISTORY_QUERY_KEY = ("punishment-history",)
PROFILE_POINTS_QUERY_KEY = ("profile-points",)

# Local mirror keys
MIRROR_TASKS_KEY = "allTasks"
MIRROR_RULES_KEY = "allRules"
MIRROR_REWARDS_KEY = "allRewards"
MIRROR_PUNISHMENTS_KEY = "allPunishments"
MIRROR_PUNISHMENT_HISTORY_KEY = "punishmentHistory"
MIRROR_POINTS_KEY = "points"  # Suffixed with ":<profile id>"
MIRROR_LAST_SYNC_PREFIX = "lastSync:"

# Optimistic records
TEMP_ID_PREFIX = "temp-"

# Task options
PRIORITY_LOW = "low"
PRIORITY_MEDIUM = "medium"
PRIORITY_HIGH = "high"
PRIORITIES = (PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH)

FREQUENCY_DAILY = "daily"
FREQUENCY_WEEKLY = "weekly"
FREQUENCIES = (FREQUENCY_DAILY, FREQUENCY_WEEKLY)

# Profile roles
ROLE_SUBMISSIVE = "submissive"
ROLE_DOMINANT = "dominant"

# Usage arrays
USAGE_DAYS = 7
WEEK_START_MONDAY = "monday"
WEEK_START_SUNDAY = "sunday"

# Card styling defaults
DEFAULT_ICON_COLOR = "#9b87f5"
DEFAULT_TITLE_COLOR = "#FFFFFF"
DEFAULT_SUBTEXT_COLOR = "#8E9196"
DEFAULT_CALENDAR_COLOR = "#7E69AB"
DEFAULT_BACKGROUND_OPACITY = 100
DEFAULT_FOCAL_POINT = 50

# Entity defaults
DEFAULT_TASK_POINTS = 10
DEFAULT_REWARD_COST = 10
DEFAULT_PUNISHMENT_POINTS = 10
DEFAULT_CAROUSEL_TIMER = 5

# List query behaviour
TASKS_FETCH_TIMEOUT_SECONDS = 10.0
PUNISHMENTS_FETCH_TIMEOUT_SECONDS = 15.0
LIST_FETCH_RETRIES = 2
LIST_FETCH_RETRY_BASE_DELAY = 0.5
LIST_STALE_SECONDS = 30 * 60  # Mirror and cache are fresh for 30 minutes

# Notices
NOTICE_LEVEL_ERROR = "error"
NOTICE_LEVEL_WARNING = "warning"
NOTICE_LEVEL_SUCCESS = "success"
MAX_RECENT_NOTICES = 100

# Logging
DEFAULT_LOG_DIRECTORY_PROD = "/var/log/kingdom"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"

CORS_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
]
