"""Default tuning values for chronolog stores.

Kept in one place so the store, options model and CLI agree.
"""

# Retention
DEFAULT_MAX_EVENTS = 10000
MIN_MAX_EVENTS = 2
DEFAULT_COMPACTION_RATIO = 0.5

# Checkpointing
DEFAULT_CHECKPOINTS_ENABLED = True
DEFAULT_CHECKPOINT_INTERVAL = 100

# Cursor position meaning "before the first event"
INITIAL_POSITION = -1

# Replay capture
REDACTED_PLACEHOLDER = "[REDACTED]"
PLAYBACK_MIN_DELAY_MS = 16  # one frame at 60fps

# Time
MS_PER_SECOND = 1000
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400
SECONDS_PER_WEEK = 604800
SECONDS_PER_MONTH = 2592000  # 30 days
SECONDS_PER_YEAR = 31536000  # 365 days

# CLI
DEFAULT_LOG_LIMIT = 50
