"""
Centralized constants for the batch progress tracker.
All magic numbers live here.
"""

# ===========================================
# BATCH SUBMISSION
# ===========================================
BATCH_MAX_UNITS = 100                 # 1-100 recipes per batch
BATCH_CHUNK_SIZE = 5                  # units generated per chunk
BATCH_ID_PREFIX = "batch_"

# ===========================================
# JOB REGISTRY / BROADCASTER
# ===========================================
REGISTRY_TTL_SECONDS = 3600           # terminal jobs archived after 1 hour
BROADCASTER_QUEUE_SIZE = 100          # pending events per subscriber
SSE_PING_SECONDS = 15                 # heartbeat for silent-death detection
SUBMIT_RATE_LIMIT = "30/minute"       # batch submissions per client IP
SIMULATED_UNIT_SECONDS = 0.2          # per-unit delay of the built-in worker

# Named sub-agents reported in per_agent_status
AGENT_CONCEPT = "concept"
AGENT_VALIDATOR = "validator"
AGENT_ARTIST = "artist"
AGENT_STORAGE = "storage"
AGENTS = (AGENT_CONCEPT, AGENT_VALIDATOR, AGENT_ARTIST, AGENT_STORAGE)

AGENT_IDLE = "idle"
AGENT_WORKING = "working"
AGENT_COMPLETE = "complete"
AGENT_FAILED = "failed"

# ===========================================
# CLIENT OBSERVERS
# ===========================================
POLL_INTERVAL_MS = 2000               # fixed interval, no backoff
POLL_FAILURE_THRESHOLD = 3            # consecutive failures before TransportError
RESUME_TTL_SECONDS = 300              # 5 minutes
RESUME_SLOT_FILE = "active-batch.json"
REQUEST_TIMEOUT_SECONDS = 30

# Cached collections a finished batch mutates
INVALIDATED_COLLECTIONS = ("recipes", "admin-recipes", "admin-stats")

# ===========================================
# RENDERING
# ===========================================
UNKNOWN_MARKER = "--"
MAX_ERRORS_SHOWN = 3

# ===========================================
# API / SERVER
# ===========================================
API_BASE_URL = "http://localhost:8000"
API_VERSION = "1.0.0"

# ===========================================
# LOGGING
# ===========================================
LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE = 'logs/batch_tracker.log'
LOG_MAX_SIZE_MB = 10
LOG_BACKUP_COUNT = 5
