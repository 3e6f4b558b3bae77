# Portal
DEFAULT_PORTAL_URL = "https://portalpjn.pjn.gov.ar/"
DEFAULT_LOGIN_URL = "https://sso.pjn.gov.ar/auth/realms/pjn/protocol/openid-connect/auth"
DEFAULT_LOGIN_GATE_MARKER = "sso.pjn.gov.ar"
DEFAULT_NOTIFICATIONS_URL = "https://portalpjn.pjn.gov.ar/notificaciones"
DEFAULT_TIMEZONE = "America/Argentina/Buenos_Aires"

# Login form
DEFAULT_USERNAME_SELECTOR = 'input[name="username"], input[id="username"]'
DEFAULT_PASSWORD_SELECTOR = 'input[name="password"], input[id="password"]'
DEFAULT_SUBMIT_SELECTOR = 'input[type="submit"], button[type="submit"], #kc-login'

# Scraper selectors
DEFAULT_ROW_SELECTOR = "table tbody tr"
DEFAULT_TITLE_SELECTOR = "td:nth-child(2)"
DEFAULT_DETAILS_SELECTOR = "td:nth-child(3)"
DEFAULT_NOTIFICATION_SELECTOR = ".badge, .notificacion, .fa-bell"
DEFAULT_CASE_NUMBER_PATTERN = r"\d+/\d{4}"

# Session Manager
DEFAULT_MAX_LOGIN_ATTEMPTS = 3
DEFAULT_LOGIN_BACKOFF_SECONDS = 2.0
DEFAULT_SESSION_TIMEOUT_SECONDS = 30.0
DEFAULT_COOKIES_PATH = "data/cookies/session.json"

# Dispatcher
DEFAULT_DISPATCH_TIMEOUT_SECONDS = 30.0

# Scheduler
DEFAULT_CHECK_INTERVAL_MINUTES = 30

# Change detection: "details" re-dispatches an already-sent record when the
# scraped notification details differ; "never" suppresses every repeat.
REPEAT_POLICY_DETAILS = "details"
REPEAT_POLICY_NEVER = "never"
DEFAULT_REPEAT_POLICY = REPEAT_POLICY_DETAILS

# State Store
STORE_BACKEND_SQLITE = "sqlite"
STORE_BACKEND_SUPABASE = "supabase"
DEFAULT_STORE_BACKEND = STORE_BACKEND_SQLITE
DEFAULT_DB_PATH = "data/db/monitor.db"
RECORDS_TABLE = "records"
RUNS_TABLE = "verification_runs"

# Notification Settings
TELEGRAM_MAX_MESSAGE_LENGTH = 4096
TELEGRAM_MAX_RETRIES = 3
TITLE_TRUNCATE_LENGTH = 300
DETAILS_TRUNCATE_LENGTH = 1000

# Error alerts
MAX_ALERTS_PER_HOUR = 5

# Default Logging Values
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = "logs/monitor.log"
DEFAULT_LOG_FORMAT = "text"  # text or json
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_LOG_BACKUP_COUNT = 5

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
