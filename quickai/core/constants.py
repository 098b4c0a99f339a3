DEFAULT_PROVIDER = "Groq"
DEFAULT_MODEL = "llama-3.1-8b-instant"
DEFAULT_MAX_TOKENS = 128
DEFAULT_TEMPERATURE = 0.2
DEFAULT_TIMEOUT_SECONDS = 8  # idle window per credential attempt

MIN_MAX_TOKENS = 16
MAX_MAX_TOKENS = 4096
MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0
MIN_TIMEOUT_SECONDS = 3
MAX_TIMEOUT_SECONDS = 30

CONNECT_TIMEOUT = 10
# Socket read timeout is the idle window plus this grace so the watchdog fires first.
READ_TIMEOUT_GRACE = 1.0

CHUNKS_PER_REFRESH = 3
MIN_REFRESH_INTERVAL = 0.150  # seconds

POOL_CONNECTIONS = 10
POOL_MAXSIZE = 10

TITLE_MAX_CHARS = 100
SUBTITLE_MAX_CHARS = 80
ERROR_BODY_EXCERPT = 200
