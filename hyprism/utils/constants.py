# HTTP

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DOWNLOAD_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://launcher.hytale.com/",
}

PROBE_TIMEOUT = 10  # seconds
HEAD_TIMEOUT = 30
# (connect, read) for streamed transfers
STREAM_TIMEOUT = (30, 120)

DOWNLOAD_CHUNK_SIZE = 32 * 1024
PROGRESS_INTERVAL = 0.1  # seconds between download progress events

# A cached full patch of unknown expected size is trusted above this size
TRUSTED_CACHE_SIZE = 1024 * 1024 * 1024

# Version probing

PROBE_START_VERSION = {
    "pre-release": 10,
}
DEFAULT_PROBE_START_VERSION = 5

# Patch application

PATCH_DELETE_DELAY = 2.0  # seconds
BUTLER_POLL_INTERVAL = 0.5

# Logs

LOG_TAIL_BYTES = 30 * 1024
CRASH_PREVIEW_CHARS = 500
