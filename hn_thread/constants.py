"""
Constants and configuration values for HN thread retrieval.
"""

# Endpoints
FIREBASE_API_BASE = "https://hacker-news.firebaseio.com/v0"
HN_WEB_BASE = "https://news.ycombinator.com"
HN_USER_AGENT = "Mozilla/5.0"

# Story listings exposed by the Firebase API
STORY_KINDS = ("top", "new", "best", "ask", "show", "job")

# HTTP
HTTP_TIMEOUT = 15.0
HTTP_CONNECT_TIMEOUT = 10.0
HTTP_RETRY_ATTEMPTS = 3  # Per-request retries for 429/5xx before surfacing
HTTP_RETRY_BACKOFF_BASE = 0.5
HTTP_RETRY_BACKOFF_MAX = 8.0
HTTP_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})

# Concurrency
EXTERNAL_REQUEST_SEMAPHORE = 10  # Max in-flight item fetches
LISTING_FETCH_LIMIT = 10  # Buffered concurrency for FirebaseClient.items

# Orchestrator retry (requeue) policy
FETCH_MAX_ATTEMPTS = None  # None = requeue forever
FETCH_BACKOFF_BASE = 0.0  # Seconds before a requeued fetch (0 = immediate)
FETCH_BACKOFF_MAX = 30.0
CANCEL_POLL_INTERVAL = 0.1  # Max seconds between cancellation checks

# CLI defaults (bounded so a dead id can't spin forever)
CLI_MAX_ATTEMPTS = 5
CLI_BACKOFF_BASE = 0.25

# Tree building
INDENT_STEP = 40  # Pixel width of one nesting level in the rendered page
MAX_TREE_DEPTH = 500  # Recursion bound for the indent builder

# Listings
NEWS_DEFAULT_LIMIT = 30
