"""Constants for todocal.

This module centralizes the magic numbers and default values used by the
Google integration.
"""

PROVIDER_GOOGLE = "google"

# Token lifecycle
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600  # Used when the provider omits expires_in
TOKEN_EXPIRY_SKEW_SECONDS = 60
OAUTH_STATE_TTL_SECONDS = 600  # 10 minutes

# Outbound HTTP
GOOGLE_HTTP_TIMEOUT_SECONDS = 8

# Calendar reads
DEFAULT_EVENT_LIMIT = 100
MIN_EVENT_LIMIT = 1
MAX_EVENT_LIMIT = 250
UNTITLED_EVENT_TITLE = "(No title)"
