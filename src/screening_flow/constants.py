"""Screening constants shared across the SDK.

These values are referenced by the engine, the fast-path coordinator and
the catalog store.  Several constants can be overridden via environment
variables so that deployments can tune them without code changes.
"""

import os

# Upper bound on how long the fast path waits for the external
# authorization flow before giving up (seconds).
# Overridable via FAST_PATH_TIMEOUT_SECONDS env var.
FAST_PATH_TIMEOUT_SECONDS = float(os.getenv("FAST_PATH_TIMEOUT_SECONDS", "300"))

# Message type the external authorization window posts when it has
# extracted data.  Any other message on the channel is ignored.
AUTH_SUCCESS_MESSAGE_TYPE = "EHR_AUTH_SUCCESS"

# Shown to the user whenever the fast path ends without usable data.
FAST_PATH_FALLBACK_MESSAGE = (
    "We couldn't find this information in your health record. "
    "Please enter it manually."
)

# Safest outcome, used when an answer set cannot be evaluated.
SAFE_OUTCOME = "ask_a_doctor"

# Human-readable outcome summaries for API responses.
OUTCOME_SUMMARIES: dict[str, str] = {
    "ok_to_use": (
        "Based on your answers, this medication may be appropriate for you. "
        "A verification code can be generated."
    ),
    "ask_a_doctor": (
        "Based on your answers, please consult with a healthcare provider "
        "before using this medication."
    ),
    "do_not_use": (
        "Based on your answers, this medication is not recommended for you. "
        "Please consult with a healthcare provider."
    ),
}

# Directory holding the program catalog YAML files.  Defaults to
# ``programs/`` at the repository root when unset.
CATALOG_DIR = os.getenv("CATALOG_DIR")

# How long a settled fast-path attempt stays queryable after it settles
# (seconds).  Attempts are also dropped once the session moves on.
# Overridable via FAST_PATH_RETENTION_SECONDS env var.
FAST_PATH_RETENTION_SECONDS = float(os.getenv("FAST_PATH_RETENTION_SECONDS", "1800"))
