"""Morph Bang Conventions - IMMUTABLE

This file defines the canonical names, paths, and constants that every
morph-bang component agrees on. These values are NOT configurable.

Things that CAN be configured (via config.yaml):
- watch_root (which tree inotifywait watches)
- lock_ttl (debounce window)
- tool_timeout, log_file, notifications

Things that CANNOT be configured (defined HERE):
- the version history layout inside each user's home
- version file naming
- temp artifact suffixes
- notification identity

Changing the history layout orphans every user's existing history.
That requires a major version bump and migration.
"""

# --- Identity ---
APP_NAME = "morph-bang"
APP_DISPLAY_NAME = "Morph Bang"

# --- Watch defaults ---
WATCH_DIR = "/home"
LOCK_TTL_SECONDS = 2.0
WATCH_EXCLUDE = "/\\..*"  # dotfile-prefixed paths

# --- Triggers ---
TRIGGER_PREFIX = "!"
DESTRUCTIVE_PREFIX = "!!"

# --- Version history ---
# Full path: <home>/.local/share/morph-bang/versions/<key>/
VERSIONS_PARENT = ".local/share"
VERSIONS_DIR = "versions"  # relative to <home>/.local/share/morph-bang
VERSION_KEY_DOMAIN = b"morph-bang:v1:path-key"
VERSION_SEQ_LIMIT = 1024
VERSION_FALLBACK_EXT = "bin"
DIRECTORY_VERSION_EXT = "dir.tar"

# --- Temp artifacts (siblings of the subject) ---
TEMP_MARKER = "morph_tmp"
FOLDER_PAGES_SUFFIX = ".morph_tmp_pdfs"

# --- Conversion ---
RASTER_DPI = 300
RASTER_SCALE = 2
PDF_ENGINE = "xelatex"
SPLIT_PAGE_DIGITS = 3
FOLDER_PAGE_DIGITS = 4
AGGREGATE_PDF_MODE = 0o644
TOOL_TIMEOUT_SECONDS = 600

# --- Notifications ---
NOTIFY_ICON = "document-export"
NOTIFY_SUMMARY = "Morphing Data"
SESSION_BUS_TEMPLATE = "unix:path=/run/user/{uid}/bus"

# --- Daemon ---
CONFIG_FILE = "/etc/morph-bang/config.yaml"
PID_FILE = "/run/morph-bang.pid"
LOG_FILE = "/var/log/morph-bang/morph-bang.log"

# --- Platform Service ---
SERVICE_NAME = "morph-bang"  # systemd unit name
SYSTEMD_UNIT_DIR = "/etc/systemd/system"

# --- External tools the daemon shells out to ---
REQUIRED_TOOLS = [
    "inotifywait",
    "file",
    "vips",
    "magick",
    "ffmpeg",
    "pandoc",
    "pdfinfo",
    "pdfunite",
    "tar",
    "id",
]
OPTIONAL_TOOLS = [
    "notify-send",
    "sudo",
    "xelatex",
]
