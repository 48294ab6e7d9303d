"""
Shared constants for relprobe. Values here are defaults; most of them can be
overridden through `relprobe.internal.config`.
"""

APP_NAME = "relprobe"
ENV_PREFIX = "RELPROBE_"

# ---------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------

DEFAULT_CHUNK_SIZE = 64 * 1024
# Chunks the producer may run ahead of the slowest fan-out reader.
DEFAULT_FANOUT_DEPTH = 16
DEFAULT_REQUEST_TIMEOUT = 60.0

# Zip archives are spooled to memory up to this size, then to a temp file.
DEFAULT_ZIP_SPOOL_MAX_BYTES = 32 * 1024 * 1024

# ---------------------------------------------------------------------
# Digests
# ---------------------------------------------------------------------

HASH_BLAKE3 = "blake3"
HASH_SHA256 = "sha256"
SUPPORTED_HASHES = (HASH_BLAKE3, HASH_SHA256)
DEFAULT_HASH = HASH_BLAKE3

# ---------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------

LOG_FILE_NAME = "relprobe.log.json"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5
