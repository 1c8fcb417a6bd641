# Registry defaults used when a reference omits hostname or owner.
DEFAULT_PROVIDER_HOSTNAME = "registry.terraform.io"
DEFAULT_PROVIDER_OWNER = "hashicorp"
DEFAULT_REGISTRY_SCHEME = "https"

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_WAIT_BETWEEN_LOOPS = "6h"

# Catalog files written next to the archives of each provider.
MIRROR_INDEX_FILE = "index.json"
S3_ETAG_MAP_FILE = ".etag-map.json"

MAX_ATTEMPTS = 5  # total tries per target, backoff is attempt**2 seconds
CHUNK_SIZE = 1024 * 1024  # 1 MB chunks for download and hashing
CONNECT_TIMEOUT = 15  # seconds
READ_TIMEOUT = 120  # seconds
MAX_WORKERS = 1  # fetches per provider run one at a time unless asked otherwise
S3_DEFAULT_REGION = "us-east-1"  # signing region when a custom endpoint is set
USER_AGENT = "provider-mirror/1.0"
