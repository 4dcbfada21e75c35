"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    RESOLUTION_TIMEOUT = 3
    RESOLUTION_ERROR = 4


class OutputFormats(Enum):
    """Output formats for the resolved pins."""

    TEXT = "text"
    JSON = "json"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    INDEX_URL = "https://pypi.org/simple"
    SIMPLE_JSON_CONTENT_TYPE = "application/vnd.pypi.simple.v1+json"
    USER_AGENT = "wheelpin/0.1"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

    # Resolution tunables
    MAX_CONCURRENT_FETCHES = 32
    RESPONSE_BATCH_SIZE = 32

    # HTTP tunables
    REQUEST_TIMEOUT = 30  # Timeout in seconds for a single HTTP request
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_CACHE_TTL_SEC = 300
    HTTP_CACHE_MAX_ENTRIES = 2000

    # Configuration
    ENV_LOG_LEVEL = "WHEELPIN_LOG_LEVEL"
    ENV_INDEX_URL = "WHEELPIN_INDEX_URL"
    ENV_TIMEOUT = "WHEELPIN_TIMEOUT"
    ENV_CONFIG = "WHEELPIN_CONFIG"
    CONFIG_FILE_NAMES = ["wheelpin.yml", "wheelpin.yaml", ".wheelpin.yml", ".wheelpin.yaml"]
