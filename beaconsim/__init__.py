def _version_to_int(version_str: str) -> int:
    version_split = version_str.split(".") + ["0", "0"]
    major = int(version_split[0])
    minor = int(version_split[1])
    patch = int(version_split[2])
    return (10000 * major) + (100 * minor) + patch

#Release version
__version__ = "0.1.0"
__spec_version__ = _version_to_int(__version__)

#DNS limits
MAX_DOMAIN_LENGTH: int = 253
MAX_LABEL_LENGTH: int = 63

#Label alphabets
LABEL_CHARS = "abcdefghijklmnopqrstuvwxyz0123456789"
ALPHA_CHARS = "abcdefghijklmnopqrstuvwxyz"
DIGIT_CHARS = "0123456789"

#Record types that carry free text
TEXT_QUERY_TYPES = ("TXT",)

#Large TXT payloads are only ever sampled, never sent whole
TXT_SAMPLE_LENGTH: int = 250

#Default storage for the event log
SAVE_PATH = "./storage"
