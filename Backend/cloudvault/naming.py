import secrets
import string
import time

_ALPHABET = string.ascii_lowercase + string.digits
SUFFIX_LENGTH = 13


def _random_suffix(length: int = SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_storage_name(original_name: str) -> str:
    """`report.pdf` -> `report_<ms timestamp>_<random>.pdf`.

    Only the last extension is kept aside; dotfiles such as `.env` count as
    having no extension. Uniqueness is practical, not checked.
    """
    stem, dot, ext = original_name.rpartition(".")
    if not dot or not stem:
        stem, ext = original_name, ""

    timestamp = int(time.time() * 1000)
    unique = f"{stem}_{timestamp}_{_random_suffix()}"
    return f"{unique}.{ext}" if ext else unique
