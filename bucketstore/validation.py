import re

BUCKET_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
INVALID_BUCKET_NAME_MESSAGE = "Invalid bucket name. Use only letters, numbers, dashes, and underscores."


def is_valid_bucket_name(name: str) -> bool:
    # ASCII only; no length limit
    return bool(BUCKET_NAME_RE.fullmatch(name))


def is_valid_object_key(key: str) -> bool:
    """
    Reject keys that could address anything outside their bucket.

    Keys may contain "/" to name nested paths, but every segment must be a
    plain name: no empty, "." or ".." segments, no backslashes or NUL bytes.
    """
    if not key or key.startswith("/"):
        return False
    for segment in key.split("/"):
        if segment in ("", ".", ".."):
            return False
        if "\\" in segment or "\x00" in segment:
            return False
    return True
