def to_uppercase(value: str | None) -> str | None:
    """
    Converts a string to uppercase if it's not None.
    """
    if value is None:
        return None
    return value.upper()

def to_lowercase(value: str | None) -> str | None:
    """
    Converts a string to lowercase if it's not None.
    """
    if value is None:
        return None
    return value.lower()

def split_codes(value: str | None) -> list[str]:
    """
    Split a comma-separated list of error codes ("timeout, server_error") into
    stripped, non-empty codes.
    """
    if not value:
        return []
    return [code.strip() for code in value.split(",") if code.strip()]
