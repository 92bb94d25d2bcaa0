def is_valid_timestamp(timestamp: str) -> bool:
    """Loose shape check: the value must contain both a '-' and a ':'.

    Only a gate before the value reaches the database, which does the real parsing.
    """
    return "-" in timestamp and ":" in timestamp
