import hashlib


def generate_hash(token: str) -> str:
    """
    Derive the service's source string hash for a token.

    The service keys source strings by ``md5(key + ":" + context)`` where the
    key has backslashes and periods escaped. Dictionary tokens never carry a
    context, so the context part is empty.

    Args:
        token: The token text.

    Returns:
        The lowercase hex digest used in source string URLs.
    """
    escaped = token.replace('\\', '\\\\').replace('.', '\\.')
    return hashlib.md5((escaped + ':').encode('utf-8')).hexdigest()
