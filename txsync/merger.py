from typing import Dict

from txsync.models import Content, Dictionaries, MergeResult


def flatten_dictionaries(dictionaries: Dictionaries) -> Content:
    """
    Fold every scope into a single token -> text mapping.

    Scopes are folded in insertion order and the first scope that declares a
    token with non-empty text wins. A later scope only fills a token whose
    text is still empty.

    Args:
        dictionaries: Scope name -> {token: text}.

    Returns:
        The flattened mapping.
    """
    flattened: Dict[str, str] = {}
    for scope in dictionaries.values():
        for token, text in scope.items():
            if not flattened.get(token):
                flattened[token] = text
    return flattened


def merge_strings(dictionaries: Dictionaries, remote_content: Content) -> MergeResult:
    """
    Merge local dictionaries on top of the content currently published remotely.

    Tokens only present remotely are kept here; whether they are obsolete is
    reported separately so tagging can decide what happens to them.

    Args:
        dictionaries: Scope name -> {token: text}.
        remote_content: Token -> text as returned by the service.

    Returns:
        A MergeResult with the merged content and the obsolete tokens. A
        token is obsolete when it appears among the remote values but not
        among the local values. With no local tokens at all nothing is
        reported obsolete, so an empty input cannot retire the whole resource.
    """
    flattened = flatten_dictionaries(dictionaries)

    merged: Content = dict(remote_content)
    merged.update(flattened)

    local_values = set(flattened.values())
    if local_values:
        obsolete = frozenset(value for value in remote_content.values() if value not in local_values)
    else:
        obsolete = frozenset()

    return MergeResult(merged=merged, obsolete=obsolete)
