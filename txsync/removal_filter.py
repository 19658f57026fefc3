from typing import AbstractSet, Iterable, List, Tuple

from txsync.models import Content, ResourceString


def remove_strings_with_certain_tags(
        resource_strings: Iterable[ResourceString],
        removal_tags: AbstractSet[str]
) -> Tuple[Content, List[str]]:
    """
    Rebuild the publishable content without strings carrying a removal tag.

    Args:
        resource_strings: Tagged records, usually the output of tagging.
        removal_tags: A record is dropped if it carries any of these tags.

    Returns:
        A tuple containing:
        - The token -> token content mapping of the surviving strings.
        - The tokens that were dropped, in input order.
    """
    removal_tags = set(removal_tags)
    content: Content = {}
    removed: List[str] = []
    for resource_string in resource_strings:
        if removal_tags & set(resource_string.tags):
            removed.append(resource_string.token)
            continue
        content[resource_string.token] = resource_string.token
    return content, removed
