"""Derive the tag set of every resource string from scope membership."""
import logging
from dataclasses import replace
from typing import AbstractSet, Iterable, List, Optional

from txsync.app_config import AppConfig
from txsync.models import Dictionaries, ResourceString

logger = logging.getLogger(__name__)


def _unique(tags: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for tag in tags:
        if tag and tag not in seen:
            seen.add(tag)
            ordered.append(tag)
    return ordered


def declaring_scopes(dictionaries: Dictionaries, token: str) -> List[str]:
    """Return the names of the scopes that declare the token with non-empty text."""
    return [scope for scope, strings in dictionaries.items() if strings.get(token)]


def classify_tags(
        dictionaries: Dictionaries,
        resource_string: ResourceString,
        obsolete_tokens: AbstractSet[str],
        config: AppConfig
) -> List[str]:
    """
    Compute the tags a single resource string should carry.

    Args:
        dictionaries: Scope name -> {token: text}.
        resource_string: The record fetched from the service.
        obsolete_tokens: Tokens no longer declared by any scope.
        config: Supplies the obsolete tag and the tags to skip.

    Returns:
        The deduplicated tag list, existing tags first.
    """
    tags = list(resource_string.tags)
    scopes = declaring_scopes(dictionaries, resource_string.token)

    if scopes:
        tags.extend(scopes)
        tags = [tag for tag in tags if tag != config.obsolete_tag]
    elif resource_string.token in obsolete_tokens:
        tags.append(config.obsolete_tag)

    return [tag for tag in _unique(tags) if tag not in config.skip_tags]


def apply_tags_to_strings(
        dictionaries: Dictionaries,
        resource_strings: Iterable[Optional[ResourceString]],
        obsolete_tokens: AbstractSet[str],
        config: AppConfig
) -> List[ResourceString]:
    """
    Rewrite the tags of every fetched resource string.

    Missing records (``None``, the service has not indexed that token yet)
    are dropped rather than treated as errors.

    Returns:
        New records with their tags replaced, in input order.
    """
    tagged = []
    for resource_string in resource_strings:
        if resource_string is None:
            continue
        tags = classify_tags(dictionaries, resource_string, obsolete_tokens, config)
        if list(resource_string.tags) != tags:
            logger.debug("Tags for '%s': %s -> %s", resource_string.token, list(resource_string.tags), tags)
        tagged.append(replace(resource_string, tags=tuple(tags)))
    return tagged
