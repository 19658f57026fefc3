"""Typed records shared by the merge, tagging and publishing stages."""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import jsonschema

from txsync.errors import ContentFormatError

# scope name -> {token: source text}
Dictionaries = Dict[str, Dict[str, str]]
# token -> source text, the shape of the resource content endpoint
Content = Dict[str, str]

# Resource content is a flat JSON object whose every value is a string.
CONTENT_SCHEMA = {
    "type": "object",
    "patternProperties": {
        "^.*$": {"type": "string"}
    },
    "additionalProperties": False
}

DICTIONARIES_SCHEMA = {
    "type": "object",
    "patternProperties": {
        "^.*$": CONTENT_SCHEMA
    },
    "additionalProperties": False
}


def validate_content(content: Any, schema: Dict[str, Any] = CONTENT_SCHEMA) -> None:
    """
    Validate a decoded JSON document against one of the content schemas.

    Raises:
        ContentFormatError: If the document does not match the schema.
    """
    try:
        jsonschema.validate(instance=content, schema=schema)
    except jsonschema.ValidationError as e:
        raise ContentFormatError(f"Invalid content: {e.message}") from e


@dataclass(frozen=True)
class ResourceString:
    """
    Per-token metadata record as stored by the translation service.

    Only ``tags`` is rewritten by the sync; every other field the service
    returns is carried through untouched in ``extra``.
    """
    token: str
    tags: Tuple[str, ...] = ()
    comment: Optional[str] = None
    character_limit: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, token: str, payload: Dict[str, Any]) -> "ResourceString":
        """Build a record from the service's JSON, treating null tags as empty."""
        known = {'token', 'tags', 'comment', 'character_limit'}
        return cls(
            token=token,
            tags=tuple(tag for tag in (payload.get('tags') or []) if tag),
            comment=payload.get('comment'),
            character_limit=payload.get('character_limit'),
            extra={key: value for key, value in payload.items() if key not in known},
        )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize every field except the token, which travels in the URL as a hash."""
        payload = dict(self.extra)
        payload['comment'] = self.comment
        payload['character_limit'] = self.character_limit
        payload['tags'] = list(self.tags)
        return payload


@dataclass(frozen=True)
class MergeResult:
    merged: Content
    obsolete: FrozenSet[str]


@dataclass
class SyncReport:
    """Outcome of one reconciliation run."""
    merged_content: Content
    obsolete_tokens: FrozenSet[str]
    resource_strings: List[ResourceString]
    final_content: Content
    removed_tokens: List[str]
    missing_metadata: List[str]
    dry_run: bool = False
