"""Transifex resource operations expressed as executor batches."""
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from txsync.app_config import AppConfig
from txsync.errors import ContentFormatError
from txsync.executor import RateLimitedExecutor
from txsync.hashing import generate_hash
from txsync.models import Content, ResourceString, validate_content
from txsync.transport import Request

logger = logging.getLogger(__name__)


def transifex_language_code_to_iso(language_code: str) -> str:
    return language_code.replace('_', '-', 1)


def iso_language_code_to_transifex(language_code: str) -> str:
    return language_code.replace('-', '_', 1)


class TranslationService:
    """
    The remote side of the sync: one project resource on Transifex.

    Every call goes through the executor, so rate limits and concurrency are
    handled in one place.
    """

    def __init__(self, executor: RateLimitedExecutor, config: AppConfig):
        self.executor = executor
        self.config = config
        self.resource_path = f"project/{config.project_slug}/resource/{config.resource_slug}/"

    def _source_path(self, token: str) -> str:
        return f"{self.resource_path}source/{generate_hash(token)}"

    async def _get(self, path: str) -> Any:
        return await self.executor.execute_one(Request("GET", path))

    async def get_content(self) -> Content:
        """
        Fetch the source content currently published for the resource.

        Raises:
            ContentFormatError: If the content is not a JSON object of strings.
        """
        response = await self._get(f"{self.resource_path}content/")
        if response is None:
            response = {}
        if not isinstance(response, dict):
            raise ContentFormatError(f"Expected a JSON object from the content endpoint, got: {str(response)[:200]}")
        raw_content = response.get('content') or '{}'
        try:
            content = json.loads(raw_content)
        except (TypeError, json.JSONDecodeError) as e:
            raise ContentFormatError(f"Resource content is not valid JSON: {e}") from e
        validate_content(content)
        return content

    async def put_content(self, content: Content) -> Any:
        """Replace the resource's source content."""
        request = Request("PUT", f"{self.resource_path}content/", payload={'content': json.dumps(content)})
        return await self.executor.execute_one(request)

    async def get_resource_strings(self, tokens: Iterable[str]) -> List[Optional[ResourceString]]:
        """
        Fetch the metadata record of every token in one batch.

        Returns:
            Records aligned with ``tokens``; None where the service has no
            record for a token yet.
        """
        tokens = list(tokens)
        requests = [Request("GET", self._source_path(token), allow_not_found=True) for token in tokens]
        payloads = await self.executor.execute(requests, description="Fetching resource strings")
        return [
            ResourceString.from_payload(token, payload) if isinstance(payload, dict) else None
            for token, payload in zip(tokens, payloads)
        ]

    async def put_resource_strings(self, resource_strings: List[ResourceString]) -> List[ResourceString]:
        """Write every record back in one batch, keyed by the hash of its token."""
        requests = [
            Request("PUT", self._source_path(resource_string.token), payload=resource_string.to_payload())
            for resource_string in resource_strings
        ]
        await self.executor.execute(requests, description="Updating resource strings")
        return resource_strings

    async def get_project_languages(self) -> List[Dict[str, str]]:
        data = await self._get(f"project/{self.config.project_slug}/languages")
        return [{'code': transifex_language_code_to_iso(item['language_code'])} for item in data]

    async def get_translated_resource(self, iso_language_code: str) -> str:
        """Fetch the reviewed translation of the resource for one language."""
        code = iso_language_code_to_transifex(iso_language_code)
        data = await self._get(f"{self.resource_path}translation/{code}/?mode=reviewed")
        return data['content']

    async def get_translated_resources(self) -> List[Dict[str, str]]:
        """Fetch the reviewed translation of the resource for every project language."""
        languages = await self.get_project_languages()
        requests = [
            Request("GET", f"{self.resource_path}translation/{iso_language_code_to_transifex(language['code'])}/?mode=reviewed")
            for language in languages
        ]
        responses = await self.executor.execute(requests, description="Fetching translations")
        return [
            {'lang': language['code'], 'content': response['content']}
            for language, response in zip(languages, responses)
        ]

    async def get_translation_stats(self, iso_language_code: str) -> Dict[str, int]:
        code = iso_language_code_to_transifex(iso_language_code)
        details = await self._get(f"project/{self.config.project_slug}/language/{code}?details")
        return {
            'totalTokensCount': details['total_segments'],
            'translatedTokensCount': details['translated_segments'],
            'reviewedTokensCount': details['reviewed_segments'],
            'translatedWordsCount': details['translated_words'],
        }

    async def get_languages_info(self) -> List[Dict[str, str]]:
        languages = await self._get("languages/")
        return [
            {'code': transifex_language_code_to_iso(language['code']), 'name': language['name']}
            for language in languages
        ]
