"""
Reconcile local dictionaries with the Transifex source resource.

Run with ``python -m txsync.sync``; settings come from config.yaml and the
environment (see txsync.app_config).
"""
import asyncio
import json
import logging
import os
import sys
from enum import Enum

from txsync.app_config import AppConfig, load_app_config
from txsync.errors import ContentFormatError, TranslationServiceError
from txsync.executor import RateLimitedExecutor
from txsync.merger import merge_strings
from txsync.models import DICTIONARIES_SCHEMA, Dictionaries, SyncReport, validate_content
from txsync.removal_filter import remove_strings_with_certain_tags
from txsync.service import TranslationService
from txsync.tag_classifier import apply_tags_to_strings
from txsync.transport import HttpxTransport

logger = logging.getLogger(__name__)


class SyncStage(Enum):
    FETCH_REMOTE_CONTENT = "fetch remote content"
    MERGE = "merge"
    PUBLISH_MERGED_CONTENT = "publish merged content"
    FETCH_METADATA = "fetch metadata for merged tokens"
    CLASSIFY = "classify"
    PUBLISH_METADATA = "publish metadata"
    FILTER = "filter"
    PUBLISH_FILTERED_CONTENT = "publish filtered content"
    DONE = "done"


def _enter(stage: SyncStage) -> None:
    logger.info("Stage: %s", stage.value)


async def update_resource_file(
        service: TranslationService,
        dictionaries: Dictionaries,
        config: AppConfig
) -> SyncReport:
    """
    Run the full reconciliation pipeline once.

    Each stage waits for the previous one to finish. A failure aborts the run
    with the originating error; nothing is rolled back, since every write
    replaces remote state and the pipeline recomputes from remote state on the
    next run.

    Args:
        service: The remote resource.
        dictionaries: Scope name -> {token: text}.
        config: Tagging policy and dry-run switch.

    Returns:
        A SyncReport describing what was (or, in dry-run mode, would have been) written.
    """
    _enter(SyncStage.FETCH_REMOTE_CONTENT)
    remote_content = await service.get_content()

    _enter(SyncStage.MERGE)
    merge_result = merge_strings(dictionaries, remote_content)
    logger.info(
        "Merged %d local scope(s) into %d token(s); %d obsolete.",
        len(dictionaries), len(merge_result.merged), len(merge_result.obsolete)
    )

    _enter(SyncStage.PUBLISH_MERGED_CONTENT)
    if config.dry_run:
        logger.info("[Dry Run] Would publish %d merged token(s).", len(merge_result.merged))
    else:
        await service.put_content(merge_result.merged)

    _enter(SyncStage.FETCH_METADATA)
    fetched = await service.get_resource_strings(merge_result.merged.keys())
    missing_metadata = [token for token, record in zip(merge_result.merged, fetched) if record is None]
    if missing_metadata:
        logger.info("No resource string record yet for %d token(s); leaving their tags alone.", len(missing_metadata))

    _enter(SyncStage.CLASSIFY)
    tagged = apply_tags_to_strings(dictionaries, fetched, merge_result.obsolete, config)

    _enter(SyncStage.PUBLISH_METADATA)
    if config.dry_run:
        logger.info("[Dry Run] Would update tags of %d resource string(s).", len(tagged))
    else:
        await service.put_resource_strings(tagged)

    _enter(SyncStage.FILTER)
    final_content, removed_tokens = remove_strings_with_certain_tags(tagged, config.removal_tags)
    if removed_tokens:
        logger.info("Removing %d token(s) tagged with %s.", len(removed_tokens), sorted(config.removal_tags))

    _enter(SyncStage.PUBLISH_FILTERED_CONTENT)
    if config.dry_run:
        logger.info("[Dry Run] Would publish %d filtered token(s).", len(final_content))
    else:
        await service.put_content(final_content)

    _enter(SyncStage.DONE)
    return SyncReport(
        merged_content=merge_result.merged,
        obsolete_tokens=merge_result.obsolete,
        resource_strings=tagged,
        final_content=final_content,
        removed_tokens=removed_tokens,
        missing_metadata=missing_metadata,
        dry_run=config.dry_run,
    )


def load_dictionaries(dictionaries_file_path: str) -> Dictionaries:
    """
    Load the scoped dictionaries from a JSON file.

    Raises:
        ContentFormatError: If the file is not valid JSON of the shape
            ``{scope: {token: text}}``.
    """
    try:
        with open(dictionaries_file_path, 'r', encoding='utf-8') as f:
            dictionaries = json.load(f)
    except json.JSONDecodeError as e:
        raise ContentFormatError(f"Dictionaries file '{dictionaries_file_path}' is not valid JSON: {e}") from e
    validate_content(dictionaries, DICTIONARIES_SCHEMA)
    return dictionaries


async def main():
    """
    Main function to orchestrate the sync.
    """
    config = load_app_config()

    dictionaries_file_path = config.dictionaries_file
    if not os.path.isabs(dictionaries_file_path):
        dictionaries_file_path = os.path.join(config.project_root, dictionaries_file_path)
    dictionaries = load_dictionaries(dictionaries_file_path)
    logger.info("Loaded %d scope(s) from '%s'.", len(dictionaries), dictionaries_file_path)

    async with HttpxTransport(config) as transport:
        service = TranslationService(RateLimitedExecutor(transport, config), config)
        report = await update_resource_file(service, dictionaries, config)

    logger.info(
        "Sync finished: %d token(s) published, %d obsolete, %d removed, %d without metadata.",
        len(report.final_content), len(report.obsolete_tokens),
        len(report.removed_tokens), len(report.missing_metadata)
    )
    return report


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (TranslationServiceError, OSError) as main_exc:
        logger.error("Sync failed: %s", main_exc)
        sys.exit(1)
