"""Runtime toggles that operators flip without a redeploy."""

import asyncio
import logging
from dataclasses import dataclass

from docpipe.models import Setting

logger = logging.getLogger(__name__)

PROCESSING_ENABLED = "processing_enabled"
METADATA_EXTRACTION_ENABLED = "metadata_extraction_enabled"


@dataclass(frozen=True)
class PipelineConfig:
    """
    Toggles for one pipeline run.

    Read once when a run starts and passed down explicitly, so a run never
    observes a toggle flipping halfway through.
    """

    processing_enabled: bool = True
    metadata_extraction_enabled: bool = True


def _enabled(value: str | None) -> bool:
    # Anything but an explicit "false" keeps the feature on
    return (value or "").strip().lower() != "false"


async def get_setting(key: str) -> str | None:
    setting = await Setting.get_or_none(key=key)
    return setting.value if setting else None


async def set_setting(key: str, value: str) -> None:
    await Setting.update_or_create(defaults={"value": value}, key=key)
    logger.info(f"Setting {key} set to {value!r}")


async def load_pipeline_config() -> PipelineConfig:
    processing, metadata = await asyncio.gather(
        get_setting(PROCESSING_ENABLED),
        get_setting(METADATA_EXTRACTION_ENABLED),
    )
    return PipelineConfig(
        processing_enabled=_enabled(processing),
        metadata_extraction_enabled=_enabled(metadata),
    )
