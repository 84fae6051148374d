"""
Shot media stage.

Renders images or video clips for the first shots of a unit through the
MediaClient. A failed or timed-out job is recorded on its ShotMedia and
never fails the unit.
"""

import asyncio
import re
from typing import List

from palette.core.config import MediaConfig
from palette.core.constants import HANDLE_TOKEN_PATTERN, MediaKind
from palette.core.exceptions import MediaError
from palette.core.logging_config import get_logger
from palette.llm.media import MediaRequest
from palette.references.reference_set import ReferenceSet
from .models import NarrativeUnit, ShotMedia, UnitBreakdown

logger = get_logger("storyboard.media_stage")

_HANDLE_TOKEN_RE = re.compile(HANDLE_TOKEN_PATTERN)


def estimate_media_cost(unit_count: int, kind: MediaKind, config: MediaConfig) -> int:
    """Credits needed to render media for `unit_count` units."""
    per_job = config.credits_per_video if kind == MediaKind.VIDEO else config.credits_per_image
    return unit_count * config.shots_per_unit * per_job


def build_media_prompt(shot: str, references: ReferenceSet) -> tuple:
    """
    Expand a shot into a media prompt.

    Returns:
        (prompt, reference image urls)
    """
    details = []
    images = []
    for handle in dict.fromkeys(_HANDLE_TOKEN_RE.findall(shot)):
        reference = references.get(handle)
        if reference is None:
            continue
        if reference.description:
            details.append(f"{handle}: {reference.description}")
        if reference.image_url:
            images.append(reference.image_url)
    prompt = shot if not details else f"{shot}\n\n" + "\n".join(details)
    return prompt, images


class ShotMediaGenerator:
    """Renders media for a unit's shots."""

    def __init__(self, client, config: MediaConfig = None):
        self.client = client
        self.config = config or MediaConfig()

    async def _render_shot(
        self,
        index: int,
        shot: str,
        references: ReferenceSet,
        kind: MediaKind
    ) -> ShotMedia:
        prompt, images = build_media_prompt(shot, references)
        request = MediaRequest(
            prompt=prompt,
            model=self.config.video_model if kind == MediaKind.VIDEO else self.config.image_model,
            reference_images=images,
            width=self.config.width,
            height=self.config.height,
        )
        try:
            job = await self.client.generate(request)
        except MediaError as e:
            logger.warning(f"Shot {index} media failed: {e}")
            return ShotMedia(index, kind, prompt, status="failed", error=str(e))
        except Exception as e:
            logger.error(f"Shot {index} media failed unexpectedly: {e}", exc_info=True)
            return ShotMedia(index, kind, prompt, status="failed", error=f"{type(e).__name__}: {e}")
        return ShotMedia(index, kind, prompt, status=job.status.value, output_urls=job.output_urls)

    async def render(
        self,
        unit: NarrativeUnit,
        breakdown: UnitBreakdown,
        references: ReferenceSet,
        kind: MediaKind = MediaKind.IMAGE
    ) -> List[ShotMedia]:
        shots = breakdown.shots[:self.config.shots_per_unit]
        media = await asyncio.gather(*[
            self._render_shot(i, shot, references, kind) for i, shot in enumerate(shots)
        ])
        succeeded = sum(1 for item in media if item.succeeded)
        logger.info(f"{unit.unit_id}: rendered {succeeded}/{len(media)} {kind.value} jobs")
        return list(media)
