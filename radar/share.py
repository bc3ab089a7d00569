"""Share snippets for report items.

A snippet is a 140-220 character blip about one report item, written by the
LLM in the sharing user's voice (``users/<id>.voiceProfile``). Shares by a
known user on a known radar are logged to the ``interactions`` collection.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from pydantic import ValidationError

from radar import store
from radar.models import ShareItem, VoiceProfile
from radar.prompts import SHARE_SYSTEM, build_share_prompt

if TYPE_CHECKING:
    from radar.llm import LLMClient

logger = logging.getLogger(__name__)


def load_voice_profile(user_id: Optional[str]) -> VoiceProfile:
    """Return the user's stored voice profile, or an empty one."""
    if not user_id:
        return VoiceProfile()

    user = store.get_document("users", user_id)
    stored = (user or {}).get("voiceProfile")
    if not stored:
        return VoiceProfile()
    try:
        return VoiceProfile.model_validate(stored)
    except ValidationError as exc:
        logger.warning("Ignoring malformed voice profile for user id=%s: %s", user_id, exc)
        return VoiceProfile()


def write_share_snippet(item: ShareItem, voice: VoiceProfile, llm: LLMClient) -> str:
    """Ask the LLM for a share blip about *item*.

    Raises:
        UpstreamError: If the LLM call fails.
    """
    completion = llm.complete(build_share_prompt(item, voice), SHARE_SYSTEM)
    return completion.content.strip()


def record_share(
    user_id: str,
    radar_id: str,
    report_id: str,
    item_index: Any,
    snippet: str,
) -> str:
    """Log a share to ``interactions`` and return the interaction id."""
    interaction_id = store.create_document(
        "interactions",
        {
            "userId": user_id,
            "radarId": radar_id,
            "type": "share",
            "payload": {"reportId": report_id, "itemIndex": item_index, "snippet": snippet},
        },
    )
    logger.info("Share recorded id=%s radar=%s user=%s", interaction_id, radar_id, user_id)
    return interaction_id
