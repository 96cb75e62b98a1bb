from datetime import datetime, timezone

from mirror_lens.models import (
    CognitiveSnapshot,
    FearSnapshot,
    InsightsSnapshot,
    ProfileSnapshot,
    SnapshotMetadata,
)


def compose_profile_snapshot(
    user_id: str,
    cognitive: CognitiveSnapshot,
    fear: FearSnapshot,
    insights: InsightsSnapshot,
    *,
    config_version: str,
    generated_at: datetime | None = None,
) -> ProfileSnapshot:
    """Assemble the sub-snapshots into the response root. Pure; cannot fail."""
    stamp = (generated_at or datetime.now(timezone.utc)).isoformat()
    return ProfileSnapshot(
        user_id=user_id,
        cognitive_snapshot=cognitive,
        fear_snapshot=fear,
        insights_snapshot=insights,
        metadata=SnapshotMetadata(generated_at=stamp, config_version=config_version),
    )
