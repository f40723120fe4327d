"""
Credential issuer.

Builds the Open Badges v3 credential pair for a completed claim: an
achievement credential about the claimant and an endorsement credential
whose subject is that achievement. Pure object construction, no I/O.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from endorsement.app.schemas.claim_state import ClaimState
from endorsement.app.schemas.credentials import (
    Achievement,
    AchievementCredential,
    AchievementSubject,
    Criteria,
    EndorsementCredential,
    EndorsementSubject,
    Evidence,
    Profile,
)
from endorsement.app.tenants import TenantConfig


ACHIEVEMENT_CRITERIA = "Demonstrated competency through peer endorsement"


def _new_credential_id() -> str:
    return f"urn:uuid:{uuid.uuid4()}"


def _issuance_date(now: Optional[datetime]) -> str:
    now = now or datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_achievement(
    state: ClaimState,
    *,
    issuer: TenantConfig,
    now: Optional[datetime] = None,
) -> AchievementCredential:
    evidence = None
    if state.evidence_urls:
        evidence = [
            Evidence(id=url, name=f"Evidence {index}")
            for index, url in enumerate(state.evidence_urls, start=1)
        ]

    return AchievementCredential(
        id=_new_credential_id(),
        issuer=Profile(id=issuer.issuer_id, name=issuer.issuer_name),
        issuance_date=_issuance_date(now),
        credential_subject=AchievementSubject(
            id=f"did:email:{state.claimant_email}",
            name=state.claimant_name,
            narrative=state.claimant_narrative,
            achievement=Achievement(
                id=state.skill_code,
                name=state.skill_name,
                description=state.skill_description,
                criteria=Criteria(narrative=ACHIEVEMENT_CRITERIA),
            ),
        ),
        evidence=evidence,
    )


def build_endorsement(
    state: ClaimState,
    achievement_id: str,
    *,
    issuer: TenantConfig,
    now: Optional[datetime] = None,
) -> EndorsementCredential:
    if not state.is_complete:
        raise ValueError("an endorsement requires a completed claim state")

    return EndorsementCredential(
        id=_new_credential_id(),
        issuer=Profile(id=issuer.issuer_id, name=state.endorser_name),
        issuance_date=_issuance_date(now),
        credential_subject=EndorsementSubject(
            id=achievement_id,
            endorsement_comment=state.endorsement_text,
            profile=Profile(
                name=state.endorser_name,
                description=state.bona_fides,
            ),
        ),
    )


def link(
    achievement: AchievementCredential,
    endorsement: EndorsementCredential,
) -> AchievementCredential:
    """
    Attach ``endorsement`` to ``achievement``.

    Returns a new achievement whose endorsement list holds exactly this
    endorsement. The input credentials are left untouched.
    """
    if endorsement.credential_subject.id != achievement.id:
        raise ValueError(
            "endorsement subject does not reference the achievement credential"
        )

    return achievement.model_copy(update={"endorsement": [endorsement]})
