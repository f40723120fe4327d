"""
Open Badges v3 credential shapes.

Only the subset of the OBv3 / VC Data Model v2 vocabulary this service
emits is modelled. Field names are snake_case in Python and serialize to
the JSON-LD names via aliases; always dump with ``to_jsonld()``.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


OBV3_CONTEXT = [
    "https://www.w3.org/ns/credentials/v2",
    "https://purl.imsglobal.org/spec/ob/v3p0/context-3.0.3.json",
]


class _JsonLdModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class Profile(_JsonLdModel):
    id: Optional[str] = None
    type: str = "Profile"
    name: str
    description: Optional[str] = None


class Criteria(_JsonLdModel):
    narrative: str


class Achievement(_JsonLdModel):
    id: str
    type: str = "Achievement"
    name: str
    description: str
    criteria: Criteria


class AchievementSubject(_JsonLdModel):
    id: str
    type: str = "AchievementSubject"
    name: str
    narrative: Optional[str] = None
    achievement: Achievement


class Evidence(_JsonLdModel):
    id: str
    type: str = "Evidence"
    name: str


class EndorsementSubject(_JsonLdModel):
    id: str = Field(..., description="Id of the endorsed achievement credential")
    type: str = "EndorsementSubject"
    endorsement_comment: str = Field(..., alias="endorsementComment")
    profile: Profile


class _Credential(_JsonLdModel):
    context: List[str] = Field(default_factory=lambda: list(OBV3_CONTEXT), alias="@context")
    id: str
    type: List[str]
    issuer: Profile
    issuance_date: str = Field(..., alias="issuanceDate")

    def to_jsonld(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EndorsementCredential(_Credential):
    type: List[str] = Field(
        default_factory=lambda: ["VerifiableCredential", "EndorsementCredential"]
    )
    credential_subject: EndorsementSubject = Field(..., alias="credentialSubject")


class AchievementCredential(_Credential):
    type: List[str] = Field(
        default_factory=lambda: ["VerifiableCredential", "AchievementCredential"]
    )
    credential_subject: AchievementSubject = Field(..., alias="credentialSubject")
    evidence: Optional[List[Evidence]] = None
    endorsement: Optional[List[EndorsementCredential]] = None
