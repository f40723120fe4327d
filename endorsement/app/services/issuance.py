"""
Endorsement issuance.

Turns a completed claim state into delivered artifacts:

1. Build and link the OBv3 credential pair
2. Render the certificate (worker thread) and embed the proof
3. Store both artifacts when the tenant has storage configured
4. Queue the tenant webhook, only after storage succeeded

Degradation rules:
- Render failure: the raw rendering source is delivered unsigned.
- Signing failure: the unsigned PDF is delivered.
- Storage failure: artifacts are still returned inline, no webhook.
- Webhook failure: logged by the dispatcher, never blocks delivery.
The result flags (``pdf_signed``, ``s3_uploaded``, ``webhook_queued``)
always say which of these happened.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

import anyio.to_thread

from endorsement.app.schemas.claim_state import ClaimState
from endorsement.app.schemas.credentials import AchievementCredential
from endorsement.app.schemas.proof import CredentialFields
from endorsement.app.schemas.webhook import WebhookArtifact, WebhookPayload
from endorsement.app.services.credentials import (
    build_achievement,
    build_endorsement,
    link,
)
from endorsement.app.services.rendering import (
    CertificateDocument,
    DocumentRenderer,
    RenderError,
)
from endorsement.app.services.signing import ArtifactSigner, format_timestamp
from endorsement.app.services.storage import (
    ARTIFACT_FILENAMES,
    ObjectStorage,
    StorageError,
    artifact_key,
)
from endorsement.app.services.webhook import DEFAULT_MAX_ATTEMPTS, WebhookDispatcher
from endorsement.app.tenants import TenantConfig

logger = logging.getLogger("endorsement.issuance")


JSON_CONTENT_TYPE = "application/json"
PDF_CONTENT_TYPE = "application/pdf"
TEX_CONTENT_TYPE = "application/x-tex"
TEX_FILENAME = "claim.tex"


@dataclass(frozen=True)
class IssuedArtifacts:
    achievement: AchievementCredential
    credential_json: str
    pdf_bytes: bytes
    pdf_signed: bool
    # True when rendering failed and pdf_bytes holds the LaTeX source.
    pdf_is_source: bool = False

    @property
    def pdf_content_type(self) -> str:
        return TEX_CONTENT_TYPE if self.pdf_is_source else PDF_CONTENT_TYPE

    @property
    def pdf_filename(self) -> str:
        return TEX_FILENAME if self.pdf_is_source else ARTIFACT_FILENAMES["pdf"]


@dataclass(frozen=True)
class IssuanceResult:
    claim_id: str
    artifacts: IssuedArtifacts
    keys: Dict[str, str]
    s3_uploaded: bool
    webhook_queued: bool


class EndorsementIssuer:
    def __init__(
        self,
        *,
        renderer: DocumentRenderer,
        signer: ArtifactSigner,
        storage: Optional[ObjectStorage] = None,
        dispatcher: Optional[WebhookDispatcher] = None,
        webhook_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._renderer = renderer
        self._signer = signer
        self._storage = storage
        self._dispatcher = dispatcher
        self._webhook_max_attempts = webhook_max_attempts

    async def build_artifacts(
        self,
        state: ClaimState,
        *,
        tenant: TenantConfig,
        bearer_token: Optional[str] = None,
    ) -> IssuedArtifacts:
        fields = CredentialFields.from_state(state)

        achievement = build_achievement(state, issuer=tenant)
        endorsement = build_endorsement(state, achievement.id, issuer=tenant)
        achievement = link(achievement, endorsement)
        credential_json = json.dumps(
            achievement.to_jsonld(), indent=2, ensure_ascii=False
        )

        document = CertificateDocument(
            certificate_id=state.claim_id.split("-")[0].upper(),
            issued_on=datetime.now(timezone.utc).date(),
            issuer_name=tenant.issuer_name,
            primary_color=tenant.brand_primary_color,
            skill_name=fields.skill_name,
            skill_code=fields.skill_code,
            skill_description=fields.skill_description,
            claimant_name=fields.claimant_name,
            narrative=fields.narrative,
            endorser_name=fields.endorser_name,
            bona_fides=fields.bona_fides,
            endorsement_text=fields.endorsement_text,
            signature=fields.signature,
            evidence=list(fields.evidence),
        )

        try:
            rendered = await anyio.to_thread.run_sync(self._renderer.render, document)
        except RenderError as exc:
            logger.warning(
                "certificate_render_degraded",
                extra={"claim_id": state.claim_id, "error": str(exc)},
            )
            return IssuedArtifacts(
                achievement=achievement,
                credential_json=credential_json,
                pdf_bytes=(exc.source or "").encode("utf-8"),
                pdf_signed=False,
                pdf_is_source=True,
            )

        signed = self._signer.sign(
            rendered,
            fields=fields,
            claim_id=state.claim_id,
            issuer_name=tenant.issuer_name,
            legacy_token=bearer_token,
        )

        return IssuedArtifacts(
            achievement=achievement,
            credential_json=credential_json,
            pdf_bytes=signed.pdf_bytes,
            pdf_signed=signed.signed,
        )

    async def issue(
        self,
        state: ClaimState,
        *,
        tenant: TenantConfig,
        bearer_token: Optional[str] = None,
    ) -> IssuanceResult:
        artifacts = await self.build_artifacts(
            state, tenant=tenant, bearer_token=bearer_token
        )

        keys = {
            artifact_type: artifact_key(tenant.s3_prefix, state.claim_id, artifact_type)
            for artifact_type in ARTIFACT_FILENAMES
        }

        urls = await self._store(tenant, state.claim_id, keys, artifacts)
        s3_uploaded = urls is not None

        webhook_queued = False
        if s3_uploaded and tenant.webhook_enabled and self._dispatcher is not None:
            payload = WebhookPayload(
                claim_id=state.claim_id,
                skill_code=state.skill_code,
                skill_name=state.skill_name,
                claimant_name=state.claimant_name,
                endorser_name=state.endorser_name or "",
                artifacts=[
                    WebhookArtifact(type="obv3-json", s3_key=keys["json"], s3_url=urls["json"]),
                    WebhookArtifact(type="pdf", s3_key=keys["pdf"], s3_url=urls["pdf"]),
                ],
                timestamp=format_timestamp(datetime.now(timezone.utc)),
            )
            self._dispatcher.dispatch(
                tenant.webhook_url,
                payload,
                tenant.webhook_secret.get_secret_value(),
                max_attempts=self._webhook_max_attempts,
            )
            webhook_queued = True

        logger.info(
            "endorsement_issued",
            extra={
                "claim_id": state.claim_id,
                "tenant": tenant.tenant_id,
                "pdf_signed": artifacts.pdf_signed,
                "s3_uploaded": s3_uploaded,
                "webhook_queued": webhook_queued,
            },
        )

        return IssuanceResult(
            claim_id=state.claim_id,
            artifacts=artifacts,
            keys=keys,
            s3_uploaded=s3_uploaded,
            webhook_queued=webhook_queued,
        )

    async def _store(
        self,
        tenant: TenantConfig,
        claim_id: str,
        keys: Dict[str, str],
        artifacts: IssuedArtifacts,
    ) -> Optional[Dict[str, str]]:
        if not tenant.storage_enabled or self._storage is None:
            return None

        try:
            json_url = await self._storage.put(
                tenant.s3_bucket,
                keys["json"],
                artifacts.credential_json.encode("utf-8"),
                JSON_CONTENT_TYPE,
            )
            pdf_url = await self._storage.put(
                tenant.s3_bucket,
                keys["pdf"],
                artifacts.pdf_bytes,
                artifacts.pdf_content_type,
            )
        except StorageError as exc:
            logger.warning(
                "artifact_storage_failed",
                extra={"claim_id": claim_id, "tenant": tenant.tenant_id, "error": str(exc)},
            )
            return None

        return {"json": json_url, "pdf": pdf_url}
