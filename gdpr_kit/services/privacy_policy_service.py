from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from gdpr_kit.core.config import Settings
from gdpr_kit.models.privacy import LawfulBasis, PrivacyPolicyDocument, ProcessingActivity
from gdpr_kit.services.consent_service import BANNER_CATEGORIES

LAWFUL_BASIS_LABELS = {
    LawfulBasis.CONSENT.value: "Your consent (Art. 6(1)(a) GDPR)",
    LawfulBasis.CONTRACT.value: "Performance of a contract with you (Art. 6(1)(b) GDPR)",
    LawfulBasis.LEGAL_OBLIGATION.value: "Compliance with a legal obligation (Art. 6(1)(c) GDPR)",
    LawfulBasis.VITAL_INTERESTS.value: "Protection of vital interests (Art. 6(1)(d) GDPR)",
    LawfulBasis.PUBLIC_TASK.value: "A task carried out in the public interest (Art. 6(1)(e) GDPR)",
    LawfulBasis.LEGITIMATE_INTERESTS.value: "Our legitimate interests (Art. 6(1)(f) GDPR)",
}

DATA_SUBJECT_RIGHTS = [
    "access your data",
    "have it rectified",
    "have it erased",
    "restrict its processing",
    "receive it in a portable format",
    "object to processing",
    "withdraw consent",
]


class PrivacyPolicyService:
    def __init__(self, settings: Settings, register_path: Path | None = None) -> None:
        self.settings = settings
        self.register_path = register_path or settings.processing_register_path
        self._activities = self._load_register()
        self.env = Environment(
            loader=FileSystemLoader(str(settings.template_dir)),
            undefined=StrictUndefined,
            autoescape=False,
        )

    def _load_register(self) -> list[ProcessingActivity]:
        if not self.register_path.exists():
            raise RuntimeError(f"Processing register not found: {self.register_path}")
        raw = json.loads(self.register_path.read_text(encoding="utf-8"))
        return [ProcessingActivity(**row) for row in raw]

    def list_activities(self) -> list[ProcessingActivity]:
        return self._activities

    def generate_policy(self) -> PrivacyPolicyDocument:
        generated_at = datetime.now(timezone.utc)
        content = self.env.get_template("privacy_policy.md").render(
            version=self.settings.policy_version,
            generated_at=generated_at,
            controller_name=self.settings.controller_name,
            controller_address=self.settings.controller_address,
            contact_email=self.settings.contact_email,
            dpo_email=self.settings.dpo_email,
            activities=self._activities,
            lawful_basis_labels=LAWFUL_BASIS_LABELS,
            cookie_categories=BANNER_CATEGORIES,
            retention={
                "audit": self.settings.audit_retention_days,
                "consent_history": self.settings.consent_history_retention_days,
                "closed_requests": self.settings.closed_request_retention_days,
                "inactive_accounts": self.settings.inactive_account_days,
            },
            rights=DATA_SUBJECT_RIGHTS,
            response_days=self.settings.request_response_days,
            extension_days=self.settings.request_extension_days,
        )
        return PrivacyPolicyDocument(
            version=self.settings.policy_version,
            generated_at=generated_at,
            content=content,
        )
