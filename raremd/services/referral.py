"""
Referral report generation.

Builds the structured content of a specialist referral for a patient case
and renders it as a standalone HTML page.
"""

from datetime import date

from jinja2 import Environment, PackageLoader

from raremd.config.config import Settings, get_settings
from raremd.config.logging_config import get_logger
from raremd.models.clinical_models import Disease, utcnow
from raremd.models.record_models import (
    PatientCase,
    Physician,
    ReferralDiagnosis,
    ReferralDocument,
    ReferralInfo,
    ReferralPatientInfo,
)
from raremd.services.scoring import determine_priority

logger = get_logger(__name__)

# ORPHA code -> ICD-10 code
ICD10_CODES: dict[str, str] = {
    "ORPHA:137": "E77.8",   # Congenital disorder of glycosylation
    "ORPHA:355": "E75.22",  # Gaucher disease
    "ORPHA:324": "E75.21",  # Fabry disease
    "ORPHA:739": "Q87.1",   # Prader-Willi syndrome
    "ORPHA:778": "F84.2",   # Rett syndrome
}
DEFAULT_ICD10_CODE = "Z87.891"

REFERRAL_TEMPLATE = "referral.html.j2"

_templates = Environment(
    loader=PackageLoader("raremd", "templates"),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


def icd10_code_for(orpha_code: str) -> str:
    return ICD10_CODES.get(orpha_code, DEFAULT_ICD10_CODE)


class ReferralRenderer:
    """
    Builds and renders referral documents.

    Args:
        settings: Application settings (default referring physician).
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def build(
        self,
        case: PatientCase,
        disease: Disease | None = None,
        physician: Physician | None = None,
        today: date | None = None,
    ) -> ReferralDocument:
        """
        Assemble the referral content for a case.

        The diagnosis block is included only when the case names a
        diagnosis and ORPHA code and the disease is known; recommended
        tests then come from that disease.

        Args:
            case: The patient case.
            disease: Knowledge-base record for the case's ORPHA code.
            physician: Referring physician profile.
            today: Referral date. Defaults to the current UTC date.

        Returns:
            ReferralDocument.
        """
        referring_physician = (
            physician.full_name
            if physician is not None and physician.full_name
            else self.settings.default_referring_physician
        )

        diagnosis = None
        recommended_tests = None
        if case.diagnosis and case.orpha_code and disease is not None:
            diagnosis = ReferralDiagnosis(
                name=case.diagnosis,
                orpha_code=case.orpha_code,
                score=case.score or 0,
                icd10_code=icd10_code_for(case.orpha_code),
            )
            recommended_tests = disease.recommended_tests

        document = ReferralDocument(
            patient_info=ReferralPatientInfo(
                patient_id=case.patient_id,
                age=case.age,
                sex=case.sex,
            ),
            symptoms=case.symptoms,
            diagnosis=diagnosis,
            recommended_tests=recommended_tests,
            referral_info=ReferralInfo(
                date=(today or utcnow().date()).isoformat(),
                referring_physician=referring_physician,
                urgency_level=determine_priority(case.score or 0),
            ),
        )
        logger.info(
            "Referral built",
            case_id=case.id,
            urgency=document.referral_info.urgency_level.value,
            has_diagnosis=diagnosis is not None,
        )
        return document

    def render_html(self, document: ReferralDocument) -> str:
        """Render a referral document as an HTML page. All text is autoescaped."""
        template = _templates.get_template(REFERRAL_TEMPLATE)
        return template.render(document=document, app_name=self.settings.app_name)
