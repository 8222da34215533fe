"""Approval requirement matrix: which levels a request needs.

The matrix is keyed by (privilege type, practitioner type, same specialty).
Core privileges are auto-approved; non-core privileges inside the applicant's
specialty need one consultant and the medical director; everything else
needs two consultants, the committee and the medical director.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from cbahi.models.enums import PractitionerType, PrivilegeRequestType
from cbahi.repositories.approval_repo import ApprovalRequirementRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalRequirement:
    required_consultants: int
    requires_committee: bool
    requires_medical_director: bool
    auto_approve: bool
    same_specialty: bool
    description: str = ""

    @property
    def needs_committee_level(self) -> bool:
        return self.requires_committee or self.required_consultants > 0

    def as_dict(self) -> dict:
        return {
            "required_consultants": self.required_consultants,
            "requires_committee": self.requires_committee,
            "requires_medical_director": self.requires_medical_director,
            "auto_approve": self.auto_approve,
            "same_specialty": self.same_specialty,
        }


def _row(privilege_type, practitioner_type, same_specialty, consultants, committee, md, auto, description):
    return {
        "privilege_type": privilege_type,
        "practitioner_type": practitioner_type,
        "same_specialty": same_specialty,
        "required_consultants": consultants,
        "requires_committee": committee,
        "requires_medical_director": md,
        "auto_approve": auto,
        "description": description,
    }


_CORE = PrivilegeRequestType.CORE
_NON_CORE = PrivilegeRequestType.NON_CORE
_EXTRA = PrivilegeRequestType.EXTRA

DEFAULT_REQUIREMENTS = [
    # GP: no specialty, so non-core is always "different specialty"
    _row(_CORE, PractitionerType.GP, True, 0, False, False, True,
         "Core privileges are automatically granted to all GPs"),
    _row(_NON_CORE, PractitionerType.GP, False, 2, True, True, False,
         "Non-core privileges for GPs need 2 consultants, committee and medical director"),
    _row(_EXTRA, PractitionerType.GP, False, 2, True, True, False,
         "Extra privileges need 2 consultants, committee and medical director"),
    # Specialist
    _row(_CORE, PractitionerType.SPECIALIST, True, 0, False, False, True,
         "Core privileges are automatically granted to specialists"),
    _row(_NON_CORE, PractitionerType.SPECIALIST, True, 1, False, True, False,
         "Same-specialty non-core privileges need 1 consultant and medical director"),
    _row(_NON_CORE, PractitionerType.SPECIALIST, False, 2, True, True, False,
         "Cross-specialty non-core privileges need 2 consultants, committee and medical director"),
    _row(_EXTRA, PractitionerType.SPECIALIST, False, 2, True, True, False,
         "Extra privileges need 2 consultants, committee and medical director"),
    # Consultant
    _row(_CORE, PractitionerType.CONSULTANT, True, 0, False, False, True,
         "Core privileges are automatically granted to consultants"),
    _row(_NON_CORE, PractitionerType.CONSULTANT, True, 1, False, True, False,
         "Same-specialty non-core privileges need 1 consultant and medical director"),
    _row(_NON_CORE, PractitionerType.CONSULTANT, False, 2, True, True, False,
         "Cross-specialty non-core privileges need 2 consultants, committee and medical director"),
    _row(_EXTRA, PractitionerType.CONSULTANT, False, 2, True, True, False,
         "Extra privileges need 2 consultants, committee and medical director"),
]

FALLBACK_DESCRIPTION = "Default approval requirements (fallback)"


def is_same_specialty(
    applicant_specialty: str | None,
    privilege_specialty: str | None,
    additional_specialties: list[str] | None = None,
) -> bool:
    """Whether a privilege falls inside the applicant's specialties."""
    if not privilege_specialty:
        return True
    if not applicant_specialty:
        return False
    if applicant_specialty == privilege_specialty:
        return True
    return privilege_specialty in (additional_specialties or [])


async def resolve_requirement(
    session: AsyncSession,
    practitioner_type: str | None,
    privilege_type: str,
    same_specialty: bool,
) -> ApprovalRequirement:
    """Look up the matrix row, falling back to the most restrictive rule."""
    practitioner = practitioner_type or PractitionerType.GP
    if privilege_type == PrivilegeRequestType.CORE:
        # Core is always evaluated as same specialty
        same_specialty = True
    if privilege_type == PrivilegeRequestType.EXTRA:
        same_specialty = False

    row = await ApprovalRequirementRepository(session).find(privilege_type, practitioner, same_specialty)
    if row:
        return ApprovalRequirement(
            required_consultants=row.required_consultants,
            requires_committee=row.requires_committee,
            requires_medical_director=row.requires_medical_director,
            auto_approve=row.auto_approve,
            same_specialty=same_specialty,
            description=row.description or "",
        )

    logger.warning(
        "No approval requirement found for %s/%s/same_specialty=%s, using fallback",
        practitioner, privilege_type, same_specialty,
    )
    return ApprovalRequirement(
        required_consultants=2,
        requires_committee=True,
        requires_medical_director=True,
        auto_approve=False,
        same_specialty=same_specialty,
        description=FALLBACK_DESCRIPTION,
    )


async def seed_default_requirements(session: AsyncSession) -> int:
    """Insert the default matrix rows that are missing.

    Returns the number of rows created (0 if all exist).
    """
    repo = ApprovalRequirementRepository(session)
    created = 0

    for req_def in DEFAULT_REQUIREMENTS:
        existing = await repo.find(
            req_def["privilege_type"], req_def["practitioner_type"], req_def["same_specialty"]
        )
        if not existing:
            await repo.create(**req_def)
            created += 1

    return created
