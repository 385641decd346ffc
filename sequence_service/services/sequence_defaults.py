from __future__ import annotations

from dataclasses import dataclass

from sequence_service.models.sequence_config import ResetCadence
from sequence_service.services.sequence_store import NewSequenceConfig


@dataclass(frozen=True)
class DefaultSequence:
    code: str
    name: str
    prefix: str
    padding_width: int
    start_value: int
    description: str = ""


# System sequences created for every tenant during onboarding.
DEFAULT_SEQUENCES: tuple[DefaultSequence, ...] = (
    DefaultSequence("CONTACT", "Contacts", "CT", 4, 1001, "Contact numbers"),
    DefaultSequence("CONTRACT", "Contracts", "CN", 4, 1001, "Service contract numbers"),
    DefaultSequence("INVOICE", "Invoices", "INV", 5, 10001, "Invoice numbers"),
    DefaultSequence("QUOTATION", "Quotations", "QT", 4, 1001, "Quotation numbers"),
    DefaultSequence("PROJECT", "Projects", "PRJ", 4, 1001, "Project numbers"),
    DefaultSequence("TICKET", "Support Tickets", "TKT", 5, 10001, "Support ticket numbers"),
)

_BY_CODE = {item.code: item for item in DEFAULT_SEQUENCES}


def default_sequence_for(code: str) -> DefaultSequence | None:
    return _BY_CODE.get(code)


def build_default_config(
    tenant_id: str,
    code: str,
    is_live: bool,
    *,
    created_by: str = "system@local",
) -> NewSequenceConfig:
    """Well-known codes get their system defaults; anything else a plain CODE-00001 counter."""
    known = default_sequence_for(code)
    if known is not None:
        return NewSequenceConfig(
            tenant_id=tenant_id,
            code=code,
            is_live=is_live,
            name=known.name,
            description=known.description,
            prefix=known.prefix,
            padding_width=known.padding_width,
            start_value=known.start_value,
            reset_cadence=ResetCadence.NEVER.value,
            is_deletable=False,
            created_by=created_by,
        )
    return NewSequenceConfig(
        tenant_id=tenant_id,
        code=code,
        is_live=is_live,
        name=code.replace("_", " ").title(),
        prefix=code,
        padding_width=5,
        start_value=1,
        reset_cadence=ResetCadence.NEVER.value,
        created_by=created_by,
    )
