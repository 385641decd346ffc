from __future__ import annotations

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from sequence_service.db.base import Base
from sequence_service.models.mixins import TenantRecordMixin


class Contact(TenantRecordMixin, Base):
    __tablename__ = "t_contacts"
    __table_args__ = (
        Index("ix_contacts_tenant_number", "tenant_id", "is_live", "contact_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_number: Mapped[str | None] = mapped_column(String(64), nullable=True)


class Contract(TenantRecordMixin, Base):
    __tablename__ = "t_contracts"
    __table_args__ = (
        Index("ix_contracts_tenant_number", "tenant_id", "is_live", "contract_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    contract_number: Mapped[str | None] = mapped_column(String(64), nullable=True)


class Invoice(TenantRecordMixin, Base):
    __tablename__ = "t_invoices"
    __table_args__ = (
        Index("ix_invoices_tenant_number", "tenant_id", "is_live", "invoice_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    contract_id: Mapped[int | None] = mapped_column(nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
