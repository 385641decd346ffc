from __future__ import annotations

import argparse
import sys
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from sqlalchemy.orm import Session

from sequence_service.db.session import SessionLocal
from sequence_service.services.sequence_admin import SeedResult, SequenceAdminService
from sequence_service.services.sequence_store import SqlSequenceConfigStore


def seed_tenants(db: Session, tenant_ids: list[str], *, created_by: str) -> dict[str, SeedResult]:
    service = SequenceAdminService(SqlSequenceConfigStore(db), db=db)
    return {tenant_id: service.seed_defaults(tenant_id, created_by=created_by) for tenant_id in tenant_ids}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Idempotently create the default document sequences for one or more tenants."
    )
    parser.add_argument(
        "tenant_ids",
        nargs="+",
        help="Tenant ids to seed. Existing sequences are left untouched.",
    )
    parser.add_argument(
        "--created-by",
        default="system@local",
        help="Audit user recorded on created rows.",
    )
    args = parser.parse_args(argv)

    tenant_ids = [t.strip() for t in args.tenant_ids if t.strip()]
    if not tenant_ids:
        parser.error("at least one non-empty tenant id is required")

    db = SessionLocal()
    try:
        results = seed_tenants(db, tenant_ids, created_by=args.created_by)
    finally:
        db.close()

    print("Seed summary")
    for tenant_id, result in results.items():
        print(f"- {tenant_id}: created={len(result.created)} skipped={len(result.skipped)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
