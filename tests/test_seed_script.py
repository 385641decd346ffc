from __future__ import annotations

import importlib.util
from pathlib import Path

from sequence_service.services.sequence_defaults import DEFAULT_SEQUENCES
from sequence_service.services.sequence_store import SqlSequenceConfigStore

_SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "seed_tenant_sequences.py"


def _load_script():
    module_spec = importlib.util.spec_from_file_location("seed_tenant_sequences", _SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def test_seed_script_seeds_each_tenant_once(db_session, monkeypatch, capsys):
    module = _load_script()
    monkeypatch.setattr(module, "SessionLocal", lambda: db_session)

    assert module.main(["tenant-a", "tenant-b", "--created-by", "ops@example.com"]) == 0
    out = capsys.readouterr().out
    assert f"- tenant-a: created={2 * len(DEFAULT_SEQUENCES)} skipped=0" in out

    store = SqlSequenceConfigStore(db_session)
    assert store.get("tenant-b", "INVOICE", False).created_by == "ops@example.com"

    assert module.main(["tenant-a"]) == 0
    assert f"created=0 skipped={2 * len(DEFAULT_SEQUENCES)}" in capsys.readouterr().out
