import json

import pytest

from invoicer.errors import NotFoundError, TransportError, ValidationError
from invoicer.models.invoice import InvoiceDraft, LineItem
from invoicer.services.computations import invoice_total
from invoicer.services.invoice_service import LocalInvoiceRepository

from conftest import FIXED_NOW


@pytest.fixture
def path(tmp_path):
    return tmp_path / "invoices.json"


@pytest.fixture
def repo(path, clock):
    return LocalInvoiceRepository(path, owner_id="user-1", clock=clock)


def _on_disk(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestCreate:
    def test_create_then_list_round_trip(self, repo, draft):
        created = repo.create(draft)

        assert created.status == "Pending"
        assert created.total == invoice_total(draft.items) == 125.0
        assert created.owner_id == "user-1"
        assert created.created_at == FIXED_NOW
        assert created.id == "20240601120000000000"

        [listed] = repo.list()
        for field in ("number", "date", "due_date", "client_name", "client_email", "client_address", "items"):
            assert getattr(listed, field) == getattr(draft, field)
        assert listed.total == 125.0

    def test_record_survives_reload(self, repo, path, draft, clock):
        created = repo.create(draft)
        reloaded = LocalInvoiceRepository(path, clock=clock)
        assert [inv.id for inv in reloaded.list()] == [created.id]
        assert _on_disk(path)[0]["due_date"] == "2024-01-31"

    def test_local_ids_stay_unique_with_a_frozen_clock(self, repo, draft):
        first = repo.create(draft)
        second = repo.create(draft)
        assert first.id != second.id
        assert second.id.startswith(first.id)

    @pytest.mark.parametrize("field", ["number", "client_name"])
    def test_missing_required_field_writes_nothing(self, repo, path, draft, field):
        broken = draft.model_copy(update={field: ""})
        with pytest.raises(ValidationError) as exc:
            repo.create(broken)
        assert exc.value.field == field
        assert repo.list() == []
        assert _on_disk(path) == []

    def test_zero_items_gives_zero_total(self, repo, draft):
        created = repo.create(draft.model_copy(update={"items": []}))
        assert created.total == 0

    def test_failed_write_leaves_no_partial_record(self, repo, draft, monkeypatch):
        def _disk_full(data):
            raise OSError("No space left on device")

        monkeypatch.setattr(repo.repo, "_write_raw", _disk_full)
        with pytest.raises(TransportError):
            repo.create(draft)
        assert repo.list() == []


class TestUpdate:
    def test_update_replaces_fields_but_keeps_identity(self, repo, draft):
        created = repo.create(draft)
        repo.set_status(created.id, "Paid")

        changed = draft.model_copy(update={
            "client_name": "Globex",
            "items": [LineItem(description="Audit", quantity=3, unit_price=10)],
        })
        updated = repo.update(created.id, changed)

        assert updated.id == created.id
        assert updated.owner_id == created.owner_id
        assert updated.created_at == created.created_at
        assert updated.status == "Paid"
        assert updated.total == 30
        assert repo.get(created.id).client_name == "Globex"

    def test_draft_status_overrides(self, repo, draft):
        created = repo.create(draft)
        updated = repo.update(created.id, draft.model_copy(update={"status": "Paid"}))
        assert updated.status == "Paid"

    def test_unknown_id(self, repo, draft):
        with pytest.raises(NotFoundError):
            repo.update("missing", draft)

    def test_update_validates_required_fields(self, repo, draft):
        created = repo.create(draft)
        with pytest.raises(ValidationError):
            repo.update(created.id, InvoiceDraft(number="INV-001"))


class TestStatusAndDelete:
    def test_set_status_touches_only_status(self, repo, path, draft):
        created = repo.create(draft)
        before = _on_disk(path)[0]

        repo.set_status(created.id, "Paid")

        after = _on_disk(path)[0]
        assert after["status"] == "Paid"
        assert {k: v for k, v in after.items() if k != "status"} == {
            k: v for k, v in before.items() if k != "status"
        }

    def test_toggle_status(self, repo, draft):
        created = repo.create(draft)
        assert repo.toggle_status(created.id) == "Paid"
        assert repo.toggle_status(created.id) == "Pending"
        assert repo.get(created.id).status == "Pending"

    def test_set_status_unknown_id(self, repo):
        with pytest.raises(NotFoundError):
            repo.set_status("missing", "Paid")

    def test_delete(self, repo, path, draft):
        keep = repo.create(draft)
        gone = repo.create(draft.model_copy(update={"number": "INV-002"}))

        repo.delete(gone.id)

        assert [inv.id for inv in repo.list()] == [keep.id]
        assert [r["id"] for r in _on_disk(path)] == [keep.id]

    def test_delete_unknown_id_is_a_no_op(self, repo, draft):
        created = repo.create(draft)
        repo.delete("missing")
        assert [inv.id for inv in repo.list()] == [created.id]


class TestOutOfSyncFile:
    def test_record_deleted_by_another_instance(self, repo, path, draft, clock):
        created = repo.create(draft)
        other = LocalInvoiceRepository(path, clock=clock)
        seen = []
        other.subscribe(seen.append)

        repo.delete(created.id)

        with pytest.raises(NotFoundError) as exc:
            other.set_status(created.id, "Paid")
        assert exc.value.invoice_id == created.id
        assert other.list() == []
        assert seen == [[]]

        with pytest.raises(NotFoundError):
            other.update(created.id, draft)

    def test_legacy_records_without_id_get_a_stable_one(self, path, clock):
        path.write_text(json.dumps([
            {"number": "INV-001", "clientName": "Acme"},
            {"number": "INV-002", "clientName": "Globex"},
        ]), encoding="utf-8")

        repo = LocalInvoiceRepository(path, clock=clock)
        ids = [inv.id for inv in repo.list()]
        assert ids == ["20240601120000000000", "20240601120000000000-1"]
        assert [r["id"] for r in _on_disk(path)] == ids
        assert [inv.id for inv in LocalInvoiceRepository(path, clock=clock).list()] == ids

        repo.set_status(ids[0], "Paid")
        assert _on_disk(path)[0]["status"] == "Paid"

        repo.delete(ids[1])
        assert [inv.number for inv in LocalInvoiceRepository(path, clock=clock).list()] == ["INV-001"]


class TestSubscribe:
    def test_listeners_receive_full_list_until_unsubscribed(self, repo, draft):
        seen = []
        unsubscribe = repo.subscribe(lambda invoices: seen.append([i.number for i in invoices]))

        repo.create(draft)
        repo.create(draft.model_copy(update={"number": "INV-002"}))
        unsubscribe()
        repo.create(draft.model_copy(update={"number": "INV-003"}))

        assert seen == [["INV-001"], ["INV-001", "INV-002"]]

    def test_list_returns_copies(self, repo, draft):
        repo.create(draft)
        repo.list()[0].client_name = "tampered"
        assert repo.list()[0].client_name == "Acme Corp"
