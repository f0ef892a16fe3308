import json

import pytest

from invoicer.services import settings_service
from invoicer.services.invoice_service import (
    LocalInvoiceRepository, SyncedInvoiceRepository, open_repository,
)
from invoicer.services.settings_service import (
    load_settings, resolve_data_dir, resolve_exports_dir, save_settings,
)
from invoicer.models.settings import Settings


@pytest.fixture
def settings_file(tmp_path):
    return tmp_path / "settings.json"


def test_missing_file_gives_defaults(settings_file):
    s = load_settings(settings_file, environ={})
    assert s == Settings()
    assert s.backend == "local"
    assert s.net_terms_days == 30


def test_file_values_and_environment_overrides(settings_file):
    settings_file.write_text(json.dumps({
        "backend": "firestore",
        "owner_id": "from-file",
        "currency": "EUR",
        "company": {"name": "Zizo Capital"},
        "pdf": {"wkhtmltopdf_path": "/opt/old/wkhtmltopdf"},
        "unknown_key": 1,
    }), encoding="utf-8")

    s = load_settings(settings_file, environ={
        "INVOICER_BACKEND": "memory",
        "INVOICER_OWNER_ID": "from-env",
        "WKHTMLTOPDF": "/usr/local/bin/wkhtmltopdf",
    })

    assert s.backend == "memory"
    assert s.owner_id == "from-env"
    assert s.currency == "EUR"
    assert s.company.name == "Zizo Capital"
    assert s.pdf.wkhtmltopdf_path == "/usr/local/bin/wkhtmltopdf"


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", json.dumps({"backend": "ftp"})])
def test_unusable_file_falls_back_to_defaults(settings_file, content):
    settings_file.write_text(content, encoding="utf-8")
    assert load_settings(settings_file, environ={}) == Settings()


def test_save_then_load(settings_file):
    original = Settings(currency="GBP", net_terms_days=15, company={"name": "Globex"})
    save_settings(original, settings_file)
    assert load_settings(settings_file, environ={}) == original


def test_directory_resolution(tmp_path):
    assert resolve_data_dir(Settings()) == settings_service.DATA_DIR
    assert resolve_exports_dir(Settings()) == settings_service.EXPORTS_DIR
    assert resolve_data_dir(Settings(data_dir=str(tmp_path))) == tmp_path


class TestOpenRepository:
    def test_local_backend_uses_data_dir(self, tmp_path):
        repo = open_repository(Settings(data_dir=str(tmp_path), invoices_file="inv.json"))
        assert isinstance(repo, LocalInvoiceRepository)
        assert (tmp_path / "inv.json").exists()

    def test_memory_backend(self):
        repo = open_repository(Settings(backend="memory", owner_id="user-1"))
        assert isinstance(repo, SyncedInvoiceRepository)
        assert repo.owner_id == "user-1"
        assert repo.list() == []
        repo.close()
