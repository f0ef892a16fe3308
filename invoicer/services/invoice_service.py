# invoicer/services/invoice_service.py
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from pydantic import ValidationError as ModelValidationError

from invoicer.errors import NotFoundError, TransportError, ValidationError
from invoicer.models.common import gen_local_id
from invoicer.models.invoice import Invoice, InvoiceDraft, InvoiceStatus
from invoicer.models.settings import Settings
from invoicer.services.computations import invoice_total
from invoicer.services.settings_service import resolve_data_dir
from invoicer.storage.document_store import DocumentStore, MemoryDocumentStore, Record
from invoicer.storage.json_repo import JsonRepository

log = logging.getLogger(__name__)

Listener = Callable[[List[Invoice]], None]
Clock = Callable[[], datetime]


def _hydrate(records: List[Record]) -> List[Invoice]:
    out: List[Invoice] = []
    for d in records:
        try:
            out.append(Invoice(**d))
        except ModelValidationError as e:
            # On ignore les entrées invalides pour ne pas casser l'UI
            log.warning("Facture ignorée (%s): %s", d.get("id"), e.errors()[:1])
    return out


def _check_required(draft: InvoiceDraft) -> None:
    if not draft.number:
        raise ValidationError("number", "Please fill in Invoice Number")
    if not draft.client_name:
        raise ValidationError("client_name", "Please fill in Client Name")


class InvoiceRepository(ABC):
    """
    Ensemble courant des factures + opérations CRUD.
    Deux stratégies: LocalInvoiceRepository (fichier JSON) et
    SyncedInvoiceRepository (store distant temps réel).
    """

    def __init__(self, owner_id: Optional[str] = None, clock: Clock = datetime.now):
        self.owner_id = owner_id
        self.clock = clock
        self._listeners: List[Listener] = []
        self._listeners_lock = threading.Lock()

    # ---------- abonnements ----------
    def subscribe(self, callback: Listener) -> Callable[[], None]:
        with self._listeners_lock:
            self._listeners.append(callback)

        def _unsubscribe() -> None:
            with self._listeners_lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return _unsubscribe

    def _notify(self) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        if not listeners:
            return
        current = self.list()
        for cb in listeners:
            cb([inv.model_copy(deep=True) for inv in current])

    # ---------- construction des enregistrements ----------
    def _new_invoice(self, draft: InvoiceDraft, invoice_id: Optional[str] = None) -> Invoice:
        _check_required(draft)
        data = draft.model_dump(exclude={"status"})
        if invoice_id is not None:
            data["id"] = invoice_id
        return Invoice(
            **data,
            total=invoice_total(draft.items),
            status="Pending",
            created_at=self.clock(),
            owner_id=self.owner_id,
        )

    @staticmethod
    def _replaced(existing: Invoice, draft: InvoiceDraft) -> Invoice:
        _check_required(draft)
        data = draft.model_dump(exclude={"status"})
        return Invoice(
            **data,
            id=existing.id,
            total=invoice_total(draft.items),
            status=draft.status or existing.status,
            created_at=existing.created_at,
            owner_id=existing.owner_id,
        )

    # ---------- contrat ----------
    @abstractmethod
    def list(self) -> List[Invoice]: ...

    def get(self, invoice_id: str) -> Invoice:
        for inv in self.list():
            if inv.id == invoice_id:
                return inv
        raise NotFoundError(invoice_id)

    @abstractmethod
    def create(self, draft: InvoiceDraft) -> Invoice: ...

    @abstractmethod
    def update(self, invoice_id: str, draft: InvoiceDraft) -> Invoice: ...

    @abstractmethod
    def set_status(self, invoice_id: str, status: InvoiceStatus) -> None: ...

    @abstractmethod
    def delete(self, invoice_id: str) -> None: ...

    def toggle_status(self, invoice_id: str) -> InvoiceStatus:
        current = self.get(invoice_id)
        new_status: InvoiceStatus = "Pending" if current.status == "Paid" else "Paid"
        self.set_status(invoice_id, new_status)
        return new_status

    def close(self) -> None:
        with self._listeners_lock:
            self._listeners.clear()


# ---------------- Stratégie locale ----------------
class LocalInvoiceRepository(InvoiceRepository):
    """Miroir mémoire d'un tableau JSON réécrit en entier à chaque mutation."""

    def __init__(
        self,
        path: Union[str, Path],
        owner_id: Optional[str] = None,
        clock: Clock = datetime.now,
    ):
        super().__init__(owner_id, clock)
        self.repo = JsonRepository(path, entity_name="invoice", key="id")
        self._invoices: List[Invoice] = self._load()

    def _load(self) -> List[Invoice]:
        """Relit le fichier; les entrées sans id reçoivent un id local, enregistré une fois."""
        records = self.repo.list_all()
        taken = {str(r["id"]) for r in records if r.get("id")}
        missing = [r for r in records if not r.get("id")]
        for r in missing:
            r["id"] = self._unique_id(taken)
            taken.add(r["id"])
        if missing:
            try:
                self.repo.save_all(records)
                log.info("%d facture(s) sans id complétée(s) dans %s", len(missing), self.repo.filepath)
            except OSError as e:
                log.warning("Écriture de %s impossible: %s", self.repo.filepath, e)
        return _hydrate(records)

    def _index(self, invoice_id: str) -> int:
        for i, inv in enumerate(self._invoices):
            if inv.id == invoice_id:
                return i
        return -1

    def _require(self, invoice_id: str) -> int:
        idx = self._index(invoice_id)
        if idx < 0:
            raise NotFoundError(invoice_id)
        return idx

    def _unique_id(self, taken) -> str:
        base = gen_local_id(self.clock())
        candidate, n = base, 1
        while candidate in taken:
            candidate = f"{base}-{n}"
            n += 1
        return candidate

    def _next_id(self) -> str:
        return self._unique_id({inv.id for inv in self._invoices})

    def _write(self, action: Callable[[], object], invoice_id: Optional[str] = None) -> None:
        try:
            action()
        except OSError as e:
            log.error("Écriture de %s impossible: %s", self.repo.filepath, e)
            raise TransportError(f"Cannot write {self.repo.filepath}: {e}") from e
        except KeyError as e:
            # fichier modifié par ailleurs: le miroir est resynchronisé
            log.warning("Facture %s absente de %s, rechargement", invoice_id, self.repo.filepath)
            self._invoices = self._load()
            self._notify()
            raise NotFoundError(invoice_id or "?") from e

    def list(self) -> List[Invoice]:
        return [inv.model_copy(deep=True) for inv in self._invoices]

    def create(self, draft: InvoiceDraft) -> Invoice:
        inv = self._new_invoice(draft, invoice_id=self._next_id())
        self._write(lambda: self.repo.add(inv))
        # le miroir n'est mis à jour qu'après une écriture réussie
        self._invoices.append(inv)
        log.info("Facture %s créée (%s)", inv.number, inv.id)
        self._notify()
        return inv.model_copy(deep=True)

    def update(self, invoice_id: str, draft: InvoiceDraft) -> Invoice:
        idx = self._require(invoice_id)
        inv = self._replaced(self._invoices[idx], draft)
        self._write(lambda: self.repo.update(inv), invoice_id)
        self._invoices[idx] = inv
        log.info("Facture %s mise à jour", invoice_id)
        self._notify()
        return inv.model_copy(deep=True)

    def set_status(self, invoice_id: str, status: InvoiceStatus) -> None:
        idx = self._require(invoice_id)
        updated = self._invoices[idx].model_copy(update={"status": status})
        self._write(lambda: self.repo.patch(invoice_id, {"status": status}), invoice_id)
        self._invoices[idx] = updated
        self._notify()

    def delete(self, invoice_id: str) -> None:
        idx = self._index(invoice_id)
        if idx < 0:
            log.debug("Suppression ignorée: facture %s inconnue", invoice_id)
            return
        self._write(lambda: self.repo.delete(invoice_id))
        del self._invoices[idx]
        log.info("Facture %s supprimée", invoice_id)
        self._notify()


# ---------------- Stratégie synchronisée ----------------
class SyncedInvoiceRepository(InvoiceRepository):
    """
    Cache local alimenté par les snapshots du store distant.

    Les écritures partent vers le store; list() ne reflète une écriture
    qu'une fois le snapshot correspondant reçu (peut arriver avant ou après
    le retour de l'appel, et sur un autre thread).
    """

    def __init__(
        self,
        store: DocumentStore,
        owner_id: Optional[str] = None,
        clock: Clock = datetime.now,
    ):
        super().__init__(owner_id, clock)
        self.store = store
        self._cache: Dict[str, Invoice] = {}
        self._cache_lock = threading.Lock()
        self._unsubscribe_store: Optional[Callable[[], None]] = store.subscribe(self._on_snapshot)

    def _on_snapshot(self, records: List[Record]) -> None:
        invoices = _hydrate(records)
        with self._cache_lock:
            self._cache = {inv.id: inv for inv in invoices}
        log.debug("Snapshot reçu: %d facture(s)", len(invoices))
        self._notify()

    def _require(self, invoice_id: str) -> Invoice:
        with self._cache_lock:
            inv = self._cache.get(invoice_id)
        if inv is None:
            raise NotFoundError(invoice_id)
        return inv

    @staticmethod
    def _record(inv: Invoice) -> Record:
        return inv.model_dump(mode="json", exclude={"id"})

    def list(self) -> List[Invoice]:
        with self._cache_lock:
            return [inv.model_copy(deep=True) for inv in self._cache.values()]

    def create(self, draft: InvoiceDraft) -> Invoice:
        inv = self._new_invoice(draft)
        new_id = self.store.insert(self._record(inv))
        log.info("Facture %s envoyée au store (%s)", inv.number, new_id)
        return inv.model_copy(update={"id": new_id})

    def update(self, invoice_id: str, draft: InvoiceDraft) -> Invoice:
        inv = self._replaced(self._require(invoice_id), draft)
        self.store.replace(invoice_id, self._record(inv))
        return inv

    def set_status(self, invoice_id: str, status: InvoiceStatus) -> None:
        self._require(invoice_id)
        self.store.patch(invoice_id, {"status": status})

    def delete(self, invoice_id: str) -> None:
        with self._cache_lock:
            known = invoice_id in self._cache
        if not known:
            log.debug("Suppression ignorée: facture %s inconnue", invoice_id)
            return
        self.store.remove(invoice_id)

    def close(self) -> None:
        if self._unsubscribe_store is not None:
            self._unsubscribe_store()
            self._unsubscribe_store = None
        super().close()


# ---------------- Fabrique ----------------
def open_repository(settings: Settings) -> InvoiceRepository:
    if settings.backend == "firestore":
        from invoicer.storage.firestore_store import FirestoreDocumentStore

        store = FirestoreDocumentStore(
            settings.collection, owner_id=settings.owner_id, project=settings.firestore_project
        )
        return SyncedInvoiceRepository(store, owner_id=settings.owner_id)
    if settings.backend == "memory":
        return SyncedInvoiceRepository(MemoryDocumentStore(), owner_id=settings.owner_id)
    path = resolve_data_dir(settings) / settings.invoices_file
    return LocalInvoiceRepository(path, owner_id=settings.owner_id)
