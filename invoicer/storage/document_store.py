from __future__ import annotations

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping

from invoicer.errors import NotFoundError, TransportError

log = logging.getLogger(__name__)

Record = Dict[str, Any]
SnapshotCallback = Callable[[List[Record]], None]
Unsubscribe = Callable[[], None]


class DocumentStore(ABC):
    """
    Frontière avec un stockage distant "temps réel".

    Les enregistrements échangés sont des dicts JSON; la clé "id" est portée
    par le store (identifiant du document), pas par le corps du document.
    Erreurs: TransportError (réseau / refus), NotFoundError (replace/patch
    sur un document absent). Aucun retry ici.
    """

    @abstractmethod
    def list_once(self) -> List[Record]:
        """Lecture ponctuelle de tous les documents visibles."""

    @abstractmethod
    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        """Appelle callback avec l'état complet à chaque changement (et à l'abonnement)."""

    @abstractmethod
    def insert(self, record: Mapping[str, Any]) -> str:
        """Crée un document et retourne son identifiant."""

    @abstractmethod
    def replace(self, doc_id: str, record: Mapping[str, Any]) -> None: ...

    @abstractmethod
    def patch(self, doc_id: str, fields: Mapping[str, Any]) -> None: ...

    @abstractmethod
    def remove(self, doc_id: str) -> None: ...


class MemoryDocumentStore(DocumentStore):
    """
    Store en mémoire avec la même sémantique de snapshots qu'un store distant.

    - deferred=True: les snapshots sont retenus jusqu'à flush(), ce qui simule
      la latence entre la fin d'une écriture et sa visibilité chez les abonnés.
    - offline=True: toute écriture lève TransportError.
    """

    def __init__(self, *, deferred: bool = False, owner_id: str | None = None):
        self.deferred = deferred
        self.owner_id = owner_id
        self.offline = False
        self._docs: Dict[str, Record] = {}
        self._listeners: List[SnapshotCallback] = []
        self._pending = False
        self._lock = threading.RLock()

    # ---------- helpers ----------
    def _visible(self) -> List[Record]:
        out = []
        for doc_id, body in self._docs.items():
            if self.owner_id and self.owner_id not in (body.get("owner_id"), body.get("uid")):
                continue
            out.append({**copy.deepcopy(body), "id": doc_id})
        return out

    def _check_online(self, action: str) -> None:
        if self.offline:
            raise TransportError(f"Document store unreachable ({action})")

    def _changed(self) -> None:
        if self.deferred:
            self._pending = True
            return
        self._deliver()

    def _deliver(self) -> None:
        snapshot = self._visible()
        for cb in list(self._listeners):
            cb(copy.deepcopy(snapshot))

    def flush(self) -> None:
        """Livre le snapshot retenu (mode deferred)."""
        with self._lock:
            if self._pending:
                self._pending = False
                self._deliver()

    # ---------- lecture ----------
    def list_once(self) -> List[Record]:
        with self._lock:
            self._check_online("list")
            return self._visible()

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        with self._lock:
            self._listeners.append(callback)
            callback(self._visible())

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return _unsubscribe

    # ---------- écriture ----------
    def insert(self, record: Mapping[str, Any]) -> str:
        with self._lock:
            self._check_online("insert")
            doc_id = uuid.uuid4().hex
            body = copy.deepcopy(dict(record))
            body.pop("id", None)
            self._docs[doc_id] = body
            log.debug("insert %s", doc_id)
            self._changed()
            return doc_id

    def replace(self, doc_id: str, record: Mapping[str, Any]) -> None:
        with self._lock:
            self._check_online("replace")
            if doc_id not in self._docs:
                raise NotFoundError(doc_id)
            body = copy.deepcopy(dict(record))
            body.pop("id", None)
            self._docs[doc_id] = body
            self._changed()

    def patch(self, doc_id: str, fields: Mapping[str, Any]) -> None:
        with self._lock:
            self._check_online("patch")
            if doc_id not in self._docs:
                raise NotFoundError(doc_id)
            self._docs[doc_id].update(copy.deepcopy(dict(fields)))
            self._changed()

    def remove(self, doc_id: str) -> None:
        with self._lock:
            self._check_online("remove")
            if self._docs.pop(doc_id, None) is not None:
                self._changed()
