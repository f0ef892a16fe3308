from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional

from google.api_core import exceptions as gexc
from google.cloud.firestore_v1.base_query import FieldFilter, Or

from invoicer.errors import NotFoundError, TransportError
from invoicer.storage.document_store import DocumentStore, Record, SnapshotCallback, Unsubscribe

log = logging.getLogger(__name__)


@contextmanager
def _translate_errors(action: str, doc_id: Optional[str] = None) -> Iterator[None]:
    try:
        yield
    except gexc.NotFound as e:
        raise NotFoundError(doc_id or "?") from e
    except gexc.GoogleAPIError as e:
        log.warning("Firestore %s failed: %s", action, e)
        raise TransportError(f"Firestore {action} failed: {e}") from e


class FirestoreDocumentStore(DocumentStore):
    """
    Collection Firestore (une facture = un document), restreinte au
    propriétaire de la session via un filtre owner_id.
    Le client est injectable; sinon google.cloud.firestore.Client() avec les
    identifiants par défaut de l'environnement.
    """

    def __init__(
        self,
        collection: str = "invoices",
        *,
        owner_id: Optional[str] = None,
        client: Any = None,
        project: Optional[str] = None,
    ) -> None:
        if client is None:
            from google.cloud import firestore
            client = firestore.Client(project=project)
        self.client = client
        self.collection_name = collection
        self.collection = client.collection(collection)
        self.owner_id = owner_id

    def _query(self):
        if self.owner_id:
            # les documents écrits par l'ancienne appli web portent "uid"
            owner = Or(filters=[
                FieldFilter("owner_id", "==", self.owner_id),
                FieldFilter("uid", "==", self.owner_id),
            ])
            return self.collection.where(filter=owner)
        return self.collection

    @staticmethod
    def _to_record(snapshot: Any) -> Record:
        return {**(snapshot.to_dict() or {}), "id": snapshot.id}

    @staticmethod
    def _body(record: Mapping[str, Any]) -> Record:
        return {k: v for k, v in record.items() if k != "id"}

    # ---------- lecture ----------
    def list_once(self) -> List[Record]:
        with _translate_errors("list"):
            return [self._to_record(s) for s in self._query().stream()]

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        def _on_snapshot(docs, changes, read_time):
            # thread du client Firestore
            callback([self._to_record(s) for s in docs])

        with _translate_errors("subscribe"):
            watch = self._query().on_snapshot(_on_snapshot)
        return watch.unsubscribe

    # ---------- écriture ----------
    def insert(self, record: Mapping[str, Any]) -> str:
        with _translate_errors("insert"):
            _, ref = self.collection.add(self._body(record))
        log.info("Firestore: document %s créé dans %s", ref.id, self.collection_name)
        return ref.id

    def replace(self, doc_id: str, record: Mapping[str, Any]) -> None:
        with _translate_errors("replace", doc_id):
            ref = self.collection.document(doc_id)
            if not ref.get().exists:
                raise NotFoundError(doc_id)
            ref.set(self._body(record))

    def patch(self, doc_id: str, fields: Mapping[str, Any]) -> None:
        with _translate_errors("patch", doc_id):
            self.collection.document(doc_id).update(self._body(fields))

    def remove(self, doc_id: str) -> None:
        with _translate_errors("remove", doc_id):
            self.collection.document(doc_id).delete()
