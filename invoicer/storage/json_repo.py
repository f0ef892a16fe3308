from __future__ import annotations

import glob
import json
import logging
import shutil
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel

log = logging.getLogger(__name__)


def _json_default(o: Any) -> Any:
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    raise TypeError(f"Object of type {o.__class__.__name__} is not JSON serializable")


class JsonRepository:
    """
    Repo JSON: un seul tableau dans un seul fichier, lu en entier et réécrit
    en entier à chaque mutation.
    - Rotation de backups (backup_enabled, backup_keep)
    - N'écrit pas si le contenu ne change pas (réduction du bruit et des .bak)
    - Les OSError d'écriture remontent telles quelles à l'appelant
    """

    def __init__(
        self,
        filepath: Union[str, Path],
        entity_name: str = "entity",
        key: str = "id",
        *,
        backup_enabled: bool = False,
        backup_keep: int = 5,
    ) -> None:
        self.filepath = Path(filepath)
        self.entity_name = entity_name
        self.key = key
        self._lock = threading.Lock()
        self.backup_enabled = backup_enabled
        self.backup_keep = max(0, int(backup_keep))

        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        if not self.filepath.exists():
            self._write_raw([])

    # ---------------- I/O bas niveau ---------------- #

    def _read_raw(self) -> List[Dict[str, Any]]:
        try:
            with self.filepath.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError:
            # Fichier corrompu → copie de côté et repart sur liste vide
            backup = self.filepath.with_suffix(".corrupt.json")
            log.warning("%s: contenu JSON illisible, copie vers %s", self.filepath, backup)
            try:
                shutil.copy2(self.filepath, backup)
            except OSError as e:
                log.warning("Copie de %s impossible: %s", self.filepath, e)
            return []
        if not isinstance(data, list):
            log.warning("%s: tableau JSON attendu, trouvé %s", self.filepath, type(data).__name__)
            return []
        return [d for d in data if isinstance(d, dict)]

    def _rotate_backups(self) -> None:
        if not self.backup_enabled or self.backup_keep <= 0:
            return
        pattern = str(self.filepath.with_suffix(".*.bak.json"))
        files = sorted(glob.glob(pattern))
        # garde les plus récents
        for old in files[: max(0, len(files) - self.backup_keep)]:
            Path(old).unlink(missing_ok=True)

    def _write_raw(self, data: Iterable[Mapping[str, Any]]) -> None:
        with self._lock:
            new_dump = json.dumps(list(data), ensure_ascii=False, indent=2, default=_json_default)

            # si contenu identique → ne rien faire
            if self.filepath.exists() and self.filepath.read_text(encoding="utf-8") == new_dump:
                return

            if self.backup_enabled and self.filepath.exists():
                ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
                shutil.copy2(self.filepath, self.filepath.with_suffix(f".{ts}.bak.json"))
                self._rotate_backups()

            # écriture via fichier temporaire puis remplacement
            tmp = self.filepath.with_suffix(".tmp")
            tmp.write_text(new_dump, encoding="utf-8")
            tmp.replace(self.filepath)

    # ---------------- Helpers ---------------- #

    @staticmethod
    def _to_dict(item: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
        if isinstance(item, BaseModel):
            return item.model_dump(mode="json")
        return dict(item)

    def _same_key(self, record: Mapping[str, Any], obj_id: Any) -> bool:
        return str(record.get(self.key)) == str(obj_id)

    # ---------------- CRUD ---------------- #

    def list_all(self) -> List[Dict[str, Any]]:
        return self._read_raw()

    def get_by_id(self, obj_id: Any) -> Optional[Dict[str, Any]]:
        for it in self._read_raw():
            if self._same_key(it, obj_id):
                return it
        return None

    def save_all(self, items: Iterable[Union[BaseModel, Mapping[str, Any]]]) -> None:
        """Réécrit le tableau complet."""
        self._write_raw([self._to_dict(it) for it in items])

    def add(self, item: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
        record = self._to_dict(item)
        k = self.key
        if not record.get(k):
            raise ValueError(f"Cannot add {self.entity_name} without '{k}'")
        data = self._read_raw()
        if any(self._same_key(d, record[k]) for d in data):
            raise ValueError(f"{self.entity_name} with {k}={record[k]} already exists")
        data.append(record)
        self._write_raw(data)
        return record

    def update(self, item: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
        """Remplace l'enregistrement complet (même clé)."""
        record = self._to_dict(item)
        obj_id = record.get(self.key)
        if not obj_id:
            raise ValueError(f"Cannot update {self.entity_name} without '{self.key}'")
        data = self._read_raw()
        for idx, existing in enumerate(data):
            if self._same_key(existing, obj_id):
                data[idx] = record
                self._write_raw(data)
                return record
        raise KeyError(f"{self.entity_name} with {self.key}={obj_id} not found")

    def patch(self, obj_id: Any, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Fusionne quelques champs dans l'enregistrement existant."""
        data = self._read_raw()
        for idx, existing in enumerate(data):
            if self._same_key(existing, obj_id):
                merged = {**existing, **dict(fields), self.key: existing.get(self.key)}
                data[idx] = merged
                self._write_raw(data)
                return merged
        raise KeyError(f"{self.entity_name} with {self.key}={obj_id} not found")

    def upsert(self, item: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
        try:
            return self.update(item)
        except KeyError:
            return self.add(item)

    def delete(self, obj_id: Any) -> bool:
        data = self._read_raw()
        new_data = [d for d in data if not self._same_key(d, obj_id)]
        changed = len(new_data) != len(data)
        if changed:
            self._write_raw(new_data)
        return changed

    # ---------------- Recherches ---------------- #

    def find(self, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        return [r for r in self._read_raw() if predicate(r)]
