from __future__ import annotations
import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from invoicer.models.settings import Settings

log = logging.getLogger(__name__)

# --- Chemins de base ---
ROOT_DIR = Path(__file__).resolve().parents[2]
DATA_DIR = ROOT_DIR / "data"
EXPORTS_DIR = ROOT_DIR / "exports"
SETTINGS_JSON = DATA_DIR / "settings.json"

# variable d'env → clé de settings.json
ENV_OVERRIDES = {
    "INVOICER_DATA_DIR": "data_dir",
    "INVOICER_BACKEND": "backend",
    "INVOICER_OWNER_ID": "owner_id",
    "INVOICER_COLLECTION": "collection",
    "INVOICER_FIRESTORE_PROJECT": "firestore_project",
}


def _load_json(path: os.PathLike | str) -> Any:
    p = Path(path)
    if not p.exists():
        return None
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        log.warning("Lecture de %s impossible: %s", p, e)
        return None


def load_settings(
    path: os.PathLike | str = SETTINGS_JSON,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    data/settings.json + surcharges d'environnement.
    Fichier absent, illisible ou invalide → valeurs par défaut.
    """
    env = os.environ if environ is None else environ
    raw = _load_json(path)
    data = dict(raw) if isinstance(raw, dict) else {}

    for env_key, field in ENV_OVERRIDES.items():
        if env.get(env_key):
            data[field] = env[env_key]
    if env.get("WKHTMLTOPDF"):
        pdf = data.get("pdf") if isinstance(data.get("pdf"), dict) else {}
        data["pdf"] = {**pdf, "wkhtmltopdf_path": env["WKHTMLTOPDF"]}

    try:
        return Settings(**data)
    except ValidationError as e:
        log.warning("Paramètres invalides dans %s, valeurs par défaut utilisées: %s", path, e)
        return Settings()


def save_settings(settings: Settings, path: os.PathLike | str = SETTINGS_JSON) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(settings.model_dump(mode="json"), ensure_ascii=False, indent=2), encoding="utf-8")


def resolve_data_dir(settings: Settings) -> Path:
    return Path(settings.data_dir).expanduser() if settings.data_dir else DATA_DIR


def resolve_exports_dir(settings: Settings) -> Path:
    return Path(settings.exports_dir).expanduser() if settings.exports_dir else EXPORTS_DIR
