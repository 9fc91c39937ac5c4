"""
config.py — Configuration Module for the ward rota engine

Loads the doctor list and user profiles used to bootstrap a database, and
exposes the default file locations.

  config/doctors.csv     name, active (yes/no; optional, default yes)
  config/profiles.json   [{"user_id", "role", "can_approve", "doctor_name"|"doctor_id"}]
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ward_rota.models import Actor
from ward_rota.schedule_config import (
    ABSENCE_REASON_LABELS,
    BUSINESS_DAYS,
    CARRY_FORWARD_DAYS,
    DEFAULT_ABSENCE_REASON,
    EDITOR_ROLES,
    FALLBACK_ABSENCE_REASON,
    SLOT_LABELS,
    SLOTS,
    USER_ROLES,
)

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_DB_PATH        = PROJECT_ROOT / "data" / "rota.db"
DEFAULT_DOCTORS_PATH   = DEFAULT_CONFIG_DIR / "doctors.csv"
DEFAULT_PROFILES_PATH  = DEFAULT_CONFIG_DIR / "profiles.json"
DEFAULT_OUTPUT_DIR     = PROJECT_ROOT / "outputs"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_yes_no(value: Any, default: bool = True) -> bool:
    if isinstance(value, bool):
        return value
    if value is None or (isinstance(value, float) and value != value):
        return default
    s = str(value).strip().lower()
    if not s:
        return default
    return s in ("yes", "true", "1", "y")


# ---------------------------------------------------------------------------
# Doctor list loader
# ---------------------------------------------------------------------------

def load_doctors_csv(
    doctors_path: Optional[Path] = None,
) -> List[Dict[str, Any]]:
    """
    Load the doctor list from doctors.csv.

    Expected columns:
      name    (required)
      active  (optional yes/no/true/false/1/0, default yes)

    Returns list of {"name", "active"} dicts in file order.
    """
    import pandas as pd

    path = Path(doctors_path or DEFAULT_DOCTORS_PATH)
    if not path.exists():
        raise FileNotFoundError(f"Doctor list not found: {path}")

    df = pd.read_csv(path, dtype={"name": str})
    if "name" not in df.columns:
        raise ValueError(f"{path}: missing required column 'name'")

    doctors: List[Dict[str, Any]] = []
    for i, row in df.iterrows():
        raw_name = row["name"]
        name = "" if pd.isna(raw_name) else str(raw_name).strip()
        if not name:
            raise ValueError(f"{path}: blank doctor name on data row {i + 1}")
        doctors.append({
            "name":   name,
            "active": _parse_yes_no(row.get("active"), default=True),
        })

    logger.info(f"Loaded {len(doctors)} doctors from {path}")
    return doctors


# ---------------------------------------------------------------------------
# Profiles loader
# ---------------------------------------------------------------------------

def load_profiles(
    profiles_path: Optional[Path] = None,
    doctor_ids_by_name: Optional[Dict[str, str]] = None,
) -> List[Actor]:
    """
    Load user profiles from profiles.json. Returns [] if the file is missing.

    A profile may link a doctor by id ("doctor_id") or by display name
    ("doctor_name", resolved through doctor_ids_by_name).
    """
    path = Path(profiles_path or DEFAULT_PROFILES_PATH)
    if not path.exists():
        logger.warning(f"Profiles file not found: {path}. No users loaded.")
        return []
    with open(path) as f:
        data = json.load(f)

    lookup = doctor_ids_by_name or {}
    actors: List[Actor] = []
    for entry in data:
        doctor_id = entry.get("doctor_id")
        if doctor_id is None and entry.get("doctor_name"):
            doctor_id = lookup.get(entry["doctor_name"])
            if doctor_id is None:
                logger.warning(
                    f"Profile {entry.get('user_id')}: doctor {entry['doctor_name']!r} not registered"
                )
        actors.append(Actor(
            user_id=str(entry["user_id"]),
            role=entry.get("role", "doctor"),
            can_approve=bool(entry.get("can_approve", entry.get("role") == "head")),
            doctor_id=doctor_id,
        ))

    logger.info(f"Loaded {len(actors)} user profiles from {path}")
    return actors


# ---------------------------------------------------------------------------
# Full config dict
# ---------------------------------------------------------------------------

def get_config() -> Dict[str, Any]:
    return {
        "slots":                  list(SLOTS),
        "slot_labels":            SLOT_LABELS.copy(),
        "business_days":          BUSINESS_DAYS,
        "carry_forward_days":     CARRY_FORWARD_DAYS,
        "user_roles":             list(USER_ROLES),
        "editor_roles":           sorted(EDITOR_ROLES),
        "absence_reasons":        ABSENCE_REASON_LABELS.copy(),
        "default_absence_reason": DEFAULT_ABSENCE_REASON,
        "fallback_absence_reason": FALLBACK_ABSENCE_REASON,
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    for d in load_doctors_csv():
        flag = "" if d["active"] else " (archived)"
        print(f"  {d['name']}{flag}")
