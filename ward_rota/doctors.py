"""
doctors.py — Doctor registry

Doctors are archived (active=False) rather than deleted once referenced; a
hard delete is refused with ReferentialConflict while any slot assignment,
absence or user profile still points at the doctor.
"""

import logging
import uuid
from typing import List

from ward_rota.errors import DoctorNotFound, MalformedPayload, ReferentialConflict
from ward_rota.models import Doctor
from ward_rota.store import RecordStore

logger = logging.getLogger(__name__)


def _clean_name(name) -> str:
    cleaned = str(name or "").strip()
    if not cleaned:
        raise MalformedPayload("doctor name is empty")
    return cleaned


def get_doctor(store: RecordStore, doctor_id: str) -> Doctor:
    doctor = store.get_doctor(doctor_id)
    if doctor is None:
        raise DoctorNotFound(doctor_id)
    return doctor


def add_doctor(store: RecordStore, name: str, active: bool = True) -> Doctor:
    doctor = Doctor(id=uuid.uuid4().hex, name=_clean_name(name), active=active)
    with store.transaction():
        store.insert_doctor(doctor)
    logger.info(f"Doctor added: {doctor.name} ({doctor.id})")
    return doctor


def rename_doctor(store: RecordStore, doctor_id: str, name: str) -> Doctor:
    cleaned = _clean_name(name)
    with store.transaction():
        doctor = get_doctor(store, doctor_id)
        doctor.name = cleaned
        store.update_doctor(doctor)
    return doctor


def set_doctor_active(store: RecordStore, doctor_id: str, active: bool) -> Doctor:
    """Archive (active=False) or restore a doctor. No-op when already in that state."""
    with store.transaction():
        doctor = get_doctor(store, doctor_id)
        if doctor.active == active:
            return doctor
        doctor.active = active
        store.update_doctor(doctor)
    logger.info(f"Doctor {'restored' if active else 'archived'}: {doctor.name} ({doctor.id})")
    return doctor


def delete_doctor(store: RecordStore, doctor_id: str) -> None:
    with store.transaction():
        doctor = get_doctor(store, doctor_id)
        references = store.doctor_references(doctor_id)
        if any(references.values()):
            raise ReferentialConflict(doctor_id, references)
        store.delete_doctor(doctor_id)
    logger.info(f"Doctor deleted: {doctor.name} ({doctor.id})")


def list_doctors(store: RecordStore, active_only: bool = True) -> List[Doctor]:
    return store.list_doctors(active_only=active_only)
