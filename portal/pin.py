"""
PIN verification gate for patient self-access to sensitive record views.

PINs are compared through a one-way hash only. There is no attempt
throttling or lockout here.
"""

import logging

from werkzeug.security import check_password_hash, generate_password_hash

from portal.config import PIN_HASH_METHOD, PIN_MAX_LENGTH, PIN_MIN_LENGTH
from portal.exceptions import (
    ConfirmationMismatch,
    CurrentPinMismatch,
    NotFound,
    StorageUnavailable,
    ValidationError,
)
from portal.models import PinCheckResult
from portal.stores import PatientStore

logger = logging.getLogger(__name__)

PIN_LENGTH_MESSAGE = f"PIN must be between {PIN_MIN_LENGTH} and {PIN_MAX_LENGTH} characters."
INVALID_PIN_MESSAGE = "Invalid PIN."
RETRY_MESSAGE = "An error occurred during verification. Please try again."


def is_well_formed_pin(pin) -> bool:
    return isinstance(pin, str) and PIN_MIN_LENGTH <= len(pin) <= PIN_MAX_LENGTH


def hash_pin(pin: str) -> str:
    if not is_well_formed_pin(pin):
        raise ValidationError(PIN_LENGTH_MESSAGE)
    return generate_password_hash(pin, method=PIN_HASH_METHOD)


def _matches(pin: str, pin_hash: str) -> bool:
    return bool(pin_hash) and check_password_hash(pin_hash, pin)


def verify_pin(patient_store: PatientStore, patient_id: int, supplied_pin) -> PinCheckResult:
    """
    Check *supplied_pin* against the patient's stored hash.

    A malformed PIN gets the length message. An unknown patient and a wrong
    PIN get the same "Invalid PIN." message; only ``reason`` tells them apart.
    """
    if not is_well_formed_pin(supplied_pin):
        return PinCheckResult(success=False, message=PIN_LENGTH_MESSAGE, reason="validation")

    try:
        secret = patient_store.find_patient_by_id(patient_id)
    except StorageUnavailable:
        return PinCheckResult(success=False, message=RETRY_MESSAGE, reason="storage")

    if secret is None:
        logger.info("PIN check for unknown patient_id=%s", patient_id)
        return PinCheckResult(success=False, message=INVALID_PIN_MESSAGE, reason="not_found")

    if not _matches(supplied_pin, secret.pin_hash):
        logger.info("PIN mismatch for patient_id=%s", patient_id)
        return PinCheckResult(success=False, message=INVALID_PIN_MESSAGE, reason="mismatch")

    return PinCheckResult(success=True)


def update_pin(patient_store: PatientStore, patient_id: int,
               current_pin, new_pin, confirm_pin) -> None:
    """Replace a patient's PIN. Raises on any failure; the old hash stays put."""
    for value in (current_pin, new_pin, confirm_pin):
        if not is_well_formed_pin(value):
            raise ValidationError(PIN_LENGTH_MESSAGE)

    secret = patient_store.find_patient_by_id(patient_id)
    if secret is None:
        raise NotFound("Patient profile not found.")

    if not _matches(current_pin, secret.pin_hash):
        raise CurrentPinMismatch()

    if new_pin != confirm_pin:
        raise ConfirmationMismatch()

    updated = patient_store.update_pin_hash(
        patient_id, hash_pin(new_pin), expected_hash=secret.pin_hash,
    )
    if not updated:
        # The stored hash changed between our read and our write.
        logger.warning("Concurrent PIN change detected for patient_id=%s", patient_id)
        raise CurrentPinMismatch()

    logger.info("PIN updated for patient_id=%s", patient_id)
