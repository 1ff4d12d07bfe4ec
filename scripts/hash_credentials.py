#!/usr/bin/env python3
"""
Hash a password and a patient PIN for seeding portal_users / patients rows.
Only the hashes are printed; plaintext values never reach the database.
"""

from getpass import getpass

from werkzeug.security import generate_password_hash

from portal.exceptions import ValidationError
from portal.pin import hash_pin


if __name__ == "__main__":
    print("=" * 70)
    print("Patient Portal Credential Hasher")
    print("=" * 70)
    print()

    password = getpass("User password (blank to skip): ")
    pin = getpass("Patient PIN, 4-6 characters (blank to skip): ")
    print()

    if password:
        password_hash = generate_password_hash(password)
        print("-- Portal user:")
        print(f"""
INSERT INTO portal_users
    (display_name, role, email, password_hash, patient_id, doctor_id, is_active)
VALUES
    ('Jane Doe', 'patient', 'jane@example.org', '{password_hash}', 1, NULL, 1);
""")

    if pin:
        try:
            pin_hash = hash_pin(pin)
        except ValidationError as e:
            print(f"[error] {e.message}")
        else:
            print("-- Patient PIN:")
            print(f"""
UPDATE patients SET pin_hash = '{pin_hash}' WHERE id = 1;
""")

    print("=" * 70)
    print("Note: adjust ids and names before running these statements.")
    print("=" * 70)
