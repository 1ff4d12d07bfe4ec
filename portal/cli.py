"""
Interactive console for the Patient Portal.
Resolve a session token and try access decisions against the live database.
"""

from getpass import getpass

from portal.api.app import build_sql_services
from portal.database import init_engine
from portal.exceptions import PortalError
from portal.guard import require_authenticated
from portal.logging_setup import configure_logging
from portal.pin import verify_pin
from portal.rbac import has_permission, parse_permission, permissions_for
from portal.records import list_visible_medical_records

HELP = """Commands:
  whoami              show the signed-in principal
  can <permission>    check a permission, e.g. 'can view_medical_record'
  records <patient>   list records visible for a patient id
  pin <patient>       check a patient PIN
  quit"""


def _parse_id(arg):
    try:
        return int(arg)
    except (TypeError, ValueError):
        print("[error] expected a numeric id")
        return None


def main():
    print("=== Patient Portal: access console ===\n")
    configure_logging()

    engine = init_engine()
    services = build_sql_services(engine)

    # ── Login ────────────────────────────────────────────────────────
    try:
        token = input("Enter session token (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not token or token.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    try:
        principal = require_authenticated(services.resolver, token)
    except PortalError as e:
        print("\n[ERROR] Login failed.")
        print("Details:", e.message)
        return

    print(f"\n[auth] Signed in as: {principal.display_name} (role={principal.role.value})")
    print(HELP)

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            line = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not line:
            continue
        cmd, _, arg = line.partition(" ")
        cmd = cmd.lower()
        arg = arg.strip()

        if cmd in {"quit", "exit"}:
            print("Goodbye.")
            break

        if cmd == "whoami":
            print(principal)
            print("permissions:", ", ".join(sorted(p.value for p in permissions_for(principal.role))))

        elif cmd == "can":
            if parse_permission(arg) is None:
                print(f"[warn] unknown permission '{arg}'")
            print("allowed" if has_permission(principal.role, arg) else "denied")

        elif cmd == "records":
            patient_id = _parse_id(arg)
            if patient_id is None:
                continue
            try:
                records = list_visible_medical_records(services.records, principal, patient_id)
            except PortalError as e:
                print(f"[denied] {e.message}")
                continue
            if not records:
                print("(no visible records)")
            for r in records:
                flags = []
                if r.is_approved:
                    flags.append("approved")
                if r.pin_protected:
                    flags.append("pin")
                print(f"  {r.date:%Y-%m-%d}  {r.id}  {r.type:<14} {r.title}  [{', '.join(flags)}]")

        elif cmd == "pin":
            patient_id = _parse_id(arg)
            if patient_id is None:
                continue
            result = verify_pin(services.patients, patient_id, getpass("PIN: "))
            print("verified" if result.success else f"[failed] {result.message}")

        else:
            print(HELP)


if __name__ == "__main__":
    main()
