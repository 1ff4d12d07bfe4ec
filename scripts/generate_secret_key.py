#!/usr/bin/env python3
"""
Generate the signing key for portal session cookies.
Run this and copy the output to your .env file.
"""

import secrets

if __name__ == "__main__":
    print("=" * 60)
    print("Session Cookie Signing Key")
    print("=" * 60)
    print("\nGenerating a secure random key...\n")

    print(f"JWT_SECRET_KEY={secrets.token_hex(32)}")
    print("\n" + "=" * 60)
    print("Copy the line above to your .env file.")
    print("Changing it signs out every active session.")
    print("=" * 60)
