"""
Idempotent ADMIN bootstrap script.
Promotes an existing user (who has signed in at least once) to admin.
Uses BOOTSTRAP_ADMIN_EMAIL from env, or a Clerk user id passed as the first argument.

Usage (from backend/):
  python -m scripts.bootstrap_admin
  python -m scripts.bootstrap_admin user_2abc...
"""
import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


async def main(argv):
    from database import database
    from services.user_service import make_admin, make_admin_by_email

    clerk_id = argv[1] if len(argv) > 1 else None
    email = (os.getenv("BOOTSTRAP_ADMIN_EMAIL") or "").strip().lower()
    if not clerk_id and not email:
        print("Set BOOTSTRAP_ADMIN_EMAIL or pass a Clerk user id")
        return 1

    await database.connect()
    try:
        result = await (make_admin(clerk_id) if clerk_id else make_admin_by_email(email))
    except ValueError as e:
        print(f"Bootstrap failed: {e}")
        return 1
    finally:
        await database.close()

    print(f"Bootstrap: {result['action']} - {result['email']}")
    print(f"  user_id: {result['user_id']}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv)))
