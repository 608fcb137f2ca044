"""Database Seed Script - Populates demo users, wallets and roles"""
import asyncio
import sys
import uuid
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from decimal import Decimal

from app.database import AsyncSessionLocal
from app.models import Transaction, TransactionStatus, TransactionType, UserFlag, UserRole, Wallet
from app.models.base import utcnow
from app.services.wallet_ledger import WalletLedger


DEMO_USERS = [
    {"user_id": "user_alice", "balance": Decimal("5000.00")},
    {"user_id": "user_bob", "balance": Decimal("5000.00")},
    {"user_id": "user_charlie", "balance": Decimal("2500.00")},
    {"user_id": "user_dana", "balance": Decimal("2500.00")},
    {"user_id": "user_mallory", "balance": Decimal("1000.00"), "suspended": "Chargeback under review"},
]

ADMINS = ["admin_root"]


async def seed_database():
    """Seed the database with demo data"""
    print("=" * 60)
    print("DATABASE SEEDING STARTED")
    print("=" * 60)

    async with AsyncSessionLocal() as session:
        try:
            # Check if data already exists
            result = await session.execute(select(Wallet).limit(1))
            if result.scalar_one_or_none():
                print("\n⚠️  Database already seeded. Skipping...")
                return

            ledger = WalletLedger(session)

            print("\n1️⃣  Creating Funded Wallets...")
            for user in DEMO_USERS:
                wallet = await ledger.credit(user["user_id"], user["balance"], reason="deposit", reference="seed")
                wallet.total_deposited += user["balance"]
                session.add(Transaction(
                    transaction_id=str(uuid.uuid4()),
                    user_id=user["user_id"],
                    transaction_type=TransactionType.DEPOSIT,
                    status=TransactionStatus.COMPLETED,
                    amount=user["balance"],
                    reference_code=f"SEED-{uuid.uuid4().hex[:8].upper()}",
                    description="Initial demo deposit",
                    processed_at=utcnow()
                ))
                print(f"   ✓ {user['user_id']}: {user['balance']}")

            print("\n2️⃣  Creating Roles and Flags...")
            for admin_id in ADMINS:
                session.add(UserRole(user_id=admin_id, role="admin"))
                print(f"   ✓ Admin: {admin_id}")
            for user in DEMO_USERS:
                if user.get("suspended"):
                    session.add(UserFlag(user_id=user["user_id"], is_suspended=True, reason=user["suspended"]))
                    print(f"   ✓ Suspended: {user['user_id']} ({user['suspended']})")

            await session.commit()

            print("\n" + "=" * 60)
            print("✅ DATABASE SEEDING COMPLETED SUCCESSFULLY")
            print("=" * 60)

            print("\n💡 NEXT STEPS:")
            print("   1. Start the API server: uvicorn app.main:app --reload")
            print("   2. Visit: http://localhost:8000/docs")

            print("\n📝 SAMPLE API REQUESTS:")
            print("   • Create a challenge:")
            print("     POST /api/v1/matches")
            print("     Headers: X-User-Id: user_alice, Idempotency-Key: create_alice_001")
            print("     Body: {\"stake_amount\": 1000, \"format\": \"1v1\"}")
            print("\n   • Accept it:")
            print("     POST /api/v1/matches/{match_id}/accept")
            print("     Header: X-User-Id: user_bob")
            print("\n   • Settle it:")
            print("     POST /api/v1/admin/matches/{match_id}/settle")
            print("     Header: X-User-Id: admin_root")
            print("     Body: {\"winner_id\": \"user_alice\"}")

            print("\n" + "=" * 60)

        except Exception as e:
            await session.rollback()
            print(f"\n❌ ERROR during seeding: {str(e)}")
            raise


async def main():
    """Main entry point"""
    try:
        await seed_database()
    except Exception as e:
        print(f"\n❌ Seeding failed: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
