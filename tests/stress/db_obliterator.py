import asyncio
import os
import sys

sys.path.append(os.getcwd())
from sqlalchemy import text

from cashflow.db.session import async_session_factory

# 💀 DB OBLITERATOR: DATA CALAMITY
# Needs at least one registered user in the configured database.

async def chaos_transaction(user_id):
    async with async_session_factory() as session:
        txn = await session.begin()
        try:
            # 1. Insert valid data
            await session.execute(
                text(
                    "INSERT INTO transactions (id, user_id, date, type, client_supplier, amount, payment_method) "
                    "VALUES (gen_random_uuid(), :uid, CURRENT_DATE, 'income', 'Chaos', 10.00, 'pix')"
                ),
                {"uid": user_id},
            )

            # 2. Violate the positive-amount check; the valid row must vanish with it
            await session.execute(
                text(
                    "INSERT INTO transactions (id, user_id, date, type, client_supplier, amount, payment_method) "
                    "VALUES (gen_random_uuid(), :uid, CURRENT_DATE, 'expense', 'Bad', -1, 'pix')"
                ),
                {"uid": user_id},
            )

            await txn.commit()
            print("❌ CRITICAL: Transaction committed despite error!")
        except Exception as e:
            await txn.rollback()
            print(f"✅ Transaction cleanly rolled back: {type(e).__name__}")

async def mass_rollback_test():
    async with async_session_factory() as session:
        user_id = (await session.execute(text("SELECT id FROM users LIMIT 1"))).scalar()
        before = (await session.execute(text("SELECT count(*) FROM transactions"))).scalar()
    if user_id is None:
        print("Register a user first.")
        return

    print("💀 LAUNCHING 100 CONCURRENT TRANSACTIONS (ALL DESTINED TO FAIL)...")
    tasks = [chaos_transaction(user_id) for _ in range(100)]
    await asyncio.gather(*tasks)

    async with async_session_factory() as session:
        after = (await session.execute(text("SELECT count(*) FROM transactions"))).scalar()
    if after != before:
        print(f"❌ CRITICAL: {after - before} orphan rows survived the rollbacks!")
    else:
        print("✅ Ledger row count unchanged")

if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(mass_rollback_test())
