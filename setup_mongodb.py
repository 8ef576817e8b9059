"""
MongoDB Setup Script
Checks the connection and creates the outbox collections and indexes.
"""
import asyncio
from outbox.repositories import db_manager
from outbox.repositories.messages import MESSAGES_COLLECTION
from outbox.repositories.queue import QUEUE_COLLECTION
from outbox.config import settings


async def setup_mongodb():
    """Initialize the outbox database with collections and indexes."""
    print("🔄 Connecting to MongoDB...")
    print(f"   Database: {settings.mongodb_database}")
    print()

    try:
        await db_manager.connect()
        db = db_manager.database
        await db.command("ping")
        print("✅ Connection successful!")
        print()

        existing_collections = await db.list_collection_names()
        print(f"📦 Existing collections: {existing_collections or 'None'}")
        for name in (MESSAGES_COLLECTION, QUEUE_COLLECTION):
            if name not in existing_collections:
                await db.create_collection(name)
                print(f"   + created {name}")
        print()

        print("🔨 Creating indexes...")
        await db_manager.create_indexes()
        print("✅ Indexes created successfully!")
        print()

        print("📊 Verifying indexes:")
        total = 0
        for name in (MESSAGES_COLLECTION, QUEUE_COLLECTION):
            indexes = await db[name].index_information()
            total += len(indexes)
            print(f"   {name}: {len(indexes)} indexes")
            for idx_name in indexes:
                print(f"      - {idx_name}")

        print()
        print("🎉 MongoDB setup complete!")
        print(f"   ✅ Database: {settings.mongodb_database}")
        print(f"   ✅ Collections: {MESSAGES_COLLECTION}, {QUEUE_COLLECTION}")
        print(f"   ✅ Indexes: {total} total")
        if not settings.mongodb_use_transactions:
            print("   ℹ️  Transactions disabled: set MONGODB_USE_TRANSACTIONS=true on a replica set")
        print()

    except Exception as e:
        print(f"❌ Error: {e}")
        print()
        print("💡 Troubleshooting:")
        print("   1. Check MONGODB_URI points at a running server")
        print("   2. Verify your IP is allowed by the cluster's network access rules")
        print("   3. Check that the username and password are correct")
        raise

    finally:
        await db_manager.disconnect()
        print("👋 Disconnected from MongoDB")


if __name__ == "__main__":
    asyncio.run(setup_mongodb())
