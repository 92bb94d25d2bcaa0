import asyncio
import asyncpg

from transferapi.config import PG_HOST, PG_PORT, PG_DATABASE, PG_USER, PG_PASSWORD
from transferapi.transfers import CREATE_TABLE_SQL

async def run_migration():
    try:
        # Connect to PostgreSQL
        conn = await asyncpg.connect(
            host=PG_HOST,
            port=PG_PORT,
            user=PG_USER,
            password=PG_PASSWORD,
            database=PG_DATABASE
        )

        # Safe to run repeatedly
        await conn.execute(CREATE_TABLE_SQL)

        print('SUCCESS: Migration completed successfully!')

        # Verify table exists
        tables = await conn.fetch("""
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_name = 'transfers'
        """)

        print('\nSUCCESS: Verified tables exist:')
        for table in tables:
            print(f'   - {table["table_name"]}')

        await conn.close()

    except Exception as e:
        print(f'ERROR: Error running migration: {e}')
        raise

if __name__ == '__main__':
    asyncio.run(run_migration())
