from sqlalchemy.exc import SQLAlchemyError

from sanctuary.core.config import settings
from sanctuary.db import create_db_and_tables

if __name__ == "__main__":
    print(f"Creating analytics tables ({settings.ENVIRONMENT})...")
    try:
        create_db_and_tables()
        print("Tables created successfully!")
    except SQLAlchemyError as e:
        print(f"Error creating tables: {e}")
        raise SystemExit(1)
