"""
Database initialization script

Kullanım:
    python -m database.init_db
    python -m database.init_db --create-token <user_id>
"""
import argparse
import secrets

from app.core.security import hash_token
from database.connection import engine, Base, SessionLocal
from database.models import ApiToken


def init_database():
    """Create all database tables"""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("✅ Database tables created successfully!")
    print("\nTables created:")
    for table in Base.metadata.sorted_tables:
        print(f"  - {table.name}")


def create_api_token(user_id: str, name: str = "default") -> str:
    """
    Yeni API token üretir; veritabanına sadece hash yazılır

    Returns:
        Düz token (bir kez gösterilir)
    """
    token = secrets.token_urlsafe(32)
    db = SessionLocal()
    try:
        db.add(ApiToken(
            user_id=user_id,
            name=name,
            token_hash=hash_token(token),
        ))
        db.commit()
    finally:
        db.close()
    return token


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Veritabanı kurulumu")
    parser.add_argument("--create-token", metavar="USER_ID", help="Kullanıcı için API token oluştur")
    args = parser.parse_args()

    init_database()
    if args.create_token:
        print(f"\n🔑 API token ({args.create_token}): {create_api_token(args.create_token)}")
