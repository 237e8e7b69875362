# scripts/setup/init_db.py
"""
Initialize database — creates all tables, the pricing row and the first system admin.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py [--admin-name NAME] [--admin-phone PHONE]
"""

import argparse
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from tanapark.database import create_tables, engine, SessionLocal
from tanapark.config import settings
from tanapark.models.user import User
from tanapark.services.pricing_service import get_or_create_settings
from sqlalchemy import text
from sqlalchemy.engine import make_url


def seed_admin(db, name: str, phone: str):
    existing = db.query(User).filter(User.type == "system_admin").first()
    if existing:
        print(f"⚠️  System admin already exists: {existing.name} ({existing.phone_number})")
        return existing
    admin = User(name=name, phone_number=phone, type="system_admin")
    db.add(admin)
    db.commit()
    print(f"✅ System admin created: {name} ({phone})")
    return admin


def main():
    parser = argparse.ArgumentParser(description="Create TanaPark tables and seed initial data")
    parser.add_argument("--admin-name", default="System Administrator")
    parser.add_argument("--admin-phone", default="+251900000000")
    args = parser.parse_args()

    print("🗄️  TanaPark DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {make_url(settings.DATABASE_URL).render_as_string(hide_password=True)}")

    # Test connection
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        print("\nMake sure PostgreSQL is running:")
        print("  sudo systemctl start postgresql")
        sys.exit(1)

    # Create all tables
    print("\n📋 Creating tables...")
    create_tables()
    print("✅ All tables created")

    db = SessionLocal()
    try:
        pricing = get_or_create_settings(db)
        levels = list((pricing.settings or {}).get("priceLevels", {}).keys())
        print(f"🏷️  Pricing settings row ready (levels: {levels or 'none — set them via PUT /api/v1/pricingSettings'})")
        seed_admin(db, args.admin_name, args.admin_phone)
    finally:
        db.close()

    print("\n🎉 Database ready! You can now start the backend:")
    print(f"   uvicorn tanapark.main:app --host 0.0.0.0 --port {settings.BACKEND_PORT} --reload")


if __name__ == "__main__":
    main()
