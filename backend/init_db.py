"""
Database initialization script
Run this to create tables, seed employees and print their API tokens
"""
import sys
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from fieldclock.core.database import engine, Base, SessionLocal
from fieldclock.core.security import create_access_token
from fieldclock.models import Employee, EmployeeRole

SEED_EMPLOYEES = [
    {
        "email": "admin@fieldclock.local",
        "first_name": "System",
        "last_name": "Administrator",
        "role": EmployeeRole.ADMIN.value,
    },
    {
        "email": "foreman@fieldclock.local",
        "first_name": "Frank",
        "last_name": "Foreman",
        "role": EmployeeRole.FOREMAN.value,
        "classification": "Foreman",
        "hourly_rate_site": Decimal("52.00"),
        "hourly_rate_drive": Decimal("39.00"),
    },
    {
        "email": "laborer@fieldclock.local",
        "first_name": "Lee",
        "last_name": "Laborer",
        "role": EmployeeRole.FIELD.value,
        "classification": "Laborer",
        "hourly_rate_site": Decimal("45.00"),
    },
]


def init_db():
    """Initialize database with tables"""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("✓ Tables created successfully")


def seed_data():
    """Seed initial employees"""
    db = SessionLocal()

    try:
        print("\nSeeding initial data...")

        for data in SEED_EMPLOYEES:
            employee = db.query(Employee).filter(Employee.email == data["email"]).first()
            if employee:
                continue
            db.add(Employee(**data))
            print(f"✓ Employee created: {data['email']} ({data['role']})")

        db.commit()

        print("\nAPI tokens (valid 30 days):")
        for data in SEED_EMPLOYEES:
            token = create_access_token(data["email"], expires_delta=timedelta(days=30))
            print(f"  {data['email']}: {token}")

        print("\n✓ Database initialization complete!")

    except Exception as e:
        print(f"✗ Error seeding data: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    init_db()
    seed_data()
