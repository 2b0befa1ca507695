"""
Descriptor backfill script
Run this to create tables and compute face descriptors for employees that
have a photo but no cached descriptor yet:

    python -m faceclock.backfill
"""
from faceclock.core.config import settings
from faceclock.core.database import engine, Base, SessionLocal
from faceclock.services.descriptor_store import DescriptorStore
from faceclock.services.extractor import build_extractor


def init_db(bind=engine):
    """Initialize database with tables"""
    import faceclock.models  # noqa: F401

    print("Creating database tables...")
    Base.metadata.create_all(bind=bind)
    print("✓ Tables created successfully")


def backfill_descriptors(extractor, session_factory=SessionLocal) -> dict:
    """Compute missing descriptors and report counts"""
    db = session_factory()
    try:
        print("\nComputing missing face descriptors...")
        result = DescriptorStore(db).backfill_missing(extractor)
        print(f"✓ Success: {result['success']}")
        print(f"✗ Failed: {result['failed']}")
        print(f"  Total: {result['total']}")
        return result
    finally:
        db.close()


def main():
    print("=" * 60)
    print(f"{settings.APP_NAME} - Descriptor Backfill")
    print("=" * 60)

    init_db()

    extractor = build_extractor(settings)
    try:
        extractor.warm_up()
        backfill_descriptors(extractor)
    finally:
        extractor.close()

    print("\n" + "=" * 60)
    print("Backfill complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
