from booking_api.database import engine, Base
from booking_api import models  # noqa: F401

print("[DB] Creating tables...")
Base.metadata.create_all(bind=engine)
print("[DB] Done.")
