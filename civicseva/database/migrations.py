from civicseva.database.models import Base
from civicseva.config.db import engine

def create_tables(bind=None):
    """Create all tables if they don't exist"""
    Base.metadata.create_all(bind=bind or engine)

def drop_tables(bind=None):
    Base.metadata.drop_all(bind=bind or engine)

def run_migrations():
    """Run all migrations"""
    create_tables()
