# Fichier: kyc_service/database.py
import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from config import settings

DATABASE_URL = settings.DATABASE_URL

# Vérification pour s'assurer que la variable est bien chargée
if not DATABASE_URL:
    raise ValueError("ERREUR: La variable d'environnement DATABASE_URL n'est pas définie.")

if DATABASE_URL.startswith("sqlite"):
    # SQLite (tests / développement local) : une seule connexion partagée entre threads
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


def init_db():
    from kyc_service import models  # noqa: F401  (enregistre les tables)
    Base.metadata.create_all(bind=engine)
    logging.info("Tables 'users', 'selfie_verifications', 'selfie_step_captures' et 'document_records' initialisées.")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
