import os
import logging
from pathlib import Path
from dotenv import load_dotenv

def load_project_env():
    """
    Localise et charge le fichier .env de la racine du projet.

    La racine est le parent du dossier 'config'. Les variables déjà
    présentes dans l'environnement système ne sont pas écrasées.
    """
    project_root = Path(__file__).resolve().parent.parent
    env_path = project_root / ".env"

    if env_path.exists():
        load_dotenv(dotenv_path=env_path)
        logging.info(f"Chargement de la configuration depuis : {env_path}")
    else:
        logging.info(f"Fichier .env non trouvé à {env_path}. Utilisation des variables d'environnement système.")

# Appeler la fonction au moment où ce module est importé
load_project_env()


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"ERREUR: La variable d'environnement {name} doit être numérique (reçu '{raw}').")


def _get_int(name: str, default: int) -> int:
    return int(_get_float(name, default))


# ───────────────────────────────────────────────
# 1) Base de données
# ───────────────────────────────────────────────
DATABASE_URL = os.getenv("DATABASE_URL")

# ───────────────────────────────────────────────
# 2) Fournisseur de vision (AWS Rekognition)
# ───────────────────────────────────────────────
AWS_REGION = os.getenv("AWS_REGION", "eu-west-1")
VISION_MAX_ATTEMPTS = _get_int("VISION_MAX_ATTEMPTS", 3)
VISION_CONNECT_TIMEOUT = _get_float("VISION_CONNECT_TIMEOUT", 5)
VISION_READ_TIMEOUT = _get_float("VISION_READ_TIMEOUT", 15)
LABEL_MAX_RESULTS = _get_int("LABEL_MAX_RESULTS", 10)
LABEL_MIN_CONFIDENCE = _get_float("LABEL_MIN_CONFIDENCE", 70)
FACE_SIMILARITY_THRESHOLD = _get_float("FACE_SIMILARITY_THRESHOLD", 80)
FACE_MATCH_MAX_YAW = _get_float("FACE_MATCH_MAX_YAW", 30)

# ───────────────────────────────────────────────
# 3) Stockage objet (S3 / MinIO)
# ───────────────────────────────────────────────
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")  # ex: http://localhost:9000 pour MinIO
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")
S3_BUCKET_NAME = os.getenv("S3_BUCKET_NAME", "kyc-images")
STORAGE_ENCRYPTION_KEY = os.getenv("STORAGE_ENCRYPTION_KEY")

# ───────────────────────────────────────────────
# 4) Kafka (optionnel)
# ───────────────────────────────────────────────
KAFKA_BROKER = os.getenv("KAFKA_BROKER")
KAFKA_SELFIE_VERIFIED_TOPIC = os.getenv("KAFKA_SELFIE_VERIFIED_TOPIC", "selfie_verified")
KAFKA_DOCUMENT_UPLOADED_TOPIC = os.getenv("KAFKA_DOCUMENT_UPLOADED_TOPIC", "document_uploaded")

# ───────────────────────────────────────────────
# 5) Seuils de vivacité (selfie)
# ───────────────────────────────────────────────
FRONTAL_MAX_ANGLE = _get_float("FRONTAL_MAX_ANGLE", 15)
MIN_BRIGHTNESS = _get_float("MIN_BRIGHTNESS", 50)
MIN_SHARPNESS = _get_float("MIN_SHARPNESS", 50)
TURN_MIN_YAW = _get_float("TURN_MIN_YAW", 15)
TURN_MAX_YAW = _get_float("TURN_MAX_YAW", 45)
POSE_DWELL_MS = _get_int("POSE_DWELL_MS", 500)
POSE_MIN_FRAMES = _get_int("POSE_MIN_FRAMES", 2)
BLINK_MIN_CONFIDENCE = _get_float("BLINK_MIN_CONFIDENCE", 90)
BLINK_CONSECUTIVE_FRAMES = _get_int("BLINK_CONSECUTIVE_FRAMES", 2)
BLINK_MIN_COUNT = _get_int("BLINK_MIN_COUNT", 2)
BLINK_MIN_INTERVAL_MS = _get_int("BLINK_MIN_INTERVAL_MS", 300)
MAX_SELFIE_ATTEMPTS = _get_int("MAX_SELFIE_ATTEMPTS", 10)

# ───────────────────────────────────────────────
# 6) Progression et divers
# ───────────────────────────────────────────────
SELFIE_PERCENTAGE_INCREMENT = _get_int("SELFIE_PERCENTAGE_INCREMENT", 25)
DOCUMENT_PERCENTAGE_INCREMENT = _get_int("DOCUMENT_PERCENTAGE_INCREMENT", 25)
MAX_IMAGE_SIZE = _get_int("MAX_IMAGE_SIZE", 5 * 1024 * 1024)
KYC_TIMEZONE = os.getenv("KYC_TIMEZONE", "Africa/Accra")
LOG_DIR = os.getenv("LOG_DIR")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
