# Fichier: kyc_service/events.py
"""
Publication des événements KYC sur Kafka.

Le producteur n'est créé que si KAFKA_BROKER est défini ; sinon les
événements sont seulement journalisés.
"""
import json
import logging
from datetime import datetime, timezone

from kafka import KafkaProducer
from kafka.errors import KafkaError

from config import settings


class EventPublisher:

    def __init__(self, producer=None):
        if producer is None and settings.KAFKA_BROKER:
            producer = KafkaProducer(
                bootstrap_servers=settings.KAFKA_BROKER.split(","),
                value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            )
        self._producer = producer

    def publish(self, topic: str, payload: dict):
        payload = {**payload, "emitted_at": datetime.now(timezone.utc).isoformat()}
        if self._producer is None:
            logging.info(f"Kafka désactivé, événement '{topic}' non publié : {payload}")
            return
        try:
            self._producer.send(topic, payload)
            self._producer.flush()
            logging.info(f"Message Kafka envoyé sur '{topic}'.")
        except KafkaError as e:
            # L'état est déjà validé en base : un échec d'envoi ne l'annule pas
            logging.error(f"Échec de publication Kafka sur '{topic}' : {e}")

    def selfie_verified(self, user_id: str, verified_at: datetime):
        self.publish(settings.KAFKA_SELFIE_VERIFIED_TOPIC, {
            "user_id": user_id,
            "verified_at": verified_at.isoformat() if verified_at else None,
        })

    def document_side_recorded(self, user_id: str, document_id: int, document_type: str, side: str, status: str):
        self.publish(settings.KAFKA_DOCUMENT_UPLOADED_TOPIC, {
            "user_id": user_id,
            "document_id": document_id,
            "document_type": document_type,
            "side": side,
            "status": status,
        })
