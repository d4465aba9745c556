# ============================================================
# publisher.py — Émission d'événements RabbitMQ
# ------------------------------------------------------------
# Informe les autres services (catalogue, checkout) d'un
# changement sur les codes : CodeCreated, CodeUpdated,
# CodeDeleted, CodesImported.
#
# La publication est "best effort" : un broker indisponible
# est journalisé mais ne fait pas échouer l'écriture déjà faite.
# ============================================================
import json
import logging

import pika
from pika.exceptions import AMQPError

logger = logging.getLogger(__name__)

EXCHANGE = "events"


class EventPublisher:
    def __init__(self, host: str, enabled: bool = True):
        self.host = host
        self.enabled = enabled

    # Publie un message sur l'échange "events" en mode fanout :
    #   - event_type : nom de l'événement
    #   - payload    : contenu du message
    def publish(self, event_type: str, payload: dict) -> bool:
        if not self.enabled:
            return False
        try:
            conn = pika.BlockingConnection(pika.ConnectionParameters(host=self.host, heartbeat=60))
            try:
                ch = conn.channel()
                # durable=True pour survivre aux redémarrages RabbitMQ
                ch.exchange_declare(exchange=EXCHANGE, exchange_type="fanout", durable=True)
                message = {"type": event_type, "payload": payload}
                ch.basic_publish(exchange=EXCHANGE, routing_key="", body=json.dumps(message))
            finally:
                conn.close()
        except AMQPError as e:
            logger.warning("[event] %s not published: %s", event_type, e)
            return False
        logger.info("[event] %s %s", event_type, payload)
        return True
