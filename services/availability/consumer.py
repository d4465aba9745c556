# ============================================================
# Availability Service — RabbitMQ Consumer
# ------------------------------------------------------------
# Écoute l'échange "events". Sur CheckoutCompleted, le dernier
# résultat de vérification de la session est oublié : il ne
# doit plus servir après la commande.
# ============================================================
import json
import logging
import time

import pika
from pika.exceptions import AMQPError

from publisher import EXCHANGE

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "CheckoutCompleted"


class CheckoutConsumer:
    def __init__(self, host: str, session_results, sleep=time.sleep):
        self.host = host
        self.session_results = session_results
        self._sleep = sleep
        self._running = True

    # Callback exécuté à chaque message reçu depuis RabbitMQ
    def on_message(self, ch, method, properties, body):
        try:
            msg = json.loads(body)
        except (ValueError, TypeError) as e:
            logger.warning("[consumer] bad payload: %s", e)
            return
        if not isinstance(msg, dict) or msg.get("type") != CHECKOUT_COMPLETED:
            return
        payload = msg.get("payload") or {}
        session_id = payload.get("sessionId")
        if not session_id:
            logger.info("[consumer] skipping %s (no sessionId)", CHECKOUT_COMPLETED)
            return
        removed = self.session_results.discard(str(session_id))
        logger.info("[consumer] checkout completed for session %s (result dropped=%s)", session_id, removed)

    def stop(self):
        self._running = False

    #  Boucle de connexion + consommation RabbitMQ
    def run(self):
        attempt = 0
        while self._running:
            try:
                logger.info("[consumer] connecting to rabbitmq at %s...", self.host)
                conn = pika.BlockingConnection(pika.ConnectionParameters(host=self.host, heartbeat=60))
                ch = conn.channel()
                ch.exchange_declare(exchange=EXCHANGE, exchange_type="fanout", durable=True)
                # queue anonyme, exclusive à ce consumer
                q = ch.queue_declare(queue="", exclusive=True).method.queue
                ch.queue_bind(exchange=EXCHANGE, queue=q)
                logger.info("[consumer] bound to exchange '%s' queue='%s'", EXCHANGE, q)
                attempt = 0
                ch.basic_consume(queue=q, on_message_callback=self.on_message, auto_ack=True)
                ch.start_consuming()
            except AMQPError as e:
                attempt += 1
                wait = min(5 * attempt, 30)
                logger.warning("[consumer] connection error: %s, retrying in %ss", e, wait)
                self._sleep(wait)
