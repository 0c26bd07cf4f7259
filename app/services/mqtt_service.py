import logging
import threading
import ssl
from pathlib import Path
from typing import Optional
import paho.mqtt.client as mqtt
from app.config import settings
from app.schemas.events import BookAvailabilityEvent

logger = logging.getLogger(__name__)


class MQTTService:
    """MQTT bridge that mirrors book availability events to a broker.

    Registered as a sink on the availability notifier, so every borrow,
    return and new book is published to ``library/books/<id>/availability``
    as a retained message. Publishing is best-effort.
    """

    def __init__(self):
        self.client: Optional[mqtt.Client] = None
        self.is_connected = False
        self._lock = threading.Lock()

    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback when MQTT client connects to broker."""
        if not reason_code.is_failure:
            self.is_connected = True
            logger.info(f"MQTT client connected to {settings.mqtt_broker}:{settings.mqtt_port}")
        else:
            logger.error(f"MQTT connection failed: {reason_code}")
            self.is_connected = False

    def on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Callback when MQTT client disconnects from broker."""
        self.is_connected = False
        if reason_code.is_failure:
            logger.warning(f"MQTT client disconnected unexpectedly ({reason_code})")
        else:
            logger.info("MQTT client disconnected")

    def topic_for(self, book_id: int) -> str:
        return settings.mqtt_availability_topic_format.format(book_id=book_id)

    def publish_availability(self, event: BookAvailabilityEvent):
        """Publish one availability event; failures are logged, never raised."""
        topic = self.topic_for(event.book_id)
        if not (self.client and self.is_connected):
            logger.warning(f"MQTT client not connected, availability update for {topic} not sent")
            return

        try:
            result = self.client.publish(topic, event.to_json(), qos=1, retain=True)
            if result.rc == mqtt.MQTT_ERR_SUCCESS:
                logger.info(f"Availability update sent to {topic}")
            else:
                logger.error(f"Failed to send availability update to {topic}: rc={result.rc}")
        except (ValueError, RuntimeError, OSError) as e:
            logger.error(f"Error sending availability update to {topic}: {e}", exc_info=True)

    def _setup_tls(self):
        """Configure TLS/SSL for MQTT client."""
        if not settings.mqtt_use_tls:
            return

        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

        # Load CA certificate if provided
        if settings.mqtt_ca_cert:
            ca_cert_path = Path(settings.mqtt_ca_cert)
            if not ca_cert_path.exists():
                logger.error(f"CA certificate file not found: {ca_cert_path}")
                raise FileNotFoundError(f"CA certificate file not found: {ca_cert_path}")
            context.load_verify_locations(cafile=str(ca_cert_path))
            logger.info(f"Loaded CA certificate from {ca_cert_path}")
        else:
            # Use system default CA certificates
            context.load_default_certs()
            logger.info("Using system default CA certificates")

        # Load client certificate and key if provided (mutual TLS)
        if settings.mqtt_client_cert and settings.mqtt_client_key:
            client_cert_path = Path(settings.mqtt_client_cert)
            client_key_path = Path(settings.mqtt_client_key)

            if not client_cert_path.exists():
                raise FileNotFoundError(f"Client certificate file not found: {client_cert_path}")
            if not client_key_path.exists():
                raise FileNotFoundError(f"Client key file not found: {client_key_path}")

            context.load_cert_chain(certfile=str(client_cert_path), keyfile=str(client_key_path))
            logger.info(f"Loaded client certificate from {client_cert_path}")

        if settings.mqtt_tls_insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            logger.warning("TLS insecure mode enabled - certificate verification disabled (not recommended for production)")
        else:
            context.check_hostname = True
            context.verify_mode = ssl.CERT_REQUIRED

        self.client.tls_set_context(context)
        logger.info("TLS/SSL configured for MQTT connection")

    def connect(self):
        """Connect to MQTT broker with optional TLS/SSL support."""
        with self._lock:
            if self.client and self.is_connected:
                logger.info("MQTT client already connected")
                return

            client_id = f"library-circulation-{threading.current_thread().ident}"
            self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True)

            self.client.on_connect = self.on_connect
            self.client.on_disconnect = self.on_disconnect

            if settings.mqtt_use_tls:
                self._setup_tls()
                if settings.mqtt_port == 1883:
                    logger.warning("TLS enabled but port is 1883. Consider using port 8883 for MQTT over TLS.")

            if settings.mqtt_username and settings.mqtt_password:
                self.client.username_pw_set(settings.mqtt_username, settings.mqtt_password)

            protocol = "TLS" if settings.mqtt_use_tls else "TCP"
            logger.info(f"Connecting to MQTT broker at {settings.mqtt_broker}:{settings.mqtt_port} over {protocol}")
            try:
                self.client.connect(settings.mqtt_broker, settings.mqtt_port, keepalive=60)
            except OSError as conn_error:
                logger.warning(f"Initial MQTT connection failed: {conn_error}. The service will retry automatically.")
            # Network loop runs in its own thread and handles reconnection
            self.client.loop_start()

    def disconnect(self):
        """Disconnect from MQTT broker."""
        with self._lock:
            if self.client:
                self.client.loop_stop()
                self.client.disconnect()
                self.is_connected = False
                logger.info("MQTT client disconnected")

    def is_running(self) -> bool:
        """Check if MQTT service is running and connected."""
        return self.is_connected and self.client is not None


mqtt_service = MQTTService()
