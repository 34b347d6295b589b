import json
import logging
from typing import Any, Dict, Optional
import paho.mqtt.client as mqtt
from common.settings import settings

logger = logging.getLogger(__name__)

TOPIC_WALLET_BLOCK = "wallet/{wallet}/{event}"

def wallet_topic(wallet: str, event: str) -> str:
    return TOPIC_WALLET_BLOCK.format(wallet=wallet, event=event)

def get_client() -> mqtt.Client:
    """Build a paho client whose network loop runs in its own thread once started"""
    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=settings.mqtt_client_id)
    if settings.mqtt_username:
        client.username_pw_set(settings.mqtt_username, settings.mqtt_password or None)
    return client

class BlockPublisher:
    """Fire-and-forget publisher for routed blocks"""

    def __init__(self, client: mqtt.Client, qos: int = None, retain: bool = None):
        self.client = client
        self.qos = settings.mqtt_block_qos if qos is None else qos
        self.retain = settings.mqtt_block_retain if retain is None else retain

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        info = self.client.publish(topic, json.dumps(payload), qos=self.qos, retain=self.retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.error(f"Publish to {topic} failed: {mqtt.error_string(info.rc)}")
        else:
            logger.debug(f"Published block to {topic} (mid={info.mid})")

class ControlChannel:
    """Subscribes to the control topic and handles its messages"""

    def __init__(self, client: mqtt.Client, control_topic: str = None):
        self.client = client
        self.control_topic = control_topic or settings.mqtt_control_topic
        client.on_connect = self.on_connect
        client.on_message = self.on_message

    def connect(self):
        self.client.connect_async(settings.mqtt_host, settings.mqtt_port)
        self.client.loop_start()

    def disconnect(self):
        self.client.disconnect()
        self.client.loop_stop()

    def on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"MQTT connection refused: {reason_code}")
            return
        logger.info(f"Connected to MQTT at {settings.mqtt_host}:{settings.mqtt_port}")
        # clean sessions drop subscriptions, so subscribe on every (re)connect
        client.subscribe(self.control_topic)

    def on_message(self, client, userdata, msg):
        if msg.topic == self.control_topic:
            self.handle_control(msg.payload)
            return
        logger.error(f"No handler for topic {msg.topic}")

    def handle_control(self, payload: bytes) -> Optional[Dict[str, Any]]:
        try:
            control = json.loads(payload)
        except ValueError as e:
            logger.error(f"Unparseable control message: {e}")
            return None
        logger.debug(f"Parsed control: {control}")
        return control
