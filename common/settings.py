import os
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    server_port: int = int(os.getenv("SERVER_PORT", "8080"))

    rainode_host: str = os.getenv("RAINODE_HOST", "localhost")
    rainode_port: int = int(os.getenv("RAINODE_PORT", "7076"))
    rainode_timeout: float = float(os.getenv("RAINODE_TIMEOUT", "10"))

    postgres_user: str = os.getenv("POSTGRES_USER", "dbuser")
    postgres_password: str = os.getenv("POSTGRES_PASSWORD", "secretpassword")
    postgres_host: str = os.getenv("POSTGRES_HOST", "postgres")
    postgres_db: str = os.getenv("POSTGRES_DB", "vernemq_db")
    postgres_port: int = int(os.getenv("POSTGRES_PORT", "5432"))
    init_db: bool = os.getenv("INIT_DB", "false").lower() in ("1", "true", "yes")

    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    mqtt_host: str = os.getenv("MQTT_HOST", "localhost")
    mqtt_port: int = int(os.getenv("MQTT_PORT", "1883"))
    mqtt_username: str = os.getenv("MQTT_USERNAME", "relay")
    mqtt_password: str = os.getenv("MQTT_PASSWORD", "")
    mqtt_client_id: str = os.getenv("MQTT_CLIENT_ID", "block-relay")
    mqtt_block_qos: int = int(os.getenv("MQTT_BLOCK_QOS", "2"))
    mqtt_block_retain: bool = os.getenv("MQTT_BLOCK_RETAIN", "false").lower() in ("1", "true", "yes")
    mqtt_control_topic: str = os.getenv("MQTT_CONTROL_TOPIC", "canoecontrol")

    # ACL templates written verbatim into every provisioned credential row
    acl_mountpoint: str = os.getenv("ACL_MOUNTPOINT", "")
    acl_publish: str = os.getenv("ACL_PUBLISH", '[{"pattern": "canoecontrol"}]')
    acl_subscribe: str = os.getenv("ACL_SUBSCRIBE", '[{"pattern": "wallet/+/#"}]')

    status_file: str = os.getenv("STATUS_FILE", "canoeServerStatus.json")

    @property
    def postgres_url(self) -> str:
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def rainode_url(self) -> str:
        return f"http://{self.rainode_host}:{self.rainode_port}"

settings = Settings()
