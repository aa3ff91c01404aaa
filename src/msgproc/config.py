from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    env: str = "local"

    database_url: str
    rabbitmq_url: str

    topic: str = "msgproc"
    routing_key: str = "msgproc.message"
    consumer_group: str = "msgproc"
    consumer_prefetch: int = 1

    publish_timeout_sec: float = 5.0
    requeue_delay_sec: float = 1.0
    consumer_grace_period_sec: float = 30.0

    http_host: str = "0.0.0.0"
    http_port: int = 8080
    http_drain_timeout_sec: int = 5


settings = Settings()
