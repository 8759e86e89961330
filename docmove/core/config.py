import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuration class for environment variables and migration settings.
    """

    # Service settings
    service_name: str = os.getenv("SERVICE_NAME", "docmove")
    environment: str = os.getenv("ENVIRONMENT", "development")
    debug: bool = os.getenv("DEBUG", "True").lower() == "true"

    # Logging settings
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    syslog_host: str = os.getenv("SYSLOG_HOST", "172.17.0.1")
    syslog_port: int = int(os.getenv("SYSLOG_PORT", "5141"))
    json_logs: bool = os.getenv("JSON_LOGS", "False").lower() == "true"
    enable_logstash: bool = os.getenv("ENABLE_LOGSTASH", "False").lower() == "true"

    # MongoDB settings
    mongodb: str = os.getenv("MONGODB", "mongodb://localhost:27017")
    mongodb_database: str = os.getenv("MONGODB_DATABASE", "docmove")

    # MongoDB connection pool settings
    mongo_max_pool_size: int = int(os.getenv("MONGO_MAX_POOL_SIZE", "10"))
    mongo_connect_timeout_ms: int = int(os.getenv("MONGO_CONNECT_TIMEOUT_MS", "5000"))
    mongo_server_selection_timeout_ms: int = int(
        os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000")
    )
    mongo_socket_timeout_ms: int = int(os.getenv("MONGO_SOCKET_TIMEOUT_MS", "30000"))

    # Migration settings
    migrations_path: str = os.getenv("MIGRATIONS_PATH", "db/migration")
    migrations_collection: str = os.getenv("MIGRATIONS_COLLECTION", "_migrations")
    migrations_lock_collection: str = os.getenv(
        "MIGRATIONS_LOCK_COLLECTION", "_migration_locks"
    )
    # 0 disables lock expiry: a crashed runner leaves its lock until `migrate unlock`
    migrations_lock_timeout: int = int(os.getenv("MIGRATIONS_LOCK_TIMEOUT", "0"))
    migrations_runner: str | None = os.getenv("MIGRATIONS_RUNNER", None)

    @property
    def logging_config(self) -> dict:
        """
        Returns logging configuration based on environment.
        """
        base_config = {
            "app_name": self.service_name,
            "log_level": self.log_level,
            "syslog_host": self.syslog_host if self.enable_logstash else None,
            "syslog_port": self.syslog_port if self.enable_logstash else None,
            "json_logs": self.json_logs,
            "enable_logstash": self.enable_logstash,
        }

        if self.environment == "development":
            base_config.update({"json_logs": False, "log_level": "DEBUG" if self.debug else "INFO"})

        return base_config

    model_config = SettingsConfigDict(env_file=".env")


settings = Settings()
