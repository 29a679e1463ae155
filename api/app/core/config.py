"""
Configuracion central de la aplicacion.
Gestiona variables de entorno y configuraciones globales.
Soporta configuracion dinamica para desarrollo (ENVIRONMENT=development)
y produccion (ENVIRONMENT=production).
"""
import json
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field


class Settings(BaseSettings):
    """
    Clase de configuracion de la aplicacion.
    Lee variables de entorno y proporciona valores por defecto.

    Grupos:
    - Aplicacion / servidor
    - Base de datos (URL completa o por componentes)
    - Airtable (credenciales, tablas y vistas por tipo de tabla)
    - Politica de reintentos HTTP y limites de workers
    - Secretos de webhook / cron
    """

    # Configuracion de la aplicacion
    APP_NAME: str = Field(default="Motor de Reconciliacion Reno")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Configuracion del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # Base de datos - Componentes separados (recomendado para flexibilidad)
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_USER: str = Field(default="reno_user")
    DATABASE_PASSWORD: str = Field(default="reno_pass")
    DATABASE_NAME: str = Field(default="reno_db")

    # Base de datos - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)

    # Airtable
    AIRTABLE_TOKEN: str = Field(default="")
    AIRTABLE_BASE_ID: str = Field(default="")
    AIRTABLE_API_URL: str = Field(default="https://api.airtable.com/v0")
    AIRTABLE_PROJECTS_TABLE: str = Field(default="Projects")
    AIRTABLE_PROJECTS_VIEW: str = Field(default="")
    AIRTABLE_PROPERTIES_TABLE: str = Field(default="Transactions")
    AIRTABLE_PROPERTIES_VIEW: str = Field(default="")
    AIRTABLE_LAST_MOD_FIELD: str = Field(default="Last Modified")
    AIRTABLE_PAGE_SIZE: int = Field(default=100)

    # Secretos (vacio = verificacion desactivada)
    AIRTABLE_WEBHOOK_SECRET: str = Field(default="")
    CRON_SECRET: str = Field(default="")

    # Politica de reintentos para llamadas externas (Airtable y documentos)
    HTTP_TIMEOUT_S: float = Field(default=30.0)
    HTTP_MAX_ATTEMPTS: int = Field(default=3)
    HTTP_MIN_BACKOFF_S: float = Field(default=0.5)
    HTTP_MAX_BACKOFF_S: float = Field(default=4.0)

    # Concurrencia acotada
    SYNC_MAX_WORKERS: int = Field(default=4)
    DOCUMENT_MAX_WORKERS: int = Field(default=2)
    DOCUMENT_MAX_BYTES: int = Field(default=25 * 1024 * 1024)

    # Ciclo programado (0 = desactivado)
    SYNC_INTERVAL_MINUTES: int = Field(default=0)

    # CORS (acepta lista JSON o "*" para todos los origenes)
    CORS_ORIGINS: str = Field(default="*")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/app.log")
    AUDIT_LOG_DIR: str = Field(default="logs/audit")

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Si DATABASE_URL esta definida, la usa directamente.
        Si no, construye la URL desde los componentes individuales.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )

    @computed_field
    @property
    def is_development(self) -> bool:
        """Indica si el entorno es de desarrollo."""
        return self.ENVIRONMENT.lower() == "development"

    @computed_field
    @property
    def airtable_configured(self) -> bool:
        """Indica si hay credenciales de Airtable."""
        return bool(self.AIRTABLE_TOKEN and self.AIRTABLE_BASE_ID)

    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


def get_cors_origins(cors_string: str) -> List[str]:
    """
    Parsea la configuracion de CORS.
    Acepta "*" para todos los origenes o una lista JSON.
    """
    if cors_string == "*":
        return ["*"]
    try:
        return json.loads(cors_string)
    except json.JSONDecodeError:
        # Si no es JSON valido, retornar como lista simple
        return [origin.strip() for origin in cors_string.split(",")]


# Instancia global de configuracion
settings = Settings()
