from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConsentDefinition(BaseModel):
    """Item do catálogo de consentimentos exibido na etapa de aceite legal."""

    key: str
    text: str
    version: str = "v1"
    required: bool = True


DEFAULT_CONSENT_CATALOG: List[ConsentDefinition] = [
    ConsentDefinition(
        key="terms",
        text="I have read and agree to the terms and conditions of this contract.",
    ),
    ConsentDefinition(
        key="privacy",
        text="I agree to the processing of my personal data for electronic signature purposes.",
    ),
    ConsentDefinition(
        key="cancellation",
        text="I acknowledge my right of cancellation according to applicable laws.",
        required=False,
    ),
]


class Settings(BaseSettings):
    """
    Configurações globais do SignProof.
    Lê automaticamente variáveis do arquivo .env (prefixo SIGNPROOF_).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SIGNPROOF_",
        extra="ignore",
    )

    # Projeto
    project_name: str = "SignProof Evidence API"
    api_v1_str: str = "/api/v1"
    debug: bool = False
    allowed_origins: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Banco de dados (API de evidências)
    database_url: str = "sqlite:///./signproof.db"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Canvas de captura
    canvas_width: int = 400
    canvas_height: int = 200
    pen_color: str = "#000000"
    pen_width: int = 2
    background_color: str = "#ffffff"
    default_pressure: float = 0.5

    # Consentimentos (taxonomia fornecida por configuração)
    consent_catalog: List[ConsentDefinition] = DEFAULT_CONSENT_CATALOG

    # Contexto do dispositivo
    geolocation_timeout_seconds: float = 10.0
    geolocation_max_age_seconds: float = 300.0
    ip_lookup_url: Optional[str] = "https://api.ipify.org?format=json"
    ip_lookup_timeout_seconds: float = 5.0

    # Integração com a API de contratos/evidências
    api_base_url: str = "http://localhost:8000/api/v1"
    request_timeout_seconds: float = 15.0
    access_token: Optional[str] = None

    def required_consent_keys(self) -> list[str]:
        """Retorna as chaves de consentimento obrigatórias, na ordem do catálogo."""
        return [item.key for item in self.consent_catalog if item.required]

    def resolved_api_base_url(self) -> str:
        return (self.api_base_url or "").strip().rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Retorna a instância de configurações globais (cacheada)."""
    return Settings()


settings = get_settings()
