from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "INTAKE_", "env_file": ".env", "env_file_encoding": "utf-8"}

    service_name: str = Field(default="intake-decision-engine")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", pattern=r"^(json|console)$")
    rule_code_prefix: str = Field(default="RULE-", min_length=1)
    rule_code_width: int = Field(default=6, ge=1, le=12)
    cors_origins: str = Field(default="*")

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
