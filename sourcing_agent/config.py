from decimal import Decimal
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    graphql_endpoint: str = ""
    graphql_bearer_token: str = ""
    supplier_api_url: str = ""
    supplier_api_token: str = ""
    http_timeout_seconds: float = 30.0
    host: str = "0.0.0.0"
    port: int = 8100
    log_level: str = "info"
    state_dir: Path = Path("user_state")

    # Defaults applied when a project is created without them
    default_budget: Decimal = Decimal("1000")
    default_start_offset_days: int = 1
    default_end_offset_days: int = 30

    supplier_category: str = "IT Consulting-1010"
    default_company_code: str = "1010"
    supplier_response_days: int = 10
    award_target_days: int = 16

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
