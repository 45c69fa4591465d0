from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    api_key: str = ""
    api_base_url: str = "https://sharpapi.com/api/v1"
    user_agent: str = "SharpAPIPythonAgent/1.3.0"
    request_timeout: float = 30.0
    max_retry_on_rate_limit: int = 3
    rate_limit_low_threshold: int = 3
    api_job_status_polling_interval: int = 10
    api_job_status_polling_wait: int = 180
    use_custom_interval: bool = False
    log_format: str = "text"
    log_level: str = "INFO"

    model_config = {
        "env_prefix": "SHARPAPI_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


settings = Settings()
