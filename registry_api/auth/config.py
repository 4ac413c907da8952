# auth/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class JWTSettings(BaseSettings):
    jwt_secret_key: str = "YOUR_SECRET_KEY_CHANGE_THIS_IN_PRODUCTION"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    # Token endpoint of the identity service that issues access tokens
    token_url: str = "/auth/token"

    @property
    def access_token_expire_seconds(self) -> int:
        return self.access_token_expire_minutes * 60

    # Load settings from environment variables with JWT_ prefix
    model_config = SettingsConfigDict(env_prefix="JWT_")


jwt_settings = JWTSettings()
