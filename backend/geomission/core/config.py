from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    project_name: str = "GeoMission Participation Service"
    api_prefix: str = "/api"

    mongodb_uri: str = Field(default="mongodb://mongo:27017")
    mongodb_db: str = Field(default="geomission")

    redis_url: str = Field(default="redis://redis:6379/0")

    cors_origins: str = Field(default="http://localhost:8081,http://localhost:19006,http://localhost")

    # 원격 미션 백엔드 (attempt ledger / 매장 카탈로그)
    mission_api_base_url: str = Field(default="http://localhost:8080")
    mission_api_timeout_seconds: float = Field(default=10.0)

    # 미션 인증 정책
    mission_proximity_meters: float = Field(default=200.0, description="보드 좌표 기준 인증 허용 반경 (m)")
    default_stamp_goal_count: int = Field(default=5, ge=1)
    local_timezone: str = Field(default="Asia/Seoul", description="한산 시간대 판정에 쓰는 현지 시간대")

    # 참여 상태 저장소: redis | memory
    participation_store_backend: str = Field(default="redis")
    participation_ttl_seconds: int = Field(default=60 * 60 * 24 * 7)
    catalog_cache_ttl_seconds: int = Field(default=300)

    log_level: str = Field(default="INFO")

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
