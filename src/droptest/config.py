# config.py
from typing import Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    프로젝트 전역 설정 관리 (Pydantic V2)
    .env 파일에서 환경 변수를 로드하며, 없을 경우 기본값을 사용합니다.
    """

    # Project Info
    PROJECT_NAME: str = "DropTest_Analysis"
    VERSION: str = "1.0.0"

    # Logging (scripts only - the engine itself never touches the filesystem)
    LOG_DIR: str = "./logs"
    LOG_LEVEL: str = "INFO"

    # Filter Settings
    # SAE J211/1 design frequency = CFC * 2.0775
    CFC_SCALE_FACTOR: float = 2.0775
    DEFAULT_CFC_CLASS: int = 60

    # Origin / Free Fall Detection (G, app convention: rest ~0, free fall ~-1)
    ORIGIN_THRESHOLD_G: float = -0.5
    PRE_EVENT_BUFFER_MS: float = 200.0
    FREE_FALL_THRESHOLD_G: float = -0.85
    MIN_PEAK_G: float = 5.0

    # Injury Metrics
    HIC_WINDOWS_MS: Tuple[float, ...] = (15.0, 36.0)
    TIME_OVER_THRESHOLDS_G: Tuple[float, ...] = (20.0, 38.0)

    # Proposed EN limits: 38 G for >= 7 ms, 20 G for >= 25 ms
    LIMIT_38G_MS: float = 7.0
    LIMIT_20G_MS: float = 25.0

    # .env 파일 로드 설정
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


# 싱글톤 인스턴스 생성
settings = Settings()
