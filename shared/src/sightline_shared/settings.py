from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # Cameras
    camera_ids: str = Field(default="cam-01")

    # Detector
    yolo_model: str = Field(default="yolo11n.pt")
    detector_confidence: float = Field(
        default=0.25,
        description="Floor passed to the model; the pipeline applies its own threshold",
    )

    # Assist pipeline
    assist_confidence_threshold: float = Field(default=0.6)
    assist_excluded_labels: str = Field(default="")
    assist_min_stable_frames: int = Field(default=5)
    assist_max_report_distance_m: float = Field(default=5.0)
    assist_actionable_distance_m: float = Field(default=3.0)
    assist_cooldown_ms: float = Field(default=3000.0)
    assist_vertical_zones: bool = Field(default=False)
    assist_detect_every_n_ticks: int = Field(default=1)

    # Logging
    log_format: str = Field(default="console")
    log_level: str = Field(default="INFO")

    @property
    def camera_id_list(self) -> list[str]:
        return [c.strip() for c in self.camera_ids.split(",") if c.strip()]

    @property
    def excluded_label_set(self) -> frozenset[str]:
        return frozenset(
            label.strip().lower()
            for label in self.assist_excluded_labels.split(",")
            if label.strip()
        )


# Module-level singleton — import and use directly
settings = Settings()
