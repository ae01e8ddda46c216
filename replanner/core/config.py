from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REPLAN_",
        extra="ignore",
        env_file=Path(__file__).resolve().parents[2] / ".env",
        env_file_encoding="utf-8",
    )

    project_root: Path = Path(__file__).resolve().parents[2]
    outputs_root: Path = project_root / "outputs"
    benchmark_root: Path = outputs_root / "benchmarks"
    default_connectivity: int = 8
    check_heuristic_consistency: bool = False
    dynamic_rebuild_ratio: float = 0.02
    dynamic_advance_steps: int = 4
    max_sessions: int = 64
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"
    cors_origin_regex: str = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    @property
    def cors_origin_list(self) -> list[str]:
        return [v.strip() for v in self.cors_origins.split(",") if v.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    provided = set(settings.model_fields_set)

    # Keep derived paths synced with outputs_root unless explicitly overridden.
    if "outputs_root" not in provided and "project_root" in provided:
        settings.outputs_root = settings.project_root / "outputs"
    if "benchmark_root" not in provided:
        settings.benchmark_root = settings.outputs_root / "benchmarks"

    if settings.default_connectivity not in (4, 8):
        raise ValueError(f"REPLAN_DEFAULT_CONNECTIVITY must be 4 or 8, got {settings.default_connectivity}")
    settings.dynamic_rebuild_ratio = min(1.0, max(0.0, float(settings.dynamic_rebuild_ratio)))
    settings.dynamic_advance_steps = max(1, int(settings.dynamic_advance_steps))
    settings.max_sessions = max(1, int(settings.max_sessions))
    return settings
