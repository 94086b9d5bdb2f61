from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Redis
    REDIS_URL: str = "redis://localhost:6379"

    # Client app (CORS)
    CLIENT_APP_URL: str = "http://localhost:3000"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Installation identity
    NUDGE_USER_ID: str = "default"

    # Scheduler
    SCHEDULER_POLL_INTERVAL_SECONDS: float = 0.25
    PERIODIC_CHECK_INTERVAL_SECONDS: int = 15 * 60

    # Behavioral model storage
    BEHAVIORAL_WRITE_DEBOUNCE_SECONDS: float = 0.5
    BEHAVIORAL_MAX_INTERACTIONS: int = 200
    BEHAVIORAL_INTERACTION_RETENTION_DAYS: int = 30
    BEHAVIORAL_MODEL_RETENTION_DAYS: int = 90

    # Pattern tracking
    QUIET_HOURS_START: int = 22
    QUIET_HOURS_END: int = 7
    ACTIVE_HOURS_START: int = 9
    ACTIVE_HOURS_END: int = 17
    ACTIVITY_ENGAGEMENT_STEP: float = 0.02
    COMPLETION_ENGAGEMENT_STEP: float = 0.1
    ENGAGEMENT_BASELINE: float = 0.5
    ENGAGEMENT_HALF_LIFE_HOURS: float = 6.0
    MAX_COMPLETION_HISTORY: int = 50
    STREAK_GAP_DAYS: float = 1.5
    PRODUCTIVITY_RECOMPUTE_DEBOUNCE_SECONDS: float = 2.0

    # Delays (seconds unless named otherwise)
    BASE_DELAY_SECONDS: int = 5 * 60
    HIGH_FREQUENCY_DELAY_SECONDS: int = 3 * 60
    LOW_FREQUENCY_DELAY_SECONDS: int = 10 * 60
    QUIET_TIME_DELAY_HOURS: float = 8.0
    MAX_PREDICTIVE_DELAY_HOURS: int = 4
    RECENT_ACTIVITY_THRESHOLD_SECONDS: int = 2 * 60
    AWAY_THRESHOLD_SECONDS: int = 30 * 60
    RECENT_ACTIVITY_MULTIPLIER: float = 3.0
    DEFAULT_DELAY_MULTIPLIER: float = 2.0
    PREDICTIVE_CONFIDENCE_THRESHOLD: float = 0.7
    MIN_SCHEDULE_LEAD_SECONDS: float = 1.0

    # Procrastination defaults
    PROCRASTINATION_HIGH_DAYS: float = 5.0
    PROCRASTINATION_MEDIUM_DAYS: float = 2.0
    ACTIVITY_TIMEOUT_HOURS: float = 2.0

    # Rate limiting
    RATE_LIMIT_MAX_NOTIFICATIONS: int = 3
    RATE_LIMIT_WINDOW_SECONDS: int = 60 * 60
    RATE_LIMIT_COOLDOWN_SECONDS: int = 15 * 60
    RATE_LIMIT_BACKOFF_MULTIPLIER: float = 2.0
    RATE_LIMIT_MAX_BACKOFF_EXPONENT: int = 3
    RATE_LIMIT_INTERVENTION_COOLDOWN_SECONDS: int = 10 * 60
    RATE_LIMIT_ATTEMPT_RETENTION_SECONDS: int = 24 * 60 * 60

    # Delivery queue
    QUEUE_BASE_BACKOFF_SECONDS: float = 2.0
    QUEUE_MAX_BACKOFF_SECONDS: float = 300.0
    QUEUE_BACKOFF_MULTIPLIER: float = 2.0
    QUEUE_JITTER_FACTOR: float = 0.1
    QUEUE_MAX_ATTEMPTS: int = 5
    QUEUE_MAX_SIZE: int = 100
    QUEUE_RETENTION_SECONDS: int = 24 * 60 * 60
    QUEUE_PROCESS_INTERVAL_SECONDS: int = 10

    # Experiments
    EXPERIMENTS_ENABLED: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
