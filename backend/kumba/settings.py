from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Cheaper model for short classification calls (plan length, mentor chat)
	gemini_model_light: str = Field(default="gemini-2.5-flash-lite", validation_alias="GEMINI_MODEL_LIGHT")
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")
	llm_timeout_seconds: float = Field(default=30.0, validation_alias="LLM_TIMEOUT_SECONDS")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="Kumba.AI", validation_alias="OPENROUTER_TITLE")

	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed user
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Learning policy
	quiz_max_attempts: int = Field(default=3, validation_alias="QUIZ_MAX_ATTEMPTS")
	default_passing_score: int = Field(default=70, validation_alias="DEFAULT_PASSING_SCORE")
	plan_min_days: int = Field(default=3, validation_alias="PLAN_MIN_DAYS")
	plan_max_days: int = Field(default=14, validation_alias="PLAN_MAX_DAYS")
	default_plan_days: int = Field(default=7, validation_alias="DEFAULT_PLAN_DAYS")

	# Analytics windows
	dashboard_window_days: int = Field(default=7, validation_alias="DASHBOARD_WINDOW_DAYS")
	performance_weeks: int = Field(default=8, validation_alias="PERFORMANCE_WEEKS")
	activity_lookback_days: int = Field(default=30, validation_alias="ACTIVITY_LOOKBACK_DAYS")

	# Idle login sessions older than this are purged daily
	session_retention_days: int = Field(default=7, validation_alias="SESSION_RETENTION_DAYS")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
