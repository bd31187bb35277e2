from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Summarization provider (OpenAI-compatible chat completions)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    summary_model: str = "gpt-4o-mini"
    summary_mode: str = "stream"  # stream | batch
    summary_stream_max_tokens: int = 1000
    summary_batch_max_tokens: int = 2000
    summary_temperature: float = 0.5
    summary_timeout_seconds: float = 90.0
    summary_fallback_enabled: bool = True
    body_max_chars: int = 4000

    # Web research provider
    research_provider: str = "perplexity"  # perplexity | tavily
    perplexity_api_key: str = ""
    perplexity_base_url: str = "https://api.perplexity.ai"
    perplexity_model: str = "sonar-pro"
    tavily_api_key: str = ""
    research_max_tokens: int = 800
    research_timeout_seconds: float = 15.0
    research_poll_attempts: int = 15
    research_poll_interval_seconds: float = 2.0
    research_cache_ttl_seconds: int = 600
    research_cache_max_entries: int = 1000

    # Streaming
    stream_heartbeat_seconds: float = 10.0
    stream_stall_timeout_seconds: float = 30.0

    # Orchestration pacing / progress estimate
    submit_settle_delay_seconds: float = 0.5
    run_timeout_seconds: float = 240.0
    progress_baseline_seconds: float = 8.0
    progress_seconds_per_kchar: float = 2.0

    # Supabase document store
    supabase_url: str = ""
    supabase_anon_key: str = ""
    research_table: str = "research"
    summaries_table: str = "research_summaries"

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def research_enabled(self) -> bool:
        provider = self.research_provider.lower().strip()
        if provider == "tavily":
            return bool(self.tavily_api_key.strip())
        return bool(self.perplexity_api_key.strip())


settings = Settings()
