from config import Settings

ENV_VARS = [
    "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "LLM_PROVIDER", "SIMILARITY_THRESHOLD",
    "RESULT_LIMIT", "SEARCH_ENGINE", "THE_ODDS_API_KEY", "QUERY_CACHE_TTL_MINUTES",
    "BRAVE_SEARCH_API_KEY", "SERPER_API_KEY",
]


def test_from_env_reads_overrides(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("SIMILARITY_THRESHOLD", "0.45")
    monkeypatch.setenv("RESULT_LIMIT", "8")
    monkeypatch.setenv("SEARCH_ENGINE", "brave")
    monkeypatch.setenv("QUERY_CACHE_TTL_MINUTES", "")

    settings = Settings.from_env(env_file=tmp_path / "missing.env")

    assert settings.openai_api_key == "sk-env"
    assert settings.similarity_threshold == 0.45
    assert settings.result_limit == 8
    assert settings.search_engine == "brave"
    assert settings.query_cache_ttl_minutes == 30
    assert settings.odds_api_key is None


def test_provider_status_never_exposes_keys():
    status = Settings(openai_api_key="sk-secret", odds_api_key="odds").provider_status()

    assert status == {
        "openai": True,
        "anthropic": False,
        "brave": False,
        "serper": False,
        "the_odds_api": True,
    }
