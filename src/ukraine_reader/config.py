"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
        if 'reading' in data:
            reading = data['reading']
            flattened['languages'] = reading.get('languages')
            flattened['history_retention_days'] = reading.get('history_retention_days')
            flattened['recent_text_limit'] = reading.get('recent_text_limit')
        if 'diagnostic' in data:
            diagnostic = data['diagnostic']
            flattened['diagnostic_passages_per_language'] = (
                diagnostic.get('passages_per_language')
            )
            flattened['diagnostic_questions_per_passage'] = (
                diagnostic.get('questions_per_passage')
            )

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Authentication (optional: None disables auth)
    app_secret: str | None = Field(default=None)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3004)

    # Reading
    languages: list[str] = Field(default_factory=lambda: ["ru", "uk"])
    history_retention_days: int = Field(default=45)
    recent_text_limit: int = Field(default=15)

    # Diagnostic
    diagnostic_passages_per_language: int = Field(default=3)
    diagnostic_questions_per_passage: int = Field(default=2)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def profiles_dir(self) -> Path:
        d = self.data_dir / "profiles"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def sessions_dir(self) -> Path:
        d = self.data_dir / "sessions"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def diagnostics_dir(self) -> Path:
        d = self.data_dir / "diagnostics"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def texts_dir(self) -> Path:
        return self.data_dir / "texts"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()
