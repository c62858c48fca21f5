"""
Engine settings and configuration management.
"""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import TimeoutPolicy


class AnalysisSettings(BaseSettings):
    """Which sub-analyses run and how long the concurrent phase may take."""
    enable_header_analysis: bool = Field(default=True, description="Run header/transport analysis")
    enable_spf: bool = Field(default=True, description="Verify sender authorization when a client address is known")
    enable_phishing_detection: bool = Field(default=True, description="Run phishing heuristics")
    enable_blacklist: bool = Field(default=True, description="Check the client address against DNS blacklists")
    enable_classifier: bool = Field(default=True, description="Run the adaptive spam classifier")
    enable_reputation: bool = Field(default=False, description="Query the reputation API (needs an API key)")
    enable_rules: bool = Field(default=True, description="Evaluate the rule engine")
    max_analysis_seconds: float = Field(default=30.0, gt=0, description="Deadline for the concurrent phase")
    timeout_policy: TimeoutPolicy = Field(
        default=TimeoutPolicy.FALLBACK,
        description="fallback: degrade the whole report on timeout; partial: keep finished modules"
    )

    model_config = SettingsConfigDict(env_prefix="THREAT_ANALYSIS_")


class SPFSettings(BaseSettings):
    """Sender authorization limits (RFC 7208 section 4.6.4)."""
    max_dns_lookups: int = Field(default=10, ge=1)
    max_void_lookups: int = Field(default=2, ge=0)
    dns_timeout_seconds: float = Field(default=5.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="THREAT_SPF_")


class ClassifierSettings(BaseSettings):
    """Bayesian classifier tuning."""
    spam_threshold: float = Field(default=0.9, ge=0, le=1, description="Probability at or above which mail is spam")
    interesting_tokens: int = Field(default=15, ge=1, description="Tokens combined per classification")
    unknown_token_probability: float = Field(default=0.4, gt=0, lt=1, description="Probability for never-seen tokens")
    smoothing: float = Field(default=0.5, gt=0, description="Laplace smoothing constant")

    model_config = SettingsConfigDict(env_prefix="THREAT_CLASSIFIER_")


class ReputationSettings(BaseSettings):
    """Reputation API (VirusTotal v3) configuration."""
    api_key: Optional[str] = Field(default=None, description="VirusTotal API key")
    base_url: str = Field(default="https://www.virustotal.com/api/v3", description="API base URL")
    request_delay_seconds: float = Field(default=15.0, ge=0, description="Delay between requests (free tier: 4/min)")
    max_links: int = Field(default=5, ge=0, description="Links checked per message")
    timeout_seconds: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="THREAT_REPUTATION_")


class BlacklistSettings(BaseSettings):
    """DNS blacklist configuration."""
    zones: List[str] = Field(default_factory=list, description="Zone names to query; empty uses the built-in list")
    timeout_seconds: float = Field(default=3.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="THREAT_BLACKLIST_")


class Settings(BaseSettings):
    """Main engine settings."""
    log_level: str = Field(default="INFO", description="Logging level")

    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    spf: SPFSettings = Field(default_factory=SPFSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    reputation: ReputationSettings = Field(default_factory=ReputationSettings)
    blacklist: BlacklistSettings = Field(default_factory=BlacklistSettings)

    model_config = SettingsConfigDict(
        env_prefix="THREAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def from_yaml(cls, config_path: str) -> "Settings":
        """Load settings from YAML file."""
        config_file = Path(config_path)
        if config_file.exists():
            with open(config_file, 'r') as f:
                config_data = yaml.safe_load(f) or {}
            return cls(**config_data)
        return cls()

    def to_yaml(self, config_path: str) -> None:
        """Save settings to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w') as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False, indent=2)
