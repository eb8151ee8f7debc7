"""Signer configuration using pydantic-settings.

Values come from environment variables (or a local .env file). Field names
map to upper-case variables, e.g. ``aws_kms_key_id`` -> ``AWS_KMS_KEY_ID``.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from solana_keychain.signing.base import ConfigError


class Settings(BaseSettings):
    """Signer settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Backend selection
    # ======================
    signer_backend: str = Field(
        default="", description="Explicit backend: kms or fireblocks (empty = auto-detect)"
    )

    # ======================
    # AWS KMS
    # ======================
    aws_kms_key_id: str = Field(default="", description="KMS key id, ARN or alias")
    aws_kms_signer_pubkey: str = Field(default="", description="Base58 Solana pubkey of the KMS key")
    aws_kms_region: Optional[str] = Field(default=None, description="AWS region override")

    # ======================
    # Fireblocks
    # ======================
    fireblocks_api_key: str = Field(default="", description="Fireblocks API key")
    fireblocks_private_key_pem: str = Field(
        default="", description="Fireblocks API user RSA private key (PEM)"
    )
    fireblocks_private_key_path: Optional[str] = Field(
        default=None, description="Path to the RSA private key PEM file"
    )
    fireblocks_vault_account_id: str = Field(default="", description="Fireblocks vault account id")
    fireblocks_asset_id: str = Field(default="SOL", description="Asset id (SOL, or SOL_TEST for devnet)")
    fireblocks_api_base_url: str = Field(
        default="https://api.fireblocks.io", description="Fireblocks API base URL"
    )
    fireblocks_poll_interval_ms: int = Field(default=1000, description="Status poll interval (ms)")
    fireblocks_max_poll_attempts: int = Field(default=300, description="Status polls before timeout")
    fireblocks_use_program_call: bool = Field(
        default=False, description="Sign transactions via PROGRAM_CALL (auto-broadcast)"
    )

    # ======================
    # Shared
    # ======================
    request_delay_ms: int = Field(default=0, description="Stagger between batch signing requests (ms)")
    unsafe_debug: bool = Field(
        default=False, description="Log custodian response bodies (may contain sensitive data)"
    )

    @property
    def has_kms(self) -> bool:
        return bool(self.aws_kms_key_id)

    @property
    def has_fireblocks(self) -> bool:
        return bool(
            self.fireblocks_api_key
            and (self.fireblocks_private_key_pem or self.fireblocks_private_key_path)
        )

    def get_fireblocks_private_key(self) -> str:
        """Return the Fireblocks PEM, reading it from disk if only a path is set."""
        if self.fireblocks_private_key_pem:
            return self.fireblocks_private_key_pem.replace("\\n", "\n")
        if self.fireblocks_private_key_path:
            try:
                return Path(self.fireblocks_private_key_path).read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigError(
                    f"Cannot read FIREBLOCKS_PRIVATE_KEY_PATH: {type(e).__name__}"
                ) from e
        return ""

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "signer_backend": self.signer_backend or "(auto)",
            "kms": {
                "key_id": self.aws_kms_key_id or "(not set)",
                "pubkey": self.aws_kms_signer_pubkey or "(not set)",
                "region": self.aws_kms_region or "(default)",
            },
            "fireblocks": {
                "api_key": "***" if self.fireblocks_api_key else "(not set)",
                "private_key": "***" if self.has_fireblocks else "(not set)",
                "vault_account_id": self.fireblocks_vault_account_id or "(not set)",
                "asset_id": self.fireblocks_asset_id,
                "api_base_url": self.fireblocks_api_base_url,
                "poll_interval_ms": self.fireblocks_poll_interval_ms,
                "max_poll_attempts": self.fireblocks_max_poll_attempts,
                "use_program_call": self.fireblocks_use_program_call,
            },
            "request_delay_ms": self.request_delay_ms,
            "unsafe_debug": self.unsafe_debug,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
