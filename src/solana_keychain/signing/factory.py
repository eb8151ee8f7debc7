"""Signer factory.

Creates the appropriate signing backend based on configuration.
"""

import asyncio
import logging
from typing import Optional

from solana_keychain.config import Settings, get_settings
from solana_keychain.signing.base import ConfigError, SignerBackend, SignerType

logger = logging.getLogger(__name__)


def get_signer_type(settings: Optional[Settings] = None) -> SignerType:
    """Determine which signer to use based on settings.

    Priority:
    1. SIGNER_BACKEND (explicit)
    2. AWS_KMS_KEY_ID present -> KMS
    3. Fireblocks API key + private key present -> Fireblocks

    Raises:
        ConfigError: If the backend is unknown or nothing is configured
    """
    settings = settings or get_settings()
    explicit = settings.signer_backend.strip().lower()

    if explicit:
        try:
            return SignerType(explicit)
        except ValueError:
            raise ConfigError(f"Unknown SIGNER_BACKEND: {explicit}") from None

    if settings.has_kms:
        return SignerType.KMS

    if settings.has_fireblocks:
        return SignerType.FIREBLOCKS

    raise ConfigError("No signer configured (set AWS_KMS_* or FIREBLOCKS_* variables)")


async def create_signer(settings: Optional[Settings] = None) -> SignerBackend:
    """Build a new signer from settings (Fireblocks signers are initialized)."""
    settings = settings or get_settings()
    signer_type = get_signer_type(settings)
    logger.info(f"Initializing {signer_type.value} signer")

    if signer_type == SignerType.KMS:
        from solana_keychain.signing.kms import KmsSigner

        if not settings.aws_kms_signer_pubkey:
            raise ConfigError("AWS_KMS_SIGNER_PUBKEY must be set for the KMS signer")
        return KmsSigner(
            key_id=settings.aws_kms_key_id,
            public_key=settings.aws_kms_signer_pubkey,
            region=settings.aws_kms_region,
            request_delay_ms=settings.request_delay_ms,
        )

    from solana_keychain.signing.fireblocks import FireblocksSigner

    signer = FireblocksSigner(
        api_key=settings.fireblocks_api_key,
        private_key_pem=settings.get_fireblocks_private_key(),
        vault_account_id=settings.fireblocks_vault_account_id,
        asset_id=settings.fireblocks_asset_id,
        api_base_url=settings.fireblocks_api_base_url,
        poll_interval_ms=settings.fireblocks_poll_interval_ms,
        max_poll_attempts=settings.fireblocks_max_poll_attempts,
        use_program_call=settings.fireblocks_use_program_call,
        request_delay_ms=settings.request_delay_ms,
        unsafe_debug=settings.unsafe_debug,
    )
    try:
        await signer.init()
    except Exception:
        await signer.aclose()
        raise
    return signer


_signer_instance: Optional[SignerBackend] = None
_signer_lock = asyncio.Lock()


async def get_signer() -> SignerBackend:
    """Get the configured signer instance.

    Returns singleton instance for the configured signer type.
    """
    global _signer_instance

    if _signer_instance is not None:
        return _signer_instance

    async with _signer_lock:
        if _signer_instance is None:
            _signer_instance = await create_signer()
    return _signer_instance


def reset_signer():
    """Reset the signer instance (for testing)."""
    global _signer_instance, _signer_lock
    _signer_instance = None
    # a fresh lock for the next event loop
    _signer_lock = asyncio.Lock()
    get_settings.cache_clear()


async def get_signer_info() -> dict:
    """Get information about the current signer configuration.

    Returns:
        Dict with signer type, health status and public key
    """
    signer = await get_signer()
    health = await signer.is_available()

    return {
        "type": signer.signer_type.value,
        "healthy": health,
        "class": signer.__class__.__name__,
        "pubkey": str(signer.pubkey()),
    }
