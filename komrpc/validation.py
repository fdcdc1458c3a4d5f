"""
Configuration validation and connectivity testing for KomRPC.
"""
from typing import Tuple, Optional
import requests

from .client import build_session
from .config import Settings
from .logger import get_logger

logger = get_logger()


def validate_komga_connection(settings: Settings, session: Optional[requests.Session] = None) -> Tuple[bool, Optional[str]]:
    """
    Test connectivity and credentials against the Komga server.

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    session = session or build_session()
    url = f"{settings.server_url}/api/v1/libraries"
    try:
        response = session.get(url, headers={"X-API-Key": settings.komga.api_key}, timeout=10)
    except requests.exceptions.ConnectionError:
        error = "Cannot connect to Komga server. Check komga.base_url in config."
        logger.error(f"✗ {error}")
        return False, error
    except requests.exceptions.Timeout:
        error = "Komga server connection timed out."
        logger.error(f"✗ {error}")
        return False, error
    except requests.exceptions.RequestException as e:
        error = f"Komga validation failed: {e}"
        logger.error(f"✗ {error}")
        return False, error

    if response.status_code == 200:
        logger.info("✓ Komga connection successful")
        return True, None
    if response.status_code == 401:
        error = "Komga rejected the API key (401). Check komga.api_key in config."
    else:
        error = f"Komga returned status {response.status_code}"
    logger.error(f"✗ {error}")
    return False, error


def validate_discord_client_id(client_id: str) -> Tuple[bool, Optional[str]]:
    """
    Validate Discord client ID format.

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not client_id:
        error = "Discord client ID is empty"
        logger.error(f"✗ {error}")
        return False, error

    # Discord IDs should be numeric strings
    if not client_id.isdigit():
        error = f"Discord client ID should be numeric, got: {client_id}"
        logger.error(f"✗ {error}")
        return False, error

    # Discord snowflakes are typically 17-20 digits
    if len(client_id) < 17 or len(client_id) > 20:
        logger.warning(f"⚠ Discord client ID has unusual length: {len(client_id)} digits")

    logger.info("✓ Discord client ID format valid")
    return True, None


def validate_imgur_client_id(client_id: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate Imgur client ID format.

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not client_id:
        error = "Imgur client ID is empty"
        logger.error(f"✗ {error}")
        return False, error

    if len(client_id) < 10:
        logger.warning(f"⚠ Imgur client ID seems too short: {len(client_id)} characters")

    logger.info("✓ Imgur client ID format valid")
    return True, None


def validate_configuration(settings: Settings, session: Optional[requests.Session] = None) -> bool:
    """
    Validate all configuration settings and test connections.

    Returns:
        True if all validations pass, False otherwise
    """
    logger.info("Validating configuration...")

    all_valid = True

    discord_valid, _ = validate_discord_client_id(settings.integration.discord_client_id)
    if not discord_valid:
        all_valid = False

    if settings.integration.use_imgur_cover:
        imgur_valid, _ = validate_imgur_client_id(settings.integration.imgur_client_id)
        if not imgur_valid:
            logger.warning("⚠ Covers will use the Komga thumbnail URL directly.")

    komga_valid, _ = validate_komga_connection(settings, session)
    if not komga_valid:
        all_valid = False

    if all_valid:
        logger.info("✓ All configuration checks passed!")
    else:
        logger.error("✗ Configuration validation failed. Please check your config file")

    return all_valid
