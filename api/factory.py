"""
Relay factory.
Creates a relay instance from configuration.
"""

from typing import Any, Dict, Optional

from .base import ConfigurationError


DEFAULT_ORIGIN = "https://radhikajewellers.in"
DEFAULT_CHANNEL = "radhika"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_KEEPALIVE_INTERVAL = 15.0
DEFAULT_RECONNECT_DELAY = 5.0


def _positive_number(config: Dict[str, Optional[str]], key: str, default, cast):
    raw = config.get(key)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got {raw!r}")
    return value


class RelayFactory:
    """
    Factory for creating relay instances.

    Handles configuration validation and defaults.
    """

    @staticmethod
    def resolve_config(config: Dict[str, Optional[str]]) -> Dict[str, Any]:
        """
        Validate raw configuration values and fill in defaults.

        Args:
            config: Configuration dictionary (usually from the environment)

        Returns:
            dict: Keyword arguments for RelayOrchestrator

        Raises:
            ConfigurationError: If WS_URL is missing or a value is invalid
        """
        ws_url = (config.get('WS_URL') or '').strip()
        if not ws_url:
            raise ConfigurationError(
                "WS_URL not found in configuration. "
                "Please set it in your .env file."
            )

        return {
            'ws_url': ws_url,
            'origin': config.get('WS_ORIGIN') or DEFAULT_ORIGIN,
            'channel': config.get('WS_CHANNEL') or DEFAULT_CHANNEL,
            'host': config.get('HOST') or DEFAULT_HOST,
            'port': _positive_number(config, 'PORT', DEFAULT_PORT, int),
            'keepalive_interval': _positive_number(
                config, 'KEEPALIVE_INTERVAL', DEFAULT_KEEPALIVE_INTERVAL, float
            ),
            'reconnect_delay': _positive_number(
                config, 'RECONNECT_DELAY', DEFAULT_RECONNECT_DELAY, float
            ),
        }

    @staticmethod
    def create_relay(config: Dict[str, Optional[str]], **overrides):
        """
        Create a relay from configuration.

        Args:
            config: Configuration dictionary
            **overrides: Extra RelayOrchestrator arguments (cache, connect, ...)

        Returns:
            RelayOrchestrator instance

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        from orchestration import RelayOrchestrator

        kwargs = RelayFactory.resolve_config(config)
        kwargs.update(overrides)
        return RelayOrchestrator(**kwargs)
