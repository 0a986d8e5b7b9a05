"""
Configuration module for the voice intake relay.

This module provides centralized configuration management for the entire application,
including constants, logging setup, and environment-based settings.

Key components:
- constants: Defines application-wide constants used across modules, including
  telephony event names, agent message types and audio encodings.
- settings: The RelaySettings model holding buffer sizes, timer durations, barge-in
  flags, reprompt caps, prompt/greeting text and model identifiers, built from the
  environment with RelaySettings.from_env().
- logging_config: Provides a consistent logging infrastructure with support for
  console and file-based logging with rotation capabilities.

Usage examples:
```python
from dotenv import load_dotenv

from intake_agent.config.logging_config import configure_logging
from intake_agent.config.settings import RelaySettings

load_dotenv()
logger = configure_logging()
settings = RelaySettings.from_env()
logger.info(f"Forwarding {settings.audio.burst_bytes}-byte bursts to the agent")
```
"""

# Config module initialization
