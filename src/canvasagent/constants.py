"""Application-level constants for canvasagent.

This module keeps only cross-cutting app/file/wire constants.
"""

# ============================================================================
# Application identity
# ============================================================================

APP_NAME = "canvasagent"

# ============================================================================
# Action wire format
# ============================================================================

# Tag field carried by every action object in the streamed ``actions`` array.
ACTION_KIND_FIELD = "kind"

# Top-level key of the streamed response envelope.
ACTIONS_ENVELOPE_KEY = "actions"

# Placeholder substituted by the prettified response schema in prompt templates.
JSON_SCHEMA_PLACEHOLDER = "{{JSON_SCHEMA}}"

# ============================================================================
# Generation defaults
# ============================================================================

DEFAULT_MAX_OUTPUT_TOKENS = 8192
DEFAULT_TEMPERATURE = 0.0

# Placeholder used in user-visible output when a value is missing.
DISPLAY_UNKNOWN = "unknown"

# ============================================================================
# Providers
# ============================================================================

# Closed set of provider names.
PROVIDER_CLAUDE = "claude"
PROVIDER_OPENAI = "openai"
PROVIDER_OPENAI_COMPATIBLE = "openai-compatible"
PROVIDER_GEMINI = "gemini"
PROVIDER_NAMES = (
    PROVIDER_CLAUDE,
    PROVIDER_OPENAI,
    PROVIDER_OPENAI_COMPATIBLE,
    PROVIDER_GEMINI,
)

DEFAULT_OPENAI_COMPATIBLE_ENDPOINT = "http://localhost:11434/v1"
OPENAI_COMPATIBLE_PLACEHOLDER_KEY = "ollama"
