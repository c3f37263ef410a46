from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Exporter settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="NFTSNAPSHOT_")

    app_name: str = "nftsnapshot"

    rpc_url: str = "http://127.0.0.1:9933"
    request_timeout: float = 30.0

    output_dir: Path = Path("exports")

    # Upper bound on in-flight per-token fetches against the node
    max_concurrency: int = 8

    # None means "ask the node" (system_properties.ss58Format)
    ss58_format: int | None = None

    schema_message_type: str = "onChainMetaData.NFTMeta"

    pretty_json: bool = True


settings = Settings()


# =============================================================================
# CHAIN CONSTANTS
# =============================================================================

# Generic Substrate prefix, used for the user-facing "normalized" address form
GENERIC_SS58_FORMAT = 42

# Schema versions understood by the decoder
SCHEMA_VERSION_IMAGE_URL = "ImageURL"
SCHEMA_VERSION_UNIQUE = "Unique"
