import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Load environment variables from .env file if it exists
load_dotenv()


class CryptoSettings(BaseModel):
    """Cipher and password for one named crypto profile."""

    cipher: str = Field(default="aes-256-gcm", description="Cipher identifier (e.g. 'aes-256-gcm')")
    password: str = Field(..., description="Password the profile secret is derived from")

    model_config = ConfigDict(frozen=True)


def _crypto_from_env() -> Dict[str, CryptoSettings]:
    password = os.getenv("DYNAMODB_CRYPTO_PASSWORD")
    if not password:
        return {}
    cipher = os.getenv("DYNAMODB_CRYPTO_CIPHER", "aes-256-gcm")
    return {"primary": CryptoSettings(cipher=cipher, password=password)}


class SingleTableConfig(BaseModel):
    """Configuration for a single-table DynamoDB connection and item conventions."""

    name: str = Field(
        default_factory=lambda: os.getenv("DYNAMODB_TABLE_NAME", ""),
        description="Base DynamoDB table name"
    )

    table_prefix: str = Field(
        default_factory=lambda: os.getenv("DYNAMODB_TABLE_PREFIX", ""),
        description="Prefix to add to the table name"
    )

    aws_access_key_id: Optional[str] = Field(
        default_factory=lambda: os.getenv("AWS_ACCESS_KEY_ID"),
        description="AWS access key ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("AWS_SECRET_ACCESS_KEY"),
        description="AWS secret access key"
    )

    region_name: str = Field(
        default_factory=lambda: os.getenv("AWS_REGION", "us-east-1"),
        description="AWS region name"
    )

    endpoint_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("DYNAMODB_ENDPOINT_URL"),
        description="DynamoDB endpoint URL (for local development)"
    )

    # Client settings
    client_generation: str = Field(
        default_factory=lambda: os.getenv("DYNAMODB_CLIENT_GENERATION", "current"),
        description="Client calling convention: 'current' or 'legacy'"
    )

    max_pool_connections: int = Field(
        default=50,
        description="Maximum number of connections in the connection pool"
    )

    retries: int = Field(
        default=3,
        description="Number of retry attempts botocore makes for failed requests"
    )

    timeout_seconds: float = Field(
        default=30.0,
        description="Request timeout in seconds"
    )

    marshall_options: Dict[str, Any] = Field(
        default_factory=lambda: {"convert_floats": True, "remove_nulls": False},
        description="Options for marshalling native items to the wire format"
    )

    unmarshall_options: Dict[str, Any] = Field(
        default_factory=lambda: {"wrap_numbers": True},
        description="Options for unmarshalling wire items to native values"
    )

    # Logging settings
    enable_debug_logging: bool = Field(
        default_factory=lambda: os.getenv("DYNAMODB_DEBUG_LOGGING", "false").lower() == "true",
        description="Enable debug logging for table operations"
    )

    # Item conventions
    delimiter: str = Field(default="#", description="Separator used in composite key values")
    type_field: str = Field(default="_type", description="Attribute holding the model name")
    created_field: str = Field(default="created", description="Creation timestamp attribute")
    updated_field: str = Field(default="updated", description="Update timestamp attribute")
    hidden: bool = Field(default=True, description="Hide template-valued attributes in read results")
    timestamps: bool = Field(default=False, description="Maintain created/updated timestamps")
    iso_dates: bool = Field(default=False, description="Store timestamps as ISO strings instead of epoch ms")
    nulls: bool = Field(default=False, description="Write None values instead of dropping them")
    uuid: str = Field(default="uuid", description="ID generator: 'uuid' or 'ulid'")

    crypto: Dict[str, CryptoSettings] = Field(
        default_factory=_crypto_from_env,
        description="Crypto profiles keyed by profile name"
    )

    @field_validator('region_name')
    @classmethod
    def validate_region(cls, v):
        """Validate AWS region name."""
        if not v:
            raise ValueError("AWS region name is required")
        return v

    @field_validator('client_generation')
    @classmethod
    def validate_client_generation(cls, v):
        """Validate client generation value."""
        valid_generations = ['current', 'legacy']
        if v not in valid_generations:
            raise ValueError(f"Client generation must be one of: {valid_generations}")
        return v

    @field_validator('uuid')
    @classmethod
    def validate_uuid(cls, v):
        """Validate ID generator name."""
        if v not in ('uuid', 'ulid'):
            raise ValueError("ID generator must be 'uuid' or 'ulid'")
        return v

    def get_table_name(self, base_name: Optional[str] = None) -> str:
        """Get the full table name with prefix.

        Args:
            base_name: Base table name, defaults to the configured name

        Returns:
            Full table name
        """
        base_name = base_name or self.name
        if self.table_prefix:
            return f"{self.table_prefix}_{base_name}"
        return base_name

    @classmethod
    def from_env(cls) -> 'SingleTableConfig':
        """Create configuration from environment variables.

        Returns:
            SingleTableConfig instance
        """
        return cls()

    @classmethod
    def for_local_development(cls, name: str, **kwargs) -> 'SingleTableConfig':
        """Create configuration for local DynamoDB development.

        Args:
            name: Table name
            **kwargs: Additional configuration parameters

        Returns:
            SingleTableConfig instance configured for local development
        """
        settings = dict(
            name=name,
            aws_access_key_id="local",
            aws_secret_access_key="local",
            region_name="us-east-1",
            endpoint_url="http://localhost:8000",
            enable_debug_logging=True
        )
        settings.update(kwargs)
        return cls(**settings)

    model_config = ConfigDict(
        validate_assignment=True
    )
