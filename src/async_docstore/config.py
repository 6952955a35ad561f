# src/async_docstore/config.py

from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from async_docstore.base.interfaces import DocumentStore
from async_docstore.factory import BACKENDS, connect, url_scheme

DEFAULT_URL = "mongodb://localhost:27017/docstore"


class StoreSettings(BaseSettings):
    """
    Connection settings for a document store.

    Read from `DOCSTORE_URL`, `DOCSTORE_DATABASE` and `DOCSTORE_OPTIONS` (a
    JSON object of driver options) when not passed explicitly.
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCSTORE_",
        populate_by_name=True,
        extra="ignore",
    )

    url: str = DEFAULT_URL
    database_name: Optional[str] = Field(
        default=None, validation_alias="DOCSTORE_DATABASE"
    )
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def validate_url_scheme(cls, value: str) -> str:
        scheme = url_scheme(value)
        if scheme not in BACKENDS:
            raise ValueError(
                f"Unsupported store URL scheme '{scheme}'; "
                f"expected one of: {', '.join(sorted(BACKENDS))}"
            )
        return value

    async def connect(self) -> DocumentStore:
        """Open a store with these settings."""
        return await connect(self.url, database_name=self.database_name, **self.options)


async def connect_with_settings(settings: Optional[StoreSettings] = None) -> DocumentStore:
    """Open a store from `settings`, or from the environment if None."""
    settings = settings or StoreSettings()
    return await settings.connect()
