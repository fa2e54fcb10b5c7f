"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="plain", description="Log format")
    file: str | None = Field(default=None, description="Log file path, None disables the file sink")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class DatabaseConfig(BaseModel):
    """Encrypted record store configuration model."""

    path: str = Field(
        default="data/contacts.db", description="Location of the encrypted store file"
    )
    environment_mode: Literal["development", "production", "test"] = Field(
        default="development", description="Environment mode: development, test or production"
    )
    passphrase_file: str | None = Field(
        default=None,
        description="Path to a file containing the store passphrase",
    )
    passphrase_env_var: str | None = Field(
        default=None,
        description="Environment variable name containing the store passphrase",
    )
    dev_passphrase: str | None = Field(
        default=None,
        description="Fallback passphrase accepted only in development and test",
    )
    kdf_iterations: int = Field(
        default=390_000,
        ge=1,
        description="PBKDF2 iterations used when creating a new store file",
    )
    destructive_migration_fallback: bool = Field(
        default=False,
        description="Drop and recreate the table when no migration path exists",
    )

    @property
    def store_path(self) -> Path:
        return Path(self.path).expanduser()

    @property
    def passphrase(self) -> str:
        """
        Resolve the store passphrase from the first available source.
        1. The mounted secrets file named by `passphrase_file`
        2. The environment variable named by `passphrase_env_var`
        3. CONTACTS_DB_PASSPHRASE from the process environment or .env file
        4. `dev_passphrase`, outside production only
        """
        if self.passphrase_file:
            try:
                with open(self.passphrase_file, "r") as f:
                    secret = f.read().strip()
            except OSError as e:
                raise ValueError("Failed to read store passphrase from file.") from e
            if not secret:
                raise ValueError(f"Passphrase file {self.passphrase_file} is empty")
            return secret

        if self.passphrase_env_var:
            secret = os.getenv(self.passphrase_env_var)
            if secret:
                return secret
            raise ValueError(f"Environment variable {self.passphrase_env_var} not set")

        from src.contacts.runtime.settings import EnvironmentVariables

        env_secret = EnvironmentVariables().db_passphrase
        if env_secret is not None and env_secret.get_secret_value():
            return env_secret.get_secret_value()

        if self.environment_mode == "production":
            raise ValueError(
                "In production mode, passphrase_file, passphrase_env_var or "
                "CONTACTS_DB_PASSPHRASE must be set"
            )
        if self.dev_passphrase:
            logger.warning(
                "Using the configured development passphrase for the contacts store; "
                "do not use it for real data."
            )
            return self.dev_passphrase
        raise ValueError("No passphrase source configured for the contacts store")


class AppConfig(BaseModel):
    """Application configuration model."""

    name: str = Field(default="contacts", description="Application name")
    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Record store configuration"
    )
    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
