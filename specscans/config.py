# ==============================================
# Configuration Management
# ==============================================
#
# PURPOSE:
#   Load and validate all configuration from environment
#   variables / .env file. Provides typed config objects
#   to all other modules.
#
# CLASSES:
# --------
# - MotorsDbConfig (dataclass)
#     db_type: str       (default "mysql"; "sqlite" for a file / :memory: store)
#     db_file: str       (default "motors.db", sqlite only)
#     host: str          (default "localhost")
#     port: int          (default 3306)
#     user: str          (default "root")
#     password: str      (default "root")
#     database: str      (default "motors")
#
# - MongoConfig (dataclass)
#     host: str          (default "localhost")
#     port: int          (default 27017)
#     user: str | None   (default None)
#     password: str | None (default None)
#     database: str      (default "foxden")
#     collection: str    (default "specscans")
#
# - ServiceConfig (dataclass)
#     name: str              (default "SpecScans", used for field routing)
#     schema_file: str|None  (default None -> shape checks only)
#     service_map: str|None  (file path or http(s) URL; None -> built-in table)
#     max_workers: int       (default 8, batch pool cap)
#     strict_routing: bool   (default False)
#     verbose: int           (default 0)
#
# - AppConfig (dataclass)
#     motors: MotorsDbConfig
#     mongo: MongoConfig
#     service: ServiceConfig
#
# FUNCTIONS:
# ----------
# - get_config() -> AppConfig
#     Load .env using python-dotenv, construct AppConfig.
#     Returns the same singleton on repeated calls.
#
# - reset_config() -> None
#     Drop the singleton (tests, reloads).
#
# - configure_logging(verbose: int) -> None
#     0 -> WARNING, 1 -> INFO, 2+ -> DEBUG.
#
# USAGE:
# ------
#   from specscans.config import get_config
#   config = get_config()
#   print(config.motors.db_type)
#   print(config.service.max_workers)
#
# ==============================================

import logging
import os
from dataclasses import dataclass, field
from typing import Optional
from pathlib import Path

from dotenv import load_dotenv


@dataclass
class MotorsDbConfig:
    """Relational motor positions database configuration."""
    db_type: str = "mysql"
    db_file: str = "motors.db"
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = "root"
    database: str = "motors"


@dataclass
class MongoConfig:
    """MongoDB database configuration."""
    host: str = "localhost"
    port: int = 27017
    user: Optional[str] = None
    password: Optional[str] = None
    database: str = "foxden"
    collection: str = "specscans"


@dataclass
class ServiceConfig:
    """Service-level settings: routing, validation, batch concurrency."""
    name: str = "SpecScans"
    schema_file: Optional[str] = None
    service_map: Optional[str] = None
    max_workers: int = 8
    strict_routing: bool = False
    verbose: int = 0


@dataclass
class AppConfig:
    """Main application configuration."""
    motors: MotorsDbConfig = field(default_factory=MotorsDbConfig)
    mongo: MongoConfig = field(default_factory=MongoConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)


# Singleton instance
_config_instance: Optional[AppConfig] = None


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_config() -> AppConfig:
    """
    Load configuration from environment variables / .env file.
    Returns the same singleton instance on repeated calls.

    Returns:
        AppConfig: Application configuration
    """
    global _config_instance

    if _config_instance is not None:
        return _config_instance

    # Load .env file from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(dotenv_path=env_path)

    motors_config = MotorsDbConfig(
        db_type=os.getenv("MOTORS_DB_TYPE", "mysql").lower(),
        db_file=os.getenv("MOTORS_DB_FILE", "motors.db"),
        host=os.getenv("MOTORS_DB_HOST", "localhost"),
        port=int(os.getenv("MOTORS_DB_PORT", "3306")),
        user=os.getenv("MOTORS_DB_USER", "root"),
        password=os.getenv("MOTORS_DB_PASSWORD", "root"),
        database=os.getenv("MOTORS_DB_NAME", "motors")
    )

    mongo_config = MongoConfig(
        host=os.getenv("MONGO_HOST", "localhost"),
        port=int(os.getenv("MONGO_PORT", "27017")),
        user=os.getenv("MONGO_USER") or None,
        password=os.getenv("MONGO_PASSWORD") or None,
        database=os.getenv("MONGO_DATABASE", "foxden"),
        collection=os.getenv("MONGO_COLLECTION", "specscans")
    )

    service_config = ServiceConfig(
        name=os.getenv("SPECSCANS_SERVICE", "SpecScans"),
        schema_file=os.getenv("SPECSCANS_SCHEMA_FILE") or None,
        service_map=os.getenv("SPECSCANS_SERVICE_MAP") or None,
        max_workers=int(os.getenv("SPECSCANS_MAX_WORKERS", "8")),
        strict_routing=_env_bool("SPECSCANS_STRICT_ROUTING"),
        verbose=int(os.getenv("SPECSCANS_VERBOSE", "0"))
    )

    _config_instance = AppConfig(
        motors=motors_config,
        mongo=mongo_config,
        service=service_config
    )

    return _config_instance


def reset_config() -> None:
    """Forget the cached configuration so the next get_config() reloads it."""
    global _config_instance
    _config_instance = None


def configure_logging(verbose: int = 0) -> None:
    """Set the root log level from a verbosity count."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level
    )
    logging.getLogger().setLevel(level)
