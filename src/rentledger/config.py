from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "disable"
    write_attempts: int = 1


@dataclass(frozen=True)
class BusinessConfig:
    booking_code_prefix: str = "BK"
    customer_search_min_digits: int = 3
    customer_search_limit: int = 20


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    log_format: str
    db: DbConfig
    business: BusinessConfig


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    return parse_config(data)


def parse_config(data: dict) -> AppConfig:
    try:
        app = data["app"]
        db = data["db"]
        business = data.get("business", {})
        log_format = str(app.get("log_format", "console"))
        if log_format not in ("console", "json"):
            raise ValueError(f"app.log_format must be 'console' or 'json', got {log_format!r}")
        write_attempts = int(db.get("write_attempts", 1))
        if write_attempts < 1:
            raise ValueError("db.write_attempts must be >= 1")
        min_digits = int(business.get("customer_search_min_digits", 3))
        if min_digits < 1:
            raise ValueError("business.customer_search_min_digits must be >= 1")
        return AppConfig(
            name=str(app.get("name", "RentLedger")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            log_format=log_format,
            db=DbConfig(
                host=str(db["host"]),
                port=int(db.get("port", 5432)),
                name=str(db["name"]),
                user=str(db["user"]),
                password=str(db["password"]),
                sslmode=str(db.get("sslmode", "disable")),
                write_attempts=write_attempts,
            ),
            business=BusinessConfig(
                booking_code_prefix=str(business.get("booking_code_prefix", "BK")),
                customer_search_min_digits=min_digits,
                customer_search_limit=int(business.get("customer_search_limit", 20)),
            ),
        )
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except Exception as e:
        raise ConfigError(f"Invalid config values: {e}") from e
