from __future__ import annotations

from rentledger.config import ConfigError, load_config
from rentledger.db import Db, DbError
from rentledger.cli import run_cli
from rentledger.logs import configure_logging


def main() -> int:
    try:
        cfg = load_config("config.toml")
        configure_logging(cfg.log_level, cfg.log_format)
        db = Db(cfg.db)
        run_cli(db, cfg.business)
        return 0
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    except DbError as e:
        print(f"[DB ERROR] {e}")
        return 3
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
