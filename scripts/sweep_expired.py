# scripts/sweep_expired.py
# Eenmalige opruimronde, bv. via cron:
#   */15 * * * * cd /opt/fileshare && python -m scripts.sweep_expired
from __future__ import annotations

from fileshare.core.logging_config import setup_logging
from fileshare.core.settings import get_settings
from fileshare.services.fileshare_service import FileShareService


def main() -> int:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    result = FileShareService(settings).sweep()

    print(
        f"🧹 Sweep: expired={result.expired} orphans={result.orphans} "
        f"partials={result.partials} corrupt={result.corrupt}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
