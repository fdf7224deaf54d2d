from __future__ import annotations

from vetcare.config import get_impostazioni
from vetcare.db import engine


def main() -> None:
    print("ENGINE URL:", engine.url)
    print("DB FILE   :", engine.url.database)
    print("APP ENV   :", get_impostazioni().ambiente)


if __name__ == "__main__":
    main()
