# init_database.py
"""
Create the price-research tables before first use.

Usage:
    python init_database.py            # DATABASE_URL from env / .env
    python init_database.py --sqlite   # force ./price_research.db next to this script
"""
import os
import sys


def get_app_base_dir():
    """Directory of this script, or of the executable when frozen."""
    if getattr(sys, "frozen", False):
        return os.path.dirname(sys.executable)
    return os.path.abspath(os.path.dirname(__file__))


def configure_database():
    db_path = os.path.join(get_app_base_dir(), "price_research.db")
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    print(f"Using database: {db_path}")


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if "--sqlite" in argv:
        configure_database()

    # settings are read on first import, after the URL is pinned
    from price_research.db.auto_init import auto_init

    auto_init()


if __name__ == "__main__":
    main()
