"""Allow running as: python -m telegram_copilot_bridge"""

from .cli import main

if __name__ == "__main__":
    main()
