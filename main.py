"""
lpcycle - CLI Entrypoint
========================
    python main.py run
    python main.py run --loop
    python main.py check
"""

from lpcycle.cli import main

if __name__ == "__main__":
    main()
