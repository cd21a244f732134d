"""Entry point for ``python -m lending_client.main``."""
from .cli import main

if __name__ == "__main__":
    main()
