"""
Entry point for running the engine as a module.
Usage: python -m kinemotion ROBOT.yaml [options]
"""

from .main import main_cli

if __name__ == "__main__":
    main_cli()
