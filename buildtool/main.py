#!/usr/bin/env python3
"""
Main entry point for the build tool.
"""
import logging
import sys


def setup_logging(level: int = logging.INFO,
                  format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'):
    """Set up logging configuration."""
    logging.basicConfig(
        level=level,
        format=format,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True
    )


def main():
    """Run the command-line interface."""
    from .cli.build_cli import cli
    cli()


if __name__ == "__main__":
    main()
