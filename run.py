#!/usr/bin/env python3
"""
Komga → Discord Rich Presence with Imgur caching
Entry point for the komrpc package.
"""
import argparse
import sys

from pydantic import ValidationError

from komrpc.config import DEFAULT_CONFIG_PATH, load_config
from komrpc.core import main_loop
from komrpc.logger import get_logger, setup_logger
from komrpc.validation import validate_configuration
from komrpc.wizard import run_wizard


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="komrpc", description="Show what you are reading on Komga as Discord Rich Presence.")
    parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_PATH, help="path to the YAML/JSON config file")
    parser.add_argument("--check", action="store_true", help="validate the configuration and exit")
    parser.add_argument("--init", action="store_true", help="create a config file interactively and exit")
    parser.add_argument("--debug", action="store_true", help="verbose console logging")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logger = get_logger()

    try:
        if args.init:
            run_wizard(args.config)
            return

        # Load and validate settings from the config file
        settings = load_config(args.config)
        logger = setup_logger(log_file=settings.log_file, level="DEBUG" if args.debug else settings.log_level)
        logger.info(f"Using config file: {args.config}")

        if args.check:
            sys.exit(0 if validate_configuration(settings) else 1)

        # Start the main polling logic
        main_loop(settings)

    except FileNotFoundError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    except FileExistsError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)
    except Exception as e:
        logger.critical(f"FATAL ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
