# -*- coding: utf-8 -*-
"""
io_utils.py - I/O and Error Handling Utilities for Lighthead.

This module provides the argument parser, logging setup and stream writers
shared by the command-line tools, so that every tool reports errors the same
way: a single ``Error: <message>`` line on standard error.
"""

import sys
import logging
import argparse

logger = logging.getLogger(__name__)

# --- Custom Exception and ArgumentParser ---

class ArgumentParsingError(Exception):
    """Custom exception for argument parsing errors."""

class GracefulArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises a custom exception on error."""
    def error(self, message: str):
        """
        Handles parsing errors by raising a custom exception instead of exiting.

        Args:
            message (str): The error message from argparse.

        Raises:
            ArgumentParsingError: Always raised with the provided message.
        """
        raise ArgumentParsingError(message)


def setup_logging(verbose: bool, log_level: str = "WARNING") -> None:
    """Setup logging configuration."""
    level = logging.INFO if verbose else getattr(logging, log_level.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr
    )


# --- Stream Writers ---

def _write(stream, text: str):
    # Writing bytes avoids UnicodeEncodeError on consoles with a legacy code page.
    if hasattr(stream, 'buffer'):
        stream.buffer.write(text.encode('utf-8'))
        stream.buffer.flush()
    else:
        stream.write(text)
        stream.flush()

def print_text_stdout(text: str):
    """
    Writes text to standard output as UTF-8, followed by a newline.

    Args:
        text (str): The text to write.
    """
    _write(sys.stdout, text if text.endswith('\n') else text + '\n')

def eprint(message: str):
    """Writes an informational line to standard error."""
    _write(sys.stderr, message + '\n')

def eprint_error(message: str):
    """
    Reports an error on standard error in the form ``Error: <message>``.

    It checks for a `buffer` attribute on stderr to support streams that
    don't have one (like test mocks).

    Args:
        message (str): The human-readable error message.
    """
    eprint(f"Error: {message}")


# --- Common Error Handlers ---

def handle_argument_parsing_error(exception: Exception):
    """Reports an argument parsing error."""
    eprint_error(str(exception))

def handle_unexpected_error(exception: Exception):
    """
    Reports an unexpected error without a traceback.

    The traceback is kept in the debug log for anyone running with DEBUG enabled.

    Args:
        exception (Exception): The unexpected exception that was caught.
    """
    logger.debug("Unhandled exception", exc_info=exception)
    eprint_error(str(exception) or type(exception).__name__)
