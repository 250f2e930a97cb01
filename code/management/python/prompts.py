#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""Yes/no confirmation with a bounded wait that defaults to 'no'."""

# --- STANDARD LIBRARY IMPORTS ---
import logging
import select
import sys
from typing import Optional, TextIO

YES_ANSWERS = ("y", "yes")


class Prompter:
    """
    Asks a yes/no question on the terminal.

    Any answer other than y/yes, a timeout, end of input or a non-interactive
    stdin all count as 'no', so unattended runs never hang on a prompt.
    """

    def __init__(
        self,
        timeout: int = 30,
        stream: Optional[TextIO] = None,
        output: Optional[TextIO] = None,
        require_tty: bool = True,
    ):
        self.timeout = timeout
        self.stream = stream if stream is not None else sys.stdin
        self.output = output if output is not None else sys.stdout
        self.require_tty = require_tty

    def __call__(self, question: str) -> bool:
        if self.require_tty and not self.stream.isatty():
            logging.info(f"{question} [y/N]: no terminal attached, assuming no.")
            return False

        self.output.write(f"{question} [y/N] ({self.timeout}s): ")
        self.output.flush()

        ready, _, _ = select.select([self.stream], [], [], self.timeout)
        if not ready:
            self.output.write("\n")
            logging.warning(f"No answer within {self.timeout}s, assuming no.")
            return False

        answer = self.stream.readline()
        if not answer:
            self.output.write("\n")
            logging.info("End of input, assuming no.")
            return False
        return answer.strip().lower() in YES_ANSWERS
