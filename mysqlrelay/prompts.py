from __future__ import annotations

import logging
import re
from typing import Callable

logger = logging.getLogger(__name__)

_YES_RE = re.compile(r"^[Yy]$")


class Prompter:
    """Operator interaction. Waits have no timeout.

    With assume_yes every pause returns immediately and every y/n question
    is answered "y". Typed confirmations (teardown) are answered too.
    """

    def __init__(self, *, assume_yes: bool = False, input_fn: Callable[[str], str] = input):
        self.assume_yes = assume_yes
        self._input = input_fn

    def pause(self, message: str = "Press ENTER to continue or Ctrl+C to abort...") -> None:
        if self.assume_yes:
            logger.info("%s (auto)", message)
            return
        self._input(message + " ")

    def confirm(self, question: str) -> bool:
        if self.assume_yes:
            logger.info("%s -> y (auto)", question)
            return True
        answer = self._input(f"{question} (y/n): ").strip()
        return bool(_YES_RE.match(answer))

    def confirm_typed(self, question: str, expected: str = "yes") -> bool:
        if self.assume_yes:
            logger.info("%s -> %s (auto)", question, expected)
            return True
        answer = self._input(f"{question} (type '{expected}' to confirm): ").strip()
        return answer == expected
