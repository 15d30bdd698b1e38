"""Output formats of the CLI, a human format for terminals (with optional colors) and a
machine format intended to be parsed by front-ends wrapping the CLI.
"""

from .lang import get_raw as _raw

import shutil
import time
import sys
import re

from typing import List, Tuple, Union, Optional


class OutputTable:
    """Base class for formatting tables.
    """

    def __init__(self) -> None:
        self.rows: List[Union[None, Tuple[str, ...]]] = []
        self.columns_length: List[int] = []

    def add(self, *cells):
        """Add a row to the table.
        """
        row = tuple(str(cell) for cell in cells)
        self.rows.append(row)
        for i, cell in enumerate(row):
            if i < len(self.columns_length):
                self.columns_length[i] = max(self.columns_length[i], len(cell))
            else:
                self.columns_length.append(len(cell))

    def separator(self) -> None:
        """Add a separator to the table.
        """
        self.rows.append(None)

    def print(self) -> None:
        raise NotImplementedError


class Output:
    """Abstract output of the CLI, tasks are single lines updated until finished.
    """

    def table(self) -> OutputTable:
        raise NotImplementedError

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:
        """Update the current task (or create it if not the case).
        """
        raise NotImplementedError

    def finish(self) -> None:
        """Finish any active task.
        """
        raise NotImplementedError

    def print(self, text: str) -> None:
        """Raw print of the given text, used to forward the game's output. This function
        doesn't add any new line.
        """
        raise NotImplementedError

    def prompt(self, password: bool = False) -> Optional[str]:
        """Prompt for a line to come on standard input, none if interrupted.
        """
        raise NotImplementedError


class HumanOutput(Output):

    state_colors = {
        "OK": "\033[92m",
        "FAILED": "\033[31m",
        "WARN": "\033[33m",
        "INFO": "\033[34m",
        "HALT": "\033[33m",
    }

    line_colors = [
        ("ERROR", "\033[31m"),
        ("WARN", "\033[33m"),
        ("FATAL", "\033[31m"),
    ]

    def __init__(self, color: bool) -> None:
        self.color = color
        self.term_width = 0
        self.term_width_time = 0.0
        self.last_len: Optional[int] = None

    def get_term_width(self) -> int:
        """Terminal width, cached for one second.
        """
        now = time.monotonic()
        if now - self.term_width_time > 1:
            self.term_width_time = now
            self.term_width = shutil.get_terminal_size().columns
        return self.term_width

    def table(self) -> OutputTable:
        return HumanTable(self)

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:

        term_width = self.get_term_width()
        if term_width < 20:
            return

        if state is None:
            header = "\r         "
        elif self.color and state in self.state_colors:
            header = f"\r[{self.state_colors[state]}{state:^6s}\033[0m] "
        else:
            header = f"\r[{state:^6s}] "

        sys.stdout.write(header)

        if key is None:
            self.last_len = 0
        else:
            msg = _raw(key, kwargs)
            if len(msg) + 9 > term_width:
                msg = f"{msg[:term_width - 12]}..."
            # Erase the remaining of a longer previous message.
            padding = max(0, (self.last_len or 0) - len(msg))
            sys.stdout.write(msg + " " * padding)
            self.last_len = len(msg)

        sys.stdout.flush()

    def finish(self) -> None:
        if self.last_len is not None:
            sys.stdout.write("\n")
            sys.stdout.flush()
            self.last_len = None

    def print(self, text: str) -> None:
        if self.color:
            for token, code in self.line_colors:
                if token in text:
                    sys.stdout.write(f"{code}{text}\033[0m")
                    return
        sys.stdout.write(text)

    def prompt(self, password: bool = False) -> Optional[str]:
        try:
            if password:
                import getpass
                return getpass.getpass("")
            return input("")
        except (KeyboardInterrupt, EOFError):
            return None


class HumanTable(OutputTable):

    def __init__(self, out: HumanOutput) -> None:
        super().__init__()
        self.out = out

    def print(self) -> None:

        if not self.columns_length:
            return

        # Cells are truncated, last column first, to fit the terminal.
        widths = list(self.columns_length)
        overflow = 1 + sum(w + 3 for w in widths) - (self.out.get_term_width() - 1)
        for i in reversed(range(len(widths))):
            if overflow <= 0:
                break
            cut = min(overflow, max(0, widths[i] - 4))
            widths[i] -= cut
            overflow -= cut

        lines = ["─" * w for w in widths]
        print("┌─{}─┐".format("─┬─".join(lines)))

        for row in self.rows:
            if row is None:
                print("├─{}─┤".format("─┼─".join(lines)))
                continue
            cells = []
            for i, width in enumerate(widths):
                cell = row[i] if i < len(row) else ""
                if len(cell) > width:
                    cell = cell[:max(0, width - 3)] + "..."
                cells.append(f"{cell:{width}s}")
            print("│ {} │".format(" │ ".join(cells)))

        print("└─{}─┘".format("─┴─".join(lines)))


class MachineOutput(Output):
    """Output of lines `<function>:<arg>,<arg>,...`, with commas and new lines escaped.
    """

    escape_re = re.compile("[\\n\\r,\\\\]")
    escapes = {"\n": "\\n", "\r": "\\r", ",": "\\,", "\\": "\\\\"}

    @classmethod
    def escape(cls, s: str) -> str:
        return cls.escape_re.sub(lambda match: cls.escapes[match.group()], s)

    def print_function(self, function: str, /, *args: str, **kwargs) -> None:
        params = [*args, *(f"{k}={v}" for k, v in kwargs.items())]
        print(f"{function}:" + ",".join(self.escape(str(param)) for param in params))

    def table(self) -> OutputTable:
        return MachineTable(self)

    def task(self, state: Optional[str], key: Optional[str], **kwargs) -> None:
        self.print_function("task", str(state), str(key), **kwargs)

    def finish(self) -> None:
        pass

    def print(self, text: str) -> None:
        self.print_function("print", text)

    def prompt(self, password: bool = False) -> Optional[str]:
        self.print_function("prompt", password=str(int(password)))
        try:
            return input("")
        except (KeyboardInterrupt, EOFError):
            return None


class MachineTable(OutputTable):

    def __init__(self, out: MachineOutput) -> None:
        super().__init__()
        self.out = out

    def print(self) -> None:
        self.out.print_function("table", str(len(self.rows)))
        for row in self.rows:
            if row is None:
                self.out.print_function("sep")
            else:
                self.out.print_function("row", *row)
