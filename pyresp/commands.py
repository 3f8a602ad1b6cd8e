"""Command dispatch: turns decoded requests into reply values."""

from typing import Callable, Dict, List

from .value import BulkString, ErrorValue, SimpleString, Value


PONG = SimpleString("PONG")


class Dispatcher:
    """Maps command names to handlers. Names are matched case-insensitively."""

    def __init__(self):
        self.handlers: Dict[str, Callable[[List[Value]], Value]] = {
            "PING": self._ping,
            "ECHO": self._echo,
        }

    def handle(self, request: Value) -> Value:
        """Dispatch a decoded request. Raises InvalidCommand for non-command shapes."""
        name, args = request.to_command()
        return self.dispatch(name, args)

    def dispatch(self, name: str, args: List[Value]) -> Value:
        handler = self.handlers.get(name.upper())
        if handler is None:
            return ErrorValue(f"ERR unknown command '{name}'")
        return handler(args)

    @staticmethod
    def _wrong_arity(name: str) -> ErrorValue:
        return ErrorValue(f"ERR wrong number of arguments for '{name.lower()}' command")

    def _ping(self, args: List[Value]) -> Value:
        if not args:
            return PONG
        if len(args) == 1:
            return BulkString(args[0].unwrap_bulk())
        return self._wrong_arity("PING")

    def _echo(self, args: List[Value]) -> Value:
        if len(args) != 1:
            return self._wrong_arity("ECHO")
        return BulkString(args[0].unwrap_bulk())
