class EngineError(Exception):
    """Base class for errors raised by the study engine."""


class InvalidStateError(EngineError):
    """An operation was attempted in a state that does not allow it."""

    def __init__(self, operation: str, state):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while session is {state.value}")


class SetNotFoundError(EngineError, KeyError):
    def __init__(self, set_id: str):
        self.set_id = set_id
        super().__init__(f"Vocabulary set not found: {set_id}")

    def __str__(self):
        return self.args[0]


class ItemNotFoundError(EngineError, KeyError):
    def __init__(self, set_id: str, item_id: str):
        self.set_id = set_id
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found in set {set_id}")

    def __str__(self):
        return self.args[0]
