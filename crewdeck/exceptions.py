class CrewDeckError(Exception):
    """Base error for the execution pipeline"""
    pass

class ConfigError(CrewDeckError):
    """Invalid configuration (bad script file, bad env value)"""
    pass

class ExecutionValidationError(CrewDeckError):
    """Execution creation request was malformed"""
    pass

class ExecutionNotFoundError(CrewDeckError):
    """No execution record with the given id"""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution not found: {execution_id}")

class ExecutionAlreadyStartedError(CrewDeckError):
    """A runner is already bound to this execution, or it has finished"""

    def __init__(self, execution_id: str, reason: str = "already running"):
        self.execution_id = execution_id
        super().__init__(f"Execution {execution_id} cannot be started: {reason}")

class PersistenceError(CrewDeckError):
    """The record store could not apply a write"""
    pass
