import contextvars
from contextlib import contextmanager

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)
task_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("task_id", default=None)
engine_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("engine", default=None)
style_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("style_id", default=None)


def set_request_id(request_id: str) -> contextvars.Token:
    """Store the current request ID in a context variable."""
    return request_id_var.set(request_id)


def reset_request_id(token: contextvars.Token) -> None:
    """Reset the request ID context variable to a previous state."""
    request_id_var.reset(token)


def get_request_id() -> str | None:
    """Retrieve the current request ID from the context."""
    return request_id_var.get()


def get_task_id() -> str | None:
    return task_id_var.get()


def get_engine() -> str | None:
    return engine_var.get()


def get_style_id() -> str | None:
    return style_id_var.get()


@contextmanager
def log_context(
    task_id: str | None = None,
    engine: str | None = None,
    style_id: str | None = None,
):
    """Temporarily scope task/engine/style context for structured logs."""
    tokens: list[tuple[contextvars.ContextVar[str | None], contextvars.Token]] = []
    if task_id is not None:
        tokens.append((task_id_var, task_id_var.set(task_id)))
    if engine is not None:
        tokens.append((engine_var, engine_var.set(engine)))
    if style_id is not None:
        tokens.append((style_id_var, style_id_var.set(style_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
