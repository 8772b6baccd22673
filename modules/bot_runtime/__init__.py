from .logging import setup_logger
from .loop import bootstrap_dependencies, run_decision_loop, run_event_pump
from .session import BotSession
from .settings import AppSettings

__all__ = [
    "AppSettings",
    "BotSession",
    "bootstrap_dependencies",
    "run_decision_loop",
    "run_event_pump",
    "setup_logger",
]
