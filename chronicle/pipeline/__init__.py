from .orchestrator import Engine, TimeAdvance, TurnRejected, TurnResult, grant_item

__all__ = ["Engine", "TimeAdvance", "TurnRejected", "TurnResult", "grant_item"]
