from md2slack.server.app import RunRequest, RunWorker, create_app
from md2slack.server.ports import resolve_port
from md2slack.server.state import Session, SessionSnapshot

__all__ = ["RunRequest", "RunWorker", "Session", "SessionSnapshot", "create_app", "resolve_port"]
