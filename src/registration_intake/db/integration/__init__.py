from .fastapi import EngineDep, UoWDep, attach_db, get_engine, get_uow

__all__ = ["attach_db", "get_engine", "get_uow", "EngineDep", "UoWDep"]
