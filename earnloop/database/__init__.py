from earnloop.database.session import Database

__all__ = ["Database"]
