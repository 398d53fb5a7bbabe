from flowsync.store.documents import DocumentStore, PersistenceError, Task, WriteBatch
from flowsync.store.schema import init_db

__all__ = ["DocumentStore", "PersistenceError", "Task", "WriteBatch", "init_db"]
