from bidroom.messaging.ports.project_directory_port import ProjectDirectoryPort
from bidroom.messaging.ports.record_store_port import ChangeFeedPort, RecordStorePort, RowHandler, Unsubscribe
from bidroom.messaging.ports.session_port import SessionPort

__all__ = [
    "ChangeFeedPort",
    "ProjectDirectoryPort",
    "RecordStorePort",
    "RowHandler",
    "SessionPort",
    "Unsubscribe",
]
