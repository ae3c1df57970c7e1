from convarchive.persistence.artifact_store import SQLiteArtifactStore
from convarchive.persistence.conversation_store import SQLiteConversationStore
from convarchive.persistence.migrations import MigrationError, run_migrations
from convarchive.persistence.provenance_store import SQLiteProvenanceStore

__all__ = [
    "MigrationError",
    "SQLiteArtifactStore",
    "SQLiteConversationStore",
    "SQLiteProvenanceStore",
    "run_migrations",
]
