from convarchive.protocols.artifacts import ArtifactService
from convarchive.protocols.conversations import ConversationStore
from convarchive.protocols.provenance import ProvenanceService

__all__ = [
    "ArtifactService",
    "ConversationStore",
    "ProvenanceService",
]
