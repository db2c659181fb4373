# Static collections that are pre-initialized
REGULATION_CHUNKS_COLLECTION = "regulation_chunks"

DEFAULT_VECTORDB_COLLECTIONS = [REGULATION_CHUNKS_COLLECTION]

# Every collection uses cosine distance; similarity = 1 - distance
COLLECTION_METADATA = {"hnsw:space": "cosine"}
